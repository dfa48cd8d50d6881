"""Core utilities and shared components for vtexdeploy."""

# Note: Import context lazily to avoid circular imports
# Use: from vtexdeploy.core.context import VtexDeployContext, pass_context
from vtexdeploy.core.exceptions import (
    VtexDeployError,
    ConfigError,
    ValidationError,
    DeploymentError,
    PlatformError,
    GitError,
)
from vtexdeploy.core.output import OutputFormatter, console

__all__ = [
    "VtexDeployError",
    "ConfigError",
    "ValidationError",
    "DeploymentError",
    "PlatformError",
    "GitError",
    "OutputFormatter",
    "console",
]
