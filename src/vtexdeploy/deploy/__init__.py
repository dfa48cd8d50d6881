"""Deployment orchestration engine."""

from vtexdeploy.deploy.models import (
    DeploymentOptions,
    DeploymentResult,
    DeploymentStatus,
    Environment,
    HealthCheckResult,
    HealthCheckSummary,
    HealthStatus,
    NotificationEvent,
    RollbackOptions,
    ValidationIssue,
    ValidationVerdict,
)

__all__ = [
    "DeploymentOptions",
    "DeploymentResult",
    "DeploymentStatus",
    "Environment",
    "HealthCheckResult",
    "HealthCheckSummary",
    "HealthStatus",
    "NotificationEvent",
    "RollbackOptions",
    "ValidationIssue",
    "ValidationVerdict",
]
