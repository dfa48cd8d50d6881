"""Custom exceptions for vtexdeploy."""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vtexdeploy.deploy.models import DeploymentResult, ValidationVerdict


class VtexDeployError(Exception):
    """Base exception for all vtexdeploy errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class ConfigError(VtexDeployError):
    """Configuration-related errors."""

    pass


class ValidationError(VtexDeployError):
    """Policy or precondition violations. Fixed by operator action, never retried."""

    pass


class DeploymentValidationError(ValidationError):
    """A deployment was refused before anything ran on the platform."""

    def __init__(
        self,
        message: str,
        verdict: "ValidationVerdict | None" = None,
        result: "DeploymentResult | None" = None,
    ):
        super().__init__(message)
        self.verdict = verdict
        self.result = result


class DeploymentError(VtexDeployError):
    """Deployment state errors."""

    def __init__(
        self,
        message: str,
        deployment_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.deployment_id = deployment_id


class ExecutionError(DeploymentError):
    """The remote platform operation failed."""

    pass


class HealthCheckError(VtexDeployError):
    """A health probe raised instead of returning a result."""

    def __init__(
        self,
        message: str,
        service: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.service = service


class RollbackError(DeploymentError):
    """No eligible rollback target, or the rollback itself failed."""

    pass


class PlatformError(VtexDeployError):
    """VTEX CLI errors."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        stderr: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.command = command
        self.stderr = stderr


class GitError(VtexDeployError):
    """Git command errors."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.command = command


class NotificationError(VtexDeployError):
    """Notification channel errors."""

    def __init__(
        self,
        message: str,
        channel: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.channel = channel
        self.status_code = status_code


class AuthenticationError(VtexDeployError):
    """Authentication/authorization errors."""

    pass


class TimeoutError(VtexDeployError):
    """Operation timeout errors."""

    def __init__(
        self,
        message: str,
        timeout_seconds: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.timeout_seconds = timeout_seconds
