"""Deployment data models."""

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from vtexdeploy.core.exceptions import DeploymentError


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_deployment_id() -> str:
    """Opaque deployment id: ``deploy_<epoch-ms>_<8 hex chars>``."""
    return f"deploy_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class Environment(str, Enum):
    """Deployment environments."""

    QA = "qa"
    PRODUCTION = "production"


class DeploymentStatus(str, Enum):
    """Deployment status."""

    PENDING = "pending"
    VALIDATING = "validating"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {DeploymentStatus.SUCCEEDED, DeploymentStatus.ROLLED_BACK, DeploymentStatus.FAILED}
)


class NotificationEvent(str, Enum):
    """Logical events handed to the notification fan-out."""

    STARTED = "started"
    SUCCESS = "success"
    FAILURE = "failure"
    ROLLBACK_STARTED = "rollback_started"
    ROLLBACK_SUCCESS = "rollback_success"
    ROLLBACK_FAILED = "rollback_failed"


class HealthStatus(str, Enum):
    """Probe and summary health status."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class Severity(str, Enum):
    """Validation issue severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class DeploymentOptions:
    """Input for one deployment invocation."""

    environment: Environment
    branch: str | None = None
    workspace: str | None = None
    force: bool = False
    skip_validation: bool = False
    skip_tests: bool = False
    canary: bool = False
    canary_percentage: int = 10
    confirm: bool = False
    dry_run: bool = False
    version: str | None = None

    def for_environment(self, environment: Environment) -> "DeploymentOptions":
        """Copy of these options targeting another environment."""
        return replace(self, environment=environment)

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION


@dataclass(frozen=True)
class RollbackOptions:
    """Input for an explicit rollback."""

    environment: Environment
    deployment_id: str | None = None
    version: str | None = None
    steps: int = 1
    dry_run: bool = False
    reason: str | None = None


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation finding."""

    severity: Severity
    message: str
    field: str | None = None
    code: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "field": self.field,
            "code": self.code,
        }


@dataclass
class ValidationVerdict:
    """Ordered validation issues. Valid iff no error-severity issue."""

    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not any(i.severity == Severity.ERROR for i in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]

    def error(self, message: str, field: str | None = None, code: str = "") -> None:
        self.issues.append(ValidationIssue(Severity.ERROR, message, field, code))

    def warning(self, message: str, field: str | None = None, code: str = "") -> None:
        self.issues.append(ValidationIssue(Severity.WARNING, message, field, code))

    def error_message(self) -> str:
        """All error messages joined with '; '."""
        return "; ".join(i.message for i in self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
        }


@dataclass(frozen=True)
class Succeeded:
    """Terminal outcome of a successful deployment."""

    version: str | None
    dry_run: bool = False


@dataclass(frozen=True)
class Failed:
    """Terminal outcome of a failed deployment."""

    error: str


@dataclass(frozen=True)
class RolledBack:
    """Terminal outcome of a deployment that was rolled back."""

    target_id: str | None


Outcome = Succeeded | Failed | RolledBack


@dataclass
class DeploymentResult:
    """State of one deployment attempt, owned by a single orchestrator call."""

    environment: Environment
    id: str = field(default_factory=generate_deployment_id)
    version: str | None = None
    workspace: str | None = None
    branch: str | None = None
    status: DeploymentStatus = DeploymentStatus.PENDING
    started_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None
    duration_ms: int | None = None
    logs: list[str] = field(default_factory=list)
    error: str | None = None
    canary: bool = False
    canary_percentage: int | None = None
    dry_run: bool = False
    rollback_target: str | None = None
    workspace_url: str | None = None

    def log(self, message: str) -> None:
        """Append a timestamped log line."""
        self.logs.append(f"[{_now().isoformat()}] {message}")

    def advance(self, status: DeploymentStatus) -> None:
        """Move to a non-terminal state."""
        if self.is_complete:
            raise DeploymentError(
                f"Deployment already finished with status '{self.status.value}'",
                deployment_id=self.id,
            )
        if status.is_terminal:
            raise DeploymentError(
                f"Use finish() to enter terminal status '{status.value}'",
                deployment_id=self.id,
            )
        self.status = status

    def finish(self, status: DeploymentStatus, error: str | None = None) -> None:
        """Enter a terminal state. May only be called once."""
        if not status.is_terminal:
            raise DeploymentError(
                f"'{status.value}' is not a terminal status", deployment_id=self.id
            )
        if self.is_complete:
            raise DeploymentError(
                f"Deployment already finished with status '{self.status.value}'",
                deployment_id=self.id,
            )
        self.status = status
        self.error = error
        self.completed_at = _now()
        self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal

    @property
    def restorable(self) -> bool:
        """Whether a rollback may reinstall this deployment's version."""
        return self.status == DeploymentStatus.SUCCEEDED and not self.dry_run and bool(self.version)

    @property
    def outcome(self) -> Outcome | None:
        """Tagged terminal outcome, or None while the deployment is in flight."""
        if self.status == DeploymentStatus.SUCCEEDED:
            return Succeeded(version=self.version, dry_run=self.dry_run)
        if self.status == DeploymentStatus.FAILED:
            return Failed(error=self.error or "unknown error")
        if self.status == DeploymentStatus.ROLLED_BACK:
            return RolledBack(target_id=self.rollback_target)
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "environment": self.environment.value,
            "version": self.version,
            "workspace": self.workspace,
            "branch": self.branch,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "canary": self.canary,
            "canary_percentage": self.canary_percentage,
            "dry_run": self.dry_run,
            "rollback_target": self.rollback_target,
            "workspace_url": self.workspace_url,
            "logs": list(self.logs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeploymentResult":
        """Create from dictionary."""
        result = cls(
            id=data.get("id") or generate_deployment_id(),
            environment=Environment(data.get("environment", "qa")),
            version=data.get("version"),
            workspace=data.get("workspace"),
            branch=data.get("branch"),
            status=DeploymentStatus(data.get("status", "pending")),
            duration_ms=data.get("duration_ms"),
            logs=list(data.get("logs", [])),
            error=data.get("error"),
            canary=data.get("canary", False),
            canary_percentage=data.get("canary_percentage"),
            dry_run=data.get("dry_run", False),
            rollback_target=data.get("rollback_target"),
            workspace_url=data.get("workspace_url"),
        )

        if data.get("started_at"):
            result.started_at = datetime.fromisoformat(data["started_at"])
        if data.get("completed_at"):
            result.completed_at = datetime.fromisoformat(data["completed_at"])

        return result


@dataclass
class HealthCheckResult:
    """Result of a single health probe."""

    service: str
    status: HealthStatus
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=_now)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "status": self.status.value,
            "message": self.message,
            "details": self.details,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class HealthCheckSummary:
    """Aggregate of one health check run."""

    overall: HealthStatus
    results: list[HealthCheckResult] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    recovered: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_now)

    @property
    def critical(self) -> list[HealthCheckResult]:
        return [r for r in self.results if r.status == HealthStatus.CRITICAL]

    @property
    def warnings(self) -> list[HealthCheckResult]:
        return [r for r in self.results if r.status == HealthStatus.WARNING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall.value,
            "results": [r.to_dict() for r in self.results],
            "recommendations": list(self.recommendations),
            "recovered": list(self.recovered),
            "timestamp": self.timestamp.isoformat(),
        }
