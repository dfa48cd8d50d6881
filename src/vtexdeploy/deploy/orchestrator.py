"""Deployment state machine.

A deployment moves pending -> validating -> executing -> verifying and ends
in exactly one of succeeded, rolled_back or failed. Only validation failures
raise out of ``deploy()``; every later failure is captured in the result.
"""

import copy
from typing import TYPE_CHECKING

from vtexdeploy.clients.vtex import PlatformClient
from vtexdeploy.core.async_utils import run_sync, run_with_timeout
from vtexdeploy.core.exceptions import DeploymentValidationError, RollbackError, ValidationError
from vtexdeploy.core.logging import StructuredLogger
from vtexdeploy.deploy.health import HealthCheckEngine
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
)
from vtexdeploy.deploy.notifications import NotificationService
from vtexdeploy.deploy.validation import ValidationEngine

if TYPE_CHECKING:
    from vtexdeploy.config import DeploySettings

NO_PREVIOUS_DEPLOYMENT = "no previous deployment available for rollback"
NO_ROLLBACK_TARGET = "no previous deployments found for rollback"


class DeploymentOrchestrator:
    """Validates, executes, verifies and, when needed, rolls back deployments."""

    def __init__(
        self,
        platform: PlatformClient,
        validator: ValidationEngine,
        health: HealthCheckEngine,
        notifier: NotificationService,
        settings: "DeploySettings",
    ):
        self.platform = platform
        self.validator = validator
        self.health = health
        self.notifier = notifier
        self.settings = settings
        self._logger = StructuredLogger(__name__)

    # Public API
    def deploy(self, options: DeploymentOptions) -> DeploymentResult:
        """Run one deployment to completion.

        Raises:
            DeploymentValidationError: If validation rejected the options.
                Nothing was executed on the platform.
        """
        result = DeploymentResult(
            environment=options.environment,
            workspace=self.settings.workspace_for(options.environment.value, options.workspace),
            branch=options.branch,
            version=options.version,
            canary=options.canary,
            canary_percentage=options.canary_percentage if options.canary else None,
            dry_run=options.dry_run,
        )
        log = self._logger.bind(deployment_id=result.id, environment=options.environment.value)
        log.info("Deployment requested")
        result.log(f"Deployment {result.id} requested for {options.environment.value}")

        self._validate(options, result, log)

        if options.dry_run:
            result.log("Dry run: skipping platform deployment and health checks")
            result.finish(DeploymentStatus.SUCCEEDED)
            log.info("Dry run completed")
            self._notify(NotificationEvent.SUCCESS, result)
            return result

        result.advance(DeploymentStatus.EXECUTING)
        self._notify(NotificationEvent.STARTED, result)

        if not self._execute(options, result, log):
            self._record(result)
            self._notify(NotificationEvent.FAILURE, result)
            return result

        result.advance(DeploymentStatus.VERIFYING)
        summary = self._verify(result, log)
        self._conclude(result, summary, log)
        return result

    def deploy_to_environment(
        self, environment: Environment, options: DeploymentOptions
    ) -> DeploymentResult:
        """Deploy with the options re-targeted at ``environment``."""
        return self.deploy(options.for_environment(environment))

    def rollback(self, options: RollbackOptions) -> DeploymentResult:
        """Roll an environment back to a previous deployment.

        The newest history entry is treated as the current deployment and is
        never a candidate. Only entries where ``restorable`` holds are
        considered. Platform failures are captured in the result.

        Raises:
            ValidationError: If ``steps`` is less than 1.
            RollbackError: If no target could be resolved.
        """
        if options.steps < 1:
            raise ValidationError(f"steps must be at least 1 (got {options.steps})")

        result = DeploymentResult(environment=options.environment, dry_run=options.dry_run)
        log = self._logger.bind(deployment_id=result.id, environment=options.environment.value)
        if options.reason:
            result.log(f"Rollback reason: {options.reason}")

        limit = max(self.settings.history_limit, options.steps + 1)
        history = self.platform.get_deployment_history(options.environment, limit)
        target = self._resolve_rollback_target(history, options)

        if target is None:
            result.finish(DeploymentStatus.FAILED, NO_ROLLBACK_TARGET)
            log.error("Rollback target not found")
            self._notify(NotificationEvent.ROLLBACK_FAILED, result)
            raise RollbackError(NO_ROLLBACK_TARGET, deployment_id=result.id)

        result.rollback_target = target.id
        result.version = target.version
        result.workspace = target.workspace
        result.log(f"Rollback target: {target.id} (version {target.version})")

        if options.dry_run:
            result.log("Dry run: platform rollback not executed")
            result.finish(DeploymentStatus.SUCCEEDED)
            log.info(f"Dry run rollback resolved to {target.id}")
            return result

        result.advance(DeploymentStatus.EXECUTING)
        self._notify(NotificationEvent.ROLLBACK_STARTED, result)

        try:
            rollback = self.platform.rollback_to_deployment(target.id)
        except Exception as e:
            log.error(f"Rollback failed: {e}")
            result.log(f"Rollback failed: {e}")
            result.finish(DeploymentStatus.FAILED, str(e))
            self._notify(NotificationEvent.ROLLBACK_FAILED, result)
            return result

        if not rollback.success:
            result.finish(DeploymentStatus.FAILED, f"platform rejected rollback to {target.id}")
            self._notify(NotificationEvent.ROLLBACK_FAILED, result)
            return result

        result.rollback_target = rollback.rolled_back_to or target.id
        result.finish(DeploymentStatus.ROLLED_BACK)
        log.info(f"Rolled back to {result.rollback_target}")
        self._record(result)
        self._notify(NotificationEvent.ROLLBACK_SUCCESS, result)
        return result

    def get_status(self, environment: Environment) -> DeploymentResult | None:
        """Most recent deployment for an environment, if any."""
        history = self.platform.get_deployment_history(environment, 1)
        return history[0] if history else None

    def get_deployment(self, deployment_id: str) -> DeploymentResult | None:
        """A recorded deployment by id, from any environment."""
        return self.platform.get_deployment(deployment_id)

    def get_deployment_history(
        self, environment: Environment, limit: int | None = None
    ) -> list[DeploymentResult]:
        """Previous deployments, newest first."""
        return self.platform.get_deployment_history(environment, limit or self.settings.history_limit)

    # State transitions
    def _validate(self, options: DeploymentOptions, result: DeploymentResult, log: StructuredLogger) -> None:
        if options.environment == Environment.QA and options.skip_validation:
            result.log("Validation skipped")
            log.warning("Validation skipped for QA deployment")
            return

        result.advance(DeploymentStatus.VALIDATING)
        verdict = self.validator.validate(options)
        for issue in verdict.warnings:
            result.log(f"Validation warning: {issue.message}")

        if verdict.valid:
            result.log("Validation passed")
            return

        message = verdict.error_message()
        result.log(f"Validation failed: {message}")
        result.finish(DeploymentStatus.FAILED, message)
        log.error(f"Validation failed: {message}")
        self._notify(NotificationEvent.FAILURE, result)
        raise DeploymentValidationError(f"Validation failed: {message}", verdict=verdict, result=result)

    def _execute(self, options: DeploymentOptions, result: DeploymentResult, log: StructuredLogger) -> bool:
        canary = options.canary and options.is_production
        try:
            if canary:
                result.log(f"Starting canary deployment at {options.canary_percentage}%")
                outcome = self.platform.deploy_canary(options, options.canary_percentage)
            else:
                result.log(f"Deploying to workspace {result.workspace}")
                outcome = self.platform.deploy(options)
        except Exception as e:
            log.error(f"Platform deployment failed: {e}")
            result.log(f"Deployment failed: {e}")
            result.finish(DeploymentStatus.FAILED, str(e))
            return False

        if not outcome.success:
            error = outcome.error or "platform reported an unsuccessful deployment"
            log.error(f"Platform deployment failed: {error}")
            result.log(f"Deployment failed: {error}")
            result.finish(DeploymentStatus.FAILED, error)
            return False

        result.version = outcome.version or result.version
        result.workspace_url = outcome.workspace_url
        result.log(f"Deployed version {result.version}")
        self._record(result)
        return True

    def _verify(self, result: DeploymentResult, log: StructuredLogger) -> HealthCheckSummary:
        result.log("Running health checks")
        try:
            summary = run_sync(
                run_with_timeout(
                    self.health.run(),
                    self.settings.timeout,
                    f"health checks timed out after {self.settings.timeout}s",
                )
            )
        except Exception as e:
            log.error(f"Health check run failed: {e}")
            summary = HealthCheckSummary(
                overall=HealthStatus.CRITICAL,
                results=[HealthCheckResult("health", HealthStatus.CRITICAL, str(e))],
            )

        for probe in summary.results:
            result.log(f"Health {probe.service}: {probe.status.value} - {probe.message}")
        return summary

    def _conclude(self, result: DeploymentResult, summary: HealthCheckSummary, log: StructuredLogger) -> None:
        failing = summary.overall == HealthStatus.CRITICAL or (
            summary.overall == HealthStatus.WARNING and self.settings.rollback_on_warning
        )

        if not failing:
            if summary.overall == HealthStatus.WARNING:
                log.warning("Deployment healthy with warnings")
            result.finish(DeploymentStatus.SUCCEEDED)
            log.info(f"Deployment succeeded: version {result.version}")
            self._record(result)
            self._notify(NotificationEvent.SUCCESS, result)
            return

        reason = "health check failed: " + "; ".join(
            f"{r.service}: {r.message}" for r in summary.results if r.status != HealthStatus.HEALTHY
        )

        if not self.settings.rollback_on_failure:
            result.finish(DeploymentStatus.FAILED, reason)
            log.error(reason)
            self._record(result)
            self._notify(NotificationEvent.FAILURE, result)
            return

        self._auto_rollback(result, reason, log)

    def _auto_rollback(self, result: DeploymentResult, reason: str, log: StructuredLogger) -> None:
        log.warning(f"Rolling back: {reason}")
        result.log(f"Rolling back: {reason}")
        self._notify(NotificationEvent.ROLLBACK_STARTED, result)

        try:
            history = self.platform.get_deployment_history(result.environment, self.settings.history_limit)
        except Exception as e:
            self._fail_rollback(result, f"rollback failed: {e}", log)
            return

        target = next((entry for entry in history if entry.id != result.id and entry.restorable), None)
        if target is None:
            self._fail_rollback(result, NO_PREVIOUS_DEPLOYMENT, log)
            return

        try:
            rollback = self.platform.rollback_to_deployment(target.id)
        except Exception as e:
            self._fail_rollback(result, f"rollback failed: {e}", log)
            return

        if not rollback.success:
            self._fail_rollback(result, f"rollback failed: platform rejected rollback to {target.id}", log)
            return

        result.rollback_target = rollback.rolled_back_to or target.id
        result.log(f"Rolled back to {result.rollback_target}")
        result.finish(DeploymentStatus.ROLLED_BACK, reason)
        log.info(f"Rolled back to {result.rollback_target}")
        self._record(result)
        self._notify(NotificationEvent.ROLLBACK_SUCCESS, result)

    def _fail_rollback(self, result: DeploymentResult, error: str, log: StructuredLogger) -> None:
        log.error(error)
        result.log(error)
        result.finish(DeploymentStatus.FAILED, error)
        self._record(result)
        self._notify(NotificationEvent.ROLLBACK_FAILED, result)

    # Side effects
    def _resolve_rollback_target(
        self, history: list[DeploymentResult], options: RollbackOptions
    ) -> DeploymentResult | None:
        candidates = [entry for entry in history[1:] if entry.restorable]
        if options.deployment_id:
            return next((c for c in candidates if c.id == options.deployment_id), None)
        if options.version:
            return next((c for c in candidates if c.version == options.version), None)
        if len(candidates) >= options.steps:
            return candidates[options.steps - 1]
        return None

    def _record(self, result: DeploymentResult) -> None:
        try:
            self.platform.record_deployment(result)
        except Exception as e:
            self._logger.warning(f"Failed to record deployment history: {e}", deployment_id=result.id)

    def _notify(self, event: NotificationEvent, result: DeploymentResult) -> None:
        # Non-terminal events get a snapshot since the result keeps changing.
        payload = result if result.is_complete else copy.deepcopy(result)
        try:
            self.notifier.send(event, payload)
        except Exception as e:
            self._logger.warning(f"Failed to send {event.value} notification: {e}", deployment_id=result.id)
