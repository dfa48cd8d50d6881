"""Tests for deployment data models."""

import re

import pytest

from vtexdeploy.core.exceptions import DeploymentError
from vtexdeploy.deploy.models import (
    DeploymentOptions,
    DeploymentResult,
    DeploymentStatus,
    Environment,
    Failed,
    HealthCheckResult,
    HealthCheckSummary,
    HealthStatus,
    RolledBack,
    Severity,
    Succeeded,
    ValidationVerdict,
    generate_deployment_id,
)


class TestDeploymentId:
    """Tests for deployment id generation."""

    def test_format(self):
        assert re.fullmatch(r"deploy_\d+_[0-9a-f]{8}", generate_deployment_id())

    def test_unique(self):
        ids = {generate_deployment_id() for _ in range(100)}
        assert len(ids) == 100


class TestDeploymentStatus:
    """Tests for status classification."""

    @pytest.mark.parametrize(
        "status",
        [DeploymentStatus.SUCCEEDED, DeploymentStatus.ROLLED_BACK, DeploymentStatus.FAILED],
    )
    def test_terminal(self, status):
        assert status.is_terminal

    @pytest.mark.parametrize(
        "status",
        [
            DeploymentStatus.PENDING,
            DeploymentStatus.VALIDATING,
            DeploymentStatus.EXECUTING,
            DeploymentStatus.VERIFYING,
        ],
    )
    def test_non_terminal(self, status):
        assert not status.is_terminal


class TestDeploymentOptions:
    """Tests for DeploymentOptions."""

    def test_for_environment_copies(self):
        options = DeploymentOptions(environment=Environment.QA, branch="develop", force=True)
        prod = options.for_environment(Environment.PRODUCTION)

        assert prod.environment == Environment.PRODUCTION
        assert prod.branch == "develop"
        assert prod.force is True
        assert options.environment == Environment.QA

    def test_is_production(self):
        assert DeploymentOptions(environment=Environment.PRODUCTION).is_production
        assert not DeploymentOptions(environment=Environment.QA).is_production

    def test_defaults(self):
        options = DeploymentOptions(environment=Environment.QA)
        assert options.canary_percentage == 10
        assert options.confirm is False
        assert options.dry_run is False


class TestValidationVerdict:
    """Tests for ValidationVerdict."""

    def test_empty_is_valid(self):
        assert ValidationVerdict().valid

    def test_warnings_keep_verdict_valid(self):
        verdict = ValidationVerdict()
        verdict.warning("behind remote")
        assert verdict.valid
        assert len(verdict.warnings) == 1

    def test_error_invalidates(self):
        verdict = ValidationVerdict()
        verdict.warning("behind remote")
        verdict.error("dirty tree", field="git", code="UNCOMMITTED_CHANGES")

        assert not verdict.valid
        assert verdict.errors[0].severity == Severity.ERROR
        assert verdict.errors[0].code == "UNCOMMITTED_CHANGES"

    def test_error_message_joins_in_order(self):
        verdict = ValidationVerdict()
        verdict.error("first")
        verdict.warning("ignored")
        verdict.error("second")
        assert verdict.error_message() == "first; second"

    def test_to_dict(self):
        verdict = ValidationVerdict()
        verdict.error("bad", field="branch")
        data = verdict.to_dict()

        assert data["valid"] is False
        assert data["errors"][0]["field"] == "branch"
        assert data["warnings"] == []


class TestDeploymentResult:
    """Tests for DeploymentResult state handling."""

    def test_new_result_is_pending(self):
        result = DeploymentResult(environment=Environment.QA)
        assert result.status == DeploymentStatus.PENDING
        assert not result.is_complete
        assert result.outcome is None

    def test_advance(self):
        result = DeploymentResult(environment=Environment.QA)
        result.advance(DeploymentStatus.VALIDATING)
        result.advance(DeploymentStatus.EXECUTING)
        assert result.status == DeploymentStatus.EXECUTING

    def test_advance_rejects_terminal_status(self):
        result = DeploymentResult(environment=Environment.QA)
        with pytest.raises(DeploymentError):
            result.advance(DeploymentStatus.SUCCEEDED)

    def test_finish_sets_completion(self):
        result = DeploymentResult(environment=Environment.QA)
        result.finish(DeploymentStatus.FAILED, "boom")

        assert result.is_complete
        assert result.error == "boom"
        assert result.completed_at is not None
        assert result.completed_at >= result.started_at
        assert result.duration_ms is not None and result.duration_ms >= 0

    def test_finish_only_once(self):
        result = DeploymentResult(environment=Environment.QA)
        result.finish(DeploymentStatus.SUCCEEDED)

        with pytest.raises(DeploymentError):
            result.finish(DeploymentStatus.FAILED, "late")
        with pytest.raises(DeploymentError):
            result.advance(DeploymentStatus.VERIFYING)
        assert result.status == DeploymentStatus.SUCCEEDED

    def test_finish_rejects_non_terminal(self):
        result = DeploymentResult(environment=Environment.QA)
        with pytest.raises(DeploymentError):
            result.finish(DeploymentStatus.EXECUTING)

    def test_outcomes(self):
        ok = DeploymentResult(environment=Environment.QA, version="1.2.0")
        ok.finish(DeploymentStatus.SUCCEEDED)
        assert ok.outcome == Succeeded(version="1.2.0", dry_run=False)

        failed = DeploymentResult(environment=Environment.QA)
        failed.finish(DeploymentStatus.FAILED, "broken")
        assert failed.outcome == Failed(error="broken")

        rolled = DeploymentResult(environment=Environment.QA, rollback_target="deploy_1_abcdef01")
        rolled.finish(DeploymentStatus.ROLLED_BACK)
        assert rolled.outcome == RolledBack(target_id="deploy_1_abcdef01")

    @pytest.mark.parametrize(
        "status,version,dry_run,expected",
        [
            (DeploymentStatus.SUCCEEDED, "1.2.0", False, True),
            (DeploymentStatus.SUCCEEDED, None, False, False),
            (DeploymentStatus.SUCCEEDED, "1.2.0", True, False),
            (DeploymentStatus.FAILED, "1.2.0", False, False),
            (DeploymentStatus.ROLLED_BACK, "1.2.0", False, False),
            (DeploymentStatus.EXECUTING, "1.2.0", False, False),
        ],
    )
    def test_restorable(self, status, version, dry_run, expected):
        result = DeploymentResult(environment=Environment.QA, version=version, status=status, dry_run=dry_run)
        assert result.restorable is expected

    def test_log_lines_are_timestamped(self):
        result = DeploymentResult(environment=Environment.QA)
        result.log("hello")
        assert result.logs[0].startswith("[")
        assert result.logs[0].endswith("] hello")

    def test_dict_roundtrip_keeps_identity(self):
        result = DeploymentResult(
            environment=Environment.PRODUCTION,
            version="2.0.0",
            workspace="prodtest",
            canary=True,
            canary_percentage=20,
        )
        result.finish(DeploymentStatus.SUCCEEDED)

        restored = DeploymentResult.from_dict(result.to_dict())

        assert restored.id == result.id
        assert restored.environment == Environment.PRODUCTION
        assert restored.status == DeploymentStatus.SUCCEEDED
        assert restored.canary_percentage == 20
        assert restored.completed_at == result.completed_at


class TestHealthModels:
    """Tests for health result models."""

    def test_is_healthy(self):
        assert HealthCheckResult("apps", HealthStatus.HEALTHY, "ok").is_healthy
        assert not HealthCheckResult("apps", HealthStatus.WARNING, "slow").is_healthy

    def test_summary_projections(self):
        summary = HealthCheckSummary(
            overall=HealthStatus.CRITICAL,
            results=[
                HealthCheckResult("apps", HealthStatus.CRITICAL, "down"),
                HealthCheckResult("network", HealthStatus.WARNING, "slow"),
                HealthCheckResult("system", HealthStatus.HEALTHY, "ok"),
            ],
        )
        assert [r.service for r in summary.critical] == ["apps"]
        assert [r.service for r in summary.warnings] == ["network"]
        assert summary.to_dict()["overall"] == "critical"
