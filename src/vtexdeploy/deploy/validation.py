"""Pre-flight validation of deployment options.

The engine only reads from its collaborators. Every check runs under a guard
that turns an unexpected exception into an error issue, so a failing read
never stops the checks after it.
"""

import re
import shlex
import subprocess
from collections.abc import Callable
from typing import TYPE_CHECKING

from vtexdeploy.clients.git import GitReader
from vtexdeploy.clients.vtex import PlatformClient
from vtexdeploy.core.logging import get_logger
from vtexdeploy.deploy.models import (
    DeploymentOptions,
    Environment,
    ValidationIssue,
    ValidationVerdict,
)

if TYPE_CHECKING:
    from vtexdeploy.config import ProfileConfig

logger = get_logger(__name__)

BRANCH_NAME_RE = re.compile(r"^[A-Za-z0-9._/-]+$")

CONFIRMATION_REQUIRED = "confirmation required for production deployments"
VALIDATION_SKIPPED = "validation skipped"

__all__ = ["ValidationEngine", "ValidationIssue", "ValidationVerdict", "is_valid_branch_name"]


def is_valid_branch_name(name: str) -> bool:
    """Check a branch name against the characters and shapes git accepts."""
    if not name or not BRANCH_NAME_RE.match(name):
        return False
    if ".." in name or name.startswith("/") or name.endswith("/"):
        return False
    if name.endswith(".lock"):
        return False
    return True


class ValidationEngine:
    """Decides whether a deployment may proceed."""

    def __init__(self, git: GitReader, platform: PlatformClient, profile: "ProfileConfig"):
        self.git = git
        self.platform = platform
        self.profile = profile

    def validate(self, options: DeploymentOptions) -> ValidationVerdict:
        """Run all checks for the given options and return the verdict."""
        verdict = ValidationVerdict()

        if options.is_production:
            self._guard(verdict, "confirmation", self._check_confirmation, options)
        elif options.skip_validation:
            verdict.warning(VALIDATION_SKIPPED, code="VALIDATION_SKIPPED")
            logger.info("Validation skipped for QA deployment")
            return verdict

        checks: list[tuple[str, Callable[[ValidationVerdict, DeploymentOptions], None]]] = [
            ("config", self._check_config),
            ("git_status", self._check_git_clean),
            ("commit", self._check_commit),
            ("branch", self._check_branch),
            ("ahead_behind", self._check_ahead_behind),
            ("canary", self._check_canary),
            ("workspace", self._check_workspace),
            ("compatibility", self._check_compatibility),
            ("tests", self._check_tests),
        ]
        for name, check in checks:
            self._guard(verdict, name, check, options)

        logger.info(
            f"Validation finished: valid={verdict.valid} "
            f"errors={len(verdict.errors)} warnings={len(verdict.warnings)}"
        )
        return verdict

    def _guard(
        self,
        verdict: ValidationVerdict,
        name: str,
        check: Callable[[ValidationVerdict, DeploymentOptions], None],
        options: DeploymentOptions,
    ) -> None:
        try:
            check(verdict, options)
        except Exception as e:
            logger.debug(f"Validation check '{name}' raised: {e}")
            verdict.error(str(e), code=f"{name.upper()}_CHECK_FAILED")

    def _check_confirmation(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        if not options.confirm:
            verdict.error(CONFIRMATION_REQUIRED, field="confirm", code="CONFIRMATION_REQUIRED")

    def _check_config(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        vtex = self.profile.vtex
        if not vtex.get_account():
            verdict.error("VTEX account is required", field="vtex.account", code="MISSING_VTEX_ACCOUNT")
        if not vtex.get_auth_token():
            verdict.error(
                "VTEX auth token is required", field="vtex.auth_token", code="MISSING_VTEX_AUTH_TOKEN"
            )
        if self.profile.deploy.timeout <= 0:
            verdict.error(
                f"Deployment timeout must be positive (got {self.profile.deploy.timeout})",
                field="deploy.timeout",
                code="INVALID_TIMEOUT",
            )

    def _check_git_clean(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        if not self.git.is_dirty():
            return
        if options.force:
            verdict.warning(
                "Uncommitted changes present (forced)", field="git", code="UNCOMMITTED_CHANGES"
            )
        else:
            verdict.error(
                "Uncommitted changes present; commit or stash them, or use --force",
                field="git",
                code="UNCOMMITTED_CHANGES",
            )

    def _check_commit(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        commit = self.git.latest_commit()
        logger.info(f"Deploying commit {commit.short_hash}: {commit.message}")

    def _target_branch(self, options: DeploymentOptions) -> str:
        return options.branch or self.git.current_branch()

    def _check_branch(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        branch = self._target_branch(options)

        if not is_valid_branch_name(branch):
            verdict.error(f"Invalid branch name: '{branch}'", field="branch", code="INVALID_BRANCH_NAME")
            return

        git = self.profile.git
        if options.environment == Environment.PRODUCTION:
            expected = git.get_production_branch()
            if branch != expected:
                verdict.error(
                    f"production deployments must use branch '{expected}' (current: '{branch}')",
                    field="branch",
                    code="WRONG_PRODUCTION_BRANCH",
                )
        else:
            for prefix in git.feature_prefixes:
                if branch.startswith(prefix):
                    verdict.warning(
                        f"Deploying feature branch '{branch}' to QA",
                        field="branch",
                        code="FEATURE_BRANCH",
                    )
                    break

    def _check_ahead_behind(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        counts = self.git.ahead_behind()
        if counts.ahead > 0:
            verdict.error(
                f"Branch is {counts.ahead} commit(s) ahead of remote; push before deploying",
                field="git",
                code="UNPUSHED_COMMITS",
            )
        if counts.behind > 0:
            verdict.warning(
                f"Branch is {counts.behind} commit(s) behind remote",
                field="git",
                code="BEHIND_REMOTE",
            )

    def _check_canary(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        if not options.canary:
            return
        if options.environment != Environment.PRODUCTION:
            verdict.error(
                "canary deployments are only supported in production",
                field="canary",
                code="CANARY_NOT_SUPPORTED",
            )
        if not 1 <= options.canary_percentage <= 100:
            verdict.error(
                f"Canary percentage must be between 1 and 100 (got {options.canary_percentage})",
                field="canary_percentage",
                code="INVALID_CANARY_PERCENTAGE",
            )

    def _check_workspace(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        name = self.profile.deploy.workspace_for(options.environment.value, options.workspace)
        check = self.platform.validate_workspace(name)
        if not check.valid:
            verdict.error(
                check.error or f"Workspace '{name}' is not valid",
                field="workspace",
                code="INVALID_WORKSPACE",
            )

    def _check_compatibility(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        report = self.platform.check_app_compatibility()
        for issue in report.issues:
            if issue.type == "error":
                verdict.error(issue.message, field="app", code="INCOMPATIBLE_APP")
            else:
                verdict.warning(issue.message, field="app", code="APP_COMPATIBILITY")

    def _check_tests(self, verdict: ValidationVerdict, options: DeploymentOptions) -> None:
        if options.skip_tests:
            if options.is_production:
                verdict.warning(
                    "tests skipped for production deployment", field="tests", code="TESTS_SKIPPED"
                )
            return

        command = self.profile.validation.test_command
        if not command:
            return

        logger.info(f"Running tests: {command}")
        try:
            result = subprocess.run(
                shlex.split(command),
                capture_output=True,
                text=True,
                timeout=self.profile.validation.test_timeout,
            )
        except subprocess.TimeoutExpired:
            verdict.error(
                f"Tests timed out after {self.profile.validation.test_timeout}s",
                field="tests",
                code="TESTS_TIMEOUT",
            )
            return

        if result.returncode != 0:
            tail = "\n".join((result.stderr or result.stdout).strip().splitlines()[-5:])
            verdict.error(
                f"Tests failed (exit {result.returncode}): {tail}",
                field="tests",
                code="TESTS_FAILED",
            )
