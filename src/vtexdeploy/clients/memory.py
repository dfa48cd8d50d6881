"""In-memory collaborators for simulation and tests.

Both classes are deterministic: every answer comes from attributes set by the
caller, and every call is appended to ``calls`` as ``(method, args)``.
"""

from typing import Any

from vtexdeploy.clients.git import AheadBehind, CommitInfo, GitReader
from vtexdeploy.clients.vtex import (
    AppStatus,
    CompatibilityIssue,
    CompatibilityReport,
    PlatformClient,
    PlatformDeployResult,
    PlatformRollbackResult,
    WorkspaceCheck,
    WorkspaceStatus,
)
from vtexdeploy.core.exceptions import GitError, PlatformError
from vtexdeploy.deploy.models import DeploymentOptions, DeploymentResult, Environment


class _Recorder:
    def __init__(self):
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))

    def called(self, method: str) -> bool:
        return any(name == method for name, _ in self.calls)

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]


class InMemoryGitReader(GitReader, _Recorder):
    """GitReader answering from fixed state.

    Set ``error`` to make every read raise ``GitError`` with that text.
    """

    def __init__(
        self,
        branch: str = "main",
        dirty: bool = False,
        ahead: int = 0,
        behind: int = 0,
        commit: CommitInfo | None = None,
        error: str | None = None,
    ):
        _Recorder.__init__(self)
        self.branch = branch
        self.dirty = dirty
        self.ahead = ahead
        self.behind = behind
        self.commit = commit or CommitInfo(
            hash="0" * 40,
            message="Initial commit",
            author="Simulated Author",
            date="1970-01-01T00:00:00+00:00",
        )
        self.error = error

    def _check(self) -> None:
        if self.error:
            raise GitError(self.error)

    def current_branch(self) -> str:
        self._record("current_branch")
        self._check()
        return self.branch

    def is_dirty(self) -> bool:
        self._record("is_dirty")
        self._check()
        return self.dirty

    def ahead_behind(self) -> AheadBehind:
        self._record("ahead_behind")
        self._check()
        return AheadBehind(ahead=self.ahead, behind=self.behind)

    def latest_commit(self) -> CommitInfo:
        self._record("latest_commit")
        self._check()
        return self.commit


class InMemoryPlatformClient(PlatformClient, _Recorder):
    """PlatformClient backed by plain attributes.

    ``deploy_error`` / ``rollback_error`` make the matching operation raise
    ``PlatformError`` with that text; ``deploy_success=False`` makes
    ``deploy`` report failure without raising.
    """

    def __init__(
        self,
        workspaces: list[str] | None = None,
        compatibility_issues: list[CompatibilityIssue] | None = None,
        history: dict[Environment, list[DeploymentResult]] | None = None,
        apps: list[AppStatus] | None = None,
        version: str = "1.0.0",
        deploy_error: str | None = None,
        deploy_success: bool = True,
        rollback_error: str | None = None,
        workspace_error: str | None = None,
        account: str = "simulated",
        workspace_state: str = "active",
    ):
        _Recorder.__init__(self)
        self.workspaces = list(workspaces) if workspaces is not None else ["master", "qa", "prodtest"]
        self.compatibility_issues = list(compatibility_issues or [])
        self.history: dict[Environment, list[DeploymentResult]] = {
            env: list((history or {}).get(env, [])) for env in Environment
        }
        self.apps = list(apps) if apps is not None else [AppStatus(name="vendor.app", version=version)]
        self.version = version
        self.deploy_error = deploy_error
        self.deploy_success = deploy_success
        self.rollback_error = rollback_error
        self.workspace_error = workspace_error
        self.account = account
        self.workspace_state = workspace_state

    def validate_workspace(self, name: str) -> WorkspaceCheck:
        self._record("validate_workspace", name)
        if self.workspace_error:
            return WorkspaceCheck(valid=False, error=self.workspace_error)
        if name not in self.workspaces:
            return WorkspaceCheck(
                valid=False,
                error=f"Workspace '{name}' does not exist in account '{self.account}'",
            )
        return WorkspaceCheck(valid=True)

    def check_app_compatibility(self) -> CompatibilityReport:
        self._record("check_app_compatibility")
        compatible = not any(i.type == "error" for i in self.compatibility_issues)
        return CompatibilityReport(compatible=compatible, issues=list(self.compatibility_issues))

    def _deploy(self, options: DeploymentOptions) -> PlatformDeployResult:
        if self.deploy_error:
            raise PlatformError(self.deploy_error)
        version = options.version or self.version
        if not self.deploy_success:
            return PlatformDeployResult(success=False, version=version, error="deployment reported failure")
        workspace = options.workspace or ("master" if options.environment == Environment.PRODUCTION else "qa")
        return PlatformDeployResult(
            success=True,
            version=version,
            workspace_url=f"https://{workspace}--{self.account}.myvtex.com",
        )

    def deploy(self, options: DeploymentOptions) -> PlatformDeployResult:
        self._record("deploy", options)
        return self._deploy(options)

    def deploy_canary(self, options: DeploymentOptions, percentage: int) -> PlatformDeployResult:
        self._record("deploy_canary", options, percentage)
        return self._deploy(options)

    def rollback_to_deployment(self, deployment_id: str) -> PlatformRollbackResult:
        self._record("rollback_to_deployment", deployment_id)
        if self.rollback_error:
            raise PlatformError(self.rollback_error)
        return PlatformRollbackResult(success=True, rolled_back_to=deployment_id)

    def get_deployment_history(
        self, environment: Environment, limit: int = 10
    ) -> list[DeploymentResult]:
        self._record("get_deployment_history", environment, limit)
        return list(self.history[environment][:limit])

    def get_deployment(self, deployment_id: str) -> DeploymentResult | None:
        self._record("get_deployment", deployment_id)
        for entries in self.history.values():
            for entry in entries:
                if entry.id == deployment_id:
                    return entry
        return None

    def get_workspace_status(self, environment: Environment) -> WorkspaceStatus:
        self._record("get_workspace_status", environment)
        workspace = "master" if environment == Environment.PRODUCTION else "qa"
        return WorkspaceStatus(workspace=workspace, status=self.workspace_state, apps=list(self.apps))

    def record_deployment(self, result: DeploymentResult) -> None:
        self._record("record_deployment", result.id)
        entries = [r for r in self.history[result.environment] if r.id != result.id]
        entries.insert(0, DeploymentResult.from_dict(result.to_dict()))
        self.history[result.environment] = entries
