"""VTEX IO platform client built on the vtex CLI."""

import json
import os
import re
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from vtexdeploy.core.exceptions import (
    AuthenticationError,
    ExecutionError,
    PlatformError,
    TimeoutError,
)
from vtexdeploy.core.logging import get_logger
from vtexdeploy.deploy.models import DeploymentOptions, DeploymentResult, Environment

if TYPE_CHECKING:
    from vtexdeploy.config import ProfileConfig

logger = get_logger(__name__)

SEMVER_RE = re.compile(r"^\d+\.\d+\.\d+(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?$")
VERSION_RANGE_RE = re.compile(r"^[\^~]?\d+(\.(\d+|x))?(\.(\d+|x))?(-[0-9A-Za-z.-]+)?$")
AUTH_ERROR_RE = re.compile(r"not logged in|unauthorized|\b401\b|token (has )?expired", re.IGNORECASE)


@dataclass(frozen=True)
class WorkspaceCheck:
    valid: bool
    error: str | None = None


@dataclass(frozen=True)
class CompatibilityIssue:
    type: str  # "error" or "warning"
    message: str


@dataclass
class CompatibilityReport:
    compatible: bool
    issues: list[CompatibilityIssue] = field(default_factory=list)


@dataclass
class PlatformDeployResult:
    success: bool
    version: str | None = None
    workspace_url: str | None = None
    error: str | None = None


@dataclass
class PlatformRollbackResult:
    success: bool
    rolled_back_to: str | None = None


@dataclass
class AppStatus:
    name: str
    version: str
    status: str = "installed"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "version": self.version, "status": self.status}


@dataclass
class WorkspaceStatus:
    workspace: str
    status: str
    apps: list[AppStatus] = field(default_factory=list)
    production: bool = False


class PlatformClient(ABC):
    """Remote operations the deployment engine depends on."""

    @abstractmethod
    def validate_workspace(self, name: str) -> WorkspaceCheck:
        ...

    @abstractmethod
    def check_app_compatibility(self) -> CompatibilityReport:
        ...

    @abstractmethod
    def deploy(self, options: DeploymentOptions) -> PlatformDeployResult:
        ...

    @abstractmethod
    def deploy_canary(self, options: DeploymentOptions, percentage: int) -> PlatformDeployResult:
        ...

    @abstractmethod
    def rollback_to_deployment(self, deployment_id: str) -> PlatformRollbackResult:
        ...

    @abstractmethod
    def get_deployment_history(
        self, environment: Environment, limit: int = 10
    ) -> list[DeploymentResult]:
        """Previous deployments for an environment, newest first."""
        ...

    @abstractmethod
    def get_deployment(self, deployment_id: str) -> DeploymentResult | None:
        """A recorded deployment in any environment, or None."""
        ...

    @abstractmethod
    def get_workspace_status(self, environment: Environment) -> WorkspaceStatus:
        ...

    @abstractmethod
    def record_deployment(self, result: DeploymentResult) -> None:
        """Insert or replace a deployment in the environment history."""
        ...


class VTEXClient(PlatformClient):
    """PlatformClient that drives the ``vtex`` CLI.

    The VTEX CLI has no deployment history API, so completed deployments are
    kept as JSON lists under the history directory, one file per environment.
    """

    def __init__(self, profile: "ProfileConfig", app_path: str | Path | None = None):
        self._profile = profile
        self._vtex = profile.vtex
        self._deploy = profile.deploy
        self.app_path = Path(app_path or profile.git.repo_path or Path.cwd())
        self.history_dir = self._deploy.get_history_dir()

    # CLI plumbing
    def _run(self, *args: str, timeout: int | None = None) -> str:
        cmd = [self._vtex.cli_path, *args]
        command = " ".join(cmd)
        timeout = timeout or self._vtex.timeout

        env = os.environ.copy()
        token = self._vtex.get_auth_token()
        if token:
            env["VTEX_AUTH_TOKEN"] = token

        logger.debug(f"Executing VTEX command: {command}")

        try:
            result = subprocess.run(
                cmd,
                cwd=self.app_path,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
            )
        except subprocess.TimeoutExpired:
            raise TimeoutError(
                f"Command timed out after {timeout}s: {command}", timeout_seconds=timeout
            )
        except FileNotFoundError:
            raise PlatformError(
                f"VTEX CLI not found: {self._vtex.cli_path}", command=command
            )

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if AUTH_ERROR_RE.search(stderr):
                raise AuthenticationError(
                    f"VTEX CLI is not authenticated for account {self._vtex.get_account()}: {stderr}"
                )
            raise PlatformError(
                f"VTEX CLI error: {stderr or f'exit code {result.returncode}'}",
                command=command,
                stderr=stderr,
            )

        return result.stdout

    def _run_json(self, *args: str) -> Any:
        output = self._run(*args)
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise PlatformError(
                f"Invalid JSON from vtex {' '.join(args)}: {e}",
                command=" ".join(args),
            )

    # Manifest helpers
    def _read_manifest(self) -> dict[str, Any]:
        manifest_path = self.app_path / "manifest.json"
        if not manifest_path.exists():
            raise PlatformError(f"manifest.json not found in {self.app_path}")
        try:
            with open(manifest_path) as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise PlatformError(f"Invalid manifest.json: {e}")

    def _app_id(self) -> str:
        app_id = self._profile.app.get_app_id()
        if app_id:
            return app_id
        manifest = self._read_manifest()
        return f"{manifest.get('vendor', 'unknown')}.{manifest.get('name', 'unknown')}"

    def _resolve_version(self, options: DeploymentOptions) -> str:
        if options.version:
            return options.version

        base = self._read_manifest().get("version") or "0.1.0"
        base = base.split("-")[0]
        if options.environment == Environment.QA:
            return f"{base}-qa.{int(time.time() * 1000)}"
        return base

    def _workspace_url(self, workspace: str) -> str | None:
        account = self._vtex.get_account()
        if not account:
            return None
        return f"https://{workspace}--{account}.myvtex.com"

    # PlatformClient
    def validate_workspace(self, name: str) -> WorkspaceCheck:
        workspaces = self._run_json("workspace", "list", "--json")
        names = [ws.get("name") for ws in workspaces]

        if name in names:
            return WorkspaceCheck(valid=True)

        # QA workspaces are created on first use
        if name != self._deploy.production_workspace and name != "master":
            logger.info(f"Workspace {name} does not exist and will be created on deploy")
            return WorkspaceCheck(valid=True)

        account = self._vtex.get_account() or "unknown"
        return WorkspaceCheck(
            valid=False,
            error=f"Workspace '{name}' does not exist in account '{account}'",
        )

    def check_app_compatibility(self) -> CompatibilityReport:
        issues: list[CompatibilityIssue] = []
        manifest = self._read_manifest()

        for key in ("vendor", "name", "version"):
            if not manifest.get(key):
                issues.append(CompatibilityIssue("error", f"manifest.json is missing '{key}'"))

        version = manifest.get("version")
        if version and not SEMVER_RE.match(version):
            issues.append(CompatibilityIssue("error", f"Invalid version format: {version}"))

        builders = manifest.get("builders") or {}
        if not builders:
            issues.append(CompatibilityIssue("warning", "manifest.json declares no builders"))
        for builder, builder_version in builders.items():
            if not VERSION_RANGE_RE.match(str(builder_version)):
                issues.append(
                    CompatibilityIssue("error", f"Invalid version for builder {builder}: {builder_version}")
                )

        for section in ("dependencies", "peerDependencies"):
            for dep, dep_version in (manifest.get(section) or {}).items():
                if dep_version in ("*", "", None):
                    issues.append(CompatibilityIssue("warning", f"Unpinned {section} entry: {dep}"))
                elif not VERSION_RANGE_RE.match(str(dep_version)):
                    issues.append(
                        CompatibilityIssue("error", f"Invalid version range for {dep}: {dep_version}")
                    )

        compatible = not any(i.type == "error" for i in issues)
        return CompatibilityReport(compatible=compatible, issues=issues)

    def deploy(self, options: DeploymentOptions) -> PlatformDeployResult:
        workspace = self._deploy.workspace_for(options.environment.value, options.workspace)
        version = self._resolve_version(options)
        app = f"{self._app_id()}@{version}"

        self._run("use", workspace)
        if options.is_production:
            self._run("release", version, "--stable", timeout=self._deploy.timeout)
        else:
            self._run("release", version, timeout=self._deploy.timeout)
        self._run("install", app, timeout=self._deploy.timeout)

        if options.is_production and self._deploy.promote_production and workspace != "master":
            self._run("workspace", "promote", workspace)
            workspace = "master"

        logger.info(f"Installed {app} in workspace {workspace}")
        return PlatformDeployResult(
            success=True,
            version=version,
            workspace_url=self._workspace_url(workspace),
        )

    def deploy_canary(self, options: DeploymentOptions, percentage: int) -> PlatformDeployResult:
        workspace = self._deploy.workspace_for(options.environment.value, options.workspace)
        version = self._resolve_version(options)
        app = f"{self._app_id()}@{version}"

        self._run("use", workspace, "--production")
        self._run("release", version, "--stable", timeout=self._deploy.timeout)
        self._run("install", app, timeout=self._deploy.timeout)
        self._run("workspace", "abtest", "start", "--proportion", str(percentage))

        logger.info(f"Canary {app} receiving {percentage}% of traffic in {workspace}")
        return PlatformDeployResult(
            success=True,
            version=version,
            workspace_url=self._workspace_url(workspace),
        )

    def rollback_to_deployment(self, deployment_id: str) -> PlatformRollbackResult:
        target = self.get_deployment(deployment_id)
        if target is None:
            raise ExecutionError(f"Deployment {deployment_id} not found in history", deployment_id=deployment_id)
        if not target.version:
            raise ExecutionError(f"Deployment {deployment_id} has no recorded version", deployment_id=deployment_id)

        workspace = target.workspace or self._deploy.workspace_for(target.environment.value)
        self._run("use", workspace)
        self._run("install", f"{self._app_id()}@{target.version}", timeout=self._deploy.timeout)

        logger.info(f"Rolled back {workspace} to {target.version} ({deployment_id})")
        return PlatformRollbackResult(success=True, rolled_back_to=deployment_id)

    def get_deployment_history(
        self, environment: Environment, limit: int = 10
    ) -> list[DeploymentResult]:
        entries = self._load_history(environment)
        return [DeploymentResult.from_dict(e) for e in entries[:limit]]

    def get_deployment(self, deployment_id: str) -> DeploymentResult | None:
        for environment in Environment:
            for entry in self._load_history(environment):
                if entry.get("id") == deployment_id:
                    return DeploymentResult.from_dict(entry)
        return None

    def get_workspace_status(self, environment: Environment) -> WorkspaceStatus:
        workspace = self._deploy.workspace_for(environment.value)
        info = self._run_json("workspace", "info", workspace, "--json")
        installed = self._run_json("list", "--json")

        apps = [
            AppStatus(
                name=app.get("name") or app.get("app", "unknown"),
                version=app.get("version", ""),
                status=app.get("status", "installed"),
            )
            for app in installed
        ]
        return WorkspaceStatus(
            workspace=info.get("name", workspace),
            status=info.get("status", "active"),
            apps=apps,
            production=info.get("production", False),
        )

    def record_deployment(self, result: DeploymentResult) -> None:
        entries = [e for e in self._load_history(result.environment) if e.get("id") != result.id]
        entries.insert(0, result.to_dict())
        self._save_history(result.environment, entries[: max(self._deploy.history_limit, 1) * 5])

    # History file
    def _history_file(self, environment: Environment) -> Path:
        return self.history_dir / f"{environment.value}.json"

    def _load_history(self, environment: Environment) -> list[dict[str, Any]]:
        path = self._history_file(environment)
        if not path.exists():
            return []
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PlatformError(f"Cannot read deployment history {path}: {e}")
        return data if isinstance(data, list) else []

    def _save_history(self, environment: Environment, entries: list[dict[str, Any]]) -> None:
        path = self._history_file(environment)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(entries, f, indent=2, default=str)
