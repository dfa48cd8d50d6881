"""Click context object for sharing state across commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import click

from vtexdeploy.config import ProfileConfig, VtexDeployConfig, get_default_config
from vtexdeploy.core.logging import LogLevel, StructuredLogger, setup_logging
from vtexdeploy.core.output import OutputFormat, OutputFormatter

if TYPE_CHECKING:
    from vtexdeploy.clients.git import GitReader
    from vtexdeploy.clients.vtex import PlatformClient
    from vtexdeploy.deploy.health import HealthCheckEngine
    from vtexdeploy.deploy.models import Environment
    from vtexdeploy.deploy.notifications import NotificationService
    from vtexdeploy.deploy.orchestrator import DeploymentOrchestrator
    from vtexdeploy.deploy.validation import ValidationEngine


class VtexDeployContext:
    """Shared context object for vtexdeploy commands.

    This object is passed through Click's context mechanism and provides
    access to configuration, collaborators, and the deployment engine.
    """

    def __init__(
        self,
        config: VtexDeployConfig | None = None,
        profile: str | None = None,
        output_format: OutputFormat | None = None,
        verbose: int = 0,
        quiet: bool = False,
        dry_run: bool = False,
        color: bool = True,
    ):
        self._config = config or get_default_config()
        self._profile_name = profile or "default"

        # CLI overrides config
        self._output_format = output_format or self._config.global_settings.output_format
        self._verbose = verbose
        self._quiet = quiet
        self._dry_run = dry_run
        self._color = color

        log_level = LogLevel.from_flags(verbose, quiet, self._config.global_settings.verbosity)
        profile_config = self._config.profiles.get(self._profile_name)
        setup_logging(
            log_level,
            rich_output=color,
            secrets=profile_config.secrets() if profile_config else (),
        )
        self._logger = StructuredLogger("context")

        self._output = OutputFormatter(
            format=self._output_format,
            color=color,
            quiet=quiet,
        )

        # Lazy-loaded collaborators
        self._git: GitReader | None = None
        self._platform: PlatformClient | None = None
        self._notifier: NotificationService | None = None
        self._simulated = False

    @property
    def config(self) -> VtexDeployConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def profile(self) -> ProfileConfig:
        """Get the current profile configuration."""
        return self._config.get_profile(self._profile_name)

    @property
    def profile_name(self) -> str:
        """Get the current profile name."""
        return self._profile_name

    @property
    def output(self) -> OutputFormatter:
        """Get the output formatter."""
        return self._output

    @property
    def output_format(self) -> OutputFormat:
        """Get the output format."""
        return self._output_format

    @property
    def dry_run(self) -> bool:
        """Check if dry-run mode is enabled."""
        return self._dry_run

    @property
    def verbose(self) -> int:
        return self._verbose

    @property
    def quiet(self) -> bool:
        return self._quiet

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def simulated(self) -> bool:
        """True when in-memory collaborators replace git and the VTEX CLI."""
        return self._simulated

    def use_simulation(self, branch: str | None = None) -> None:
        """Swap in deterministic in-memory git and platform collaborators."""
        from vtexdeploy.clients.memory import InMemoryGitReader, InMemoryPlatformClient

        self._git = InMemoryGitReader(branch=branch or self.profile.git.get_production_branch())
        self._platform = InMemoryPlatformClient(account=self.profile.vtex.get_account() or "simulated")
        self._simulated = True
        self._logger.info("Using simulated git and VTEX clients", profile=self._profile_name)

    @property
    def git(self) -> "GitReader":
        """Get or create the git reader."""
        if self._git is None:
            from vtexdeploy.clients.git import GitCLIReader

            self._git = GitCLIReader(self.profile.git.repo_path)
        return self._git

    @property
    def platform(self) -> "PlatformClient":
        """Get or create the VTEX platform client."""
        if self._platform is None:
            from vtexdeploy.clients.vtex import VTEXClient

            self._platform = VTEXClient(self.profile)
        return self._platform

    @property
    def notifier(self) -> "NotificationService":
        """Get or create the notification fan-out."""
        if self._notifier is None:
            from vtexdeploy.deploy.notifications import NotificationService

            self._notifier = NotificationService.from_config(self.profile.notifications)
            click_ctx = click.get_current_context(silent=True)
            if click_ctx is not None:
                click_ctx.call_on_close(self._notifier.close)
        return self._notifier

    def validator(self) -> "ValidationEngine":
        from vtexdeploy.deploy.validation import ValidationEngine

        return ValidationEngine(self.git, self.platform, self.profile)

    def health_engine(self, environment: "Environment") -> "HealthCheckEngine":
        from vtexdeploy.deploy.health import HealthCheckEngine

        return HealthCheckEngine.with_default_probes(self.platform, self.profile, environment)

    def orchestrator(self, environment: "Environment") -> "DeploymentOrchestrator":
        """Build an orchestrator wired to this context's collaborators."""
        from vtexdeploy.deploy.orchestrator import DeploymentOrchestrator

        return DeploymentOrchestrator(
            platform=self.platform,
            validator=self.validator(),
            health=self.health_engine(environment),
            notifier=self.notifier,
            settings=self.profile.deploy,
        )

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask for user confirmation.

        In dry-run mode, always returns True without prompting.
        """
        if self._dry_run:
            self._output.print(f"[dim][dry-run] Would prompt: {message}[/dim]")
            return True
        return self._output.confirm(message, default)

    def log_dry_run(self, action: str, details: dict[str, Any] | None = None) -> None:
        """Log a dry-run action."""
        if self._dry_run:
            msg = f"[dry-run] {action}"
            if details:
                detail_str = ", ".join(f"{k}={v}" for k, v in details.items())
                msg = f"{msg} ({detail_str})"
            self._output.print(f"[dim]{msg}[/dim]")


# Click decorator for passing context
pass_context = click.make_pass_decorator(VtexDeployContext, ensure=True)
