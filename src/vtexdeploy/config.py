"""Configuration management for vtexdeploy using Pydantic."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from vtexdeploy.core.exceptions import ConfigError
from vtexdeploy.core.logging import LogLevel
from vtexdeploy.core.output import OutputFormat

USER_CONFIG_DIR = Path.home() / ".vtexdeploy"

DEFAULT_HEALTH_SERVICES = ["workspace", "apps", "system", "network", "platform_api"]
DEFAULT_NETWORK_ENDPOINTS = [
    "https://api.vtex.com",
    "https://github.com",
    "https://registry.npmjs.org",
]


class VTEXConfig(BaseModel):
    """VTEX account and CLI configuration."""

    account: str | None = None
    workspace: str | None = None
    auth_token: str | None = None
    user_email: str | None = None
    cli_path: str = "vtex"
    timeout: int = 300
    api_url: str = "https://api.vtex.com"

    def get_account(self) -> str | None:
        """Get VTEX account from config or environment."""
        return (
            os.environ.get("VTEXDEPLOY_VTEX_ACCOUNT")
            or os.environ.get("VTEX_ACCOUNT")
            or self.account
        )

    def get_workspace(self) -> str | None:
        """Get default workspace from config or environment."""
        return (
            os.environ.get("VTEXDEPLOY_VTEX_WORKSPACE")
            or os.environ.get("VTEX_WORKSPACE")
            or self.workspace
        )

    def get_auth_token(self) -> str | None:
        """Get VTEX auth token from config or environment."""
        token = self.auth_token
        if token == "from_env" or token is None:
            token = (
                os.environ.get("VTEXDEPLOY_VTEX_AUTH_TOKEN")
                or os.environ.get("VTEX_AUTH_TOKEN")
            )
        return token


class AppConfig(BaseModel):
    """The VTEX IO app being deployed."""

    vendor: str | None = None
    name: str | None = None
    version_prefix: str = "v"

    def get_app_id(self) -> str | None:
        """Return ``vendor.name`` when both are known."""
        vendor = os.environ.get("APP_VENDOR") or self.vendor
        name = os.environ.get("APP_NAME") or self.name
        if vendor and name:
            return f"{vendor}.{name}"
        return None


class GitConfig(BaseModel):
    """Git branch policy."""

    production_branch: str = "main"
    feature_prefixes: list[str] = Field(default_factory=lambda: ["feature/"])
    repo_path: str | None = None

    def get_production_branch(self) -> str:
        """Get the production branch from config or environment."""
        return (
            os.environ.get("VTEXDEPLOY_GIT_PRODUCTION_BRANCH")
            or os.environ.get("GIT_PRODUCTION_BRANCH")
            or self.production_branch
        )


class DeploySettings(BaseModel):
    """Deployment orchestration settings."""

    rollback_on_failure: bool = True
    rollback_on_warning: bool = False
    timeout: int = 300
    history_limit: int = 10
    qa_workspace: str = "qa"
    production_workspace: str = "prodtest"
    promote_production: bool = True
    history_dir: str | None = None

    def workspace_for(self, environment: str, requested: str | None = None) -> str:
        """Resolve the target workspace for an environment."""
        if requested:
            return requested
        if environment == "production":
            return self.production_workspace
        return os.environ.get("VTEX_WORKSPACE") or self.qa_workspace

    def get_history_dir(self) -> Path:
        """Directory holding per-environment deployment history files."""
        if self.history_dir:
            return Path(self.history_dir).expanduser()
        return USER_CONFIG_DIR / "history"


class ValidationSettings(BaseModel):
    """Pre-flight validation settings."""

    test_command: str | None = None
    test_timeout: int = 600


class HealthConfig(BaseModel):
    """Post-deploy health check settings."""

    services: list[str] = Field(default_factory=lambda: list(DEFAULT_HEALTH_SERVICES))
    probe_timeout: float = 30.0
    memory_threshold: float = 80.0
    disk_threshold: float = 80.0
    response_time_threshold: int = 5000  # ms
    endpoints: list[str] = Field(default_factory=lambda: list(DEFAULT_NETWORK_ENDPOINTS))

    @field_validator("memory_threshold", "disk_threshold")
    @classmethod
    def validate_percentage(cls, v: float) -> float:
        if not 0 < v <= 100:
            raise ValueError("threshold must be a percentage between 0 and 100")
        return v


class SlackConfig(BaseModel):
    """Slack incoming webhook configuration."""

    enabled: bool = False
    webhook_url: str | None = None
    channel: str | None = None
    username: str = "VTEX Deploy Bot"
    icon_emoji: str = ":rocket:"
    mention_on_failure: bool = False
    mention_users: list[str] = Field(default_factory=list)
    timeout: int = 30

    def get_webhook_url(self) -> str | None:
        """Get Slack webhook URL from config or environment."""
        url = self.webhook_url
        if url == "from_env" or url is None:
            url = (
                os.environ.get("VTEXDEPLOY_SLACK_WEBHOOK_URL")
                or os.environ.get("SLACK_WEBHOOK_URL")
            )
        return url


class TeamsConfig(BaseModel):
    """Microsoft Teams incoming webhook configuration."""

    enabled: bool = False
    webhook_url: str | None = None
    timeout: int = 30

    def get_webhook_url(self) -> str | None:
        """Get Teams webhook URL from config or environment."""
        url = self.webhook_url
        if url == "from_env" or url is None:
            url = (
                os.environ.get("VTEXDEPLOY_TEAMS_WEBHOOK_URL")
                or os.environ.get("TEAMS_WEBHOOK_URL")
            )
        return url


class EmailConfig(BaseModel):
    """SMTP email configuration."""

    enabled: bool = False
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: str | None = None
    smtp_password: str | None = None
    from_address: str | None = Field(default=None, alias="from")
    to: list[str] = Field(default_factory=list)
    cc: list[str] = Field(default_factory=list)
    timeout: int = 30

    model_config = {"populate_by_name": True}

    def get_smtp_host(self) -> str | None:
        """Get SMTP host from config or environment."""
        return os.environ.get("EMAIL_SMTP_HOST") or self.smtp_host

    def get_smtp_password(self) -> str | None:
        """Get SMTP password from config or environment."""
        password = self.smtp_password
        if password == "from_env" or password is None:
            password = (
                os.environ.get("VTEXDEPLOY_EMAIL_SMTP_PASSWORD")
                or os.environ.get("EMAIL_SMTP_PASSWORD")
            )
        return password


class NotificationsConfig(BaseModel):
    """Notification channels."""

    slack: SlackConfig = Field(default_factory=SlackConfig)
    teams: TeamsConfig = Field(default_factory=TeamsConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)


class ProfileConfig(BaseModel):
    """Profile configuration grouping all deployment settings."""

    vtex: VTEXConfig = Field(default_factory=VTEXConfig)
    app: AppConfig = Field(default_factory=AppConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    deploy: DeploySettings = Field(default_factory=DeploySettings)
    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    health: HealthConfig = Field(default_factory=HealthConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)

    def secrets(self) -> list[str]:
        """Resolved credential values that must never appear in logs."""
        values = [
            self.vtex.get_auth_token(),
            self.notifications.slack.get_webhook_url(),
            self.notifications.teams.get_webhook_url(),
            self.notifications.email.get_smtp_password(),
        ]
        return [v for v in values if v]

    def check(self) -> tuple[list[str], list[str]]:
        """Run completeness checks over the profile.

        Returns:
            Tuple of (errors, warnings) as human-readable strings
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not self.vtex.get_account():
            errors.append("vtex.account: VTEX account is required")
        if not self.vtex.get_auth_token():
            errors.append("vtex.auth_token: VTEX auth token is required")
        if not self.vtex.get_workspace():
            warnings.append("vtex.workspace: no default workspace configured")
        if self.deploy.timeout <= 0:
            errors.append("deploy.timeout: timeout must be greater than zero")
        elif self.deploy.timeout < 60:
            warnings.append("deploy.timeout: timeout is less than 1 minute, this might cause issues")
        if not self.app.get_app_id():
            warnings.append("app: vendor and name are not set")

        unknown = [s for s in self.health.services if s not in DEFAULT_HEALTH_SERVICES]
        for service in unknown:
            errors.append(f"health.services: unknown health check '{service}'")

        slack = self.notifications.slack
        if slack.enabled:
            url = slack.get_webhook_url()
            if not url:
                errors.append("notifications.slack.webhook_url: required when Slack is enabled")
            elif not url.startswith("https://hooks.slack.com/"):
                warnings.append("notifications.slack.webhook_url: does not look like a Slack webhook")

        teams = self.notifications.teams
        if teams.enabled:
            url = teams.get_webhook_url()
            if not url:
                errors.append("notifications.teams.webhook_url: required when Teams is enabled")
            elif not url.startswith("https://"):
                errors.append("notifications.teams.webhook_url: must be an https URL")

        email = self.notifications.email
        if email.enabled:
            if not email.get_smtp_host():
                errors.append("notifications.email.smtp_host: required when email is enabled")
            if not email.from_address:
                errors.append("notifications.email.from: required when email is enabled")
            if not email.to:
                errors.append("notifications.email.to: at least one recipient is required")

        return errors, warnings


class GlobalConfig(BaseModel):
    """Global settings."""

    output_format: OutputFormat = OutputFormat.TABLE
    color: str = "auto"  # auto, always, never
    verbosity: LogLevel = LogLevel.INFO
    confirm_destructive: bool = True

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        if v not in ("auto", "always", "never"):
            raise ValueError("color must be 'auto', 'always', or 'never'")
        return v


class VtexDeployConfig(BaseModel):
    """Main configuration model."""

    model_config = {"populate_by_name": True}

    version: str = "1"
    global_settings: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    profiles: dict[str, ProfileConfig] = Field(default_factory=lambda: {"default": ProfileConfig()})

    def get_profile(self, name: str | None = None) -> ProfileConfig:
        """Get a profile by name, defaulting to 'default'."""
        profile_name = name or "default"
        if profile_name not in self.profiles:
            raise ConfigError(f"Profile '{profile_name}' not found")
        return self.profiles[profile_name]


class ConfigLoader:
    """Loads and merges configuration from multiple sources."""

    CONFIG_FILENAMES = ["vtexdeploy.yaml", "vtexdeploy.yml", ".vtexdeploy.yaml", ".vtexdeploy.yml"]

    def __init__(self):
        self._config: VtexDeployConfig | None = None

    def load(
        self,
        config_file: str | Path | None = None,
        profile: str | None = None,
    ) -> VtexDeployConfig:
        """Load configuration from files.

        Priority (highest to lowest):
        1. Explicitly specified config file
        2. Project config (./vtexdeploy.yaml)
        3. User config (~/.vtexdeploy/config.yaml)

        Args:
            config_file: Optional explicit config file path
            profile: Profile name that must exist in the result

        Returns:
            Merged configuration
        """
        configs: list[dict[str, Any]] = []

        user_config_path = USER_CONFIG_DIR / "config.yaml"
        if user_config_path.exists():
            configs.append(self._load_yaml_file(user_config_path))

        project_config = self._find_project_config()
        if project_config:
            configs.append(self._load_yaml_file(project_config))

        if config_file:
            config_path = Path(config_file)
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_file}")
            configs.append(self._load_yaml_file(config_path))

        merged = self._merge_configs(configs)

        try:
            self._config = VtexDeployConfig(**merged)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}")

        if profile:
            self._config.get_profile(profile)
        return self._config

    def _find_project_config(self) -> Path | None:
        """Find project config file in current or parent directories."""
        current = Path.cwd()

        while current != current.parent:
            for filename in self.CONFIG_FILENAMES:
                config_path = current / filename
                if config_path.exists():
                    return config_path
            current = current.parent

        return None

    def _load_yaml_file(self, path: Path) -> dict[str, Any]:
        """Load a YAML config file."""
        try:
            with open(path) as f:
                content = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read {path}: {e}")

        if not isinstance(content, dict):
            raise ConfigError(f"Invalid config in {path}: expected a mapping")
        return content

    def _merge_configs(self, configs: list[dict[str, Any]]) -> dict[str, Any]:
        """Deep merge multiple configuration dictionaries."""
        result: dict[str, Any] = {}
        for config in configs:
            result = self._deep_merge(result, config)
        return result

    def _deep_merge(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result


_config_loader = ConfigLoader()


def load_config(
    config_file: str | Path | None = None,
    profile: str | None = None,
) -> VtexDeployConfig:
    """Load vtexdeploy configuration.

    Args:
        config_file: Optional explicit config file path
        profile: Profile name to use

    Returns:
        Loaded configuration
    """
    return _config_loader.load(config_file, profile)


def get_default_config() -> VtexDeployConfig:
    """Get default configuration without loading from files."""
    return VtexDeployConfig()


DEFAULT_CONFIG_TEMPLATE = """\
# vtexdeploy configuration
version: "1"

global:
  output_format: table
  color: auto
  confirm_destructive: true

profiles:
  default:
    vtex:
      account: {account}
      workspace: {workspace}
      auth_token: from_env
    app:
      vendor: {vendor}
      name: {name}
    git:
      production_branch: main
      feature_prefixes:
        - feature/
    deploy:
      rollback_on_failure: true
      rollback_on_warning: false
      timeout: 300
    health:
      services: [workspace, apps, system, network, platform_api]
    notifications:
      slack:
        enabled: false
        webhook_url: from_env
"""
