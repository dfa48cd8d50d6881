"""Pytest fixtures for vtexdeploy tests."""

import os
from collections.abc import Callable
from typing import Generator

import pytest
from click.testing import CliRunner

from vtexdeploy import config as config_module
from vtexdeploy.clients.memory import InMemoryGitReader, InMemoryPlatformClient
from vtexdeploy.config import (
    DeploySettings,
    GitConfig,
    HealthConfig,
    ProfileConfig,
    VTEXConfig,
    VtexDeployConfig,
)
from vtexdeploy.core.context import VtexDeployContext
from vtexdeploy.core.output import OutputFormat
from vtexdeploy.deploy.health import HealthCheckEngine
from vtexdeploy.deploy.models import (
    DeploymentResult,
    DeploymentStatus,
    Environment,
    HealthCheckResult,
    HealthStatus,
)
from vtexdeploy.deploy.notifications import NotificationMessage, NotificationService
from vtexdeploy.deploy.orchestrator import DeploymentOrchestrator
from vtexdeploy.deploy.validation import ValidationEngine


class RecordingChannel:
    """Notification channel that keeps every message it is sent."""

    def __init__(self, name: str = "recording", fail: bool = False):
        self.name = name
        self.fail = fail
        self.messages: list[NotificationMessage] = []
        self.tests = 0

    def send(self, message: NotificationMessage) -> None:
        if self.fail:
            raise RuntimeError(f"{self.name} is down")
        self.messages.append(message)

    def test(self) -> None:
        self.tests += 1
        if self.fail:
            raise RuntimeError(f"{self.name} is down")

    @property
    def events(self) -> list[str]:
        return [m.event for m in self.messages]


def make_history_entry(
    deployment_id: str,
    environment: Environment = Environment.QA,
    version: str | None = "1.0.0",
    status: DeploymentStatus = DeploymentStatus.SUCCEEDED,
) -> DeploymentResult:
    return DeploymentResult(
        id=deployment_id,
        environment=environment,
        version=version,
        workspace="master" if environment == Environment.PRODUCTION else "qa",
        status=status,
    )


def healthy_probe(service: str) -> Callable[[], HealthCheckResult]:
    return lambda: HealthCheckResult(service, HealthStatus.HEALTHY, "ok")


def critical_probe(service: str, message: str = "down") -> Callable[[], HealthCheckResult]:
    return lambda: HealthCheckResult(service, HealthStatus.CRITICAL, message)


def warning_probe(service: str, message: str = "degraded") -> Callable[[], HealthCheckResult]:
    return lambda: HealthCheckResult(service, HealthStatus.WARNING, message)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner."""
    return CliRunner()


@pytest.fixture
def profile() -> ProfileConfig:
    """A complete profile with no external checks enabled."""
    return ProfileConfig(
        vtex=VTEXConfig(account="teststore", auth_token="test-token", workspace="qa"),
        git=GitConfig(production_branch="main", feature_prefixes=["feature/"]),
        deploy=DeploySettings(history_dir=None),
        health=HealthConfig(services=[]),
    )


@pytest.fixture
def mock_config(profile: ProfileConfig) -> VtexDeployConfig:
    """Create a mock configuration."""
    return VtexDeployConfig(profiles={"default": profile})


@pytest.fixture
def mock_context(mock_config: VtexDeployConfig) -> VtexDeployContext:
    """Create a mock vtexdeploy context."""
    return VtexDeployContext(
        config=mock_config,
        profile="default",
        output_format=OutputFormat.TABLE,
        verbose=0,
        quiet=False,
        dry_run=False,
        color=False,
    )


@pytest.fixture
def git() -> InMemoryGitReader:
    return InMemoryGitReader(branch="develop")


@pytest.fixture
def platform() -> InMemoryPlatformClient:
    return InMemoryPlatformClient(
        history={
            Environment.QA: [make_history_entry("deploy_prev_qa", version="0.9.0")],
            Environment.PRODUCTION: [
                make_history_entry("deploy_prev_prod", Environment.PRODUCTION, version="0.9.0")
            ],
        }
    )


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def notifier(channel: RecordingChannel) -> NotificationService:
    return NotificationService([channel])


@pytest.fixture
def health_engine() -> HealthCheckEngine:
    engine = HealthCheckEngine(probe_timeout=2.0)
    engine.register("workspace", healthy_probe("workspace"))
    engine.register("apps", healthy_probe("apps"))
    return engine


@pytest.fixture
def validator(git: InMemoryGitReader, platform: InMemoryPlatformClient, profile: ProfileConfig) -> ValidationEngine:
    return ValidationEngine(git, platform, profile)


@pytest.fixture
def make_orchestrator(
    platform: InMemoryPlatformClient,
    validator: ValidationEngine,
    health_engine: HealthCheckEngine,
    notifier: NotificationService,
    profile: ProfileConfig,
) -> Callable[..., DeploymentOrchestrator]:
    """Build an orchestrator, optionally overriding deploy settings."""

    def _make(**settings) -> DeploymentOrchestrator:
        deploy_settings = profile.deploy.model_copy(update=settings)
        return DeploymentOrchestrator(platform, validator, health_engine, notifier, deploy_settings)

    return _make


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Clean environment variables before each test."""
    env_vars = [
        "VTEXDEPLOY_VTEX_ACCOUNT",
        "VTEXDEPLOY_VTEX_WORKSPACE",
        "VTEXDEPLOY_VTEX_AUTH_TOKEN",
        "VTEXDEPLOY_GIT_PRODUCTION_BRANCH",
        "VTEXDEPLOY_SLACK_WEBHOOK_URL",
        "VTEXDEPLOY_TEAMS_WEBHOOK_URL",
        "VTEXDEPLOY_EMAIL_SMTP_PASSWORD",
        "VTEXDEPLOY_PROFILE",
        "VTEXDEPLOY_CONFIG",
        "VTEX_ACCOUNT",
        "VTEX_WORKSPACE",
        "VTEX_AUTH_TOKEN",
        "GIT_PRODUCTION_BRANCH",
        "SLACK_WEBHOOK_URL",
        "TEAMS_WEBHOOK_URL",
        "EMAIL_SMTP_HOST",
        "EMAIL_SMTP_PASSWORD",
        "APP_VENDOR",
        "APP_NAME",
    ]

    original = {k: os.environ.get(k) for k in env_vars}

    for k in env_vars:
        os.environ.pop(k, None)

    yield

    for k, v in original.items():
        if v is not None:
            os.environ[k] = v
        else:
            os.environ.pop(k, None)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch) -> None:
    """Keep user and project config lookups inside a temp directory."""
    monkeypatch.setattr(config_module, "USER_CONFIG_DIR", tmp_path / ".vtexdeploy")
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def temp_config_file(tmp_path):
    """Create a temporary config file."""
    config_content = """
version: "1"
global:
  output_format: table
profiles:
  default:
    vtex:
      account: teststore
      auth_token: test-token
    git:
      production_branch: main
    health:
      services: []
"""
    config_file = tmp_path / "config.yaml"
    config_file.write_text(config_content)
    return str(config_file)
