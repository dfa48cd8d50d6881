"""Tests for git, VTEX and notification clients."""

import json
import smtplib
import subprocess
from unittest.mock import MagicMock, patch

import httpx
import pytest

from vtexdeploy.config import (
    AppConfig,
    DeploySettings,
    EmailConfig,
    ProfileConfig,
    SlackConfig,
    TeamsConfig,
    VTEXConfig,
)
from vtexdeploy.core.exceptions import (
    AuthenticationError,
    ExecutionError,
    GitError,
    NotificationError,
    PlatformError,
    TimeoutError,
)
from vtexdeploy.deploy.models import (
    DeploymentOptions,
    DeploymentResult,
    DeploymentStatus,
    Environment,
)
from vtexdeploy.deploy.notifications import GREEN, RED, NotificationMessage


def completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> MagicMock:
    return MagicMock(stdout=stdout, returncode=returncode, stderr=stderr)


def message(color: str = GREEN, link: str | None = None) -> NotificationMessage:
    return NotificationMessage(
        event="success",
        environment="qa",
        title="Deployment Successful",
        text="",
        emoji=":white_check_mark:",
        color=color,
        status_label="Success",
        fields=[("Environment", "QA"), ("Version", "1.0.0")],
        link=link,
    )


class TestGitCLIReader:
    """Tests for the git CLI reader."""

    @pytest.fixture
    def reader(self, tmp_path):
        from vtexdeploy.clients.git import GitCLIReader

        return GitCLIReader(tmp_path)

    @patch("vtexdeploy.clients.git.subprocess.run")
    def test_current_branch(self, mock_run, reader):
        mock_run.return_value = completed("develop\n")
        assert reader.current_branch() == "develop"
        assert mock_run.call_args[0][0] == ["git", "rev-parse", "--abbrev-ref", "HEAD"]

    @patch("vtexdeploy.clients.git.subprocess.run")
    def test_is_dirty(self, mock_run, reader):
        mock_run.return_value = completed(" M manifest.json\n")
        assert reader.is_dirty() is True

        mock_run.return_value = completed("")
        assert reader.is_dirty() is False

    @patch("vtexdeploy.clients.git.subprocess.run")
    def test_ahead_behind(self, mock_run, reader):
        mock_run.return_value = completed("2\t5\n")
        counts = reader.ahead_behind()
        assert (counts.ahead, counts.behind) == (2, 5)

    @patch("vtexdeploy.clients.git.subprocess.run")
    def test_no_upstream_raises(self, mock_run, reader):
        mock_run.return_value = completed(returncode=128, stderr="fatal: no upstream configured")
        with pytest.raises(GitError) as exc_info:
            reader.ahead_behind()
        assert "no upstream" in exc_info.value.message

    @patch("vtexdeploy.clients.git.subprocess.run")
    def test_latest_commit(self, mock_run, reader):
        mock_run.return_value = completed(
            "abcdef1234567890\x1fFix checkout\x1fJane Doe\x1f2024-05-01T10:00:00+00:00\n"
        )
        commit = reader.latest_commit()
        assert commit.short_hash == "abcdef1"
        assert commit.message == "Fix checkout"

    @patch("vtexdeploy.clients.git.subprocess.run")
    def test_git_missing(self, mock_run, reader):
        mock_run.side_effect = FileNotFoundError()
        with pytest.raises(GitError):
            reader.current_branch()


class TestVTEXClient:
    """Tests for the VTEX CLI platform client."""

    @pytest.fixture
    def profile(self, tmp_path):
        return ProfileConfig(
            vtex=VTEXConfig(account="teststore", auth_token="secret-token"),
            app=AppConfig(vendor="acme", name="store-theme"),
            deploy=DeploySettings(history_dir=str(tmp_path / "history")),
        )

    @pytest.fixture
    def client(self, profile, tmp_path):
        from vtexdeploy.clients.vtex import VTEXClient

        manifest = {
            "vendor": "acme",
            "name": "store-theme",
            "version": "2.3.1",
            "builders": {"store": "0.x", "react": "3.x"},
            "dependencies": {"vtex.store": "2.x"},
        }
        (tmp_path / "manifest.json").write_text(json.dumps(manifest))
        return VTEXClient(profile, app_path=tmp_path)

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_auth_token_passed_in_env(self, mock_run, client):
        mock_run.return_value = completed("[]")
        client.validate_workspace("qa")
        assert mock_run.call_args.kwargs["env"]["VTEX_AUTH_TOKEN"] == "secret-token"

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_cli_error(self, mock_run, client):
        mock_run.return_value = completed(returncode=1, stderr="Workspace not found")
        with pytest.raises(PlatformError) as exc_info:
            client.validate_workspace("qa")
        assert exc_info.value.message == "VTEX CLI error: Workspace not found"
        assert exc_info.value.stderr == "Workspace not found"

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_cli_not_logged_in(self, mock_run, client):
        mock_run.return_value = completed(returncode=1, stderr="Error: You are not logged in")
        with pytest.raises(AuthenticationError) as exc_info:
            client.validate_workspace("qa")
        assert "not authenticated for account" in exc_info.value.message

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_cli_timeout(self, mock_run, client):
        mock_run.side_effect = subprocess.TimeoutExpired("vtex", 300)
        with pytest.raises(TimeoutError) as exc_info:
            client.validate_workspace("qa")
        assert exc_info.value.message.startswith("Command timed out after 300s")

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_validate_workspace(self, mock_run, client):
        mock_run.return_value = completed(json.dumps([{"name": "master"}, {"name": "qa"}]))

        assert client.validate_workspace("qa").valid
        # QA workspaces are created on demand
        assert client.validate_workspace("feature-x").valid

        check = client.validate_workspace("prodtest")
        assert not check.valid
        assert check.error == "Workspace 'prodtest' does not exist in account 'teststore'"

    def test_compatible_manifest(self, client):
        report = client.check_app_compatibility()
        assert report.compatible
        assert report.issues == []

    def test_incompatible_manifest(self, client, tmp_path):
        manifest = {"vendor": "acme", "name": "store-theme", "version": "1.0", "dependencies": {"vtex.x": "*"}}
        (tmp_path / "manifest.json").write_text(json.dumps(manifest))

        report = client.check_app_compatibility()

        assert not report.compatible
        messages = [i.message for i in report.issues]
        assert "Invalid version format: 1.0" in messages
        assert "manifest.json declares no builders" in messages
        assert "Unpinned dependencies entry: vtex.x" in messages

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_qa_deploy(self, mock_run, client):
        mock_run.return_value = completed("")
        outcome = client.deploy(DeploymentOptions(environment=Environment.QA))

        commands = [c[0][0][1:] for c in mock_run.call_args_list]
        assert commands[0] == ["use", "qa"]
        assert commands[1][0] == "release"
        assert commands[1][1].startswith("2.3.1-qa.")
        assert commands[2] == ["install", f"acme.store-theme@{outcome.version}"]
        assert outcome.workspace_url == "https://qa--teststore.myvtex.com"

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_production_deploy_promotes(self, mock_run, client):
        mock_run.return_value = completed("")
        outcome = client.deploy(DeploymentOptions(environment=Environment.PRODUCTION, version="2.4.0"))

        commands = [c[0][0][1:] for c in mock_run.call_args_list]
        assert commands == [
            ["use", "prodtest"],
            ["release", "2.4.0", "--stable"],
            ["install", "acme.store-theme@2.4.0"],
            ["workspace", "promote", "prodtest"],
        ]
        assert outcome.workspace_url == "https://master--teststore.myvtex.com"

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_canary_deploy(self, mock_run, client):
        mock_run.return_value = completed("")
        client.deploy_canary(DeploymentOptions(environment=Environment.PRODUCTION, version="2.4.0"), 15)

        last = mock_run.call_args_list[-1][0][0]
        assert last[1:] == ["workspace", "abtest", "start", "--proportion", "15"]

    def test_history_roundtrip(self, client):
        older = DeploymentResult(environment=Environment.QA, version="1.0.0")
        older.finish(DeploymentStatus.SUCCEEDED)
        newer = DeploymentResult(environment=Environment.QA, version="1.1.0")
        newer.finish(DeploymentStatus.SUCCEEDED)

        client.record_deployment(older)
        client.record_deployment(newer)
        client.record_deployment(older)

        history = client.get_deployment_history(Environment.QA)
        assert [d.id for d in history] == [older.id, newer.id]
        assert client.get_deployment_history(Environment.PRODUCTION) == []

    def test_get_deployment_searches_all_environments(self, client):
        prod = DeploymentResult(environment=Environment.PRODUCTION, version="2.0.0")
        prod.finish(DeploymentStatus.FAILED, "install timed out")
        client.record_deployment(prod)

        found = client.get_deployment(prod.id)
        assert found.environment == Environment.PRODUCTION
        assert found.error == "install timed out"
        assert client.get_deployment("deploy_0_00000000") is None

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_rollback_installs_recorded_version(self, mock_run, client):
        mock_run.return_value = completed("")
        target = DeploymentResult(environment=Environment.QA, version="1.0.0", workspace="qa")
        target.finish(DeploymentStatus.SUCCEEDED)
        client.record_deployment(target)

        outcome = client.rollback_to_deployment(target.id)

        assert outcome.success
        assert outcome.rolled_back_to == target.id
        commands = [c[0][0][1:] for c in mock_run.call_args_list]
        assert commands == [["use", "qa"], ["install", "acme.store-theme@1.0.0"]]

    def test_rollback_unknown_id(self, client):
        with pytest.raises(ExecutionError) as exc_info:
            client.rollback_to_deployment("deploy_0_00000000")
        assert exc_info.value.deployment_id == "deploy_0_00000000"

    @patch("vtexdeploy.clients.vtex.subprocess.run")
    def test_workspace_status(self, mock_run, client):
        mock_run.side_effect = [
            completed(json.dumps({"name": "qa", "status": "active"})),
            completed(json.dumps([{"name": "acme.store-theme", "version": "2.3.1"}])),
        ]
        status = client.get_workspace_status(Environment.QA)
        assert status.workspace == "qa"
        assert status.apps[0].status == "installed"


class TestInMemoryClients:
    """Tests for the in-memory collaborators."""

    def test_git_error(self):
        from vtexdeploy.clients.memory import InMemoryGitReader

        git = InMemoryGitReader(error="not a git repository")
        with pytest.raises(GitError):
            git.is_dirty()
        assert git.called("is_dirty")

    def test_platform_record_replaces_by_id(self):
        from vtexdeploy.clients.memory import InMemoryPlatformClient

        platform = InMemoryPlatformClient()
        result = DeploymentResult(environment=Environment.QA)
        platform.record_deployment(result)
        result.finish(DeploymentStatus.SUCCEEDED)
        platform.record_deployment(result)

        history = platform.get_deployment_history(Environment.QA)
        assert len(history) == 1
        assert history[0].status == DeploymentStatus.SUCCEEDED
        assert history[0] is not result


class TestSlackWebhookClient:
    """Tests for the Slack webhook client."""

    @pytest.fixture
    def slack_config(self):
        return SlackConfig(
            enabled=True,
            webhook_url="https://hooks.slack.com/services/T000/B000/XXX",
            channel="#deploys",
            mention_on_failure=True,
            mention_users=["U123"],
        )

    def test_client_initialization(self, slack_config):
        from vtexdeploy.clients.slack import SlackWebhookClient

        with SlackWebhookClient(slack_config) as client:
            assert client._client is None  # Lazy initialization

    def test_payload(self, slack_config):
        from vtexdeploy.clients.slack import SlackWebhookClient

        payload = SlackWebhookClient(slack_config).build_payload(message())

        assert payload["channel"] == "#deploys"
        assert payload["attachments"][0]["color"] == GREEN
        assert "*Version:* 1.0.0" in payload["blocks"][0]["text"]["text"]
        assert "<@U123>" not in payload["text"]

    def test_failure_mentions(self, slack_config):
        from vtexdeploy.clients.slack import SlackWebhookClient

        payload = SlackWebhookClient(slack_config).build_payload(message(color=RED))
        assert payload["text"].startswith("<@U123> ")

    def test_send(self, slack_config):
        from vtexdeploy.clients.slack import SlackWebhookClient

        client = SlackWebhookClient(slack_config)
        client._client = MagicMock()
        client.send(message())

        url = client._client.post.call_args[0][0]
        assert url == "https://hooks.slack.com/services/T000/B000/XXX"
        assert "blocks" in client._client.post.call_args.kwargs["json"]

    def test_http_error(self, slack_config):
        from vtexdeploy.clients.slack import SlackWebhookClient

        def handler(request):
            return httpx.Response(404, text="no_service")

        client = SlackWebhookClient(slack_config)
        client._client = httpx.Client(transport=httpx.MockTransport(handler))

        with pytest.raises(NotificationError) as exc_info:
            client.send(message())
        assert exc_info.value.status_code == 404
        assert exc_info.value.channel == "slack"

    def test_webhook_from_env(self, monkeypatch):
        from vtexdeploy.clients.slack import SlackWebhookClient

        monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.com/services/env")
        client = SlackWebhookClient(SlackConfig(enabled=True))
        client._client = MagicMock()
        client.test()
        assert client._client.post.call_args[0][0] == "https://hooks.slack.com/services/env"

    def test_missing_webhook(self):
        from vtexdeploy.clients.slack import SlackWebhookClient

        with pytest.raises(NotificationError):
            SlackWebhookClient(SlackConfig(enabled=True)).send(message())


class TestTeamsWebhookClient:
    """Tests for the Teams webhook client."""

    def test_payload(self):
        from vtexdeploy.clients.teams import TeamsWebhookClient

        client = TeamsWebhookClient(TeamsConfig(enabled=True, webhook_url="https://teams.test/hook"))
        payload = client.build_payload(message(link="https://qa--store.myvtex.com"))

        assert payload["@type"] == "MessageCard"
        assert payload["themeColor"] == GREEN.lstrip("#")
        facts = payload["sections"][0]["facts"]
        assert {"name": "Version", "value": "1.0.0"} in facts
        assert payload["potentialAction"][0]["targets"][0]["uri"] == "https://qa--store.myvtex.com"

    def test_no_link_no_action(self):
        from vtexdeploy.clients.teams import TeamsWebhookClient

        client = TeamsWebhookClient(TeamsConfig(enabled=True, webhook_url="https://teams.test/hook"))
        assert "potentialAction" not in client.build_payload(message())

    def test_request_error(self):
        from vtexdeploy.clients.teams import TeamsWebhookClient

        def handler(request):
            raise httpx.ConnectError("refused")

        client = TeamsWebhookClient(TeamsConfig(enabled=True, webhook_url="https://teams.test/hook"))
        client._client = httpx.Client(transport=httpx.MockTransport(handler))
        with pytest.raises(NotificationError):
            client.send(message())


class TestEmailClient:
    """Tests for the SMTP email client."""

    @pytest.fixture
    def email_config(self):
        return EmailConfig(
            enabled=True,
            smtp_host="smtp.example.com",
            smtp_user="deploy",
            smtp_password="hunter2",
            **{"from": "deploy@example.com"},
            to=["ops@example.com"],
            cc=["lead@example.com"],
        )

    def test_render(self, email_config):
        from vtexdeploy.clients.email import EmailClient

        msg = EmailClient(email_config).render(message())
        assert msg["Subject"] == "[QA] Deployment Successful"
        assert msg["Cc"] == "lead@example.com"
        assert msg.is_multipart()

    @patch("vtexdeploy.clients.email.smtplib.SMTP")
    def test_starttls_delivery(self, mock_smtp, email_config):
        from vtexdeploy.clients.email import EmailClient

        server = mock_smtp.return_value
        EmailClient(email_config).send(message())

        mock_smtp.assert_called_once_with("smtp.example.com", 587, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("deploy", "hunter2")
        assert server.send_message.call_args.kwargs["to_addrs"] == ["ops@example.com", "lead@example.com"]
        server.quit.assert_called_once()

    @patch("vtexdeploy.clients.email.smtplib.SMTP_SSL")
    def test_implicit_tls_on_465(self, mock_ssl, email_config):
        from vtexdeploy.clients.email import EmailClient

        email_config.smtp_port = 465
        EmailClient(email_config).send(message())

        mock_ssl.assert_called_once()
        mock_ssl.return_value.starttls.assert_not_called()

    @patch("vtexdeploy.clients.email.smtplib.SMTP")
    def test_smtp_error_wrapped(self, mock_smtp, email_config):
        from vtexdeploy.clients.email import EmailClient

        mock_smtp.return_value.send_message.side_effect = smtplib.SMTPRecipientsRefused({})
        with pytest.raises(NotificationError) as exc_info:
            EmailClient(email_config).send(message())
        assert exc_info.value.channel == "email"
        mock_smtp.return_value.quit.assert_called_once()

    def test_missing_host(self):
        from vtexdeploy.clients.email import EmailClient

        with pytest.raises(NotificationError):
            EmailClient(EmailConfig(enabled=True, to=["ops@example.com"])).test()
