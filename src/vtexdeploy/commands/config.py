"""Configuration commands."""

import sys
from pathlib import Path

import click

from vtexdeploy.config import DEFAULT_CONFIG_TEMPLATE
from vtexdeploy.core.context import VtexDeployContext, pass_context
from vtexdeploy.core.exceptions import ConfigError


@click.group()
@pass_context
def config(ctx: VtexDeployContext) -> None:
    """Show, validate and create configuration.

    \b
    Configuration:
        ~/.vtexdeploy/config.yaml    User configuration
        ./vtexdeploy.yaml            Project configuration
        VTEX_ACCOUNT, VTEX_AUTH_TOKEN, SLACK_WEBHOOK_URL, ...
    """
    pass


@config.command("show")
@pass_context
def show(ctx: VtexDeployContext) -> None:
    """Show the effective configuration (secrets masked)."""
    profile = ctx.profile
    notifications = profile.notifications
    config_data = {
        "profile": ctx.profile_name,
        "output_format": ctx.output_format.value,
        "vtex": {
            "account": profile.vtex.get_account(),
            "workspace": profile.vtex.get_workspace(),
            "has_auth_token": bool(profile.vtex.get_auth_token()),
            "timeout": profile.vtex.timeout,
        },
        "app": profile.app.get_app_id(),
        "git": {
            "production_branch": profile.git.get_production_branch(),
            "feature_prefixes": profile.git.feature_prefixes,
        },
        "deploy": {
            "rollback_on_failure": profile.deploy.rollback_on_failure,
            "rollback_on_warning": profile.deploy.rollback_on_warning,
            "timeout": profile.deploy.timeout,
            "qa_workspace": profile.deploy.qa_workspace,
            "production_workspace": profile.deploy.production_workspace,
        },
        "health": {
            "services": profile.health.services,
            "probe_timeout": profile.health.probe_timeout,
        },
        "notifications": {
            "slack": notifications.slack.enabled,
            "teams": notifications.teams.enabled,
            "email": notifications.email.enabled,
        },
    }
    ctx.output.print_data(config_data, title="Current Configuration")


@config.command("validate")
@pass_context
def validate_config(ctx: VtexDeployContext) -> None:
    """Check the active profile for missing or invalid settings."""
    errors, warnings = ctx.profile.check()

    for error in errors:
        ctx.output.print_error(error)
    for warning in warnings:
        ctx.output.print_warning(warning)

    if errors:
        sys.exit(1)
    ctx.output.print_success(f"Profile '{ctx.profile_name}' is valid")


@config.command("init")
@click.option("--account", prompt="VTEX account", help="VTEX account name")
@click.option("--workspace", default="qa", show_default=True, help="Default QA workspace")
@click.option("--vendor", default="", help="App vendor")
@click.option("--name", "app_name", default="", help="App name")
@click.option(
    "--path",
    "config_path",
    type=click.Path(dir_okay=False),
    default="vtexdeploy.yaml",
    show_default=True,
    help="Where to write the config",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@pass_context
def init(
    ctx: VtexDeployContext,
    account: str,
    workspace: str,
    vendor: str,
    app_name: str,
    config_path: str,
    force: bool,
) -> None:
    """Write a starter project configuration file."""
    path = Path(config_path)
    if path.exists() and not force:
        raise ConfigError(f"{path} already exists (use --force to overwrite)")

    content = DEFAULT_CONFIG_TEMPLATE.format(
        account=account,
        workspace=workspace,
        vendor=vendor or "null",
        name=app_name or "null",
    )

    if ctx.dry_run:
        ctx.log_dry_run("write config", {"path": str(path)})
        ctx.output.print(content)
        return

    path.write_text(content)
    ctx.output.print_success(f"Wrote {path}")
