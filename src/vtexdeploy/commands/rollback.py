"""Rollback command."""

import sys

import click

from vtexdeploy.commands.common import (
    ENVIRONMENT_CHOICES,
    exit_for,
    parse_environment,
    render_result,
)
from vtexdeploy.core.context import VtexDeployContext, pass_context
from vtexdeploy.core.exceptions import RollbackError
from vtexdeploy.deploy.models import Environment, RollbackOptions


@click.command()
@click.option(
    "-e",
    "--environment",
    type=click.Choice(ENVIRONMENT_CHOICES, case_sensitive=False),
    default="qa",
    show_default=True,
    help="Environment to roll back",
)
@click.option("-d", "--deployment-id", help="Roll back to this deployment")
@click.option("-V", "--version", "target_version", help="Roll back to the latest good deployment of this version")
@click.option("-s", "--steps", type=int, default=1, show_default=True, help="How many deployments to go back")
@click.option("-r", "--reason", help="Reason recorded in the rollback log")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation")
@click.option("--simulate", is_flag=True, help="Use in-memory git and platform clients")
@pass_context
def rollback(
    ctx: VtexDeployContext,
    environment: str,
    deployment_id: str | None,
    target_version: str | None,
    steps: int,
    reason: str | None,
    yes: bool,
    simulate: bool,
) -> None:
    """Roll back to a previous deployment.

    \b
    Examples:
        vtexdeploy rollback -e qa
        vtexdeploy rollback -e prod --steps 2 --yes
        vtexdeploy rollback -e prod -d deploy_1700000000000_ab12cd34
        vtexdeploy rollback -e qa --version 1.4.2
    """
    if deployment_id and target_version:
        raise click.UsageError("--deployment-id and --version are mutually exclusive")

    if simulate:
        ctx.use_simulation()

    env = parse_environment(environment)
    if env == Environment.PRODUCTION and not yes and not ctx.dry_run:
        if ctx.config.global_settings.confirm_destructive and not ctx.confirm(
            "Roll back PRODUCTION?"
        ):
            ctx.output.print_info("Rollback cancelled")
            return

    options = RollbackOptions(
        environment=env,
        deployment_id=deployment_id,
        version=target_version,
        steps=steps,
        dry_run=ctx.dry_run,
        reason=reason,
    )

    try:
        result = ctx.orchestrator(env).rollback(options)
    except RollbackError as e:
        ctx.output.print_error(f"{e.message} (state: failed)")
        sys.exit(1)

    render_result(ctx, result)
    exit_for(result)
