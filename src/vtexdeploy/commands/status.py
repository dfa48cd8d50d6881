"""Status and history commands."""

import sys

import click

from vtexdeploy.commands.common import ENVIRONMENT_CHOICES, parse_environment, render_result, result_row
from vtexdeploy.core.context import VtexDeployContext, pass_context
from vtexdeploy.core.output import OutputFormat
from vtexdeploy.deploy.models import Environment


@click.command()
@click.option(
    "-e",
    "--environment",
    type=click.Choice(ENVIRONMENT_CHOICES, case_sensitive=False),
    help="Only show this environment",
)
@click.option("-d", "--deployment-id", help="Show one recorded deployment in detail")
@pass_context
def status(ctx: VtexDeployContext, environment: str | None, deployment_id: str | None) -> None:
    """Show the latest deployment per environment.

    \b
    Examples:
        vtexdeploy status
        vtexdeploy status -d deploy_1700000000000_ab12cd34
    """
    if deployment_id:
        env = parse_environment(environment) if environment else Environment.QA
        deployment = ctx.orchestrator(env).get_deployment(deployment_id)
        if deployment is None:
            ctx.output.print_error(f"Deployment {deployment_id} not found")
            sys.exit(1)
        render_result(ctx, deployment)
        return

    environments = [parse_environment(environment)] if environment else list(Environment)

    rows = []
    for env in environments:
        latest = ctx.orchestrator(env).get_status(env)
        if latest is None:
            rows.append({"Environment": env.value, "ID": "-", "Status": "no deployments"})
            continue
        if ctx.output_format == OutputFormat.TABLE:
            rows.append({"Environment": env.value, **result_row(latest)})
        else:
            rows.append(latest)

    headers = None
    if ctx.output_format == OutputFormat.TABLE:
        headers = ["Environment", "ID", "Status", "Version", "Workspace", "Started"]
    ctx.output.print_data(rows, headers=headers, title="Deployment Status")


@click.command()
@click.option(
    "-e",
    "--environment",
    type=click.Choice(ENVIRONMENT_CHOICES, case_sensitive=False),
    default="qa",
    show_default=True,
    help="Environment",
)
@click.option("-n", "--limit", type=int, help="Number of deployments to show")
@pass_context
def history(ctx: VtexDeployContext, environment: str, limit: int | None) -> None:
    """List previous deployments, newest first."""
    env = parse_environment(environment)
    deployments = ctx.orchestrator(env).get_deployment_history(env, limit)

    if not deployments:
        ctx.output.print_info(f"No deployments recorded for {env.value}")
        return

    if ctx.output_format == OutputFormat.TABLE:
        ctx.output.print_data([result_row(d) for d in deployments], title=f"{env.value} history")
    else:
        ctx.output.print_data(deployments)
