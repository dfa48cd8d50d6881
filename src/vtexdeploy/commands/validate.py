"""Validate command."""

import sys

import click

from vtexdeploy.commands.common import ENVIRONMENT_CHOICES, parse_environment, render_verdict
from vtexdeploy.core.context import VtexDeployContext, pass_context
from vtexdeploy.deploy.models import DeploymentOptions


@click.command()
@click.option(
    "-e",
    "--environment",
    type=click.Choice(ENVIRONMENT_CHOICES, case_sensitive=False),
    default="qa",
    show_default=True,
    help="Environment to validate for",
)
@click.option("-b", "--branch", help="Branch to validate (defaults to current branch)")
@click.option("-w", "--workspace", help="Target workspace")
@click.option("-f", "--force", is_flag=True, help="Treat uncommitted changes as a warning")
@click.option("--skip-tests", is_flag=True, help="Skip the configured test command")
@click.option("--canary", is_flag=True, help="Validate a canary deployment")
@click.option("--canary-percentage", type=int, default=10, show_default=True)
@click.option("--simulate", is_flag=True, help="Use in-memory git and platform clients")
@pass_context
def validate(
    ctx: VtexDeployContext,
    environment: str,
    branch: str | None,
    workspace: str | None,
    force: bool,
    skip_tests: bool,
    canary: bool,
    canary_percentage: int,
    simulate: bool,
) -> None:
    """Run pre-flight validation without deploying.

    The production confirmation gate is treated as satisfied, since nothing
    is deployed. Exits 1 when validation fails.
    """
    if simulate:
        ctx.use_simulation(branch)

    options = DeploymentOptions(
        environment=parse_environment(environment),
        branch=branch,
        workspace=workspace,
        force=force,
        skip_tests=skip_tests,
        canary=canary,
        canary_percentage=canary_percentage,
        confirm=True,
    )
    verdict = ctx.validator().validate(options)
    render_verdict(ctx, verdict)

    if not verdict.valid:
        sys.exit(1)
