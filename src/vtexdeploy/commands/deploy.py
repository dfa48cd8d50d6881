"""Deploy command group."""

import sys

import click

from vtexdeploy.commands.common import exit_for, render_result, render_verdict
from vtexdeploy.core.context import VtexDeployContext, pass_context
from vtexdeploy.core.exceptions import DeploymentValidationError
from vtexdeploy.deploy.models import DeploymentOptions, Environment


@click.group()
@pass_context
def deploy(ctx: VtexDeployContext) -> None:
    """Deploy the app to QA or production.

    \b
    Examples:
        vtexdeploy deploy qa --branch develop
        vtexdeploy deploy prod --yes
        vtexdeploy deploy prod --canary --canary-percentage 20
    """
    pass


def _run(ctx: VtexDeployContext, options: DeploymentOptions) -> None:
    orchestrator = ctx.orchestrator(options.environment)
    try:
        result = orchestrator.deploy(options)
    except DeploymentValidationError as e:
        if e.verdict is not None:
            render_verdict(ctx, e.verdict)
        if e.result is not None:
            ctx.output.print_error(f"Deployment not attempted (state: {e.result.status.value})")
        sys.exit(1)

    render_result(ctx, result)
    exit_for(result)


@deploy.command("qa")
@click.option("-b", "--branch", help="Branch to deploy (defaults to current branch)")
@click.option("-w", "--workspace", help="Target workspace")
@click.option("--version", "version", help="Explicit version to release")
@click.option("-f", "--force", is_flag=True, help="Deploy even with uncommitted changes")
@click.option("--skip-validation", is_flag=True, help="Skip pre-flight validation")
@click.option("--skip-tests", is_flag=True, help="Skip the configured test command")
@click.option("--simulate", is_flag=True, help="Use in-memory git and platform clients")
@pass_context
def qa(
    ctx: VtexDeployContext,
    branch: str | None,
    workspace: str | None,
    version: str | None,
    force: bool,
    skip_validation: bool,
    skip_tests: bool,
    simulate: bool,
) -> None:
    """Deploy to the QA workspace."""
    if simulate:
        ctx.use_simulation(branch)

    options = DeploymentOptions(
        environment=Environment.QA,
        branch=branch,
        workspace=workspace,
        force=force,
        skip_validation=skip_validation,
        skip_tests=skip_tests,
        dry_run=ctx.dry_run,
        version=version,
    )
    _run(ctx, options)


@deploy.command("prod")
@click.option("-b", "--branch", help="Branch to deploy (defaults to current branch)")
@click.option("-w", "--workspace", help="Target workspace")
@click.option("--version", "version", help="Explicit version to release")
@click.option("-f", "--force", is_flag=True, help="Deploy even with uncommitted changes")
@click.option("--skip-tests", is_flag=True, help="Skip the configured test command")
@click.option("--canary", is_flag=True, help="Deploy to a canary share of traffic")
@click.option("--canary-percentage", type=int, default=10, show_default=True, help="Canary traffic percentage")
@click.option("-y", "--yes", is_flag=True, help="Confirm the production deployment")
@click.option("--simulate", is_flag=True, help="Use in-memory git and platform clients")
@pass_context
def prod(
    ctx: VtexDeployContext,
    branch: str | None,
    workspace: str | None,
    version: str | None,
    force: bool,
    skip_tests: bool,
    canary: bool,
    canary_percentage: int,
    yes: bool,
    simulate: bool,
) -> None:
    """Deploy to production.

    Production deployments always validate and require confirmation,
    either interactively or with --yes.
    """
    if simulate:
        ctx.use_simulation(branch)

    confirmed = yes or ctx.confirm("Deploy to PRODUCTION?")

    options = DeploymentOptions(
        environment=Environment.PRODUCTION,
        branch=branch,
        workspace=workspace,
        force=force,
        skip_tests=skip_tests,
        canary=canary,
        canary_percentage=canary_percentage,
        confirm=confirmed,
        dry_run=ctx.dry_run,
        version=version,
    )
    _run(ctx, options)
