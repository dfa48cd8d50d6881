"""Rendering helpers shared by deployment commands."""

import sys

from vtexdeploy.core.context import VtexDeployContext
from vtexdeploy.core.output import STATUS_STYLES, OutputFormat, format_duration, style_status
from vtexdeploy.deploy.models import (
    DeploymentResult,
    Environment,
    Failed,
    HealthCheckSummary,
    RolledBack,
    Succeeded,
    ValidationVerdict,
)

ENVIRONMENT_ALIASES = {
    "qa": Environment.QA,
    "prod": Environment.PRODUCTION,
    "production": Environment.PRODUCTION,
}
ENVIRONMENT_CHOICES = list(ENVIRONMENT_ALIASES)


def parse_environment(value: str) -> Environment:
    return ENVIRONMENT_ALIASES[value.lower()]


def result_row(result: DeploymentResult) -> dict[str, str]:
    """Compact table row for a deployment."""
    duration = format_duration(result.duration_ms / 1000) if result.duration_ms is not None else "-"
    return {
        "ID": result.id,
        "Status": result.status.value,
        "Version": result.version or "-",
        "Workspace": result.workspace or "-",
        "Branch": result.branch or "-",
        "Started": result.started_at.strftime("%Y-%m-%d %H:%M:%S"),
        "Duration": duration,
    }


def render_result(ctx: VtexDeployContext, result: DeploymentResult) -> None:
    """Print a finished deployment."""
    if ctx.output_format != OutputFormat.TABLE:
        ctx.output.print_data(result)
        return

    lines = [
        f"[bold]ID:[/bold] {result.id}",
        f"[bold]Environment:[/bold] {result.environment.value}",
        f"[bold]Status:[/bold] {style_status(result.status.value)}",
    ]
    if result.version:
        lines.append(f"[bold]Version:[/bold] {result.version}")
    if result.workspace:
        lines.append(f"[bold]Workspace:[/bold] {result.workspace}")
    if result.canary:
        lines.append(f"[bold]Canary:[/bold] {result.canary_percentage}%")
    outcome = result.outcome
    if isinstance(outcome, RolledBack) and outcome.target_id:
        lines.append(f"[bold]Rolled back to:[/bold] {outcome.target_id}")
    elif result.rollback_target:
        lines.append(f"[bold]Rollback target:[/bold] {result.rollback_target}")
    if result.workspace_url:
        lines.append(f"[bold]URL:[/bold] {result.workspace_url}")
    if result.duration_ms is not None:
        lines.append(f"[bold]Duration:[/bold] {format_duration(result.duration_ms / 1000)}")
    if isinstance(outcome, Succeeded) and outcome.dry_run:
        lines.append("[dim]Dry run: no changes were made[/dim]")

    style = STATUS_STYLES.get(result.status.value, "red")
    ctx.output.print_panel("\n".join(lines), title="Deployment", style=style)

    if isinstance(outcome, Failed):
        ctx.output.print_error(f"{outcome.error} (state: {result.status.value})")
    elif isinstance(outcome, RolledBack) and result.error:
        ctx.output.print_warning(f"{result.error} (state: {result.status.value})")

    if ctx.verbose >= 1:
        for line in result.logs:
            ctx.output.print(f"[dim]{line}[/dim]")


def render_verdict(ctx: VtexDeployContext, verdict: ValidationVerdict) -> None:
    """Print validation errors and warnings."""
    if ctx.output_format != OutputFormat.TABLE:
        ctx.output.print_data(verdict)
        return

    for issue in verdict.errors:
        ctx.output.print_error(issue.message)
    for issue in verdict.warnings:
        ctx.output.print_warning(issue.message)
    if verdict.valid:
        ctx.output.print_success("Validation passed")


def render_health(ctx: VtexDeployContext, summary: HealthCheckSummary) -> None:
    """Print a health check summary."""
    if ctx.output_format != OutputFormat.TABLE:
        ctx.output.print_data(summary)
        return

    rows = [
        {
            "Service": r.service,
            "Status": r.status.value,
            "Message": r.message,
            "Duration": f"{r.duration_ms}ms",
        }
        for r in summary.results
    ]
    ctx.output.print_data(rows, title=f"Health: {style_status(summary.overall.value)}")

    if summary.recovered:
        ctx.output.print_success(f"Recovered: {', '.join(summary.recovered)}")
    if summary.recommendations:
        ctx.output.print("\n[bold]Recommendations:[/bold]")
        for hint in summary.recommendations:
            ctx.output.print(f"  • {hint}")


def exit_for(result: DeploymentResult) -> None:
    """Exit 0 for succeeded/rolled_back, 1 otherwise."""
    if isinstance(result.outcome, (Succeeded, RolledBack)):
        return
    sys.exit(1)
