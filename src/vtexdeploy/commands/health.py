"""Health check command."""

import sys
import time
from datetime import datetime
from typing import TYPE_CHECKING

import click

from vtexdeploy.commands.common import ENVIRONMENT_CHOICES, parse_environment, render_health
from vtexdeploy.core.async_utils import run_sync
from vtexdeploy.core.context import VtexDeployContext, pass_context
from vtexdeploy.deploy.models import Environment, HealthCheckSummary, HealthStatus

if TYPE_CHECKING:
    from vtexdeploy.deploy.health import HealthCheckEngine


@click.command()
@click.option(
    "-e",
    "--environment",
    type=click.Choice(ENVIRONMENT_CHOICES, case_sensitive=False),
    default="qa",
    show_default=True,
    help="Environment to check",
)
@click.option("-s", "--service", "services", multiple=True, help="Only run these checks (repeatable)")
@click.option("--notify", is_flag=True, help="Send an alert when unhealthy")
@click.option("-w", "--watch", is_flag=True, help="Keep checking until interrupted")
@click.option(
    "-i",
    "--interval",
    type=click.IntRange(min=1),
    default=30,
    show_default=True,
    help="Seconds between checks in watch mode",
)
@pass_context
def health(
    ctx: VtexDeployContext,
    environment: str,
    services: tuple[str, ...],
    notify: bool,
    watch: bool,
    interval: int,
) -> None:
    """Run health checks against a workspace and the local system.

    Exits 1 when the overall status is critical. In watch mode an alert
    is sent whenever the overall status changes, including recovery.

    \b
    Examples:
        vtexdeploy health -e prod
        vtexdeploy health -s network -s platform_api
        vtexdeploy health -e prod --watch --interval 60
    """
    env = parse_environment(environment)
    engine = ctx.health_engine(env)

    if watch:
        _watch(ctx, engine, env, list(services) or None, interval)
        return

    summary = run_sync(engine.run(list(services) or None))

    render_health(ctx, summary)

    if notify:
        _alert(ctx, summary, env)

    if summary.overall == HealthStatus.CRITICAL:
        sys.exit(1)


def _watch(
    ctx: VtexDeployContext,
    engine: "HealthCheckEngine",
    env: Environment,
    services: list[str] | None,
    interval: int,
) -> None:
    """Re-run the same engine every ``interval`` seconds until Ctrl+C."""
    ctx.output.print_info(f"Checking {env.value} every {interval}s (Ctrl+C to stop)...")

    # Nothing has been reported yet, so the first unhealthy run alerts
    previous = HealthStatus.HEALTHY
    iteration = 0
    try:
        while True:
            iteration += 1
            ctx.output.print(f"\n[dim][{datetime.now():%Y-%m-%d %H:%M:%S}] Health check #{iteration}[/dim]")
            try:
                summary = run_sync(engine.run(services))
            except Exception as e:
                ctx.output.print_error(f"Health check failed: {e}")
            else:
                render_health(ctx, summary)
                if summary.overall != previous:
                    ctx.output.print_warning(
                        f"Overall status changed: {previous.value} -> {summary.overall.value}"
                    )
                    _alert(ctx, summary, env)
                previous = summary.overall
            time.sleep(interval)
    except KeyboardInterrupt:
        ctx.output.print_info("Health monitoring stopped")


def _alert(ctx: VtexDeployContext, summary: HealthCheckSummary, env: Environment) -> None:
    delivered = ctx.notifier.send_health_alert(summary, env.value)
    for channel, ok in delivered.items():
        if not ok:
            ctx.output.print_warning(f"Alert via {channel} failed")
