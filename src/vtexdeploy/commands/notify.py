"""Notification commands."""

import sys

import click

from vtexdeploy.core.context import VtexDeployContext, pass_context


@click.group()
@pass_context
def notify(ctx: VtexDeployContext) -> None:
    """Notification channel utilities."""
    pass


@notify.command("test")
@pass_context
def test(ctx: VtexDeployContext) -> None:
    """Send a test message through every enabled channel."""
    notifier = ctx.notifier
    if not notifier.enabled:
        ctx.output.print_warning("No notification channels are enabled")
        return

    if ctx.dry_run:
        ctx.log_dry_run("send test notifications", {"channels": ", ".join(c.name for c in notifier.channels)})
        return

    results = notifier.test_channels()
    for channel, ok in results.items():
        if ok:
            ctx.output.print_success(f"{channel}: test notification sent")
        else:
            ctx.output.print_error(f"{channel}: test notification failed")

    if not all(results.values()):
        sys.exit(1)
