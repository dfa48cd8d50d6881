"""Main CLI entry point for vtexdeploy."""

import sys
from typing import Any

import click
from rich.console import Console

from vtexdeploy import __version__
from vtexdeploy.config import load_config
from vtexdeploy.core.context import VtexDeployContext
from vtexdeploy.core.exceptions import ConfigError, VtexDeployError
from vtexdeploy.core.output import OutputFormat


CONTEXT_SETTINGS = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 120,
}


class OutputFormatType(click.ParamType):
    """Custom Click parameter type for output format."""

    name = "format"

    def convert(
        self,
        value: Any,
        param: click.Parameter | None,
        ctx: click.Context | None,
    ) -> OutputFormat:
        if isinstance(value, OutputFormat):
            return value
        try:
            return OutputFormat(value.lower())
        except ValueError:
            self.fail(
                f"Invalid format '{value}'. Choose from: table, json, yaml, raw",
                param,
                ctx,
            )


OUTPUT_FORMAT = OutputFormatType()


def print_version(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    console = Console()
    console.print(f"vtexdeploy version {__version__}")
    ctx.exit()


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-p",
    "--profile",
    metavar="NAME",
    envvar="VTEXDEPLOY_PROFILE",
    help="Configuration profile to use",
)
@click.option(
    "-o",
    "--output",
    "output_format",
    type=OUTPUT_FORMAT,
    metavar="FORMAT",
    help="Output format: table, json, yaml, raw",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v for info and deployment logs, -vv for debug)",
)
@click.option(
    "-q",
    "--quiet",
    is_flag=True,
    help="Suppress non-essential output",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Validate and resolve targets without changing anything",
)
@click.option(
    "--no-color",
    is_flag=True,
    help="Disable colored output",
)
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=True),
    metavar="FILE",
    envvar="VTEXDEPLOY_CONFIG",
    help="Path to config file",
)
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit",
)
@click.pass_context
def cli(
    ctx: click.Context,
    profile: str | None,
    output_format: OutputFormat | None,
    verbose: int,
    quiet: bool,
    dry_run: bool,
    no_color: bool,
    config_file: str | None,
) -> None:
    """vtexdeploy - deployment orchestration for VTEX IO apps.

    Validates, deploys, health-checks and rolls back VTEX IO workspaces,
    with Slack, Teams and email notifications.

    \b
    Examples:
        vtexdeploy deploy qa --branch develop
        vtexdeploy deploy prod --yes
        vtexdeploy rollback -e prod --steps 1
        vtexdeploy health -e qa

    \b
    Configuration:
        ~/.vtexdeploy/config.yaml    User configuration
        ./vtexdeploy.yaml            Project configuration
        VTEXDEPLOY_*                 Environment variables
    """
    try:
        config = load_config(config_file, profile)

        ctx.obj = VtexDeployContext(
            config=config,
            profile=profile,
            output_format=output_format,
            verbose=verbose,
            quiet=quiet,
            dry_run=dry_run,
            color=not no_color,
        )

        if dry_run and not quiet:
            ctx.obj.output.print_warning("Dry-run mode enabled - no changes will be made")

    except ConfigError as e:
        console = Console(stderr=True)
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


def register_commands() -> None:
    """Register all commands."""
    from vtexdeploy.commands.config import config
    from vtexdeploy.commands.deploy import deploy
    from vtexdeploy.commands.health import health
    from vtexdeploy.commands.notify import notify
    from vtexdeploy.commands.rollback import rollback
    from vtexdeploy.commands.status import history, status
    from vtexdeploy.commands.validate import validate

    cli.add_command(deploy)
    cli.add_command(rollback)
    cli.add_command(status)
    cli.add_command(history)
    cli.add_command(health)
    cli.add_command(validate)
    cli.add_command(config)
    cli.add_command(notify)


register_commands()


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except VtexDeployError as e:
        console = Console(stderr=True)
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console = Console(stderr=True)
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
