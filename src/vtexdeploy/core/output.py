"""Console rendering for deployment results, health and configuration."""

import json
from datetime import datetime
from enum import Enum
from typing import Any

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

console = Console()
error_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Supported output formats."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"
    RAW = "raw"


# Deployment and health states share one palette
STATUS_STYLES = {
    "succeeded": "green",
    "rolled_back": "yellow",
    "failed": "red",
    "healthy": "green",
    "warning": "yellow",
    "critical": "red",
}

# Table columns whose cells are deployment or health states
STATUS_COLUMNS = {"Status", "Overall"}


def style_status(status: str) -> str:
    """Wrap a status value in its Rich color markup."""
    color = STATUS_STYLES.get(status)
    if color is None:
        return status
    return f"[{color}]{status}[/{color}]"


def to_plain(value: Any) -> Any:
    """Reduce results, enums and timestamps to JSON/YAML-safe values."""
    if hasattr(value, "to_dict"):
        return to_plain(value.to_dict())
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class OutputFormatter:
    """Writes command output in the format chosen with ``--output``."""

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TABLE,
        color: bool = True,
        quiet: bool = False,
    ):
        self.format = format
        self.color = color
        self.quiet = quiet
        self._console = Console(force_terminal=color, no_color=not color)

    def print(self, message: str, style: str | None = None) -> None:
        if self.quiet:
            return
        self._console.print(message, style=style)

    def print_error(self, message: str) -> None:
        """Errors go to stderr and ignore ``--quiet``."""
        error_console.print(f"[red]Error:[/red] {message}")

    def print_warning(self, message: str) -> None:
        self.print(f"[yellow]Warning:[/yellow] {message}")

    def print_success(self, message: str) -> None:
        self.print(f"[green]✓[/green] {message}")

    def print_info(self, message: str) -> None:
        self.print(f"[blue]ℹ[/blue] {message}")

    def print_data(
        self,
        data: Any,
        headers: list[str] | None = None,
        title: str | None = None,
    ) -> None:
        """Print a record or a list of records in the configured format.

        Records may be plain dicts or anything with a ``to_dict()`` method,
        such as ``DeploymentResult``.
        """
        data = to_plain(data)
        if self.format == OutputFormat.JSON:
            self._emit(json.dumps(data, indent=2, default=str), "json")
        elif self.format == OutputFormat.YAML:
            self._emit(yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False), "yaml")
        elif self.format == OutputFormat.RAW:
            self._print_raw(data)
        else:
            self._print_table(data, headers, title)

    def _emit(self, text: str, lexer: str) -> None:
        # Plain print keeps machine-readable output free of ANSI codes
        if self.color:
            self._console.print(Syntax(text, lexer, theme="monokai"))
        else:
            print(text)

    def _print_raw(self, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                print(f"{key}: {value}")
        elif isinstance(data, list):
            # One tab-separated line per record, for cut/awk
            for item in data:
                if isinstance(item, dict):
                    print("\t".join(str(v) for v in item.values()))
                else:
                    print(item)
        else:
            print(data)

    def _print_table(self, data: Any, headers: list[str] | None, title: str | None) -> None:
        table = Table(title=title, show_header=True, header_style="bold cyan")

        if isinstance(data, dict):
            table.add_column("Field", style="dim")
            table.add_column("Value")
            for key, value in data.items():
                table.add_row(str(key), self._cell(str(key), value))
        elif isinstance(data, list) and data:
            columns = headers or list(data[0].keys())
            for column in columns:
                table.add_column(column)
            for row in data:
                table.add_row(*[self._cell(c, row.get(c, "")) for c in columns])
        else:
            self._console.print("[dim]Nothing to show[/dim]")
            return

        self._console.print(table)

    @staticmethod
    def _cell(column: str, value: Any) -> str:
        text = str(value)
        if column in STATUS_COLUMNS:
            return style_status(text)
        return text

    def print_panel(self, content: str, title: str | None = None, style: str = "blue") -> None:
        if self.quiet:
            return
        self._console.print(Panel(content, title=title, border_style=style))

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question on the console.

        Quiet mode answers with ``default``; end of input answers no.
        """
        if self.quiet:
            return default

        suffix = " [Y/n]" if default else " [y/N]"
        self._console.print(f"{message}{suffix}", end=" ")
        try:
            answer = input().strip().lower()
        except (EOFError, KeyboardInterrupt):
            return False
        if not answer:
            return default
        return answer in ("y", "yes")


def format_duration(seconds: float) -> str:
    """Render a deployment or probe duration."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    if seconds < 3600:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3600:.1f}h"
