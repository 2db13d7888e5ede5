"""Console output helpers for the CLI."""

import json
import sys
from typing import Any

from rich.console import Console
from rich.table import Table


class OutputFormatter:
    """Formats CLI output as rich text or JSON."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize the formatter.

        Args:
            json_output: Emit machine-readable JSON instead of rich text
            quiet: Suppress informational messages
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console()
        self.err_console = Console(stderr=True)

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(message)

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        if not self.json_output:
            self.err_console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {message}")

    def print(self, message: str) -> None:
        """Print regardless of the quiet flag (but not in JSON mode)."""
        if not self.json_output:
            self.console.print(message)

    def print_summary(self, title: str, items: list[tuple[str, Any]]) -> None:
        """Print a two-column summary table."""
        if self.json_output:
            return
        table = Table(title=title, show_header=False)
        table.add_column("Item", style="bold")
        table.add_column("Value")
        for label, value in items:
            table.add_row(label, str(value))
        self.console.print(table)

    def output_json(self, data: Any) -> None:
        sys.stdout.write(json.dumps(data, indent=2, default=str) + "\n")
