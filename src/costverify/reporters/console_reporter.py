# src/costverify/reporters/console_reporter.py
"""
A reporter that displays comparison results in a formatted table in the console.
"""

import logging
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ..models.comparison import ComparisonResult, ControllerConsistencyResult
from .base_reporter import BaseReporter

logger = logging.getLogger(__name__)


class ConsoleReporter(BaseReporter):
    """
    Renders comparison results to the console using the 'rich' library.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def report(self, results: List[ComparisonResult], show_diff: bool = False) -> None:
        """
        Prints one row per compared (namespace, field). When `show_diff` is
        False only failures are listed, followed by a summary line.
        """
        if not results:
            self.console.print("No namespaces were compared.", style="yellow")
            return

        rows = results if show_diff else [r for r in results if not r.passed]
        if rows:
            table = Table(
                title="Allocation API vs Prometheus",
                header_style="bold magenta",
                show_lines=True,
            )
            table.add_column("Resource", style="cyan")
            table.add_column("Namespace", style="cyan")
            table.add_column("Field", style="blue")
            table.add_column("Prometheus", justify="right")
            table.add_column("API", justify="right")
            table.add_column("Diff (%)", justify="right")
            table.add_column("Status", justify="center")

            for result in sorted(rows, key=lambda r: (r.resource, r.namespace, r.field)):
                status = "[green]Pass[/green]" if result.passed else "[bold red]Fail[/bold red]"
                table.add_row(
                    result.resource,
                    result.namespace,
                    result.field,
                    f"{result.prometheus_value:.4f}",
                    f"{result.api_value:.4f}",
                    f"{result.diff_percent:.2f}",
                    status,
                )
            self.console.print(table)

        failed = sum(1 for r in results if not r.passed)
        style = "bold red" if failed else "bold green"
        self.console.print(f"{len(results)} check(s), {failed} failure(s).", style=style)
        logger.debug("Reported %d comparison result(s)", len(results))

    def report_controllers(self, results: List[ControllerConsistencyResult]) -> None:
        """Prints one row per (controller kind, window) with the pods the two sources disagree on."""
        if not results:
            self.console.print("No controller kinds were checked.", style="yellow")
            return

        table = Table(title="Controller pods: allocation API vs Prometheus", header_style="bold magenta", show_lines=True)
        table.add_column("Kind", style="cyan")
        table.add_column("Window", style="cyan")
        table.add_column("Prometheus", justify="right")
        table.add_column("API", justify="right")
        table.add_column("Missing in Prometheus")
        table.add_column("Namespace mismatch")
        table.add_column("Status", justify="center")

        for result in results:
            status = "[green]Pass[/green]" if result.passed else "[bold red]Fail[/bold red]"
            table.add_row(
                result.controller_kind,
                result.window,
                str(len(result.prometheus_pods)),
                str(len(result.allocation_pods)),
                "\n".join(result.missing_in_prometheus) or "-",
                "\n".join(result.namespace_mismatches) or "-",
                status,
            )
        self.console.print(table)

        failed = sum(1 for r in results if not r.passed)
        style = "bold red" if failed else "bold green"
        self.console.print(f"{len(results)} check(s), {failed} failure(s).", style=style)
