"""Console reporter for the outcome of a triggered workflow run."""

import json
import os
import sys
from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .output_config import OutputFormat

_SUCCESS_STATUSES = {"Succeeded"}


class ConsoleReporter:
    """
    Prints the trigger response, the run status and the mock requests of a run.

    Rich tables are used for interactive terminals; CI, pipes and redirects get
    plain text and ``json`` prints a single JSON document.
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO, console: Optional[Console] = None):
        self.output_format = output_format
        self._detect_environment()
        self.console = console or (Console() if self.use_rich else None)

    def _detect_environment(self) -> None:
        if self.output_format == OutputFormat.RICH:
            self.use_rich = True
        elif self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            self.use_rich = False
        else:  # AUTO
            is_terminal = sys.stdout.isatty()
            is_ci = any(name in os.environ for name in ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS"))
            self.use_rich = is_terminal and not is_ci

    def report_run(
        self,
        *,
        workflow: str,
        trigger: str,
        response_status: int,
        response_body: str,
        run_status: Optional[str],
        run_id: Optional[str],
        mock_requests: list[dict[str, Any]],
    ) -> None:
        if self.output_format == OutputFormat.JSON:
            print(
                json.dumps(
                    {
                        "workflow": workflow,
                        "trigger": trigger,
                        "response": {"status": response_status, "body": response_body},
                        "run": {"id": run_id, "status": run_status},
                        "mock_requests": mock_requests,
                    },
                    indent=2,
                )
            )
            return

        passed = run_status in _SUCCESS_STATUSES
        if self.use_rich:
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("#", style="dim", width=4)
            table.add_column("Time", width=14)
            table.add_column("Request", width=80)
            for index, item in enumerate(mock_requests, start=1):
                table.add_row(str(index), item["received_at"], f"{item['method']} {item['uri']}")

            summary = Text()
            summary.append(f"Trigger: {trigger}  ", style="bold")
            summary.append(f"Response: {response_status}  ", style="bold cyan")
            summary.append(f"Run: {run_id or '-'}  ", style="bold")
            summary.append(f"Status: {run_status or 'unknown'}", style="bold green" if passed else "bold red")

            self.console.print(table)
            self.console.print(
                Panel(
                    summary,
                    title=Text(f"{'✓' if passed else '✗'} {workflow}", style="bold green" if passed else "bold red"),
                    border_style="green" if passed else "red",
                )
            )
            if response_body:
                self.console.print(Text(response_body[:2000], style="dim"))
        else:
            print(f"Workflow: {workflow} (trigger {trigger})")
            print("-" * 80)
            for index, item in enumerate(mock_requests, start=1):
                print(f"[{index}] {item['received_at']} {item['method']} {item['uri']}")
            if not mock_requests:
                print("No mock requests were received")
            print("-" * 80)
            print(f"Response: {response_status} | Run: {run_id or '-'} | Status: {run_status or 'unknown'}")
            if response_body:
                print(response_body[:2000])

    def print_error(self, message: str) -> None:
        if self.use_rich:
            self.console.print(f"[bold red]Error:[/] {message}")
        else:
            print(f"Error: {message}", file=sys.stderr)
