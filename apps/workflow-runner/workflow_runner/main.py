"""CLI entrypoint: trigger one workflow run against a local host and report the outcome."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer

if __package__ in {None, ""}:
    current_file = Path(__file__).resolve()
    package_root = current_file.parents[1]
    apps_dir = current_file.parents[2]
    for candidate in (package_root, apps_dir / "mock-server"):
        candidate_str = str(candidate)
        if candidate_str not in sys.path and candidate.exists():
            sys.path.insert(0, candidate_str)
    __package__ = "workflow_runner"

from mock_server.config import apply_rules, load_rules_file
from mock_server.errors import HarnessError
from mock_server.logging_utils import configure_logging

from .config import load_test_configuration
from .console_reporter import ConsoleReporter
from .output_config import get_output_format
from .runner import WorkflowTestRunner

app = typer.Typer(help="Trigger a workflow run and wait for it to complete.")


@app.callback()
def main() -> None:
    """Workflow test harness commands."""


def _parse_pairs(pairs: list[str], option: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for item in pairs:
        if "=" not in item:
            raise typer.BadParameter(f"Values must use name=value format, got '{item}'", param_hint=option)
        name, value = item.split("=", 1)
        name = name.strip()
        if not name:
            raise typer.BadParameter("Name cannot be empty", param_hint=option)
        parsed[name] = value.strip()
    return parsed


def _read_body(body: Optional[str]) -> Optional[str]:
    if body is None or not body.startswith("@"):
        return body
    path = Path(body[1:])
    if not path.is_file():
        raise typer.BadParameter(f"Body file {path} does not exist", param_hint="--body")
    return path.read_text(encoding="utf-8")


@app.command()
def trigger(
    workflow: str = typer.Option(..., help="Name of the workflow to run."),
    trigger_name: str = typer.Option("manual", "--trigger", help="Name of the HTTP Request trigger."),
    method: str = typer.Option("POST", help="HTTP method used to call the trigger."),
    body: Optional[str] = typer.Option(None, help="Request body, or @path to read it from a file."),
    content_type: Optional[str] = typer.Option(None, help="Content type of the request body."),
    header: list[str] = typer.Option([], "--header", "-H", help="Request header as Name=Value (repeatable)."),
    query: list[str] = typer.Option([], "--query", "-q", help="Extra query parameter as name=value (repeatable)."),
    relative_path: Optional[str] = typer.Option(None, help="URL-encoded relative path appended to the trigger URL."),
    wait_async: Optional[float] = typer.Option(
        None,
        help="Wait up to this many seconds for an asynchronous response at the callback location.",
    ),
    rules: Optional[Path] = typer.Option(
        None,
        exists=True,
        readable=True,
        help="YAML/JSON mock rule file served to the workflow during the run.",
    ),
    config: Optional[Path] = typer.Option(None, help="Test configuration file (default: ./testConfiguration.json)."),
    output_format: Optional[str] = typer.Option(
        None,
        help="Output format: auto, rich, plain or json. Defaults to CONSOLE_OUTPUT_FORMAT or auto.",
    ),
    log_level: str = typer.Option("WARNING", help="Log level (DEBUG, INFO, WARNING, ...)."),
) -> None:
    """Trigger the workflow, wait for the run to finish and print the outcome."""

    fmt = get_output_format(output_format)
    configure_logging(log_level, fmt.log_format)
    reporter = ConsoleReporter(output_format=fmt)

    headers = _parse_pairs(header, "--header")
    query_params = _parse_pairs(query, "--query")
    content = _read_body(body)

    try:
        test_config = load_test_configuration(config)
        runner = WorkflowTestRunner(test_config, workflow_name=workflow, trigger_name=trigger_name)
        if rules is not None:
            rules_file = load_rules_file(rules)
            runner.registry.default_status = rules_file.default_status
            apply_rules(runner.registry, rules_file)
        if wait_async is not None:
            runner.wait_for_asynchronous_response(wait_async)

        with runner:
            response = runner.trigger(
                method,
                content=content,
                content_type=content_type,
                query_params=query_params or None,
                relative_path=relative_path,
                headers=headers or None,
            )
            mock_requests = [
                {
                    "received_at": item.timestamp.strftime("%H:%M:%S.%f")[:-3],
                    "method": item.method,
                    "uri": item.uri,
                }
                for item in runner.mock_requests
            ]
            run_status = runner.run_status.value
            run_id = runner.run_id
    except HarnessError as exc:
        reporter.print_error(str(exc))
        raise typer.Exit(code=1) from exc

    reporter.report_run(
        workflow=workflow,
        trigger=trigger_name,
        response_status=response.status,
        response_body=response.text,
        run_status=run_status,
        run_id=run_id,
        mock_requests=mock_requests,
    )
    if run_status != "Succeeded":
        raise typer.Exit(code=1)


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
