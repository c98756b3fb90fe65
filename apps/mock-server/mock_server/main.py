"""CLI entrypoint for running a standalone mock server from a rule file."""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Optional

import typer

if __package__ in {None, ""}:
    package_root = Path(__file__).resolve().parents[1]
    if str(package_root) not in sys.path:
        sys.path.insert(0, str(package_root))
    __package__ = "mock_server"

from .config import apply_rules, load_rules_file
from .errors import MockConfigurationError
from .logging_utils import configure_logging
from .output_config import get_log_format
from .registry import MockRegistry
from .server import DEFAULT_HOST, DEFAULT_PORT, MockHttpServer, describe_rule

app = typer.Typer(help="Serve mocked HTTP responses for workflow outbound calls.")


def _build_registry(rules: Optional[Path], matching_logs: bool) -> MockRegistry:
    if rules is None:
        return MockRegistry(write_matching_logs=matching_logs)
    try:
        rules_file = load_rules_file(rules)
        registry = MockRegistry(default_status=rules_file.default_status, write_matching_logs=matching_logs)
        apply_rules(registry, rules_file)
    except MockConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_hint="--rules") from exc
    return registry


@app.command()
def serve(
    rules: Optional[Path] = typer.Option(
        None,
        exists=True,
        readable=True,
        help="YAML/JSON mock rule file. Without rules every request gets the default status.",
    ),
    host: str = typer.Option(DEFAULT_HOST, help="Bind host."),
    port: int = typer.Option(DEFAULT_PORT, help="Bind port (0 picks a free port)."),
    duration: Optional[float] = typer.Option(
        None,
        help="Stop after this many seconds instead of waiting for Ctrl+C.",
    ),
    matching_logs: bool = typer.Option(
        False,
        "--matching-logs/--no-matching-logs",
        help="Log the matching trace of every captured request on shutdown.",
    ),
    log_level: str = typer.Option("INFO", help="Log level (DEBUG, INFO, WARNING, ...)."),
    log_format: Optional[str] = typer.Option(
        None,
        help="Log format: console, plain or json. Defaults to CONSOLE_OUTPUT_FORMAT or console.",
    ),
) -> None:
    """Run the mock server until interrupted."""

    logger = configure_logging(log_level, get_log_format(log_format))
    registry = _build_registry(rules, matching_logs)
    server = MockHttpServer(registry, host=host, port=port)
    registry.run_starting()
    with server:
        typer.secho(f"Mock server listening on {server.base_url}", fg=typer.colors.GREEN)
        for rule in registry.rules:
            typer.echo(f"  - {describe_rule(rule)}")
        try:
            if duration is None:
                while True:
                    time.sleep(1)
            else:
                time.sleep(duration)
        except KeyboardInterrupt:
            logger.info("serve_interrupted")
    captured = registry.run_complete()
    typer.echo(f"Mock server stopped after {len(captured)} request(s)")
    if server.errors:
        for error in server.errors:
            typer.secho(f"Mock failure: {error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def check(
    rules: Path = typer.Option(..., exists=True, readable=True, help="YAML/JSON mock rule file."),
) -> None:
    """Validate a rule file and list the rules in match order."""

    registry = _build_registry(rules, matching_logs=False)
    typer.secho(f"{len(registry.rules)} rule(s), default status {registry.default_status}", fg=typer.colors.GREEN)
    for index, rule in enumerate(registry.rules, start=1):
        typer.echo(f"  #{index} {describe_rule(rule)}")


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
