"""Console output format for the ``trigger`` command."""

import os
from enum import Enum

from mock_server.output_config import ENV_VAR_NAME, LogFormat


class OutputFormat(str, Enum):
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"

    @property
    def log_format(self) -> LogFormat:
        """Log renderer that matches this console output."""
        if self is OutputFormat.JSON:
            return "json"
        if self is OutputFormat.PLAIN:
            return "plain"
        return "console"


def get_output_format(cli_override: str | None = None) -> OutputFormat:
    """Priority: CLI parameter > ``CONSOLE_OUTPUT_FORMAT`` > auto. Unknown values are skipped."""
    for candidate in (cli_override, os.environ.get(ENV_VAR_NAME)):
        if candidate:
            try:
                return OutputFormat(candidate.lower())
            except ValueError:
                continue
    return OutputFormat.AUTO
