"""Log output format selection shared by the harness commands."""

import os
from typing import Literal, Optional

LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"

# The environment variable is shared with the console reporter, so its
# output formats are accepted too
_ENV_ALIASES: dict[str, LogFormat] = {
    "json": "json",
    "plain": "plain",
    "console": "console",
    "auto": "console",
    "rich": "console",
}


def get_log_format(cli_override: Optional[str] = None) -> LogFormat:
    """Priority: CLI option > ``CONSOLE_OUTPUT_FORMAT`` > console. Unknown values are skipped."""
    if cli_override and cli_override.lower() in ("json", "console", "plain"):
        return _ENV_ALIASES[cli_override.lower()]
    env_value = (os.environ.get(ENV_VAR_NAME) or "").lower()
    return _ENV_ALIASES.get(env_value, "console")
