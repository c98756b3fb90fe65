"""Test configuration loaded from ``testConfiguration.json`` (or YAML)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .errors import WorkflowRunnerError

LOGGER = structlog.get_logger("workflow_config")

DEFAULT_CONFIG_FILENAME = "testConfiguration.json"


class _CamelModel(BaseModel):
    # Sections the harness does not use (host bootstrapping, definition rewriting) are ignored
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class LoggingConfig(_CamelModel):
    write_mock_request_matching_logs: bool = False


class RunnerConfig(_CamelModel):
    max_workflow_execution_duration: float = Field(default=300, gt=0)
    default_http_response_status_code: int = Field(default=200, ge=100, le=599)
    wait_for_async_response: bool = False
    async_response_timeout: float = Field(default=60, gt=0)
    mock_host: str = "127.0.0.1"
    mock_port: int = Field(default=7075, ge=0, le=65535)
    management_base_url: str = "http://localhost:7071"
    http_timeout: float = Field(default=100, gt=0)


class TestConfiguration(_CamelModel):
    __test__ = False  # not a pytest test class

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)

    def as_serializable(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def load_test_configuration(path: Optional[Path] = None) -> TestConfiguration:
    """Read the configuration file, or return defaults when there is none."""

    path = path or Path(DEFAULT_CONFIG_FILENAME)
    if not path.exists():
        LOGGER.info("test_configuration_defaults", path=str(path), reason="file not found")
        return TestConfiguration()
    try:
        raw = path.read_text(encoding="utf-8-sig")
        payload = json.loads(raw) if path.suffix.lower() == ".json" else yaml.safe_load(raw)
        config = TestConfiguration.model_validate(payload or {})
    except (OSError, json.JSONDecodeError, yaml.YAMLError, ValidationError) as exc:
        raise WorkflowRunnerError(f"Test configuration {path} is not valid: {exc}") from exc
    LOGGER.info(
        "test_configuration_loaded",
        path=str(path),
        max_workflow_execution_duration=config.runner.max_workflow_execution_duration,
        default_http_response_status_code=config.runner.default_http_response_status_code,
    )
    return config
