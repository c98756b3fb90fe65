"""Test runner lifecycle: mock server, mock rules and one workflow run per test."""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator

import structlog

from mock_server.matcher import RequestMatcher
from mock_server.registry import CapturedRequest, FallbackDelegate, MockRegistry, MockRule
from mock_server.response import RandomSource
from mock_server.server import MockHttpServer

from .config import TestConfiguration
from .engine import Seconds, TriggerPollEngine
from .errors import WorkflowRunnerError
from .http_client import HttpClient, HttpResponse
from .management import ManagementApi, WorkflowManagementClient
from .models import ActionStatus, WorkflowRunStatus

LOGGER = structlog.get_logger("workflow_runner")


class WorkflowTestRunner:
    """Runs one workflow test: mock rules in, one triggered run, captured requests out.

    Use it as a context manager so the mock server is listening before the
    workflow starts and is stopped afterwards. Rules shared by several tests
    (``base_rules``) are matched after the rules added by the test itself.
    """

    def __init__(
        self,
        config: TestConfiguration | None = None,
        management: ManagementApi | None = None,
        workflow_name: str | None = None,
        trigger_name: str | None = None,
        *,
        base_rules: Iterable[MockRule] = (),
        http: HttpClient | None = None,
        random_source: RandomSource | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or TestConfiguration()
        runner_config = self.config.runner
        self.http = http or HttpClient(timeout=runner_config.http_timeout)
        if management is None:
            if not workflow_name:
                raise ValueError("A workflow name or a management API client is required")
            management = WorkflowManagementClient(workflow_name, self.http, runner_config.management_base_url)
        self.management = management
        self.workflow_name = management.workflow_name
        self.trigger_name = trigger_name
        self._base_rules = list(base_rules)
        self._base_rules_applied = False

        self.registry = MockRegistry(
            default_status=runner_config.default_http_response_status_code,
            write_matching_logs=self.config.logging.write_mock_request_matching_logs,
            random_source=random_source,
        )
        self.server = MockHttpServer(self.registry, host=runner_config.mock_host, port=runner_config.mock_port)
        self.engine = TriggerPollEngine(self.management, self.http, runner_config, clock=clock, sleep=sleep)
        self._logger = LOGGER.bind(workflow=self.workflow_name)

    def __enter__(self) -> "WorkflowTestRunner":
        self.server.start()
        self.server.wait_until_ready()
        self._logger.info("test_runner_started", mock_url=self.server.base_url)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.server.stop()
        self._logger.info("test_runner_stopped")

    # Mock rules

    def add_mock_response(self, matcher: RequestMatcher, name: str | None = None) -> MockRule:
        return self.registry.add_rule(matcher, name)

    @property
    def fallback(self) -> FallbackDelegate | None:
        return self.registry.fallback

    @fallback.setter
    def fallback(self, delegate: FallbackDelegate | None) -> None:
        self.registry.fallback = delegate

    @property
    def mock_requests(self) -> list[CapturedRequest]:
        return self.registry.captured_requests

    # Run

    def wait_for_asynchronous_response(self, max_timeout: Seconds) -> None:
        self.engine.wait_for_asynchronous_response(max_timeout)

    def trigger(
        self,
        method: str = "POST",
        *,
        trigger_name: str | None = None,
        content: Any = None,
        content_type: str | None = None,
        query_params: dict[str, str] | None = None,
        relative_path: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        trigger_name = trigger_name or self.trigger_name
        if not trigger_name:
            raise WorkflowRunnerError("Workflow does not have a HTTP Request trigger, so the workflow cannot be started.")
        if not self._base_rules_applied:
            self.registry.extend(self._base_rules)
            self._base_rules_applied = True

        self.server.clear_errors()
        self.registry.run_starting()
        self._logger.info("workflow_execution_starting", trigger=trigger_name)
        try:
            response = self.engine.trigger(
                trigger_name,
                method,
                content=content,
                content_type=content_type,
                query_params=query_params,
                relative_path=relative_path,
                headers=headers,
            )
        finally:
            self.registry.run_complete()
        self._logger.info("workflow_execution_completed", status=response.status)
        self.server.raise_for_errors()
        return response

    @contextmanager
    def explain_failures(self) -> Iterator[None]:
        """Append the failed and unfinished actions of the run to a failing assertion."""

        try:
            yield
        except AssertionError as exc:
            failed = self.engine.failed_actions()
            if not failed:
                raise
            details = ",\n".join(json.dumps(action, indent=2) for action in failed)
            raise AssertionError(f"{exc}\n\nFailed actions:\n{details}") from exc

    # Run details, read from the management API after the run

    @property
    def run_id(self) -> str | None:
        return self.engine.run_id

    @property
    def client_tracking_id(self) -> str | None:
        return self.engine.client_tracking_id

    @property
    def run_status(self) -> WorkflowRunStatus:
        return self.engine.run_status

    @property
    def was_terminated(self) -> bool:
        return self.engine.was_terminated

    @property
    def termination_code(self) -> int | str | None:
        return self.engine.termination_code

    @property
    def termination_message(self) -> str | None:
        return self.engine.termination_message

    def get_action_status(self, action_name: str, repetition: int | None = None) -> ActionStatus:
        return self.engine.get_action_status(action_name, repetition)

    def get_action_input(self, action_name: str, repetition: int | None = None) -> Any:
        return self.engine.get_action_input(action_name, repetition)

    def get_action_output(self, action_name: str, repetition: int | None = None) -> Any:
        return self.engine.get_action_output(action_name, repetition)

    def get_action_repetition_count(self, action_name: str) -> int:
        return self.engine.get_action_repetition_count(action_name)

    def get_action_tracked_properties(self, action_name: str, repetition: int | None = None) -> dict[str, str] | None:
        return self.engine.get_action_tracked_properties(action_name, repetition)
