"""Trigger a workflow run over HTTP and poll it until it completes."""

from __future__ import annotations

import json
import time
from datetime import timedelta
from typing import Any, Callable, Union

import structlog

from .config import RunnerConfig
from .errors import (
    AsyncResponseTimeoutError,
    TriggerTimeoutError,
    WorkflowRunnerError,
    WorkflowTimeoutError,
)
from .http_client import HttpClient, HttpResponse, HttpTransportError
from .management import ManagementApi
from .models import ActionStatus, RunDescriptor, WorkflowRunStatus

LOGGER = structlog.get_logger("workflow_engine")

RUN_ID_HEADER = "x-ms-workflow-run-id"
CLIENT_TRACKING_ID_HEADER = "x-ms-client-tracking-id"
DEFAULT_RETRY_AFTER_SECONDS = 5.0
RUN_STATUS_POLL_INTERVAL_SECONDS = 1.0

Seconds = Union[int, float, timedelta]


def format_seconds(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _encode_content(content: Any, content_type: str | None) -> tuple[bytes | None, str | None]:
    if content is None:
        return None, content_type
    if isinstance(content, bytes):
        return content, content_type
    if isinstance(content, str):
        return content.encode("utf-8"), content_type or "text/plain; charset=utf-8"
    return json.dumps(content).encode("utf-8"), content_type or "application/json; charset=utf-8"


class TriggerPollEngine:
    """Starts one workflow run and observes it through to a terminal status.

    The state moves from ``NotTriggered`` to ``Running`` once the trigger call
    returns, and to the status reported by the management API once the run is
    no longer running. Two bounded loops are involved: the optional wait for
    an asynchronous response at the callback ``Location``, then the wait for
    the run itself to finish so that actions after a ``Response`` action have
    completed before they are inspected.
    """

    def __init__(
        self,
        management: ManagementApi,
        http: HttpClient,
        config: RunnerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.management = management
        self.http = http
        self.config = config or RunnerConfig()
        self._clock = clock
        self._sleep = sleep
        self._wait_for_async_response = self.config.wait_for_async_response
        self._async_response_timeout = float(self.config.async_response_timeout)
        self._logger = LOGGER.bind(workflow=management.workflow_name)
        self._reset()

    def _reset(self) -> None:
        self._state = WorkflowRunStatus.NOT_TRIGGERED
        self._run_id: str | None = None
        self._client_tracking_id: str | None = None
        self._run: RunDescriptor | None = None
        self._actions: list[dict[str, Any]] | None = None
        self._repetitions: dict[str, list[dict[str, Any]]] = {}

    @property
    def state(self) -> WorkflowRunStatus:
        return self._state

    def wait_for_asynchronous_response(self, max_timeout: Seconds) -> None:
        seconds = max_timeout.total_seconds() if isinstance(max_timeout, timedelta) else float(max_timeout)
        if seconds <= 0:
            raise ValueError("The asynchronous response timeout must be greater than zero")
        self._wait_for_async_response = True
        self._async_response_timeout = seconds

    def trigger(
        self,
        trigger_name: str,
        method: str = "POST",
        *,
        content: Any = None,
        content_type: str | None = None,
        query_params: dict[str, str] | None = None,
        relative_path: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        """Start the run and return the async response if one was awaited, else the trigger response."""

        if not trigger_name:
            raise WorkflowRunnerError("Workflow does not have a HTTP Request trigger, so the workflow cannot be started.")
        self._reset()
        callback = self.management.get_callback_url(trigger_name)
        url = callback.url_for(relative_path, query_params)
        body, resolved_content_type = _encode_content(content, content_type)
        request_headers = dict(headers or {})
        if resolved_content_type:
            request_headers["Content-Type"] = resolved_content_type

        logger = self._logger.bind(trigger=trigger_name)
        logger.info("workflow_triggering", method=method.upper(), url=url)
        try:
            initial = self.http.send(method, url, headers=request_headers, body=body)
        except HttpTransportError as exc:
            if exc.timed_out:
                raise TriggerTimeoutError(
                    "The API call to the workflow trigger did not respond within "
                    f"{format_seconds(self.http.timeout)} second(s). URL: {url}.",
                    timeout_seconds=self.http.timeout,
                ) from exc
            raise

        self._state = WorkflowRunStatus.RUNNING
        self._run_id = initial.header(RUN_ID_HEADER)
        self._client_tracking_id = initial.header(CLIENT_TRACKING_ID_HEADER)
        logger.info(
            "workflow_triggered",
            status=initial.status,
            run_id=self._run_id,
            client_tracking_id=self._client_tracking_id,
        )

        async_response = None
        if initial.status == 202 and initial.location and self._wait_for_async_response:
            async_response = self._poll_async_response(initial)

        self._wait_for_completion()
        if async_response is not None:
            return async_response
        return initial

    def _poll_async_response(self, initial: HttpResponse) -> HttpResponse:
        location = initial.location
        retry_after = initial.retry_after
        if retry_after is None:
            retry_after = DEFAULT_RETRY_AFTER_SECONDS
        timeout = self._async_response_timeout
        self._logger.info("async_response_waiting", url=location, retry_after=retry_after, timeout=timeout)

        started = self._clock()
        while self._clock() - started < timeout:
            latest = self.http.get(location)
            # The callback keeps answering 202 until the async response has been sent
            if latest.status != 202:
                self._logger.info("async_response_received", status=latest.status)
                return latest
            self._sleep(retry_after)
        raise AsyncResponseTimeoutError(
            f"Workflow is taking more than {format_seconds(timeout)} second(s) to return the final async response.",
            timeout_seconds=timeout,
        )

    def _wait_for_completion(self) -> None:
        max_duration = float(self.config.max_workflow_execution_duration)
        started = self._clock()
        while self._clock() - started < max_duration:
            listing = self.management.list_runs()
            payload = listing.json() if listing.body else None
            latest = _first_run(payload)
            status = ((latest or {}).get("properties") or {}).get("status")
            if not status:
                self._logger.warning("run_status_missing", listing_status=listing.status, response=listing.text[:500])
            if listing.status != 202 and status != WorkflowRunStatus.RUNNING.value:
                if latest is not None:
                    self._run = RunDescriptor.from_run_payload(latest)
                    self._state = self._run.status
                self._logger.info("workflow_completed", run_status=status, elapsed=round(self._clock() - started, 3))
                return
            self._sleep(RUN_STATUS_POLL_INTERVAL_SECONDS)
        raise WorkflowTimeoutError(
            f"Workflow is taking more than {format_seconds(max_duration)} second(s) to complete its execution.",
            timeout_seconds=max_duration,
        )

    # Run details

    def _run_descriptor(self) -> RunDescriptor:
        if self._run is None:
            self._run = RunDescriptor.from_run_payload(self.management.get_latest_run())
        return self._run

    @property
    def run_id(self) -> str | None:
        if not self._run_id:
            self._run_id = self._run_descriptor().run_id
        return self._run_id

    @property
    def client_tracking_id(self) -> str | None:
        if not self._client_tracking_id:
            self._client_tracking_id = self._run_descriptor().client_tracking_id
        return self._client_tracking_id

    @property
    def run_status(self) -> WorkflowRunStatus:
        if self._state is WorkflowRunStatus.NOT_TRIGGERED:
            return self._state
        return self._run_descriptor().status

    @property
    def was_terminated(self) -> bool:
        return self._run_descriptor().was_terminated

    @property
    def termination_code(self) -> int | str | None:
        return self._run_descriptor().termination_code

    @property
    def termination_message(self) -> str | None:
        return self._run_descriptor().termination_message

    # Actions

    def _all_actions(self) -> list[dict[str, Any]]:
        if self._actions is None:
            if not self.run_id:
                raise WorkflowRunnerError("The workflow run id is not known, so its actions cannot be listed.")
            self._actions = self.management.list_actions(self.run_id)
        return self._actions

    def get_action(self, action_name: str) -> dict[str, Any]:
        if not action_name:
            raise ValueError("An action name is required")
        for action in self._all_actions():
            if action.get("name") == action_name:
                return action.get("properties") or {}
        raise WorkflowRunnerError(f"Action '{action_name}' was not found in the workflow run history.")

    def get_action_status(self, action_name: str, repetition: int | None = None) -> ActionStatus:
        properties = self._action_properties(action_name, repetition)
        return ActionStatus(properties.get("status"))

    def get_action_input(self, action_name: str, repetition: int | None = None) -> Any:
        return self._action_message(action_name, repetition, "input")

    def get_action_output(self, action_name: str, repetition: int | None = None) -> Any:
        return self._action_message(action_name, repetition, "output")

    def get_action_tracked_properties(self, action_name: str, repetition: int | None = None) -> dict[str, str] | None:
        tracked = self._action_properties(action_name, repetition).get("trackedProperties")
        if tracked is None:
            return None
        return {key: None if value is None else str(value) for key, value in tracked.items()}

    def get_action_repetition_count(self, action_name: str) -> int:
        properties = self.get_action(action_name)
        # Actions inside a loop report repetitionCount, Until loops iterationCount, ForEach loops the item count
        if properties.get("repetitionCount") is not None:
            return int(properties["repetitionCount"])
        if properties.get("iterationCount") is not None:
            return int(properties["iterationCount"])
        items_count = ((properties.get("inputsLink") or {}).get("metadata") or {}).get("foreachItemsCount")
        if items_count is not None:
            return int(items_count)
        return 1

    def get_action_repetition(self, action_name: str, repetition: int) -> dict[str, Any]:
        """Properties of one repetition of a looped action; ``repetition`` starts at 1."""

        if repetition <= 0:
            raise ValueError("The repetition number must be 1 or greater")
        properties = self.get_action(action_name)
        if "repetitionCount" not in properties:
            raise WorkflowRunnerError(f"Action '{action_name}' was not part of a repetition running inside a loop.")
        repetition_count = int(properties["repetitionCount"])
        if repetition > repetition_count:
            raise WorkflowRunnerError(
                f"The action '{action_name}' has run inside a loop and the number of repetitions is {repetition_count}."
                f" Therefore testing a repetition number of {repetition} is not valid."
            )

        if action_name not in self._repetitions:
            self._repetitions[action_name] = self.management.list_action_repetitions(self.run_id, action_name)
        repetitions = self._repetitions[action_name]
        if len(repetitions) != repetition_count:
            raise WorkflowRunnerError(
                f"Repetitions for action '{action_name}' did not run properly, could not find {repetition_count}"
                " repetitions in the workflow run history."
            )
        for item in repetitions:
            item_properties = item.get("properties") or {}
            indexes = item_properties.get("repetitionIndexes") or [{}]
            if indexes[0].get("itemIndex") == repetition - 1:
                return item_properties
        raise WorkflowRunnerError(f"Repetition {repetition} of action '{action_name}' was not found in the workflow run history.")

    def failed_actions(self) -> list[dict[str, Any]]:
        """Actions that failed or never finished, for failure diagnostics."""

        statuses = {ActionStatus.FAILED.value, ActionStatus.RUNNING.value}
        return [
            action
            for action in self._all_actions()
            if (action.get("properties") or {}).get("status") in statuses
        ]

    def _action_properties(self, action_name: str, repetition: int | None) -> dict[str, Any]:
        if repetition is None:
            return self.get_action(action_name)
        return self.get_action_repetition(action_name, repetition)

    def _action_message(self, action_name: str, repetition: int | None, message_type: str) -> Any:
        properties = self._action_properties(action_name, repetition)
        uri = (properties.get(f"{message_type}sLink") or {}).get("uri")
        if not uri:
            subject = f"Action '{action_name}'" if repetition is None else f"Action '{action_name}' and repetition {repetition}"
            if properties.get("status") == ActionStatus.SKIPPED.value:
                raise WorkflowRunnerError(f"{subject} does not have any {message_type} because the action was skipped.")
            raise WorkflowRunnerError(f"{subject} does not have any {message_type}.")
        return self.management.get_action_message(uri)


def _first_run(payload: Any) -> dict[str, Any] | None:
    if not isinstance(payload, dict):
        return None
    runs = payload.get("value") or []
    return runs[0] if runs else None
