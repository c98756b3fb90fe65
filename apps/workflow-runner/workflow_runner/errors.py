"""Errors raised while triggering a workflow and observing its run."""

from __future__ import annotations

from mock_server.errors import HarnessError

STATELESS_RUN_HISTORY_HINT = (
    "If this is a stateless workflow, make sure that the 'Workflows.<workflow name>.OperationOptions'"
    " setting is set to 'WithStatelessRunHistory'."
)


class WorkflowRunnerError(HarnessError):
    """The workflow could not be triggered or its run could not be inspected."""


class _TimeoutError(WorkflowRunnerError):
    def __init__(self, message: str, *, timeout_seconds: float) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class TriggerTimeoutError(_TimeoutError):
    """The trigger endpoint did not respond in time."""


class AsyncResponseTimeoutError(_TimeoutError):
    """The asynchronous callback location kept answering 202 past its bound."""


class WorkflowTimeoutError(_TimeoutError):
    """The run was still in progress when the execution bound elapsed."""


class ManagementApiError(WorkflowRunnerError):
    """A management API call failed or returned no usable run history."""

    def __init__(self, message: str, *, status: int | None = None, hint: str | None = None) -> None:
        super().__init__(f"{message} {hint}" if hint else message)
        self.status = status
        self.hint = hint
