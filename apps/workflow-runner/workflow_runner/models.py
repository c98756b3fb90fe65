"""Run, action and trigger callback models returned by the management API."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional
from urllib.parse import urlencode, urljoin

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WorkflowRunStatus(str, Enum):
    """Status of a workflow run. ``NotTriggered`` is local and never reported by the host."""

    NOT_TRIGGERED = "NotTriggered"
    ABORTED = "Aborted"
    CANCELLED = "Cancelled"
    FAILED = "Failed"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    TIMED_OUT = "TimedOut"
    WAITING = "Waiting"


class ActionStatus(str, Enum):
    ABORTED = "Aborted"
    CANCELLED = "Cancelled"
    FAILED = "Failed"
    RUNNING = "Running"
    SKIPPED = "Skipped"
    SUCCEEDED = "Succeeded"
    TIMED_OUT = "TimedOut"
    WAITING = "Waiting"


class CallbackUrlDefinition(BaseModel):
    """Trigger callback URL returned by ``listCallbackUrl``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    value: str
    method: Optional[str] = None
    base_path: Optional[str] = None
    relative_path: Optional[str] = None
    relative_path_parameters: list[str] = Field(default_factory=list)
    queries: dict[str, str] = Field(default_factory=dict)

    @property
    def query_string(self) -> str:
        return urlencode(self.queries)

    def url_for(
        self,
        relative_path: str | None = None,
        query_params: dict[str, str] | None = None,
    ) -> str:
        """Trigger URL for an already URL-encoded relative path and extra query parameters.

        The signed ``queries`` of the callback are always kept; extra query
        parameters are appended after them.
        """

        if relative_path:
            base = self.base_path or self.value.split("?", 1)[0]
            # A trailing slash keeps the last segment of the base path
            url = urljoin(base if base.endswith("/") else f"{base}/", relative_path.lstrip("/"))
            query = self.query_string
        else:
            url, _, query = self.value.partition("?")
        if query_params:
            extra = urlencode(query_params)
            query = f"{query}&{extra}" if query else extra
        return f"{url}?{query}" if query else url


class RunDescriptor(BaseModel):
    """Identity, status and termination details of one workflow run."""

    run_id: Optional[str] = None
    client_tracking_id: Optional[str] = None
    status: WorkflowRunStatus = WorkflowRunStatus.NOT_TRIGGERED
    was_terminated: bool = False
    termination_code: Optional[int | str] = None
    termination_message: Optional[str] = None

    @classmethod
    def from_run_payload(cls, payload: dict[str, Any]) -> "RunDescriptor":
        properties = payload.get("properties") or {}
        error = properties.get("error") or {}
        raw_status = properties.get("status")
        return cls(
            run_id=payload.get("name"),
            client_tracking_id=(properties.get("correlation") or {}).get("clientTrackingId"),
            status=WorkflowRunStatus(raw_status) if raw_status else WorkflowRunStatus.NOT_TRIGGERED,
            was_terminated=properties.get("code") == "Terminated",
            termination_code=_as_code(error.get("code")),
            termination_message=error.get("message"),
        )


def _as_code(value: Any) -> int | str | None:
    if value is None:
        return None
    text = str(value)
    return int(text) if text.lstrip("-").isdigit() else text
