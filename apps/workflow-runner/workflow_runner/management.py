"""Client for the workflow host management API."""

from __future__ import annotations

from typing import Any, Protocol
from urllib.parse import quote

import structlog

from .errors import STATELESS_RUN_HISTORY_HINT, ManagementApiError
from .http_client import HttpClient, HttpResponse
from .models import CallbackUrlDefinition

LOGGER = structlog.get_logger("workflow_management")

API_VERSION = "2019-10-01-edge-preview"
MANAGEMENT_BASE_PATH = "/runtime/webhooks/workflow/api/management/workflows"
DEFAULT_MANAGEMENT_BASE_URL = "http://localhost:7071"


class ManagementApi(Protocol):
    """Management operations the trigger/poll engine depends on, for one workflow."""

    workflow_name: str

    def get_callback_url(self, trigger_name: str) -> CallbackUrlDefinition:
        ...

    def list_runs(self) -> HttpResponse:
        ...

    def get_latest_run(self) -> dict[str, Any]:
        ...

    def list_actions(self, run_id: str) -> list[dict[str, Any]]:
        ...

    def list_action_repetitions(self, run_id: str, action_name: str) -> list[dict[str, Any]]:
        ...

    def get_action_message(self, url: str) -> Any:
        ...


class WorkflowManagementClient:
    """``ManagementApi`` over HTTP against a locally hosted workflow runtime."""

    def __init__(
        self,
        workflow_name: str,
        http: HttpClient | None = None,
        base_url: str = DEFAULT_MANAGEMENT_BASE_URL,
    ) -> None:
        if not workflow_name:
            raise ValueError("A workflow name is required")
        self.workflow_name = workflow_name
        self.http = http or HttpClient()
        self.base_url = base_url.rstrip("/")
        self._logger = LOGGER.bind(workflow=workflow_name)

    def _url(self, *segments: str, **query: str) -> str:
        path = "/".join(quote(segment, safe="") for segment in (self.workflow_name, *segments))
        params = "&".join([f"api-version={API_VERSION}", *(f"{key}={value}" for key, value in query.items())])
        return f"{self.base_url}{MANAGEMENT_BASE_PATH}/{path}?{params}"

    def callback_url_request_uri(self, trigger_name: str) -> str:
        return self._url("triggers", trigger_name, "listCallbackUrl")

    def runs_request_uri(self) -> str:
        return self._url("runs")

    def run_actions_request_uri(self, run_id: str) -> str:
        return self._url("runs", run_id, "actions")

    def action_repetitions_request_uri(self, run_id: str, action_name: str) -> str:
        return self._url("runs", run_id, "actions", action_name, "repetitions")

    def get_callback_url(self, trigger_name: str) -> CallbackUrlDefinition:
        if not trigger_name:
            raise ValueError("A trigger name is required")
        response = self._expect_success(self.http.send("POST", self.callback_url_request_uri(trigger_name), body=b""))
        definition = CallbackUrlDefinition.model_validate(response.json() or {})
        self._logger.debug("callback_url_resolved", trigger=trigger_name, url=definition.value)
        return definition

    def list_runs(self) -> HttpResponse:
        # The status code matters to the caller while a run is in progress
        return self.http.get(self.runs_request_uri())

    def get_latest_run(self) -> dict[str, Any]:
        response = self._expect_success(self.list_runs())
        runs = (response.json() or {}).get("value") or []
        if not runs:
            raise ManagementApiError("There is no workflow run response.", status=response.status, hint=STATELESS_RUN_HISTORY_HINT)
        # Runs are listed most recent first
        return runs[0]

    def list_actions(self, run_id: str) -> list[dict[str, Any]]:
        if not run_id:
            raise ValueError("A run id is required")
        actions: list[dict[str, Any]] = []
        url: str | None = self.run_actions_request_uri(run_id)
        while url:
            payload = self._expect_success(self.http.get(url)).json() or {}
            actions.extend(payload.get("value") or [])
            url = payload.get("nextLink")
        if not actions:
            raise ManagementApiError(
                "There are no action responses for the workflow run.", hint=STATELESS_RUN_HISTORY_HINT
            )
        self._logger.debug("run_actions_listed", run_id=run_id, action_count=len(actions))
        return actions

    def list_action_repetitions(self, run_id: str, action_name: str) -> list[dict[str, Any]]:
        if not run_id or not action_name:
            raise ValueError("A run id and an action name are required")
        response = self._expect_success(self.http.get(self.action_repetitions_request_uri(run_id, action_name)))
        repetitions = (response.json() or {}).get("value") or []
        if not repetitions:
            raise ManagementApiError(
                f"There are no action repetition responses for action '{action_name}' in the workflow run.",
                hint=STATELESS_RUN_HISTORY_HINT,
            )
        return repetitions

    def get_action_message(self, url: str) -> Any:
        if not url:
            raise ValueError("An action message URL is required")
        return self._expect_success(self.http.get(url)).json()

    def _expect_success(self, response: HttpResponse) -> HttpResponse:
        if not 200 <= response.status < 300:
            raise ManagementApiError(
                f"Management API call to {response.url} failed with status {response.status}: {response.text[:500]}",
                status=response.status,
            )
        return response
