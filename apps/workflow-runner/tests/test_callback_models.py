from __future__ import annotations

import pytest

from workflow_runner.http_client import HttpResponse
from workflow_runner.models import CallbackUrlDefinition, RunDescriptor, WorkflowRunStatus

CALLBACK = {
    "value": "https://host/api/order-flow/triggers/manual/invoke?api-version=2022-05-01&sig=abc",
    "method": "POST",
    "basePath": "https://host/api/order-flow/triggers/manual/invoke",
    "relativePathParameters": [],
    "queries": {"api-version": "2022-05-01", "sig": "abc"},
}


def test_callback_url_without_relative_path_uses_value() -> None:
    definition = CallbackUrlDefinition.model_validate(CALLBACK)

    assert definition.url_for() == CALLBACK["value"]
    assert definition.url_for(query_params={"region": "emea"}) == f"{CALLBACK['value']}&region=emea"


def test_relative_path_is_appended_to_base_path() -> None:
    definition = CallbackUrlDefinition.model_validate(CALLBACK)

    url = definition.url_for("/orders/42", {"expand": "lines"})

    assert url == (
        "https://host/api/order-flow/triggers/manual/invoke/orders/42"
        "?api-version=2022-05-01&sig=abc&expand=lines"
    )


def test_relative_path_without_base_path_uses_value_path() -> None:
    definition = CallbackUrlDefinition(value="https://host/invoke?sig=abc", queries={"sig": "abc"})

    assert definition.url_for("customers/1") == "https://host/invoke/customers/1?sig=abc"


def test_terminated_run_details_are_read() -> None:
    payload = {
        "name": "08585",
        "properties": {
            "status": "Failed",
            "code": "Terminated",
            "error": {"code": "500", "message": "Order rejected"},
            "correlation": {"clientTrackingId": "tracking-08585"},
        },
    }

    run = RunDescriptor.from_run_payload(payload)

    assert run.run_id == "08585"
    assert run.status is WorkflowRunStatus.FAILED
    assert run.was_terminated is True
    assert run.termination_code == 500
    assert run.termination_message == "Order rejected"
    assert run.client_tracking_id == "tracking-08585"


def test_non_numeric_termination_code_is_kept_as_text() -> None:
    run = RunDescriptor.from_run_payload(
        {"name": "r", "properties": {"status": "Cancelled", "code": "Terminated", "error": {"code": "Rejected"}}}
    )

    assert run.termination_code == "Rejected"
    assert run.status is WorkflowRunStatus.CANCELLED


def test_run_without_status_is_not_triggered() -> None:
    run = RunDescriptor.from_run_payload({"name": "r", "properties": {}})

    assert run.status is WorkflowRunStatus.NOT_TRIGGERED
    assert run.was_terminated is False
    assert run.termination_code is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [("5", 5.0), (" 0.5 ", 0.5), ("-3", 0.0), ("Wed, 21 Oct 2015 07:28:00 GMT", None)],
)
def test_retry_after_is_read_in_seconds(value: str, expected: float | None) -> None:
    response = HttpResponse(status=202, headers={"retry-after": value})

    assert response.retry_after == expected


def test_response_headers_are_case_insensitive() -> None:
    response = HttpResponse(status=202, headers={"LOCATION": "http://host/callbacks/1"}, body=b'{"a": 1}')

    assert response.location == "http://host/callbacks/1"
    assert response.json() == {"a": 1}
    assert HttpResponse(status=204).json() is None
