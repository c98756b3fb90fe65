from __future__ import annotations

import json

import pytest

from mock_server.errors import MockResponseError
from mock_server.matcher import RequestMatcher
from mock_server.predicates import PathMatchType
from mock_server.registry import MockRule
from mock_server.response import MockResponse, MockResponseBuilder
from workflow_runner.config import RunnerConfig, TestConfiguration
from workflow_runner.errors import WorkflowRunnerError
from workflow_runner.models import WorkflowRunStatus
from workflow_runner.runner import WorkflowTestRunner


def _runner(host, clock, **settings) -> WorkflowTestRunner:
    config = TestConfiguration(
        runner=RunnerConfig(mock_port=0, management_base_url=host.base_url, http_timeout=5, **settings)
    )
    return WorkflowTestRunner(
        config,
        workflow_name=host.workflow,
        trigger_name="manual",
        base_rules=[
            MockRule(RequestMatcher.create(), "base-catch-all").respond_with(
                MockResponseBuilder.create().with_not_found()
            )
        ],
        clock=clock.now,
        sleep=clock.sleep,
    )


def _workflow_calling(host, runner: WorkflowTestRunner, *paths: str):
    """Trigger handler that calls the mock server once per path, like the workflow's HTTP actions."""

    def handle(req):
        results = []
        for path in paths:
            status, body = host.call_external(f"{runner.server.base_url}{path}")
            results.append({"path": path, "status": status, "body": body.decode("utf-8")})
        return 200, {"x-ms-workflow-run-id": "run-1", "Content-Type": "application/json"}, json.dumps(results).encode()

    return handle


def test_mock_server_answers_the_workflow_during_the_run(host, clock) -> None:
    with _runner(host, clock) as runner:
        runner.add_mock_response(
            RequestMatcher.create().using_get().with_path(PathMatchType.ENDS_WITH, "/customers/54617"), "customer"
        ).respond_with(MockResponseBuilder.create().with_content_as_json({"id": 54617}))
        host.trigger_handler = _workflow_calling(host, runner, "/customers/54617", "/orders/1")

        response = runner.trigger()

        assert response.json() == [
            {"path": "/customers/54617", "status": 200, "body": '{"id": 54617}'},
            {"path": "/orders/1", "status": 404, "body": ""},
        ]
        assert [item.path for item in runner.mock_requests] == ["/customers/54617", "/orders/1"]
        assert runner.run_status is WorkflowRunStatus.SUCCEEDED
        assert runner.run_id == "run-1"
        assert runner.client_tracking_id == "tracking-run-1"


def test_fallback_and_default_status_apply_to_unmatched_requests(host, clock) -> None:
    config = TestConfiguration(
        runner=RunnerConfig(mock_port=0, management_base_url=host.base_url, default_http_response_status_code=204)
    )
    with WorkflowTestRunner(config, workflow_name=host.workflow, trigger_name="manual", sleep=clock.sleep) as runner:
        host.trigger_handler = _workflow_calling(host, runner, "/unmatched")
        assert runner.trigger().json()[0]["status"] == 204

        runner.fallback = lambda request: MockResponse(status=418)
        assert runner.fallback is not None
        assert runner.trigger().json()[0]["status"] == 418


def test_mock_failures_are_raised_after_the_run(host, clock) -> None:
    with _runner(host, clock) as runner:
        runner.add_mock_response(RequestMatcher.create().using_get(), "broken").respond_with(
            MockResponseBuilder.create().throws_exception(ConnectionError("backend unreachable"))
        )
        host.trigger_handler = _workflow_calling(host, runner, "/customers/1")

        with pytest.raises(MockResponseError, match="backend unreachable"):
            runner.trigger()

        # The run itself completed and can still be inspected
        assert runner.run_status is WorkflowRunStatus.SUCCEEDED
        assert runner.mock_requests[0].log[-1] == "    EXCEPTION: backend unreachable"


def test_each_trigger_starts_with_no_captured_requests(host, clock) -> None:
    with _runner(host, clock) as runner:
        host.trigger_handler = _workflow_calling(host, runner, "/first")
        runner.trigger()
        host.trigger_handler = _workflow_calling(host, runner, "/second")
        runner.trigger()

        assert [item.path for item in runner.mock_requests] == ["/second"]
        # Base rules are added once
        assert [rule.name for rule in runner.registry.rules] == ["base-catch-all"]


def test_explain_failures_appends_failed_actions(host, clock) -> None:
    host.run_listings = [(200, {"value": [host.run_payload(status="Failed")]})]
    host.action_pages = [
        [
            host.action_payload("Get_Customer"),
            host.action_payload("Update_Order", "Failed", error={"code": "BadRequest"}),
        ]
    ]
    with _runner(host, clock) as runner:
        runner.trigger()

        with pytest.raises(AssertionError, match="Failed actions:") as excinfo:
            with runner.explain_failures():
                assert runner.run_status is WorkflowRunStatus.SUCCEEDED

    assert '"name": "Update_Order"' in str(excinfo.value)
    assert "Get_Customer" not in str(excinfo.value)


def test_explain_failures_keeps_the_assertion_without_failed_actions(host, clock) -> None:
    host.action_pages = [[host.action_payload("Get_Customer")]]
    with _runner(host, clock) as runner:
        runner.trigger()

        with pytest.raises(AssertionError) as excinfo:
            with runner.explain_failures():
                assert runner.get_action_status("Get_Customer").value == "Failed", "unexpected status"

    assert "Failed actions" not in str(excinfo.value)


def test_action_accessors_delegate_to_the_run(host, clock) -> None:
    host.messages["out"] = {"body": "ok"}
    host.action_pages = [
        [
            host.action_payload(
                "Loop_Step",
                repetitionCount=1,
                outputsLink={"uri": host.message_uri("out")},
                trackedProperties={"orderId": 7},
            )
        ]
    ]
    host.repetitions["Loop_Step"] = [
        {"name": "000000", "properties": {"status": "Succeeded", "repetitionIndexes": [{"itemIndex": 0}]}}
    ]
    with _runner(host, clock) as runner:
        runner.trigger()

        assert runner.get_action_output("Loop_Step") == {"body": "ok"}
        assert runner.get_action_repetition_count("Loop_Step") == 1
        assert runner.get_action_status("Loop_Step", 1).value == "Succeeded"
        assert runner.get_action_tracked_properties("Loop_Step") == {"orderId": "7"}
        assert runner.was_terminated is False
        assert runner.termination_code is None
        assert runner.termination_message is None


def test_trigger_name_is_required(host, clock) -> None:
    config = TestConfiguration(runner=RunnerConfig(mock_port=0, management_base_url=host.base_url))
    with WorkflowTestRunner(config, workflow_name=host.workflow) as runner:
        with pytest.raises(WorkflowRunnerError, match="cannot be started"):
            runner.trigger()


def test_workflow_name_or_management_client_is_required() -> None:
    with pytest.raises(ValueError):
        WorkflowTestRunner(TestConfiguration(runner=RunnerConfig(mock_port=0)))
