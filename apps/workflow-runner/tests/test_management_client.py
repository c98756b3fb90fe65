from __future__ import annotations

import pytest

from workflow_runner.errors import STATELESS_RUN_HISTORY_HINT, ManagementApiError
from workflow_runner.http_client import HttpClient
from workflow_runner.management import API_VERSION, MANAGEMENT_BASE_PATH, WorkflowManagementClient


@pytest.fixture
def client(host) -> WorkflowManagementClient:
    return WorkflowManagementClient(host.workflow, HttpClient(timeout=5), host.base_url)


def test_callback_url_is_requested_with_an_empty_post(host, client: WorkflowManagementClient) -> None:
    definition = client.get_callback_url("manual")

    request = host.received[-1]
    assert request.method == "POST"
    assert request.body == b""
    assert request.target == (
        f"{MANAGEMENT_BASE_PATH}/order-flow/triggers/manual/listCallbackUrl?api-version={API_VERSION}"
    )
    assert definition.base_path == f"{host.base_url}/api/order-flow/triggers/manual/invoke"
    assert definition.queries == {"api-version": "2022-05-01", "sig": "s3cr3t"}
    assert definition.value.endswith("/invoke?api-version=2022-05-01&sig=s3cr3t")


def test_request_uris_escape_names() -> None:
    client = WorkflowManagementClient("orders v2", base_url="http://localhost:7071/")

    assert client.runs_request_uri() == (
        f"http://localhost:7071{MANAGEMENT_BASE_PATH}/orders%20v2/runs?api-version={API_VERSION}"
    )
    assert client.action_repetitions_request_uri("run-1", "For each") == (
        f"http://localhost:7071{MANAGEMENT_BASE_PATH}/orders%20v2/runs/run-1/actions/For%20each/repetitions"
        f"?api-version={API_VERSION}"
    )


def test_latest_run_is_the_first_listed(host, client: WorkflowManagementClient) -> None:
    host.run_listings = [(200, {"value": [host.run_payload("run-2", "Failed"), host.run_payload("run-1")]})]

    latest = client.get_latest_run()

    assert latest["name"] == "run-2"


def test_missing_run_history_mentions_stateless_workflows(host, client: WorkflowManagementClient) -> None:
    host.run_listings = [(200, {"value": []})]

    with pytest.raises(ManagementApiError, match="There is no workflow run response.") as excinfo:
        client.get_latest_run()

    assert excinfo.value.hint == STATELESS_RUN_HISTORY_HINT
    assert "WithStatelessRunHistory" in str(excinfo.value)


def test_actions_are_read_across_pages(host, client: WorkflowManagementClient) -> None:
    host.action_pages = [
        [host.action_payload("Get_Customer"), host.action_payload("Compose")],
        [host.action_payload("Response")],
    ]

    actions = client.list_actions("run-1")

    assert [item["name"] for item in actions] == ["Get_Customer", "Compose", "Response"]
    assert len(host.requests_to("/pages/1")) == 1


def test_empty_action_history_is_an_error(client: WorkflowManagementClient) -> None:
    with pytest.raises(ManagementApiError, match="There are no action responses for the workflow run."):
        client.list_actions("run-1")


def test_repetitions_are_listed_per_action(host, client: WorkflowManagementClient) -> None:
    host.repetitions["Send_Email"] = [{"name": "000000"}, {"name": "000001"}]

    assert len(client.list_action_repetitions("run-1", "Send_Email")) == 2
    with pytest.raises(ManagementApiError, match="action 'Compose'"):
        client.list_action_repetitions("run-1", "Compose")


def test_action_message_is_fetched_from_its_link(host, client: WorkflowManagementClient) -> None:
    host.messages["output-1"] = {"body": {"id": 54617}}

    assert client.get_action_message(host.message_uri("output-1")) == {"body": {"id": 54617}}


def test_error_status_raises_with_status(host) -> None:
    client = WorkflowManagementClient("unknown-flow", HttpClient(timeout=5), host.base_url)

    with pytest.raises(ManagementApiError, match="failed with status 404") as excinfo:
        client.get_callback_url("manual")

    assert excinfo.value.status == 404


def test_names_are_required() -> None:
    with pytest.raises(ValueError):
        WorkflowManagementClient("")
    with pytest.raises(ValueError):
        WorkflowManagementClient("order-flow").get_callback_url("")
