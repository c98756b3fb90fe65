"""Test bootstrap for workflow-runner."""

from __future__ import annotations

import json
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Iterator, NamedTuple
from urllib import error, request
from urllib.parse import unquote, urlencode, urlsplit

import pytest

APPS_DIR = Path(__file__).resolve().parents[2]
for package in ["workflow-runner", "mock-server"]:
    package_root = APPS_DIR / package
    path_str = str(package_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from workflow_runner.management import MANAGEMENT_BASE_PATH  # noqa: E402

Reply = tuple[int, dict[str, str], bytes]


class HostRequest(NamedTuple):
    method: str
    target: str
    headers: dict[str, str]
    body: bytes


def _json(status: int, payload: Any, headers: dict[str, str] | None = None) -> Reply:
    return status, {"Content-Type": "application/json", **(headers or {})}, json.dumps(payload).encode("utf-8")


class FakeWorkflowHost:
    """Loopback stand-in for a local workflow runtime: management API, trigger and callbacks."""

    def __init__(self, workflow: str = "order-flow") -> None:
        self.workflow = workflow
        self.received: list[HostRequest] = []
        # Each GET of the runs listing consumes one entry; the last one is repeated
        self.run_listings: list[tuple[int, dict[str, Any]]] = [(200, {"value": [self.run_payload()]})]
        self.async_responses: list[Reply] = [(200, {}, b"")]
        self.action_pages: list[list[dict[str, Any]]] = [[]]
        self.repetitions: dict[str, list[dict[str, Any]]] = {}
        self.messages: dict[str, Any] = {}
        self.trigger_handler: Callable[[HostRequest], Reply] = lambda req: (200, {"x-ms-workflow-run-id": "run-1"}, b"")
        self._lock = threading.Lock()
        self._server = ThreadingHTTPServer(("127.0.0.1", 0), self._handler_class())
        self._thread: threading.Thread | None = None

    @property
    def base_url(self) -> str:
        host, port = self._server.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> None:
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._server.shutdown()
        self._server.server_close()

    def requests_to(self, path_fragment: str) -> list[HostRequest]:
        return [item for item in self.received if path_fragment in item.target]

    def message_uri(self, name: str) -> str:
        return f"{self.base_url}/messages/{name}"

    @staticmethod
    def run_payload(run_id: str = "run-1", status: str = "Succeeded", **properties: Any) -> dict[str, Any]:
        return {
            "name": run_id,
            "properties": {"status": status, "correlation": {"clientTrackingId": f"tracking-{run_id}"}, **properties},
        }

    @staticmethod
    def action_payload(name: str, status: str = "Succeeded", **properties: Any) -> dict[str, Any]:
        return {"name": name, "properties": {"status": status, **properties}}

    @staticmethod
    def call_external(url: str, method: str = "GET", body: bytes | None = None) -> tuple[int, bytes]:
        """Call another service from inside a trigger, the way a running workflow would."""

        req = request.Request(url, data=body, method=method)
        try:
            with request.urlopen(req, timeout=5) as response:
                return response.status, response.read()
        except error.HTTPError as exc:
            return exc.code, exc.read()

    def _next(self, replies: list) -> Any:
        with self._lock:
            return replies[0] if len(replies) == 1 else replies.pop(0)

    def _dispatch(self, req: HostRequest) -> Reply:
        self.received.append(req)
        path = urlsplit(req.target).path
        if path.startswith(f"{MANAGEMENT_BASE_PATH}/"):
            segments = [unquote(item) for item in path[len(MANAGEMENT_BASE_PATH) + 1 :].split("/")]
            return self._management(req.method, segments)
        if path.startswith("/api/"):
            return self.trigger_handler(req)
        if path.startswith("/callbacks/"):
            return self._next(self.async_responses)
        if path.startswith("/pages/"):
            return self._actions_page(int(path.rsplit("/", 1)[1]))
        if path.startswith("/messages/"):
            name = path.rsplit("/", 1)[1]
            if name in self.messages:
                return _json(200, self.messages[name])
        return _json(404, {"error": {"code": "NotFound"}})

    def _management(self, method: str, segments: list[str]) -> Reply:
        workflow, *rest = segments
        if workflow != self.workflow:
            return _json(404, {"error": {"code": "WorkflowNotFound", "message": f"Workflow '{workflow}' not found"}})
        if method == "POST" and len(rest) == 3 and rest[0] == "triggers" and rest[2] == "listCallbackUrl":
            base_path = f"{self.base_url}/api/{workflow}/triggers/{rest[1]}/invoke"
            queries = {"api-version": "2022-05-01", "sig": "s3cr3t"}
            return _json(
                200,
                {"value": f"{base_path}?{urlencode(queries)}", "method": "POST", "basePath": base_path, "queries": queries},
            )
        if method == "GET" and rest == ["runs"]:
            status, payload = self._next(self.run_listings)
            return _json(status, payload)
        if method == "GET" and len(rest) == 3 and rest[0] == "runs" and rest[2] == "actions":
            return self._actions_page(0)
        if method == "GET" and len(rest) == 5 and rest[4] == "repetitions":
            return _json(200, {"value": self.repetitions.get(rest[3], [])})
        return _json(404, {"error": {"code": "NotFound"}})

    def _actions_page(self, index: int) -> Reply:
        payload: dict[str, Any] = {"value": self.action_pages[index]}
        if index + 1 < len(self.action_pages):
            payload["nextLink"] = f"{self.base_url}/pages/{index + 1}"
        return _json(200, payload)

    def _handler_class(self) -> type[BaseHTTPRequestHandler]:
        host = self

        class Handler(BaseHTTPRequestHandler):
            def _handle(self) -> None:
                length = int(self.headers.get("Content-Length") or 0)
                body = self.rfile.read(length) if length else b""
                headers = {name.lower(): value for name, value in self.headers.items()}
                req = HostRequest(self.command, self.path, headers, body)
                status, reply_headers, payload = host._dispatch(req)
                self.send_response(status)
                for name, value in reply_headers.items():
                    self.send_header(name, value)
                self.send_header("Content-Length", str(len(payload)))
                self.end_headers()
                self.wfile.write(payload)

            do_GET = _handle  # noqa: N815 - HTTP handler requirement
            do_POST = _handle  # noqa: N815
            do_PUT = _handle  # noqa: N815

            def log_message(self, format: str, *args: object) -> None:  # pragma: no cover - silence logs
                return

        return Handler


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self) -> None:
        self.now_seconds = 0.0
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.now_seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now_seconds += seconds


@pytest.fixture
def host() -> Iterator[FakeWorkflowHost]:
    fake = FakeWorkflowHost()
    fake.start()
    try:
        yield fake
    finally:
        fake.stop()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
