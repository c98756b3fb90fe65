"""Embedded HTTP server that answers workflow outbound calls from a mock registry."""

from __future__ import annotations

import json
import socketserver
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any

import structlog

from .errors import MockResponseError
from .registry import MockRegistry, MockRule
from .request import MockRequest
from .response import MockResponse

LOGGER = structlog.get_logger("mock_server")

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 7075

# Framing headers are always produced by this server, never copied from a recipe
_HOP_HEADERS = frozenset({"transfer-encoding", "content-length", "connection"})


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True
    allow_reuse_address = True


class MockHttpServer:
    """Serves every inbound request from a ``MockRegistry`` on a fixed local endpoint.

    A failure while matching or building a response never takes the server
    down: the caller receives a 500 (Internal Server Error), the failure is
    written to the request's matching trace and kept in ``errors`` so that the
    test can fail with it afterwards (see ``raise_for_errors``).
    """

    def __init__(self, registry: MockRegistry, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self.registry = registry
        self._host = host
        self._port = port
        self._httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._errors: list[Exception] = []
        self._errors_lock = threading.Lock()
        self._logger = LOGGER.bind(host=host, port=port)

    @property
    def host(self) -> str:
        return self._httpd.server_address[0] if self._httpd else self._host

    @property
    def port(self) -> int:
        return self._httpd.server_address[1] if self._httpd else self._port

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def errors(self) -> list[Exception]:
        with self._errors_lock:
            return list(self._errors)

    def start(self) -> None:
        handler_factory = self._build_handler_factory()
        self._logger.info("server_starting")
        httpd = ThreadedHTTPServer((self._host, self._port), handler_factory)
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        self._thread.start()
        self._ready.set()
        self._logger = self._logger.bind(port=httpd.server_address[1])
        self._logger.info(
            "server_started",
            rules=[describe_rule(rule) for rule in self.registry.rules] or ["(no rules configured)"],
        )

    def stop(self) -> None:
        if not self._httpd:
            return
        self._logger.info("server_stopping")
        try:
            self._httpd.shutdown()
            self._httpd.server_close()
        finally:
            if self._thread:
                self._thread.join(timeout=2)
            self._httpd = None
            self._ready.clear()
        self._logger.info("server_stopped")

    def wait_until_ready(self, timeout: float = 1.0) -> bool:
        return self._ready.wait(timeout=timeout)

    def clear_errors(self) -> None:
        with self._errors_lock:
            self._errors.clear()

    def raise_for_errors(self) -> None:
        """Re-raise the first failure recorded while serving requests."""

        errors = self.errors
        if errors:
            raise errors[0]

    def _record_error(self, exc: Exception) -> None:
        with self._errors_lock:
            self._errors.append(exc)

    def _build_handler_factory(self) -> type[BaseHTTPRequestHandler]:
        runner = self
        handler_logger = LOGGER.bind(host=self._host)

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stdout
                handler_logger.debug(
                    "http_trace",
                    client_ip=self.client_address[0],
                    message=format % args,
                )

            def do_HEAD(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler requirement)
                self._handle(head_only=True)

            def __getattr__(self, name: str) -> Any:
                # Any other method, including extension methods such as MERGE, goes to the registry
                if name.startswith("do_"):
                    return self._handle
                raise AttributeError(name)

            def _handle(self, *, head_only: bool = False) -> None:
                host, port = self.server.server_address[:2]
                request = MockRequest(
                    method=self.command,
                    path=self.path,
                    headers={key: value for key, value in self.headers.items()},
                    body=self._read_body(),
                    base_url=f"http://{host}:{port}",
                )
                request_logger = handler_logger.bind(port=port)
                request_logger.info(
                    "request_received",
                    method=request.method,
                    path=request.path,
                    content_length=len(request.body),
                )
                try:
                    response = runner.registry.resolve(request)
                except Exception as exc:
                    request_logger.exception(
                        "request_failed",
                        method=request.method,
                        path=request.path,
                    )
                    runner._record_error(
                        exc
                        if isinstance(exc, MockResponseError)
                        else MockResponseError(
                            f"Mocked response for {request.method} {request.uri} failed: {exc}",
                            method=request.method,
                            uri=request.uri,
                        )
                    )
                    self._respond_error(exc, head_only=head_only)
                    return
                self._write_response(response, head_only=head_only)
                request_logger.info(
                    "request_served",
                    method=request.method,
                    path=request.path,
                    status=response.status,
                    content_length=len(response.body),
                )

            def _read_body(self) -> bytes:
                if "chunked" in (self.headers.get("Transfer-Encoding") or "").lower():
                    return self._read_chunked()
                return self.rfile.read(int(self.headers.get("Content-Length", 0) or 0))

            def _read_chunked(self) -> bytes:
                chunks = []
                while True:
                    size_line = self.rfile.readline().split(b";", 1)[0].strip()
                    size = int(size_line or b"0", 16)
                    if size == 0:
                        # Trailer section ends with an empty line
                        while self.rfile.readline() not in (b"\r\n", b"\n", b""):
                            pass
                        break
                    chunks.append(self.rfile.read(size))
                    self.rfile.readline()
                return b"".join(chunks)

            def _write_response(self, response: MockResponse, *, head_only: bool = False) -> None:
                body = response.body
                self.send_response(response.status)
                headers = {k: v for k, v in response.headers.items() if k.lower() not in _HOP_HEADERS}
                if response.content_type and not any(k.lower() == "content-type" for k in headers):
                    headers["Content-Type"] = response.content_type
                for key, value in headers.items():
                    self.send_header(key, value)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if not head_only and body:
                    self.wfile.write(body)

            def _respond_error(self, exc: Exception, *, head_only: bool = False) -> None:
                body = json.dumps({"error": "mock failure", "message": str(exc)}).encode("utf-8")
                self.send_response(HTTPStatus.INTERNAL_SERVER_ERROR)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if not head_only:
                    self.wfile.write(body)

        return Handler

    def __enter__(self) -> "MockHttpServer":
        self.start()
        self.wait_until_ready()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # pragma: no cover - context helper
        self.stop()


def describe_rule(rule: MockRule) -> str:
    matcher = rule.matcher
    methods = "|".join(matcher.methods) or "*"
    paths = "|".join(f"{c.match_type.value}:{c.path}" for c in matcher.paths) or "/*"
    description = f"{methods} {paths}"
    if matcher.action_names:
        description += f" action={'|'.join(matcher.action_names)}"
    return f"{rule.name}: {description}" if rule.name else description
