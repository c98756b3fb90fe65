"""Blocking HTTP transport used for trigger calls, async callbacks and the management API."""

from __future__ import annotations

import json
import socket
import time
from dataclasses import dataclass, field
from typing import Any
from urllib import error, request

import structlog

from .errors import WorkflowRunnerError

LOGGER = structlog.get_logger("workflow_http")

DEFAULT_TIMEOUT = 100.0


class HttpTransportError(WorkflowRunnerError):
    """The request never produced an HTTP response."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


@dataclass
class HttpResponse:
    """Status, headers and fully-read body of one HTTP exchange."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""
    elapsed_ms: float = 0.0

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.text) if self.body.strip() else None

    @property
    def location(self) -> str | None:
        return self.header("Location")

    @property
    def retry_after(self) -> float | None:
        """``Retry-After`` in seconds; HTTP-date values are not supported and ignored."""

        value = self.header("Retry-After")
        if value is None:
            return None
        try:
            return max(float(value.strip()), 0.0)
        except ValueError:
            return None


class _NoRedirectHandler(request.HTTPRedirectHandler):
    # 3xx responses are returned to the caller as they are
    def redirect_request(self, req, fp, code, msg, headers, newurl):  # type: ignore[override]
        return None


class HttpClient:
    """Sends one request and returns the response whatever its status code."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._opener = request.build_opener(_NoRedirectHandler)

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> HttpResponse:
        method = method.upper()
        req = request.Request(url, data=body, headers=dict(headers or {}), method=method)
        start = time.perf_counter()
        try:
            with self._opener.open(req, timeout=self.timeout) as response:
                payload = response.read()
                status = response.getcode()
                response_headers = dict(response.headers.items())
        except error.HTTPError as exc:
            payload = exc.read()
            status = exc.code
            response_headers = dict(exc.headers.items()) if exc.headers else {}
        except error.URLError as exc:
            timed_out = isinstance(exc.reason, (socket.timeout, TimeoutError))
            raise HttpTransportError(f"HTTP request failed for {method} {url}: {exc.reason}", timed_out=timed_out) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise HttpTransportError(
                f"HTTP request for {method} {url} did not respond within {self.timeout} seconds", timed_out=True
            ) from exc
        elapsed_ms = (time.perf_counter() - start) * 1000
        LOGGER.debug("http_exchange", method=method, url=url, status=status, elapsed_ms=round(elapsed_ms, 3))
        return HttpResponse(status=status, headers=response_headers, body=payload, url=url, elapsed_ms=elapsed_ms)

    def get(self, url: str, *, headers: dict[str, str] | None = None) -> HttpResponse:
        return self.send("GET", url, headers=headers)
