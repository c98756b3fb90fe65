"""Ordered mock rules, fallback delegate and the captured request log."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable
from urllib.parse import urlsplit

import structlog

from .errors import MockConfigurationError, MockResponseError
from .matcher import RequestMatcher
from .request import MockRequest
from .response import MockResponse, MockResponseBuilder, RandomSource

LOGGER = structlog.get_logger("mock_registry")

FallbackDelegate = Callable[[MockRequest], "MockResponse | None"]


@dataclass(frozen=True)
class CapturedRequest:
    """Immutable record of one request received by the mock server."""

    timestamp: datetime
    method: str
    uri: str
    headers: dict[str, str]
    content_headers: dict[str, str]
    content: str
    log: tuple[str, ...] = ()

    @property
    def path(self) -> str:
        return urlsplit(self.uri).path


class MockRule:
    """A request matcher and the response recipe used when it matches."""

    def __init__(self, matcher: RequestMatcher, name: str | None = None) -> None:
        if matcher is None:
            raise MockConfigurationError("A request matcher is required")
        self.name = name
        self.matcher = matcher
        self.builder: MockResponseBuilder | None = None

    def respond_with(self, builder: MockResponseBuilder) -> "MockRule":
        if builder is None:
            raise MockConfigurationError("A response builder is required")
        self.builder = builder
        return self

    def respond_with_default(self) -> "MockRule":
        return self.respond_with(MockResponseBuilder.create())

    @property
    def label(self) -> str:
        return f" ({self.name})" if self.name else ""

    def match_and_build(
        self,
        request: MockRequest,
        trace: list[str],
        random_source: RandomSource,
    ) -> MockResponse | None:
        if self.builder is None:
            raise MockResponseError(
                "A response builder has not been configured - use respond_with() to create a response,"
                " or respond_with_default() to create a default response using a status code of 200 (OK) and no content",
                method=request.method,
                uri=request.uri,
            )
        result = self.matcher.match(request)
        if not result.is_match:
            trace.append(f"    Not matched - {result.reason}")
            return None
        trace.append("    Matched")
        return self.builder.build(random_source=random_source, trace=trace)


class MockRegistry:
    """Resolves inbound requests against ordered rules, falling back to a delegate.

    Rules are tried strictly in registration order and the first match wins.
    Every resolution, matched or not, appends one ``CapturedRequest`` with a
    trace of why each earlier rule was rejected. Rule lists are read-only while
    requests are being resolved; only matcher counters and the log mutate.
    """

    def __init__(
        self,
        *,
        default_status: int = 200,
        write_matching_logs: bool = False,
        random_source: RandomSource | None = None,
    ) -> None:
        self.default_status = default_status
        self.write_matching_logs = write_matching_logs
        self.random_source = random_source or RandomSource()
        self._rules: list[MockRule] = []
        self._fallback: FallbackDelegate | None = None
        self._log: list[CapturedRequest] = []
        self._log_lock = threading.Lock()
        self._logger = LOGGER.bind(default_status=default_status)

    @property
    def rules(self) -> tuple[MockRule, ...]:
        return tuple(self._rules)

    @property
    def fallback(self) -> FallbackDelegate | None:
        return self._fallback

    @fallback.setter
    def fallback(self, delegate: FallbackDelegate | None) -> None:
        self._fallback = delegate

    def add_rule(self, matcher: RequestMatcher, name: str | None = None) -> MockRule:
        rule = MockRule(matcher, name)
        self._append(rule)
        return rule

    def extend(self, rules: Iterable[MockRule]) -> None:
        for rule in rules:
            self._append(rule)

    def _append(self, rule: MockRule) -> None:
        if rule.name and any(existing.name == rule.name for existing in self._rules):
            raise MockConfigurationError(f"A mock response with the name '{rule.name}' already exists.")
        self._rules.append(rule)

    def resolve(self, request: MockRequest) -> MockResponse:
        trace: list[str] = []
        timestamp = datetime.now()
        try:
            response = None
            if self._rules:
                trace.append(f"Checking {len(self._rules)} mock request matchers:")
                response = self._resolve_with_rules(request, trace)
            else:
                trace.append("No mock request matchers have been configured")
            if response is None:
                trace.append("Running mock response delegate because no requests were matched")
                response = self._resolve_with_fallback(request)
            return response
        except Exception as exc:
            trace.append(f"    EXCEPTION: {exc}")
            raise
        finally:
            self._capture(request, timestamp, trace)

    def _resolve_with_rules(self, request: MockRequest, trace: list[str]) -> MockResponse | None:
        for index, rule in enumerate(self._rules, start=1):
            trace.append(f"  Checking mock request matcher #{index}{rule.label}:")
            response = rule.match_and_build(request, trace, self.random_source)
            if response is not None:
                return response
        return None

    def _resolve_with_fallback(self, request: MockRequest) -> MockResponse:
        response = self._fallback(request) if self._fallback else None
        if response is None:
            return MockResponse.default(self.default_status)
        return response

    def _capture(self, request: MockRequest, timestamp: datetime, trace: list[str]) -> None:
        captured = CapturedRequest(
            timestamp=timestamp,
            method=request.method,
            uri=request.uri,
            headers=request.request_headers,
            content_headers=request.content_headers,
            content=request.content_as_string(),
            log=tuple(trace),
        )
        with self._log_lock:
            self._log.append(captured)

    @property
    def captured_requests(self) -> list[CapturedRequest]:
        """Captured requests in chronological order."""

        with self._log_lock:
            return sorted(self._log, key=lambda item: item.timestamp)

    def run_starting(self) -> None:
        with self._log_lock:
            self._log.clear()

    def run_complete(self) -> list[CapturedRequest]:
        captured = self.captured_requests
        if not captured:
            self._logger.info("mock_requests_none_logged")
            return captured
        for item in captured:
            event = {
                "received_at": item.timestamp.strftime("%H:%M:%S.%f")[:-3],
                "method": item.method,
                "uri": item.uri,
            }
            if self.write_matching_logs and item.log:
                event["matching_log"] = list(item.log)
            self._logger.info("mock_request_logged", **event)
        return captured
