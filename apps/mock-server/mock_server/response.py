"""Response recipes: deferred status, headers, content, delay and failures."""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import timedelta
from http import HTTPStatus
from typing import IO, Any, Callable, Union

from .content import (
    BytesContent,
    JsonContent,
    RenderedContent,
    ResponseContent,
    StreamContent,
    SupplierContent,
    TextContent,
    read_stream,
)
from .errors import MockConfigurationError

Seconds = Union[int, float, timedelta]


class RandomSource:
    """A ``random.Random`` guarded by a lock, shared by the rules of one registry."""

    def __init__(self, seed: int | None = None) -> None:
        self._random = random.Random(seed)
        self._lock = threading.Lock()

    def uniform(self, low: float, high: float) -> float:
        with self._lock:
            return self._random.uniform(low, high)


def _to_seconds(value: Seconds) -> float:
    seconds = value.total_seconds() if isinstance(value, timedelta) else float(value)
    if seconds < 0:
        raise MockConfigurationError("A response delay cannot be negative")
    return seconds


@dataclass(frozen=True)
class FixedDelay:
    seconds: float

    def resolve(self, random_source: RandomSource) -> float:
        return self.seconds


@dataclass(frozen=True)
class RandomDelay:
    low: float
    high: float

    def resolve(self, random_source: RandomSource) -> float:
        return random_source.uniform(self.low, self.high)


@dataclass(frozen=True)
class MockResponse:
    """A built response, ready to be written on the wire."""

    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    content: RenderedContent | None = None

    @property
    def body(self) -> bytes:
        return self.content.body if self.content else b""

    @property
    def content_type(self) -> str | None:
        return self.content.content_type if self.content else None

    @classmethod
    def default(cls, status: int = HTTPStatus.OK) -> "MockResponse":
        return cls(status=int(status))


@dataclass(frozen=True, eq=False)
class MockResponseBuilder:
    """Immutable recipe for a mocked response. The default status is 200 (OK).

    Content and delay are resolved on every ``build`` call, so a supplier or a
    random delay can differ between two requests matched by the same rule. A
    configured exception takes precedence over everything else and is raised
    from ``build`` to simulate a local failure rather than an error response.
    """

    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    content: ResponseContent | None = None
    delay: FixedDelay | RandomDelay | None = None
    exception: BaseException | None = None

    @classmethod
    def create(cls) -> "MockResponseBuilder":
        return cls()

    def with_success(self) -> "MockResponseBuilder":
        return self.with_status_code(HTTPStatus.OK)

    def with_no_content(self) -> "MockResponseBuilder":
        return replace(self, content=None, status=int(HTTPStatus.NO_CONTENT))

    def with_unauthorized(self) -> "MockResponseBuilder":
        return self.with_status_code(HTTPStatus.UNAUTHORIZED)

    def with_not_found(self) -> "MockResponseBuilder":
        return self.with_status_code(HTTPStatus.NOT_FOUND)

    def with_internal_server_error(self) -> "MockResponseBuilder":
        return self.with_status_code(HTTPStatus.INTERNAL_SERVER_ERROR)

    def with_status_code(self, status: int) -> "MockResponseBuilder":
        status = int(status)
        if not 100 <= status <= 599:
            raise MockConfigurationError(f"'{status}' is not a valid HTTP status code")
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> "MockResponseBuilder":
        if not name:
            raise MockConfigurationError("A header name is required")
        return replace(self, headers={**self.headers, name: value})

    def with_delay(self, delay: Seconds, upper: Seconds | None = None) -> "MockResponseBuilder":
        """Delay the response by a fixed time, or by a random time between ``delay`` and ``upper``."""

        if upper is None:
            return replace(self, delay=FixedDelay(_to_seconds(delay)))
        low, high = _to_seconds(delay), _to_seconds(upper)
        if low >= high:
            raise MockConfigurationError(
                f"The minimum delay ({low}s) must be less than the maximum delay ({high}s)"
            )
        return replace(self, delay=RandomDelay(low, high))

    def with_content(self, supplier: Callable[[], Any]) -> "MockResponseBuilder":
        if supplier is None:
            raise MockConfigurationError("A content supplier is required")
        return replace(self, content=SupplierContent(supplier))

    def with_content_as_json(self, value: Any) -> "MockResponseBuilder":
        if value is None:
            raise MockConfigurationError("JSON content is required")
        if hasattr(value, "read"):
            value = read_stream(value)
        return replace(self, content=JsonContent(value))

    def with_content_as_plain_text(self, value: str | IO[Any]) -> "MockResponseBuilder":
        if value is None:
            raise MockConfigurationError("Plain text content is required")
        if isinstance(value, str):
            return replace(self, content=TextContent(value))
        return replace(self, content=StreamContent.from_stream(value))

    def with_content_as_bytes(
        self, data: bytes, content_type: str, encoding: str | None = None
    ) -> "MockResponseBuilder":
        if data is None or not content_type:
            raise MockConfigurationError("Content bytes and a content type are required")
        return replace(self, content=BytesContent(bytes(data), content_type, encoding))

    def throws_exception(self, exception: BaseException) -> "MockResponseBuilder":
        if exception is None:
            raise MockConfigurationError("An exception is required")
        return replace(self, exception=exception)

    def build(
        self,
        *,
        random_source: RandomSource | None = None,
        trace: list[str] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> MockResponse:
        if self.exception is not None:
            raise self.exception

        if self.delay is not None:
            seconds = self.delay.resolve(random_source or RandomSource())
            if trace is not None:
                trace.append(f"    Delay for {seconds * 1000:.0f} milliseconds")
            sleep(seconds)

        rendered = self.content.render() if self.content is not None else None
        return MockResponse(status=self.status, headers=dict(self.headers), content=rendered)


def json_response(value: Any, status: int = HTTPStatus.OK) -> MockResponse:
    """Shortcut for fallback delegates that answer with JSON."""

    return MockResponse(status=int(status), content=JsonContent(value).render())
