"""Response content shapes, each rendered to bytes when a response is built."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import IO, Any, Callable, Union

JSON_CONTENT_TYPE = "application/json"
PLAIN_TEXT_CONTENT_TYPE = "text/plain"
XML_CONTENT_TYPE = "application/xml"


@dataclass(frozen=True)
class RenderedContent:
    body: bytes
    content_type: str | None = None


def _with_charset(content_type: str, encoding: str | None) -> str:
    if not encoding or "charset=" in content_type:
        return content_type
    return f"{content_type}; charset={encoding}"


def read_stream(stream: IO[Any]) -> bytes:
    data = stream.read()
    return data.encode("utf-8") if isinstance(data, str) else data


@dataclass(frozen=True)
class JsonContent:
    """JSON text, encoded JSON bytes, or any object that ``json.dumps`` accepts."""

    value: Any

    def render(self) -> RenderedContent:
        if isinstance(self.value, str):
            body = self.value.encode("utf-8")
        elif isinstance(self.value, (bytes, bytearray)):
            body = bytes(self.value)
        else:
            body = json.dumps(self.value).encode("utf-8")
        return RenderedContent(body, _with_charset(JSON_CONTENT_TYPE, "utf-8"))


@dataclass(frozen=True)
class TextContent:
    value: str
    content_type: str = PLAIN_TEXT_CONTENT_TYPE
    encoding: str = "utf-8"

    def render(self) -> RenderedContent:
        return RenderedContent(self.value.encode(self.encoding), _with_charset(self.content_type, self.encoding))


@dataclass(frozen=True)
class StreamContent:
    """Content drained from a stream once, when the recipe is configured."""

    data: bytes
    content_type: str = PLAIN_TEXT_CONTENT_TYPE

    @classmethod
    def from_stream(cls, stream: IO[Any], content_type: str = PLAIN_TEXT_CONTENT_TYPE) -> "StreamContent":
        return cls(read_stream(stream), content_type)

    def render(self) -> RenderedContent:
        return RenderedContent(self.data, self.content_type)


@dataclass(frozen=True)
class BytesContent:
    data: bytes
    content_type: str
    encoding: str | None = None

    def render(self) -> RenderedContent:
        return RenderedContent(bytes(self.data), _with_charset(self.content_type, self.encoding))


@dataclass(frozen=True)
class SupplierContent:
    """Content produced by a callable on every build.

    The supplier may return another content shape, ``bytes``, ``str`` (sent as
    plain text), any JSON-serializable object, or ``None`` for no content.
    """

    supplier: Callable[[], Any]

    def render(self) -> RenderedContent | None:
        return render_value(self.supplier())


ResponseContent = Union[JsonContent, TextContent, StreamContent, BytesContent, SupplierContent]


def render_value(value: Any) -> RenderedContent | None:
    if value is None:
        return None
    if isinstance(value, RenderedContent):
        return value
    if hasattr(value, "render"):
        return value.render()
    if isinstance(value, (bytes, bytearray)):
        return RenderedContent(bytes(value), "application/octet-stream")
    if isinstance(value, str):
        return TextContent(value).render()
    return JsonContent(value).render()
