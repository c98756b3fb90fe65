"""Inbound request view consumed by matchers, recipes and fallback delegates."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

CONTENT_HEADER_NAMES = frozenset(
    {
        "content-type",
        "content-length",
        "content-encoding",
        "content-language",
        "content-location",
        "content-disposition",
        "content-md5",
        "content-range",
        "expires",
        "last-modified",
    }
)


@dataclass
class MockRequest:
    """A fully-read HTTP request received by the mock server.

    Header lookups are case-insensitive. The body is decoded lazily and cached,
    so several content predicates can inspect it without re-reading anything.
    """

    method: str
    path: str
    query: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    base_url: str = "http://localhost"
    _text: str | None = field(default=None, init=False, repr=False, compare=False)
    _json: Any = field(default=None, init=False, repr=False, compare=False)
    _json_loaded: bool = field(default=False, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if "?" in self.path and not self.query:
            self.path, self.query = self.path.split("?", 1)

    @property
    def uri(self) -> str:
        uri = f"{self.base_url.rstrip('/')}{self.path}"
        return f"{uri}?{self.query}" if self.query else uri

    @property
    def query_params(self) -> dict[str, str]:
        # Repeated names keep the first value
        params: dict[str, str] = {}
        for name, value in parse_qsl(self.query, keep_blank_values=True):
            params.setdefault(name, value)
        return params

    @property
    def content_type(self) -> str | None:
        return self.header("Content-Type")

    @property
    def request_headers(self) -> dict[str, str]:
        return {k: v for k, v in self.headers.items() if k.lower() not in CONTENT_HEADER_NAMES}

    @property
    def content_headers(self) -> dict[str, str]:
        return {k: v for k, v in self.headers.items() if k.lower() in CONTENT_HEADER_NAMES}

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def has_header(self, name: str) -> bool:
        return self.header(name) is not None

    def content_as_string(self) -> str:
        with self._lock:
            if self._text is None:
                self._text = self.body.decode("utf-8", errors="replace")
            return self._text

    def content_as_json(self) -> Any:
        text = self.content_as_string()
        with self._lock:
            if not self._json_loaded:
                self._json = json.loads(text) if text.strip() else None
                self._json_loaded = True
            return self._json
