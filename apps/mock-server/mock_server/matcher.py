"""Ordered composite of request predicates with a per-matcher occurrence counter."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable

from . import predicates
from .errors import MockConfigurationError
from .predicates import PathConstraint, PathMatchType
from .request import MockRequest


class MatchCounter:
    """Thread-safe count of requests that satisfied every non-count constraint."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


@dataclass(frozen=True)
class MatchResult:
    is_match: bool
    reason: str | None = None


def _require(values: Iterable[Any], argument: str) -> tuple[Any, ...]:
    values = tuple(values)
    if not values:
        raise MockConfigurationError(f"At least one value is required for '{argument}'")
    return values


def _merge(existing: tuple[Any, ...], new: Iterable[Any]) -> tuple[Any, ...]:
    merged = list(existing)
    for value in new:
        if value not in merged:
            merged.append(value)
    return tuple(merged)


@dataclass(frozen=True, eq=False)
class RequestMatcher:
    """Immutable set of match conditions for a mocked request.

    ``RequestMatcher.create()`` matches every request. Each ``using_*``,
    ``from_action`` or ``with_*`` call returns a new matcher (with a fresh
    occurrence counter) so a partially configured matcher can be shared and
    extended safely.

    Values of the same kind are OR-ed (any configured method, any path),
    different kinds are AND-ed. Headers and query parameters are AND-ed by
    name; a ``None`` value only checks that the name is present.
    """

    methods: tuple[str, ...] = ()
    action_names: tuple[str, ...] = ()
    paths: tuple[PathConstraint, ...] = ()
    headers: dict[str, str | None] = field(default_factory=dict)
    query_params: dict[str, str | None] = field(default_factory=dict)
    content_types: tuple[str, ...] = ()
    string_content: Callable[[str], bool] | None = None
    json_content: Callable[[Any], bool] | None = None
    match_counts: frozenset[int] = frozenset()
    not_match_counts: frozenset[int] = frozenset()
    counter: MatchCounter = field(default_factory=MatchCounter, repr=False)

    @classmethod
    def create(cls) -> "RequestMatcher":
        return cls()

    @property
    def match_count(self) -> int:
        return self.counter.value

    def _evolve(self, **changes: Any) -> "RequestMatcher":
        return replace(self, counter=MatchCounter(), **changes)

    def using_any_method(self) -> "RequestMatcher":
        return self._evolve(methods=())

    def using_get(self) -> "RequestMatcher":
        return self.using_method("GET")

    def using_post(self) -> "RequestMatcher":
        return self.using_method("POST")

    def using_put(self) -> "RequestMatcher":
        return self.using_method("PUT")

    def using_patch(self) -> "RequestMatcher":
        return self.using_method("PATCH")

    def using_delete(self) -> "RequestMatcher":
        return self.using_method("DELETE")

    def using_method(self, *methods: str) -> "RequestMatcher":
        methods = _require(methods, "methods")
        return self._evolve(methods=_merge(self.methods, (m.upper() for m in methods)))

    def from_action(self, *action_names: str) -> "RequestMatcher":
        action_names = _require(action_names, "action_names")
        return self._evolve(action_names=_merge(self.action_names, action_names))

    def with_path(self, match_type: PathMatchType | str, *paths: str) -> "RequestMatcher":
        paths = _require(paths, "paths")
        match_type = PathMatchType(match_type)
        return self._evolve(paths=self.paths + tuple(PathConstraint(p, match_type) for p in paths))

    def with_header(self, name: str, value: str | None = None) -> "RequestMatcher":
        if not name:
            raise MockConfigurationError("A header name is required")
        return self._evolve(headers={**self.headers, name: value})

    def with_query_param(self, name: str, value: str | None = None) -> "RequestMatcher":
        if not name:
            raise MockConfigurationError("A query parameter name is required")
        return self._evolve(query_params={**self.query_params, name: value})

    def with_content_type(self, *content_types: str) -> "RequestMatcher":
        content_types = _require(content_types, "content_types")
        return self._evolve(content_types=_merge(self.content_types, content_types))

    def with_content_as_string(self, predicate: Callable[[str], bool]) -> "RequestMatcher":
        if predicate is None:
            raise MockConfigurationError("A string content predicate is required")
        return self._evolve(string_content=predicate)

    def with_content_as_json(self, predicate: Callable[[Any], bool]) -> "RequestMatcher":
        if predicate is None:
            raise MockConfigurationError("A JSON content predicate is required")
        return self._evolve(json_content=predicate)

    def with_match_count(self, *counts: int) -> "RequestMatcher":
        counts = _require(counts, "counts")
        return self._evolve(match_counts=self.match_counts | frozenset(counts))

    def with_not_match_count(self, *counts: int) -> "RequestMatcher":
        counts = _require(counts, "counts")
        return self._evolve(not_match_counts=self.not_match_counts | frozenset(counts))

    def match(self, request: MockRequest) -> MatchResult:
        """Evaluate the request; only a request passing every other gate is counted."""

        reason = (
            predicates.check_method(request, self.methods)
            or predicates.check_action_name(request, self.action_names)
            or predicates.check_path(request, self.paths)
            or predicates.check_headers(request, self.headers)
            or predicates.check_query_params(request, self.query_params)
            or predicates.check_content_type(request, self.content_types)
            or predicates.check_string_content(request, self.string_content)
            or predicates.check_json_content(request, self.json_content)
        )
        if reason:
            return MatchResult(False, reason)

        count = self.counter.increment()
        reason = predicates.check_match_count(count, self.match_counts, self.not_match_counts)
        if reason:
            return MatchResult(False, reason)
        return MatchResult(True)
