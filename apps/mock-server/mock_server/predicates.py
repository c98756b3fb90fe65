"""Single-criterion request checks used by the request matcher.

Each check returns ``None`` when the request passes and a human readable
reason when it does not. The reasons end up in the matching trace of the
captured request.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from .request import MockRequest

ACTION_NAME_HEADER = "x-ms-workflow-operation-name"


class PathMatchType(str, Enum):
    """How a configured path is compared with the request path."""

    EXACT = "exact"
    CONTAINS = "contains"
    ENDS_WITH = "ends_with"


@dataclass(frozen=True)
class PathConstraint:
    path: str
    match_type: PathMatchType = PathMatchType.EXACT

    def matches(self, request_path: str) -> bool:
        if self.match_type is PathMatchType.EXACT:
            return request_path == self.path
        if self.match_type is PathMatchType.CONTAINS:
            return self.path in request_path
        return request_path.endswith(self.path)


def _quoted(values: Any) -> str:
    return ", ".join(f"'{value}'" for value in values)


def check_method(request: MockRequest, methods: tuple[str, ...]) -> str | None:
    if methods and request.method not in methods:
        return f"The request method '{request.method}' is not matched with {', '.join(methods)}"
    return None


def check_action_name(request: MockRequest, action_names: tuple[str, ...]) -> str | None:
    if not action_names:
        return None
    actual = request.header(ACTION_NAME_HEADER)
    if actual is None:
        return (
            f"The action name header '{ACTION_NAME_HEADER}' does not exist in the request so matching has failed"
            " - the header is only sent by the workflow host when workflow headers are not suppressed for the action"
        )
    if actual not in action_names:
        return f"The action name '{actual}' is not matched with {_quoted(action_names)}"
    return None


def check_path(request: MockRequest, paths: tuple[PathConstraint, ...]) -> str | None:
    if paths and not any(constraint.matches(request.path) for constraint in paths):
        return f"The request absolute path '{request.path}' is not matched"
    return None


def check_headers(request: MockRequest, headers: Mapping[str, str | None]) -> str | None:
    if not headers:
        return None
    if not request.headers:
        return "The request does not have any headers so matching has failed"
    for name, expected in headers.items():
        actual = request.header(name)
        if actual is None:
            return f"The request does not contain a header named '{name}'"
        if expected is not None and actual != expected:
            return (
                f"The request contains a header named '{name}' but the value is '{actual}'"
                f" and the test is expecting a value of '{expected}'"
            )
    return None


def check_query_params(request: MockRequest, params: Mapping[str, str | None]) -> str | None:
    if not params:
        return None
    actual_params = request.query_params
    if not actual_params:
        return "The request does not have any query parameters so matching has failed"
    for name, expected in params.items():
        if name not in actual_params:
            return f"The request does not contain a query parameter named '{name}'"
        actual = actual_params[name]
        if expected is not None and actual != expected:
            return (
                f"The request contains a query parameter named '{name}' but the value is '{actual}'"
                f" and the test is expecting a value of '{expected}'"
            )
    return None


def check_content_type(request: MockRequest, content_types: tuple[str, ...]) -> str | None:
    if content_types and request.content_type not in content_types:
        return f"The request content type '{request.content_type}' is not matched with {_quoted(content_types)}"
    return None


def check_string_content(request: MockRequest, predicate: Callable[[str], bool] | None) -> str | None:
    if predicate is not None and not predicate(request.content_as_string()):
        return "The request content is not matched"
    return None


def check_json_content(request: MockRequest, predicate: Callable[[Any], bool] | None) -> str | None:
    if predicate is not None and not predicate(request.content_as_json()):
        return "The JSON request content is not matched"
    return None


def check_match_count(count: int, allowed: frozenset[int], denied: frozenset[int]) -> str | None:
    if allowed and count not in allowed:
        return f"The current request match count is {count} which is not matched with {', '.join(map(str, sorted(allowed)))}"
    if denied and count in denied:
        return (
            f"The current request match count is {count} which is not matched with NOT"
            f" {', '.join(map(str, sorted(denied)))}"
        )
    return None
