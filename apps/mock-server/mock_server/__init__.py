"""Embedded HTTP mock server with ordered request matching for workflow tests."""

from .content import JsonContent, RenderedContent, TextContent
from .errors import HarnessError, MockConfigurationError, MockResponseError
from .matcher import MatchResult, RequestMatcher
from .predicates import ACTION_NAME_HEADER, PathMatchType
from .registry import CapturedRequest, MockRegistry, MockRule
from .request import MockRequest
from .response import MockResponse, MockResponseBuilder, RandomSource, json_response
from .server import MockHttpServer

__all__ = [
    "ACTION_NAME_HEADER",
    "CapturedRequest",
    "HarnessError",
    "JsonContent",
    "MatchResult",
    "MockConfigurationError",
    "MockHttpServer",
    "MockRegistry",
    "MockRequest",
    "MockResponse",
    "MockResponseBuilder",
    "MockResponseError",
    "MockRule",
    "PathMatchType",
    "RandomSource",
    "RenderedContent",
    "RequestMatcher",
    "TextContent",
    "json_response",
]
