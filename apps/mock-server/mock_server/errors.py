"""Error hierarchy shared by the mock server and the workflow runner."""

from __future__ import annotations


class HarnessError(Exception):
    """Base class for every error raised by the test harness."""


class MockConfigurationError(HarnessError, ValueError):
    """A mock rule, matcher or response builder was configured incorrectly.

    Raised synchronously at configuration time (duplicate rule names, invalid
    delay ranges, missing arguments) so the test fails before the workflow runs.
    """


class MockResponseError(HarnessError):
    """Matching a request or building its mocked response failed."""

    def __init__(self, message: str, *, method: str | None = None, uri: str | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.uri = uri
