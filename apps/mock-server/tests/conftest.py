"""Test bootstrap for mock-server."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

APP_ROOT = Path(__file__).resolve().parents[1]

path_str = str(APP_ROOT)
if path_str not in sys.path:
    sys.path.insert(0, path_str)

from mock_server.registry import MockRegistry  # noqa: E402
from mock_server.response import RandomSource  # noqa: E402
from mock_server.server import MockHttpServer  # noqa: E402


@pytest.fixture
def registry() -> MockRegistry:
    return MockRegistry(random_source=RandomSource(seed=7))


@pytest.fixture
def server(registry: MockRegistry):
    with MockHttpServer(registry, host="127.0.0.1", port=0) as running:
        yield running
