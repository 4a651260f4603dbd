"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for datadog_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from datadog_mock import MockDatadogApi  # noqa: E402


@pytest.fixture
def api() -> MockDatadogApi:
    """Empty in-memory Datadog."""
    return MockDatadogApi()
