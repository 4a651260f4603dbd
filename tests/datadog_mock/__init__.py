"""Datadog API Mock for Integration Testing.

This module provides an in-memory stand-in for ddsync.api.DatadogApi so the
planner and executor can be exercised without network access.

Key Features:
- In-memory state per resource kind with provider-assigned ids
- Read-only fields the provider adds (created, modified, ...)
- Dashboards listed as summaries, completed via show()
- Synthetic tests create their own "synthetics alert" monitor
- Error injection for testing failure scenarios

Usage:
    from datadog_mock import MockDatadogApi

    api = MockDatadogApi()
    api.seed(ResourceKind.MONITOR, {"id": 1, "name": "foo", "message": "..."})

    plan = Syncer(api, resources).plan()
    Executor(api).execute(plan)

    assert api.count(ResourceKind.MONITOR) == 2
"""

from .api import MockDatadogApi
from .state import MockDatadogState

__all__ = [
    "MockDatadogApi",
    "MockDatadogState",
]
