"""
Shared test fixtures and helpers for the provio test suite.
"""

from typing import List

import pytest

from provio.config import reset_config
from provio.diagnostics import DiagnosticEvent, diagnostics

# Import fixtures so pytest can discover them
from provio.testing import (  # noqa: F401
    isolated_config,
    resolver_spy,
)


class RecordingListener:
    """Diagnostic listener keeping every event."""

    def __init__(self):
        self.events: List[DiagnosticEvent] = []

    def on_event(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def types(self) -> list:
        return [event.type for event in self.events]


@pytest.fixture(autouse=True)
def _clean_globals():
    """Every test starts from the default config and no listeners."""
    reset_config()
    for listener in diagnostics.listeners:
        diagnostics.remove_listener(listener)
    yield
    reset_config()
    for listener in diagnostics.listeners:
        diagnostics.remove_listener(listener)


@pytest.fixture
def recorder():
    listener = RecordingListener()
    diagnostics.add_listener(listener)
    yield listener
    diagnostics.remove_listener(listener)
