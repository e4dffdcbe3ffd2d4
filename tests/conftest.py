from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """
    Ensure `src/` is on sys.path so tests can import `flowly`
    without requiring an editable install.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"
    sys.path.insert(0, str(src_root))


@pytest.fixture
def store():
    from flowly.core.store import GraphStore
    return GraphStore()


@pytest.fixture
def recorder(store):
    """Subscribe to every store event and record (event name, payload)."""
    from flowly.core.events import GraphEvent

    received: list[tuple[str, tuple]] = []
    for event in GraphEvent:
        store.events.subscribe(
            event, lambda *payload, _name=event.value: received.append((_name, payload))
        )
    return received
