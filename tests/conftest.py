"""Shared fixtures for flowboard tests."""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Ensure the project root is importable without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from flowboard.classifier import Classifier
from flowboard.persistence import InMemoryAdapter, PersistenceError
from flowboard.schema import Analysis, FlowItem, ItemStatus, ItemType
from flowboard.store import FlowItemStore

T0 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 1) -> datetime:
        self.now += timedelta(minutes=minutes)
        return self.now


class StubClassifier(Classifier):
    """Returns a canned response and records every call."""

    def __init__(self, response=None, error=None, gate=None):
        self.response = response
        self.error = error
        self.gate = gate          # threading.Event to hold the call open
        self.calls = []

    def classify(self, text, now_text):
        self.calls.append((text, now_text))
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        if isinstance(self.response, str) or self.response is None:
            return self.response
        return json.dumps(self.response)


class FlakyAdapter(InMemoryAdapter):
    """In-memory adapter whose saves fail while `failing` is set."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def save(self, principal_id, payload):
        if self.failing:
            raise PersistenceError("disk full")
        super().save(principal_id, payload)


def classifier_response(items, overloaded=False, suggestion="Looks fine."):
    return {
        "items": items,
        "reality_check": {"is_overloaded": overloaded, "suggestion": suggestion},
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def adapter():
    return InMemoryAdapter()


@pytest.fixture
def store(adapter, clock):
    return FlowItemStore("user-1", adapter, clock=clock)


@pytest.fixture
def make_item():
    """Factory for FlowItems with sensible defaults."""
    counter = {"n": 0}

    def _make(item_id=None, type=ItemType.TASK, status=ItemStatus.INBOX,
              minutes=None, title=None):
        counter["n"] += 1
        n = counter["n"]
        completed_at = T0 if status == ItemStatus.DONE else None
        return FlowItem(
            id=item_id or f"item-{n}",
            type=type,
            title=title or f"Item {n}",
            status=status,
            analysis=Analysis(estimated_minutes=minutes) if minutes is not None else None,
            created_at=T0,
            updated_at=T0,
            completed_at=completed_at,
        )

    return _make
