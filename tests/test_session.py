"""
Tests for FlowSession capture flow and SessionManager lifecycle.
"""
import asyncio

import pytest

from flowboard.analyzer import AnalysisError, CaptureAnalyzer
from flowboard.classifier import ClassificationError
from flowboard.events import (
    EventBus,
    ITEMS_ADDED,
    OVERLOAD_WARNING,
    QUEST_PICKED,
    SESSION_ENDED,
    SESSION_STARTED,
)
from flowboard.persistence import InMemoryAdapter, PersistenceError
from flowboard.quest import EmptyPool
from flowboard.schema import ItemStatus, ItemType
from flowboard.session import FlowSession, SessionManager
from flowboard.store import FlowItemStore

from conftest import FakeClock, FlakyAdapter, StubClassifier, classifier_response


DUMP = [
    {"type": "schedule", "title": "Dentist", "datetime": "2026-10-20T15:00:00Z", "estimated_minutes": 60},
    {"type": "task", "title": "Tax report", "priority": "high", "estimated_minutes": 120},
    {"type": "idea", "title": "Plant app", "tags": ["business"]},
]


def make_session(store, response=None, error=None):
    classifier = StubClassifier(response, error=error)
    return FlowSession(store, CaptureAnalyzer(classifier, clock=store.clock)), classifier


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Capture
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_capture_adds_items_by_type(store):
    session, _ = make_session(store, classifier_response(DUMP))

    result = asyncio.run(session.capture("dentist tomorrow 3pm, taxes, plant app"))

    assert result.ok
    statuses = {i.title: i.status for i in store.items}
    assert statuses == {
        "Dentist": ItemStatus.TODAY,
        "Tax report": ItemStatus.INBOX,
        "Plant app": ItemStatus.SOMEDAY,
    }
    # Batch order is kept at the head of the store
    assert [i.title for i in store.items] == ["Dentist", "Tax report", "Plant app"]
    assert session.reality_check.is_overloaded is False
    assert session.overload_warned is False


def test_second_capture_goes_first(store):
    session, classifier = make_session(store, classifier_response([{"type": "task", "title": "Old"}]))
    asyncio.run(session.capture("old"))
    classifier.response = classifier_response([{"type": "task", "title": "New"}])
    asyncio.run(session.capture("new"))
    assert [i.title for i in store.items] == ["New", "Old"]


def test_overload_sets_flag_and_emits(store):
    warnings = []
    store.events.subscribe(OVERLOAD_WARNING, lambda **kw: warnings.append(kw["suggestion"]))
    session, _ = make_session(store, classifier_response(DUMP, overloaded=True, suggestion="Pick three."))

    result = asyncio.run(session.capture("way too much"))

    assert result.is_overloaded
    assert session.overload_warned
    assert warnings == ["Pick three."]
    assert session.achievements()["Reality Check"] is True


def test_overload_warning_is_sticky(store):
    session, classifier = make_session(store, classifier_response(DUMP, overloaded=True))
    asyncio.run(session.capture("too much"))
    classifier.response = classifier_response([{"type": "task", "title": "Small"}])
    asyncio.run(session.capture("small"))
    assert session.reality_check.is_overloaded is False
    assert session.overload_warned is True


@pytest.mark.parametrize("response,error", [
    (None, ClassificationError("HTTP 500")),
    ("not json", None),
    ({"items": [{"type": "task"}]}, None),
])
def test_failed_capture_leaves_store_unchanged(store, adapter, response, error):
    session, _ = make_session(store, response, error=error)

    result = asyncio.run(session.capture("something"))

    assert isinstance(result.error, AnalysisError)
    assert store.items == []
    assert adapter.writes == 0
    assert session.reality_check is None


def test_capture_that_cannot_be_saved_changes_nothing(clock):
    adapter = FlakyAdapter()
    store = FlowItemStore("user-1", adapter, clock=clock)
    warnings = []
    store.events.subscribe(OVERLOAD_WARNING, lambda **kw: warnings.append(kw))
    session, _ = make_session(store, classifier_response(DUMP, overloaded=True))

    adapter.failing = True
    with pytest.raises(PersistenceError):
        asyncio.run(session.capture("stuff"))

    assert store.items == []
    assert session.reality_check is None
    assert session.overload_warned is False
    assert warnings == []
    assert not session.analyzer.is_busy

    adapter.failing = False
    asyncio.run(session.capture("stuff"))
    assert len(store) == 3


def test_blank_capture_is_ignored(store):
    session, classifier = make_session(store, classifier_response(DUMP))
    assert asyncio.run(session.capture("")) is None
    assert asyncio.run(session.capture("  \n ")) is None
    assert classifier.calls == []


def test_board_and_insights(store):
    session, _ = make_session(store, classifier_response(DUMP))
    asyncio.run(session.capture("stuff"))

    board = session.board()
    assert [c["status"] for c in board["columns"]] == ["today", "this_week", "soon", "someday"]
    assert [i.title for i in board["inbox"]] == ["Tax report"]
    assert board["done"] == []
    assert board["today_minutes"] == 60

    insights = session.insights()
    assert insights["stats"]["total"] == 3
    assert {b["name"] for b in insights["badges"]} >= {"Starter", "Finisher"}
    assert insights["coaching"]


def test_pick_quest_emits(store):
    picked = []
    store.events.subscribe(QUEST_PICKED, lambda **kw: picked.append(kw["item"].title))
    session, _ = make_session(store, classifier_response(DUMP))

    with pytest.raises(EmptyPool):
        session.pick_quest()

    asyncio.run(session.capture("stuff"))
    item = session.pick_quest()
    assert item.title == "Plant app"
    assert item.status == ItemStatus.TODAY
    assert picked == ["Plant app"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Session Manager
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@pytest.fixture
def manager():
    return SessionManager(
        InMemoryAdapter(),
        StubClassifier(classifier_response(DUMP)),
        clock=FakeClock(),
    )


def test_session_start_is_idempotent(manager):
    started = []
    manager.events.subscribe(SESSION_STARTED, lambda **kw: started.append(kw["principal_id"]))

    first = manager.on_session_start("alice")
    again = manager.on_session_start("alice")

    assert first is again
    assert started == ["alice"]
    assert manager.get("alice") is first


def test_session_requires_principal(manager):
    with pytest.raises(ValueError):
        manager.on_session_start("")


def test_session_end_keeps_saved_board(manager):
    ended = []
    manager.events.subscribe(SESSION_ENDED, lambda **kw: ended.append(kw["principal_id"]))

    session = manager.on_session_start("alice")
    asyncio.run(session.capture("stuff"))
    assert manager.on_session_end("alice") is True
    assert manager.on_session_end("alice") is False
    assert manager.get("alice") is None
    assert ended == ["alice"]

    reopened = manager.on_session_start("alice")
    assert reopened is not session
    assert len(reopened.store) == 3


def test_sessions_are_scoped_by_principal(manager):
    added = []
    manager.events.subscribe(ITEMS_ADDED, lambda **kw: added.append(kw["principal_id"]))

    alice = manager.on_session_start("alice")
    bob = manager.on_session_start("bob")
    asyncio.run(alice.capture("stuff"))

    assert len(alice.store) == 3
    assert len(bob.store) == 0
    assert added == ["alice"]

    dentist = next(i for i in alice.store.items if i.type == ItemType.SCHEDULE)
    assert bob.move(dentist.id, "done") is None
    assert bob.delete(dentist.id) is False
    assert alice.store.get(dentist.id).status == ItemStatus.TODAY


def test_custom_event_bus_is_shared():
    bus = EventBus()
    manager = SessionManager(InMemoryAdapter(), StubClassifier(classifier_response([])), events=bus)
    assert manager.on_session_start("alice").events is bus
