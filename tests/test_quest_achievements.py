"""
Tests for the random quest picker, achievements and board statistics.
"""
import random

import pytest

from flowboard.achievements import (
    BUSY_TODAY_THRESHOLD,
    badge_report,
    board_stats,
    coaching_message,
    evaluate_achievements,
)
from flowboard.quest import EmptyPool, QUEST_MINUTES, RandomQuestPicker, quest_message
from flowboard.schema import Analysis, ItemStatus, ItemType, Priority
from flowboard.store import FlowItemStore


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Random Quest
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_empty_pool_raises_and_changes_nothing(store, make_item, adapter):
    store.add([make_item("a", status=ItemStatus.INBOX), make_item("b", status=ItemStatus.DONE)])
    writes = adapter.writes
    before = [i.to_dict() for i in store.items]

    with pytest.raises(EmptyPool):
        RandomQuestPicker(store).pick()

    assert [i.to_dict() for i in store.items] == before
    assert adapter.writes == writes


def test_single_candidate_is_always_picked(store, make_item, clock):
    store.add([
        make_item("a", status=ItemStatus.INBOX),
        make_item("idea", type=ItemType.IDEA, status=ItemStatus.SOMEDAY),
    ])
    later = clock.advance(10)

    picked = RandomQuestPicker(store).pick()
    assert picked.id == "idea"
    assert picked.status == ItemStatus.TODAY
    assert picked.updated_at == later
    assert store.by_status(ItemStatus.SOMEDAY) == []


def test_seeded_picks_are_repeatable(make_item, adapter, clock):
    def run(seed):
        s = FlowItemStore(f"seed-{seed}", adapter, clock=clock)
        s.add([make_item(f"i{n}", type=ItemType.IDEA, status=ItemStatus.SOMEDAY) for n in range(10)])
        return RandomQuestPicker(s, rng=random.Random(seed)).pick().id

    assert run(42) == run(42)


def test_only_someday_items_are_candidates(store, make_item):
    store.add([
        make_item("t", status=ItemStatus.TODAY),
        make_item("w", status=ItemStatus.THIS_WEEK),
        make_item("s1", type=ItemType.IDEA, status=ItemStatus.SOMEDAY),
        make_item("s2", type=ItemType.IDEA, status=ItemStatus.SOMEDAY),
    ])
    picker = RandomQuestPicker(store, rng=random.Random(7))
    first = picker.pick()
    second = picker.pick()
    assert {first.id, second.id} == {"s1", "s2"}
    with pytest.raises(EmptyPool):
        picker.pick()


def test_quest_message_mentions_title(make_item):
    msg = quest_message(make_item(title="Learn the theremin"))
    assert "Learn the theremin" in msg
    assert str(QUEST_MINUTES) in msg


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Achievements
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_no_badges_on_empty_board():
    assert evaluate_achievements([]) == {
        "Starter": False,
        "Finisher": False,
        "Idea Bank": False,
        "Reality Check": False,
    }


def test_starter_needs_more_than_five_items(make_item):
    assert not evaluate_achievements([make_item() for _ in range(5)])["Starter"]
    assert evaluate_achievements([make_item() for _ in range(6)])["Starter"]


def test_finisher_needs_more_than_one_done(make_item):
    one = [make_item(status=ItemStatus.DONE)]
    two = one + [make_item(status=ItemStatus.DONE)]
    assert not evaluate_achievements(one)["Finisher"]
    assert evaluate_achievements(two)["Finisher"]


def test_idea_bank_needs_more_than_ten_ideas(make_item):
    ideas = [make_item(type=ItemType.IDEA, status=ItemStatus.SOMEDAY) for _ in range(10)]
    assert not evaluate_achievements(ideas)["Idea Bank"]
    ideas.append(make_item(type=ItemType.IDEA, status=ItemStatus.SOMEDAY))
    assert evaluate_achievements(ideas)["Idea Bank"]


def test_reality_check_follows_overload_flag():
    assert evaluate_achievements([], overload_warned=True)["Reality Check"]


def test_badge_report_lists_every_badge(make_item):
    report = badge_report([make_item() for _ in range(6)])
    assert [b["name"] for b in report] == ["Starter", "Finisher", "Idea Bank", "Reality Check"]
    assert report[0]["unlocked"] is True
    assert all(b["description"] for b in report)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Coaching & Stats
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_coaching_message_depends_on_today_load(make_item):
    calm = [make_item(status=ItemStatus.TODAY) for _ in range(BUSY_TODAY_THRESHOLD)]
    busy = calm + [make_item(status=ItemStatus.TODAY)]
    assert coaching_message(calm) != coaching_message(busy)
    assert "random quest" in coaching_message(calm)


def test_board_stats(make_item):
    items = [
        make_item(status=ItemStatus.TODAY, minutes=30),
        make_item(status=ItemStatus.TODAY, minutes=60),
        make_item(type=ItemType.IDEA, status=ItemStatus.SOMEDAY),
        make_item(status=ItemStatus.DONE, minutes=200),
    ]
    items[0].analysis.priority = Priority.HIGH
    items[1].analysis = Analysis(priority=Priority.HIGH, estimated_minutes=60)

    stats = board_stats(items)
    assert stats["total"] == 4
    assert stats["by_status"]["today"] == 2
    assert stats["by_status"]["inbox"] == 0
    assert stats["by_type"] == {"schedule": 0, "task": 3, "idea": 1}
    assert stats["by_priority"] == {"high": 2}
    assert stats["today_minutes"] == 90
    assert stats["today_hours"] == 1.5
