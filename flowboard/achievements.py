"""
Achievements, coaching and board statistics.

Everything here is recomputed from the current items on every read; the
only input not derivable from items is whether an overload warning has
been raised during the session.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List

from .schema import FlowItem, ItemStatus, ItemType

BUSY_TODAY_THRESHOLD = 5


@dataclass(frozen=True)
class Badge:
    name: str
    description: str
    predicate: Callable[[List[FlowItem], bool], bool]


BADGES = (
    Badge(
        "Starter",
        "Dumped more than 5 thoughts",
        lambda items, warned: len(items) > 5,
    ),
    Badge(
        "Finisher",
        "Actually finished something",
        lambda items, warned: sum(1 for i in items if i.status == ItemStatus.DONE) > 1,
    ),
    Badge(
        "Idea Bank",
        "More than 10 almost-world-changing ideas",
        lambda items, warned: sum(1 for i in items if i.type == ItemType.IDEA) > 10,
    ),
    Badge(
        "Reality Check",
        "Got warned about a reckless plan",
        lambda items, warned: warned,
    ),
)


def evaluate_achievements(items: Iterable[FlowItem], overload_warned: bool = False) -> Dict[str, bool]:
    """Badge name → unlocked."""
    items = list(items)
    return {badge.name: bool(badge.predicate(items, overload_warned)) for badge in BADGES}


def badge_report(items: Iterable[FlowItem], overload_warned: bool = False) -> List[Dict[str, Any]]:
    unlocked = evaluate_achievements(items, overload_warned)
    return [
        {"name": b.name, "description": b.description, "unlocked": unlocked[b.name]}
        for b in BADGES
    ]


def coaching_message(items: Iterable[FlowItem]) -> str:
    today = sum(1 for i in items if i.status == ItemStatus.TODAY)
    if today > BUSY_TODAY_THRESHOLD:
        return "That's a lot for today. ENTPs may thrive under pressure, but this is pushing it..."
    return "Plenty of energy today? Spin a random quest!"


def board_stats(items: Iterable[FlowItem]) -> Dict[str, Any]:
    """Counts by status, type and priority plus today's planned hours."""
    items = list(items)
    stats: Dict[str, Any] = {
        "total": len(items),
        "by_status": {s.value: 0 for s in ItemStatus},
        "by_type": {t.value: 0 for t in ItemType},
        "by_priority": {},
    }
    for item in items:
        stats["by_status"][item.status.value] += 1
        stats["by_type"][item.type.value] += 1
        if item.analysis and item.analysis.priority:
            pri = item.analysis.priority.value
            stats["by_priority"][pri] = stats["by_priority"].get(pri, 0) + 1

    today_minutes = sum(i.estimated_minutes for i in items if i.status == ItemStatus.TODAY)
    stats["today_minutes"] = today_minutes
    stats["today_hours"] = round(today_minutes / 60, 1)
    return stats
