"""
Board state machine and derived views.

Any status can be reached from any other through FlowItemStore.move; the
board only restricts what it *offers*. Done items are offered no moves,
which makes done terminal under normal interaction.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List

from .schema import FlowItem, ItemStatus


@dataclass(frozen=True)
class Column:
    status: ItemStatus
    title: str


BOARD_COLUMNS = (
    Column(ItemStatus.TODAY, "Today"),
    Column(ItemStatus.THIS_WEEK, "This Week"),
    Column(ItemStatus.SOON, "Soon"),
    Column(ItemStatus.SOMEDAY, "Someday"),
)

# Moves the board offers on a card, in button order
OFFERED_MOVES = (
    ItemStatus.TODAY,
    ItemStatus.THIS_WEEK,
    ItemStatus.SOMEDAY,
    ItemStatus.DONE,
)

TERMINAL_STATUSES = frozenset({ItemStatus.DONE})


def is_terminal(status) -> bool:
    return ItemStatus.coerce(status) in TERMINAL_STATUSES


def available_moves(item: FlowItem) -> List[ItemStatus]:
    """Statuses the board offers for item."""
    if is_terminal(item.status):
        return []
    return [status for status in OFFERED_MOVES if status != item.status]


def group_by_status(items: Iterable[FlowItem]) -> Dict[ItemStatus, List[FlowItem]]:
    """Every status mapped to its items, preserving input order."""
    groups: Dict[ItemStatus, List[FlowItem]] = {status: [] for status in ItemStatus}
    for item in items:
        groups[item.status].append(item)
    return groups


def board_view(items: Iterable[FlowItem]) -> List[Dict]:
    """Board columns with their items, for presentation."""
    groups = group_by_status(items)
    return [
        {
            "status": column.status.value,
            "title": column.title,
            "items": groups[column.status],
        }
        for column in BOARD_COLUMNS
    ]


def inbox_items(items: Iterable[FlowItem]) -> List[FlowItem]:
    return group_by_status(items)[ItemStatus.INBOX]


def completed_items(items: Iterable[FlowItem]) -> List[FlowItem]:
    return group_by_status(items)[ItemStatus.DONE]
