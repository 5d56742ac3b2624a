"""
Random quest: promote one random "someday" item to "today" as a nudge.
"""
import logging
import random
from typing import Optional

from .schema import FlowItem, ItemStatus
from .store import FlowItemStore

logger = logging.getLogger(__name__)

QUEST_MINUTES = 30


class EmptyPool(Exception):
    """Raised when there is no someday item to pick from."""
    pass


class RandomQuestPicker:
    """Picks uniformly among someday items. Pass a seeded Random for repeatable picks."""

    def __init__(self, store: FlowItemStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()

    def pick(self) -> FlowItem:
        pool = self.store.by_status(ItemStatus.SOMEDAY)
        if not pool:
            raise EmptyPool("The someday list is empty. Dump some ideas first!")

        chosen = self.rng.choice(pool)
        moved = self.store.move(chosen.id, ItemStatus.TODAY)
        logger.info(f"Quest for {self.store.principal_id}: {chosen.id} promoted to today")
        return moved


def quest_message(item: FlowItem) -> str:
    return f'Today\'s random quest: how about investing just {QUEST_MINUTES} minutes in "{item.title}"?'
