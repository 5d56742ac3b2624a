"""
FlowItem store: the canonical, ordered item collection for one principal.

Items are kept newest-first. Every add/move/delete is saved through the
persistence adapter before it becomes visible, then announced on the
event bus. A failed save leaves the store as it was.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from .events import EventBus, ITEMS_ADDED, ITEM_MOVED, ITEM_DELETED
from .persistence import (
    DeserializationError,
    PersistenceAdapter,
    PersistenceError,
    deserialize_items,
    serialize_items,
)
from .schema import FlowItem, ItemStatus, utc_now

logger = logging.getLogger(__name__)


class DuplicateItemError(ValueError):
    """Raised when an added item reuses an id already on the board."""
    pass


class FlowItemStore:
    """In-memory item collection mirrored to a persistence adapter."""

    def __init__(
        self,
        principal_id: str,
        adapter: PersistenceAdapter,
        items: Optional[List[FlowItem]] = None,
        events: Optional[EventBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if not principal_id:
            raise ValueError("principal_id is required")
        self.principal_id = principal_id
        self.adapter = adapter
        self.events = events or EventBus()
        self.clock = clock
        self._items: List[FlowItem] = list(items or [])

    @classmethod
    def open(
        cls,
        principal_id: str,
        adapter: PersistenceAdapter,
        events: Optional[EventBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "FlowItemStore":
        """Load the principal's saved items. Unreadable data yields an empty store."""
        items: List[FlowItem] = []
        try:
            payload = adapter.load(principal_id)
            if payload is not None:
                items = deserialize_items(payload)
        except DeserializationError as e:
            logger.warning(f"Discarding unreadable items for {principal_id}: {e}")
            items = []
        logger.info(f"Opened board for {principal_id} with {len(items)} items")
        return cls(principal_id, adapter, items=items, events=events, clock=clock)

    # ── Reads ────────────────────────────────────────────────────────────────

    @property
    def items(self) -> List[FlowItem]:
        """Snapshot of all items, newest first."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[FlowItem]:
        return iter(list(self._items))

    def get(self, item_id: str) -> Optional[FlowItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def by_status(self, status) -> List[FlowItem]:
        """Items holding status, in store order."""
        status = ItemStatus.coerce(status)
        return [item for item in self._items if item.status == status]

    def total_planned_minutes(self, status=ItemStatus.TODAY) -> int:
        """Sum of estimated minutes over items with status (no estimate counts as 0)."""
        return sum(item.estimated_minutes for item in self.by_status(status))

    # ── Mutations ────────────────────────────────────────────────────────────

    def add(self, items: List[FlowItem]) -> List[FlowItem]:
        """Prepend a batch. The whole batch is rejected if any id is already taken."""
        batch = list(items)
        if not batch:
            return []

        taken = {item.id for item in self._items}
        for item in batch:
            if item.id in taken:
                raise DuplicateItemError(f"Item id {item.id} already exists")
            taken.add(item.id)

        self._commit(batch + self._items)
        logger.info(f"Added {len(batch)} items for {self.principal_id}")
        self.events.emit(ITEMS_ADDED, principal_id=self.principal_id, items=batch)
        return batch

    def move(self, item_id: str, new_status) -> Optional[FlowItem]:
        """Change an item's status. Unknown ids are ignored and return None."""
        new_status = ItemStatus.coerce(new_status)
        item = self.get(item_id)
        if item is None:
            logger.debug(f"move: unknown item {item_id}")
            return None

        # The stored item stays as it is until the save succeeds
        old_status = item.status
        item = replace(item)
        item.set_status(new_status, self.clock())
        self._commit([item if i.id == item_id else i for i in self._items])
        self.events.emit(
            ITEM_MOVED,
            principal_id=self.principal_id,
            item=item,
            from_status=old_status,
            to_status=new_status,
        )
        return item

    def delete(self, item_id: str) -> bool:
        """Remove an item permanently. Unknown ids are ignored and return False."""
        item = self.get(item_id)
        if item is None:
            logger.debug(f"delete: unknown item {item_id}")
            return False

        self._commit([i for i in self._items if i.id != item_id])
        self.events.emit(ITEM_DELETED, principal_id=self.principal_id, item=item)
        return True

    def _commit(self, items: List[FlowItem]) -> None:
        """Save items, then make them current. Nothing changes if the save fails."""
        try:
            self.adapter.save(self.principal_id, serialize_items(items))
        except PersistenceError:
            logger.error(f"Failed to save items for {self.principal_id}")
            raise
        self._items = items
