"""
Event bus: change notifications from the store and session to presentation layers.

The store emits items_added / item_moved / item_deleted after each mutation
is persisted; the session emits overload_warning, quest_picked and the
session lifecycle events.
"""
import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

ITEMS_ADDED = "items_added"
ITEM_MOVED = "item_moved"
ITEM_DELETED = "item_deleted"
OVERLOAD_WARNING = "overload_warning"
QUEST_PICKED = "quest_picked"
SESSION_STARTED = "session_started"
SESSION_ENDED = "session_ended"

EVENT_TYPES = {
    ITEMS_ADDED,
    ITEM_MOVED,
    ITEM_DELETED,
    OVERLOAD_WARNING,
    QUEST_PICKED,
    SESSION_STARTED,
    SESSION_ENDED,
}


class EventBus:
    """Routes board events to subscriber callbacks."""

    def __init__(self):
        self.subscribers: Dict[str, List[Callable]] = {}  # event_type -> callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event_type}")
        self.subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: str, callback: Callable) -> None:
        callbacks = self.subscribers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers. A failing subscriber does not stop the others."""
        for callback in list(self.subscribers.get(event_type, [])):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception(f"Error in {event_type} callback")
