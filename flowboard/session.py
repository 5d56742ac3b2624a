"""
Sessions: one board per signed-in principal.

The identity layer calls SessionManager.on_session_start / on_session_end;
everything else goes through the FlowSession it hands back. Ending a
session only drops in-memory state, the saved board stays.
"""
import logging
import random
from datetime import datetime
from typing import Callable, Dict, Optional

from .achievements import badge_report, board_stats, coaching_message, evaluate_achievements
from .analyzer import AnalysisResult, CaptureAnalyzer, DEFAULT_TIMESTAMP_FORMAT
from .board import board_view, completed_items, inbox_items
from .classifier import Classifier
from .events import EventBus, OVERLOAD_WARNING, QUEST_PICKED, SESSION_ENDED, SESSION_STARTED
from .persistence import PersistenceAdapter
from .quest import RandomQuestPicker
from .schema import FlowItem, ItemStatus, RealityCheck, utc_now
from .store import FlowItemStore

logger = logging.getLogger(__name__)


class FlowSession:
    """A principal's live board: store, analyzer, quest picker and overload history."""

    def __init__(
        self,
        store: FlowItemStore,
        analyzer: CaptureAnalyzer,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.analyzer = analyzer
        self.events = store.events
        self.picker = RandomQuestPicker(store, rng=rng)
        self.reality_check: Optional[RealityCheck] = None
        self.overload_warned = False

    @property
    def principal_id(self) -> str:
        return self.store.principal_id

    async def capture(self, text: str) -> Optional[AnalysisResult]:
        """
        Analyze a brain dump and insert the items. Blank input is ignored (None).

        PersistenceError propagates if the board cannot be saved; the store
        and the last reality check are then left as they were.
        """
        if not text or not text.strip():
            return None

        result = await self.analyzer.analyze(text)
        if not result.ok:
            return result

        self.store.add(result.items)
        self.reality_check = result.reality_check
        if result.reality_check.is_overloaded:
            self.overload_warned = True
            self.events.emit(
                OVERLOAD_WARNING,
                principal_id=self.principal_id,
                suggestion=result.reality_check.suggestion,
            )
        return result

    def move(self, item_id: str, status) -> Optional[FlowItem]:
        return self.store.move(item_id, status)

    def delete(self, item_id: str) -> bool:
        return self.store.delete(item_id)

    def pick_quest(self) -> FlowItem:
        """Promote a random someday item. Raises EmptyPool."""
        item = self.picker.pick()
        self.events.emit(QUEST_PICKED, principal_id=self.principal_id, item=item)
        return item

    def achievements(self) -> Dict[str, bool]:
        return evaluate_achievements(self.store.items, self.overload_warned)

    def board(self) -> Dict:
        items = self.store.items
        return {
            "columns": board_view(items),
            "inbox": inbox_items(items),
            "done": completed_items(items),
            "today_minutes": self.store.total_planned_minutes(ItemStatus.TODAY),
            "reality_check": self.reality_check,
        }

    def insights(self) -> Dict:
        items = self.store.items
        return {
            "badges": badge_report(items, self.overload_warned),
            "coaching": coaching_message(items),
            "stats": board_stats(items),
        }


class SessionManager:
    """Creates and tears down per-principal sessions."""

    def __init__(
        self,
        adapter: PersistenceAdapter,
        classifier: Classifier,
        clock: Callable[[], datetime] = utc_now,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
        rng_factory: Callable[[], random.Random] = random.Random,
        events: Optional[EventBus] = None,
    ):
        self.adapter = adapter
        self.events = events or EventBus()  # shared by all sessions; events carry principal_id
        self.classifier = classifier
        self.clock = clock
        self.timestamp_format = timestamp_format
        self.rng_factory = rng_factory
        self.sessions: Dict[str, FlowSession] = {}

    def on_session_start(self, principal_id: str) -> FlowSession:
        """Open (or return the already open) session for principal_id."""
        if not principal_id:
            raise ValueError("principal_id is required")
        existing = self.sessions.get(principal_id)
        if existing:
            return existing

        store = FlowItemStore.open(principal_id, self.adapter, events=self.events, clock=self.clock)
        analyzer = CaptureAnalyzer(self.classifier, clock=self.clock, timestamp_format=self.timestamp_format)
        session = FlowSession(store, analyzer, rng=self.rng_factory())
        self.sessions[principal_id] = session
        self.events.emit(SESSION_STARTED, principal_id=principal_id)
        logger.info(f"Session started for {principal_id}")
        return session

    def on_session_end(self, principal_id: str) -> bool:
        session = self.sessions.pop(principal_id, None)
        if session is None:
            return False
        self.events.emit(SESSION_ENDED, principal_id=principal_id)
        logger.info(f"Session ended for {principal_id}")
        return True

    def get(self, principal_id: str) -> Optional[FlowSession]:
        return self.sessions.get(principal_id)
