"""
Capture analyzer: brain dump → classifier → store-ready FlowItems.

The classifier's JSON is untrusted. parse_analysis_response either turns it
into typed candidates or raises AnalysisError; individual candidates with
missing or odd fields are repaired rather than dropped, so a batch is
always inserted whole or not at all.

Status on capture depends only on type:
    idea → someday, schedule → today, anything else → inbox
"""
import asyncio
import json
import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .classifier import Classifier, ClassificationError
from .schema import (
    UNTITLED,
    Analysis,
    FlowItem,
    ItemStatus,
    ItemType,
    Priority,
    RealityCheck,
    clean_minutes,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M (%A)"

STATUS_FOR_TYPE = {
    ItemType.IDEA: ItemStatus.SOMEDAY,
    ItemType.SCHEDULE: ItemStatus.TODAY,
}


class AnalysisError(Exception):
    """The classification call failed or returned an unusable payload."""
    pass


def initial_status(item_type: ItemType) -> ItemStatus:
    return STATUS_FOR_TYPE.get(item_type, ItemStatus.INBOX)


@dataclass
class Candidate:
    """One validated item from the classifier, before it gets an id."""
    type: ItemType
    title: str
    content: str = ""
    scheduled_at: Optional[datetime] = None
    priority: Optional[Priority] = None
    estimated_minutes: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    comment: str = ""


@dataclass
class AnalysisResult:
    """Outcome of one analyze() call: ok, failed, or rejected as busy."""
    items: List[FlowItem] = field(default_factory=list)
    reality_check: Optional[RealityCheck] = None
    error: Optional[AnalysisError] = None
    busy: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.busy

    @property
    def is_overloaded(self) -> bool:
        return bool(self.ok and self.reality_check and self.reality_check.is_overloaded)


# ── Parsing ──────────────────────────────────────────────────────────────────

def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r'^```(?:json)?\s*', '', text)
        text = re.sub(r'\s*```$', '', text)
    return text


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in chatter
        match = re.search(r'\{.*\}', text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group())
            except json.JSONDecodeError:
                pass
    raise AnalysisError("Classifier response is not valid JSON")


def _tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    tags: List[str] = []
    for tag in value:
        tag = str(tag).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _scheduled_at(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return parse_timestamp(value.strip())
    except ValueError:
        return None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _candidate(raw: Dict[str, Any]) -> Candidate:
    item_type = ItemType.from_str(raw.get("type", ""))
    return Candidate(
        type=item_type,
        title=_text(raw.get("title")) or UNTITLED,
        content=_text(raw.get("content")),
        scheduled_at=_scheduled_at(raw.get("datetime")) if item_type == ItemType.SCHEDULE else None,
        priority=Priority.from_str(raw.get("priority")),
        estimated_minutes=clean_minutes(raw.get("estimated_minutes")),
        tags=_tags(raw.get("tags")),
        comment=_text(raw.get("ai_comment")),
    )


def parse_analysis_response(text: Optional[str]) -> Tuple[List[Candidate], RealityCheck]:
    """Validate a classifier response. Raises AnalysisError if the shape is wrong."""
    if not text or not text.strip():
        raise AnalysisError("Classifier returned an empty response")

    data = _load_json(_strip_fences(text))
    if not isinstance(data, dict):
        raise AnalysisError("Classifier response must be a JSON object")

    raw_items = data.get("items")
    if not isinstance(raw_items, list):
        raise AnalysisError("Classifier response has no 'items' list")
    if not all(isinstance(entry, dict) for entry in raw_items):
        raise AnalysisError("Every entry in 'items' must be an object")

    raw_check = data.get("reality_check")
    if not isinstance(raw_check, dict):
        raise AnalysisError("Classifier response has no 'reality_check' object")
    overloaded = raw_check.get("is_overloaded")
    suggestion = raw_check.get("suggestion")
    if not isinstance(overloaded, bool) or not isinstance(suggestion, str):
        raise AnalysisError("'reality_check' needs boolean is_overloaded and string suggestion")

    candidates = [_candidate(entry) for entry in raw_items]
    return candidates, RealityCheck(is_overloaded=overloaded, suggestion=suggestion)


def build_items(candidates: List[Candidate], now: datetime) -> List[FlowItem]:
    """Give candidates ids, timestamps and their initial status."""
    items = []
    for c in candidates:
        items.append(FlowItem(
            id=str(uuid.uuid4()),
            type=c.type,
            title=c.title,
            content=c.content,
            status=initial_status(c.type),
            analysis=Analysis(
                priority=c.priority,
                estimated_minutes=c.estimated_minutes,
                tags=c.tags,
                comment=c.comment,
                confidence=1.0,
            ),
            scheduled_at=c.scheduled_at,
            created_at=now,
            updated_at=now,
        ))
    return items


# ── Analyzer ─────────────────────────────────────────────────────────────────

class CaptureAnalyzer:
    """Runs brain dumps through a classifier, one call at a time."""

    def __init__(
        self,
        classifier: Classifier,
        clock: Callable[[], datetime] = utc_now,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
    ):
        self.classifier = classifier
        self.clock = clock
        self.timestamp_format = timestamp_format
        self._in_flight = threading.Lock()

    @property
    def is_busy(self) -> bool:
        return self._in_flight.locked()

    async def analyze(self, raw_text: str) -> AnalysisResult:
        """
        Classify raw_text into new FlowItems plus a reality check.

        Returns a busy result without calling the classifier if another
        analysis is still running. Failures come back as result.error;
        nothing here touches the store.
        """
        if not raw_text or not raw_text.strip():
            raise ValueError("raw_text must not be empty")

        if not self._in_flight.acquire(blocking=False):
            logger.info("Analysis already in flight, ignoring new request")
            return AnalysisResult(busy=True)

        try:
            now = self.clock()
            now_text = now.astimezone().strftime(self.timestamp_format)
            try:
                response = await asyncio.to_thread(self.classifier.classify, raw_text, now_text)
            except ClassificationError as e:
                logger.error(f"Classification failed: {e}")
                return AnalysisResult(error=AnalysisError(str(e)))
            except Exception as e:
                logger.exception("Classifier raised unexpectedly")
                return AnalysisResult(error=AnalysisError(f"Classification failed: {e}"))

            try:
                candidates, reality_check = parse_analysis_response(response)
            except AnalysisError as e:
                logger.error(f"Unusable classification response: {e}")
                return AnalysisResult(error=e)

            items = build_items(candidates, now)
            logger.info(
                f"Analyzed brain dump into {len(items)} items "
                f"(overloaded={reality_check.is_overloaded})"
            )
            return AnalysisResult(items=items, reality_check=reality_check)
        finally:
            self._in_flight.release()
