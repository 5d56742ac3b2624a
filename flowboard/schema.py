"""
FlowItem schema and status vocabulary.

Item lifecycle:
  capture → inbox | today | someday → (any column) → done

Items are created only from a brain-dump analysis, mutated only by a
status move and removed only by an explicit delete.
"""
import math
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any


UNTITLED = "Untitled"


def utc_now() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def clean_minutes(value: Any) -> Optional[int]:
    """Non-negative whole minutes, or None for anything else."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return int(round(value))


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (extended or basic format, Z or numeric offset)."""
    return datetime.fromisoformat(value)


class ItemType(Enum):
    """What kind of thing a captured thought turned out to be."""
    SCHEDULE = "schedule"    # Has a concrete date/time
    TASK = "task"            # Actionable work
    IDEA = "idea"            # Inspiration, memo

    @classmethod
    def from_str(cls, value: str) -> "ItemType":
        try:
            return cls[str(value).upper()]
        except KeyError:
            return cls.TASK


class ItemStatus(Enum):
    """Valid statuses on the board."""
    INBOX = "inbox"
    TODAY = "today"
    THIS_WEEK = "this_week"
    SOON = "soon"
    SOMEDAY = "someday"
    DONE = "done"

    @classmethod
    def coerce(cls, value) -> "ItemStatus":
        """Accept an ItemStatus or its string value. Raises ValueError otherwise."""
        if isinstance(value, cls):
            return value
        return cls(value)


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_str(cls, value) -> Optional["Priority"]:
        if not isinstance(value, str):
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return None


@dataclass
class Analysis:
    """Metadata the classifier attached to an item."""
    priority: Optional[Priority] = None
    estimated_minutes: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    comment: str = ""
    confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority.value if self.priority else None,
            "estimatedMinutes": self.estimated_minutes,
            "tags": list(self.tags),
            "comment": self.comment,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Analysis":
        confidence = float(data.get("confidence", 1.0))
        if not math.isfinite(confidence):
            raise ValueError(f"Invalid confidence: {confidence!r}")
        return cls(
            priority=Priority.from_str(data.get("priority")),
            estimated_minutes=clean_minutes(data.get("estimatedMinutes")),
            tags=[str(t) for t in data.get("tags") or []],
            comment=data.get("comment") or "",
            confidence=min(max(confidence, 0.0), 1.0),
        )


@dataclass
class RealityCheck:
    """Per-analysis verdict on whether the user is overcommitted."""
    is_overloaded: bool = False
    suggestion: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"is_overloaded": self.is_overloaded, "suggestion": self.suggestion}


@dataclass
class FlowItem:
    """A captured unit of work on the board."""

    # Identifiers
    id: str
    type: ItemType

    # Content
    title: str
    content: str = ""

    # Board position
    status: ItemStatus = ItemStatus.INBOX

    # Classifier metadata
    analysis: Optional[Analysis] = None
    scheduled_at: Optional[datetime] = None   # schedule items only

    # Timestamps
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None   # set iff status is DONE

    @property
    def estimated_minutes(self) -> int:
        """Planned minutes, 0 when the classifier gave no estimate."""
        if self.analysis and self.analysis.estimated_minutes:
            return self.analysis.estimated_minutes
        return 0

    def set_status(self, new_status: ItemStatus, now: datetime) -> None:
        """Move to new_status, keeping completed_at in step with DONE."""
        if new_status == ItemStatus.DONE:
            if self.status != ItemStatus.DONE or self.completed_at is None:
                self.completed_at = now
        else:
            self.completed_at = None
        self.status = new_status
        self.updated_at = now

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted document shape."""
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "content": self.content,
            "status": self.status.value,
            "aiAnalysis": self.analysis.to_dict() if self.analysis else None,
            "datetime": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowItem":
        """Deserialize. Raises KeyError/ValueError/TypeError on bad data."""
        item_id = data["id"]
        if not isinstance(item_id, str) or not item_id:
            raise ValueError(f"Invalid item id: {item_id!r}")

        analysis = None
        if data.get("aiAnalysis"):
            analysis = Analysis.from_dict(data["aiAnalysis"])

        status = ItemStatus(data["status"])
        updated_at = parse_timestamp(data["updatedAt"])
        completed_at = None
        if status == ItemStatus.DONE:
            # Older documents may lack completedAt; the last update is when it was finished
            completed_at = parse_timestamp(data["completedAt"]) if data.get("completedAt") else updated_at

        return cls(
            id=item_id,
            type=ItemType(data["type"]),
            title=data.get("title") or UNTITLED,
            content=data.get("content") or "",
            status=status,
            analysis=analysis,
            scheduled_at=parse_timestamp(data["datetime"]) if data.get("datetime") else None,
            created_at=parse_timestamp(data["createdAt"]),
            updated_at=updated_at,
            completed_at=completed_at,
        )
