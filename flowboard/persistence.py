"""
Persistence adapters for the item collection.

Each principal's board is saved as one JSON document (the full FlowItem
array) under a scoped key. Adapters only move strings around; turning the
document into FlowItems is done by serialize_items / deserialize_items.
"""
import hashlib
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .schema import FlowItem

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "entp_flow_items_"


class PersistenceError(Exception):
    """Raised when an adapter cannot read or write its backing storage."""
    pass


class DeserializationError(Exception):
    """Raised when a saved document cannot be turned back into FlowItems."""
    pass


# ── Serialization ────────────────────────────────────────────────────────────

def serialize_items(items: Iterable[FlowItem]) -> str:
    """Serialize items, in store order, to a JSON array."""
    return json.dumps([item.to_dict() for item in items], ensure_ascii=False)


def deserialize_items(payload: str) -> List[FlowItem]:
    """Parse a saved JSON array back into FlowItems. Raises DeserializationError."""
    try:
        raw = json.loads(payload)
    except (json.JSONDecodeError, TypeError) as e:
        raise DeserializationError(f"Saved items are not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise DeserializationError(f"Saved items must be a list, got {type(raw).__name__}")

    items = []
    seen = set()
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise DeserializationError(f"Item #{index} is not an object")
        try:
            item = FlowItem.from_dict(entry)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise DeserializationError(f"Item #{index} is malformed: {e!r}") from e
        if item.id in seen:
            raise DeserializationError(f"Duplicate item id {item.id}")
        seen.add(item.id)
        items.append(item)
    return items


# ── Adapter interface ────────────────────────────────────────────────────────

class PersistenceAdapter(ABC):
    """Scoped key/value storage for serialized item collections."""

    def __init__(self, key_prefix: str = DEFAULT_KEY_PREFIX):
        self.key_prefix = key_prefix

    def key_for(self, principal_id: str) -> str:
        return f"{self.key_prefix}{principal_id}"

    @abstractmethod
    def load(self, principal_id: str) -> Optional[str]:
        """Return the saved document for principal_id, or None if nothing was saved."""
        raise NotImplementedError

    @abstractmethod
    def save(self, principal_id: str, payload: str) -> None:
        """Replace the saved document for principal_id."""
        raise NotImplementedError


class InMemoryAdapter(PersistenceAdapter):
    """Dict-backed adapter. Survives session end, not process exit."""

    def __init__(self, key_prefix: str = DEFAULT_KEY_PREFIX):
        super().__init__(key_prefix)
        self.data: Dict[str, str] = {}
        self.writes = 0

    def load(self, principal_id: str) -> Optional[str]:
        return self.data.get(self.key_for(principal_id))

    def save(self, principal_id: str, payload: str) -> None:
        self.data[self.key_for(principal_id)] = payload
        self.writes += 1


class JsonFileAdapter(PersistenceAdapter):
    """One JSON file per principal key under base_dir, named by the key's sha256."""

    def __init__(self, base_dir: str = "data", key_prefix: str = DEFAULT_KEY_PREFIX):
        super().__init__(key_prefix)
        self.base_dir = Path(base_dir).expanduser()

    def _path(self, principal_id: str) -> Path:
        # Principal ids are opaque; one digest per key keeps boards apart
        digest = hashlib.sha256(self.key_for(principal_id).encode("utf-8")).hexdigest()
        return self.base_dir / f"{digest}.json"

    def load(self, principal_id: str) -> Optional[str]:
        path = self._path(principal_id)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DeserializationError(f"Cannot read {path}: {e}") from e

    def save(self, principal_id: str, payload: str) -> None:
        path = self._path(principal_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection in WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SQLiteAdapter(PersistenceAdapter):
    """SQLite-backed adapter: one row per principal key."""

    def __init__(self, db_path: str = None, key_prefix: str = DEFAULT_KEY_PREFIX):
        super().__init__(key_prefix)
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "flowboard" / "flowboard.db")
        self.db_path = str(Path(db_path).expanduser())
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS flow_items (
                    storage_key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def load(self, principal_id: str) -> Optional[str]:
        try:
            with _connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT payload FROM flow_items WHERE storage_key = ?",
                    (self.key_for(principal_id),)
                ).fetchone()
        except sqlite3.Error as e:
            raise DeserializationError(f"Cannot read items for {principal_id}: {e}") from e
        return row["payload"] if row else None

    def save(self, principal_id: str, payload: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            with _connect(self.db_path) as conn:
                conn.execute("""
                    INSERT INTO flow_items (storage_key, payload, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(storage_key) DO UPDATE SET
                        payload = excluded.payload, updated_at = excluded.updated_at
                """, (self.key_for(principal_id), payload, now))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot save items for {principal_id}: {e}") from e
