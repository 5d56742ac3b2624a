"""
Classification collaborators for brain-dump analysis.

A classifier receives the raw brain dump plus a human-readable "now" string
and returns the raw JSON text described by RESPONSE_SCHEMA:

    {
      "items": [{"type", "title", "content", "datetime", "priority",
                 "estimated_minutes", "tags", "ai_comment"}],
      "reality_check": {"is_overloaded", "suggestion"}
    }

Validating that text is the analyzer's job, not the classifier's.

  GeminiClassifier     - Google Generative Language API over HTTP
  RuleBasedClassifier  - keyword heuristics, no network needed
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import requests

from .schema import utc_now

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a smart scheduling assistant for a user with an ENTP personality.
Analyze the user's unstructured natural-language input and structure it as JSON.

Roles:
1. schedule: anything with a concrete date/time -> convert it to ISO 8601 in the "datetime" field
2. task: actionable work -> infer "priority" and "estimated_minutes"
3. idea: inspiration or memo-like content -> generate "tags"

ENTP considerations:
- Be realistic about time estimates (ENTPs are optimistic, so assume things take 20% longer)
- Suggest breaking big tasks into smaller units
- Add a witty, friendly "ai_comment" (e.g. "This one's going to hurt.", "Whoa, great idea!", "Don't get sidetracked doing this!")

Reality check:
If the total estimated time of today's entries exceeds 6 hours, or there are too many items,
set reality_check.is_overloaded to true and give playful advice in reality_check.suggestion.

Respond with ONLY the JSON object, no markdown, no explanation."""


RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "items": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "type": {"type": "STRING", "enum": ["schedule", "task", "idea"]},
                    "title": {"type": "STRING"},
                    "content": {"type": "STRING"},
                    "datetime": {"type": "STRING"},
                    "priority": {"type": "STRING", "enum": ["high", "medium", "low"]},
                    "estimated_minutes": {"type": "NUMBER"},
                    "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
                    "ai_comment": {"type": "STRING"},
                },
                "required": ["type", "title"],
            },
        },
        "reality_check": {
            "type": "OBJECT",
            "properties": {
                "is_overloaded": {"type": "BOOLEAN"},
                "suggestion": {"type": "STRING"},
            },
            "required": ["is_overloaded", "suggestion"],
        },
    },
    "required": ["items", "reality_check"],
}


class ClassificationError(Exception):
    """Raised when the classification call itself fails."""
    pass


def build_user_prompt(text: str, now_text: str) -> str:
    """Build the user turn sent alongside the system prompt."""
    return f'User input: "{text}"\nCurrent date/time: {now_text}'


class Classifier(ABC):
    @abstractmethod
    def classify(self, text: str, now_text: str) -> str:
        """Return the raw JSON response text for a brain dump."""
        raise NotImplementedError


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Gemini
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class GeminiClassifier(Classifier):
    """HTTP client for the Gemini generateContent endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _request_body(self, text: str, now_text: str) -> Dict[str, Any]:
        return {
            "systemInstruction": {"parts": [{"text": SYSTEM_PROMPT}]},
            "contents": [
                {"role": "user", "parts": [{"text": build_user_prompt(text, now_text)}]},
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }

    def classify(self, text: str, now_text: str) -> str:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            r = self.http.post(
                url,
                json=self._request_body(text, now_text),
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ClassificationError(f"Gemini request failed: {e}") from e

        if not r.ok:
            raise ClassificationError(f"Gemini HTTP {r.status_code}: {r.text[:300]}")

        try:
            payload = r.json()
            parts = payload["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ClassificationError(f"Unexpected Gemini response shape: {e!r}") from e

        text_out = "".join(p.get("text", "") for p in parts if isinstance(p, dict)).strip()
        if not text_out:
            raise ClassificationError("Gemini returned an empty response")
        logger.debug(f"Gemini ({self.model}) returned {len(text_out)} chars")
        return text_out


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Rule-based fallback
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

IDEA_WORDS = ["idea", "what if", "maybe", "someday", "concept", "could try", "wonder"]
SCHEDULE_WORDS = ["meeting", "appointment", "dinner", "lunch", "call with", "flight", "dentist",
                  "tomorrow", "tonight", "today at", "monday", "tuesday", "wednesday", "thursday",
                  "friday", "saturday", "sunday"]
TIME_PATTERN = re.compile(r'\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b|\b(\d{1,2}):(\d{2})\b', re.I)

TAG_PATTERNS = [
    (r'\b(app|startup|product|business)\b', 'business'),
    (r'\b(write|blog|book|post)\b', 'writing'),
    (r'\b(code|program|api|bot)\b', 'dev'),
    (r'\b(music|art|design|draw)\b', 'creative'),
    (r'\b(gym|run|health|diet)\b', 'health'),
]

SCHEDULE_MINUTES = 60
TASK_MINUTES = 30
OPTIMISM_FACTOR = 1.2
OVERLOAD_MINUTES = 360
OVERLOAD_ITEMS = 8


def _split_thoughts(text: str) -> List[str]:
    parts = re.split(r'[\n;!?]+|\.(?:\s+|$)', text)
    return [p.strip(" -*\t,") for p in parts if p and p.strip(" -*\t,")]


def _title(fragment: str, max_words: int = 8) -> str:
    words = fragment.split()
    title = " ".join(words[:max_words])
    return title[:1].upper() + title[1:]


def _resolve_datetime(fragment: str, now: datetime) -> Optional[str]:
    """Turn '3pm' / '14:30' plus today/tomorrow into an ISO timestamp."""
    match = TIME_PATTERN.search(fragment)
    if not match:
        return None
    if match.group(1):
        hour = int(match.group(1)) % 12
        minute = int(match.group(2) or 0)
        if match.group(3).lower() == "pm":
            hour += 12
    else:
        hour, minute = int(match.group(4)), int(match.group(5))
    if hour > 23 or minute > 59:
        return None
    day = now + timedelta(days=1) if "tomorrow" in fragment.lower() else now
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0).isoformat()


def classify_by_rules(text: str, now: datetime) -> Dict[str, Any]:
    """Keyword classification of a brain dump into the response shape."""
    items = []
    for fragment in _split_thoughts(text):
        lower = fragment.lower()
        entry: Dict[str, Any] = {"title": _title(fragment), "content": fragment}

        if TIME_PATTERN.search(fragment) or any(w in lower for w in SCHEDULE_WORDS):
            entry["type"] = "schedule"
            entry["estimated_minutes"] = SCHEDULE_MINUTES
            when = _resolve_datetime(fragment, now)
            if when:
                entry["datetime"] = when
        elif any(w in lower for w in IDEA_WORDS):
            entry["type"] = "idea"
            entry["tags"] = [tag for pattern, tag in TAG_PATTERNS if re.search(pattern, lower)]
            entry["ai_comment"] = "Parked in someday. Don't let it distract you today!"
        else:
            entry["type"] = "task"
            entry["estimated_minutes"] = int(TASK_MINUTES * OPTIMISM_FACTOR)
            if any(w in lower for w in ["urgent", "asap", "today", "deadline", "immediately"]):
                entry["priority"] = "high"
            elif any(w in lower for w in ["eventually", "low priority", "nice to have"]):
                entry["priority"] = "low"
            else:
                entry["priority"] = "medium"
        items.append(entry)

    total = sum(i.get("estimated_minutes", 0) for i in items if i["type"] != "idea")
    overloaded = total > OVERLOAD_MINUTES or len(items) > OVERLOAD_ITEMS
    if overloaded:
        suggestion = f"{total / 60:.1f} hours across {len(items)} items? Pick three and let the rest wait."
    else:
        suggestion = "Looks doable. Start with the smallest one."
    return {
        "items": items,
        "reality_check": {"is_overloaded": overloaded, "suggestion": suggestion},
    }


class RuleBasedClassifier(Classifier):
    """Offline classifier used when no LLM is configured."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self.clock = clock

    def classify(self, text: str, now_text: str) -> str:
        return json.dumps(classify_by_rules(text, self.clock()), ensure_ascii=False)
