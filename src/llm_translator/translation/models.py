"""
Translation Data Classes

Requests, results, lifecycle events and statistics exchanged with the engine.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

from llm_translator.core.cancellation import CancellationToken


class Priority(IntEnum):
    """Queue ordering key; higher values are served first."""
    LOW = 0
    NORMAL = 1
    HIGH = 2

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Accept a Priority, its name (any case) or its integer value."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.NORMAL
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown priority: {value!r}")
        return cls(value)


def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex}"


@dataclass
class TranslationRequest:
    """A queued unit of work, owned by the engine until its terminal event."""
    text: str
    prompt_preset: str
    priority: Priority = Priority.NORMAL
    id: str = field(default_factory=generate_request_id)
    created_at: float = field(default_factory=time.monotonic)
    cancellation_token: CancellationToken = field(default_factory=CancellationToken, repr=False)
    key: str = ""  # cache / dedup key


@dataclass(frozen=True)
class TranslationResult:
    request_id: str
    original_text: str
    translated_text: str
    tokens_used: int
    duration: float  # seconds


# ---------------------------------------------------------------------------
# Lifecycle events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TranslationEvent:
    request_id: str

    kind = "event"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "request_id": self.request_id}


@dataclass(frozen=True)
class Completed(TranslationEvent):
    result: TranslationResult = None

    kind = "completed"

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({
            "translated_text": self.result.translated_text,
            "tokens_used": self.result.tokens_used,
            "duration": self.result.duration,
        })
        return payload


@dataclass(frozen=True)
class Failed(TranslationEvent):
    error: str = ""
    code: Optional[str] = None

    kind = "failed"

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload.update({"error": self.error, "code": self.code})
        return payload


@dataclass(frozen=True)
class Cancelled(TranslationEvent):
    kind = "cancelled"


@dataclass(frozen=True)
class RateLimited(TranslationEvent):
    wait_time: float = 60.0

    kind = "rate_limited"

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["wait_time"] = self.wait_time
        return payload


# ---------------------------------------------------------------------------
# Submission outcome and statistics
# ---------------------------------------------------------------------------

SUBMISSION_QUEUED = "queued"
SUBMISSION_CACHED = "cached"
SUBMISSION_DEDUPLICATED = "deduplicated"


@dataclass(frozen=True)
class Submission:
    request_id: str
    status: str
    translated_text: Optional[str] = None  # set for cache hits

    @property
    def is_cached(self) -> bool:
        return self.status == SUBMISSION_CACHED

    @property
    def is_follower(self) -> bool:
        return self.status == SUBMISSION_DEDUPLICATED

    def to_dict(self) -> Dict[str, Any]:
        payload = {"request_id": self.request_id, "status": self.status}
        if self.translated_text is not None:
            payload["translated_text"] = self.translated_text
        return payload


@dataclass(frozen=True)
class QueueStats:
    queued: int
    active: int
    cached: int
    remaining_this_minute: int
    remaining_today: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "queued": self.queued,
            "active": self.active,
            "cached": self.cached,
            "remaining_this_minute": self.remaining_this_minute,
            "remaining_today": self.remaining_today,
        }
