"""
Translation Cache Module

In-memory TTL cache of finished translations keyed by preset and normalized text.
"""

import hashlib
import threading
import time
import unicodedata
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from llm_translator.config import CACHE_TTL_SECONDS
from llm_translator.logger import get_logger

logger = get_logger(__name__)


def normalize_text(text: str) -> str:
    """Canonical form used for cache and dedup keys."""
    return unicodedata.normalize('NFC', text)


def make_cache_key(text: str, preset_id: str) -> str:
    """Deterministic key for a (preset, text) pair."""
    payload = f"{preset_id}\0{normalize_text(text)}"
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    translated_text: str
    created_at: float


class TranslationCache:
    """
    Thread-safe TTL cache.

    Expired entries are filtered on read and removed by `sweep()`, which the
    engine runs periodically on its own thread.
    """

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at >= self.ttl:
                return None
            return entry.translated_text

    def put(self, key: str, translated_text: str) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(translated_text, self._clock())

    def sweep(self) -> int:
        """Remove expired entries; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.created_at >= self.ttl]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)
        logger.debug(f"Cache cleanup: removed {len(expired)}, {remaining} entries remaining")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
