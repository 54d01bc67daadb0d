"""Translation pipeline: validation, chunking, caching, queueing and the engine."""

from .cache import TranslationCache, make_cache_key, normalize_text
from .chunker import Chunk, TextChunker, TranslatedChunk
from .engine import TranslationEngine
from .events import EventChannel
from .models import (
    Cancelled,
    Completed,
    Failed,
    Priority,
    QueueStats,
    RateLimited,
    Submission,
    TranslationEvent,
    TranslationRequest,
    TranslationResult,
)
from .queue import RequestQueue
from .validator import TextValidator, estimate_tokens

__all__ = [
    "TranslationCache",
    "make_cache_key",
    "normalize_text",
    "Chunk",
    "TextChunker",
    "TranslatedChunk",
    "TranslationEngine",
    "EventChannel",
    "Cancelled",
    "Completed",
    "Failed",
    "Priority",
    "QueueStats",
    "RateLimited",
    "Submission",
    "TranslationEvent",
    "TranslationRequest",
    "TranslationResult",
    "RequestQueue",
    "TextValidator",
    "estimate_tokens",
]
