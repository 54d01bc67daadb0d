"""Rate-limited, deduplicating, priority-queued LLM translation engine."""

__version__ = "0.1.0"
