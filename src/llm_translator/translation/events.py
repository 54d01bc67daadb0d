"""Closable event channel carrying translation lifecycle events to consumers."""

import queue
import threading
from typing import Iterator, List, Optional

from llm_translator.logger import get_logger
from llm_translator.translation.models import TranslationEvent

logger = get_logger(__name__)


class EventChannel:
    """
    Multi-producer event stream backed by queue.Queue.

    Sending on a closed channel is logged and the event is dropped; senders
    never block and never retry.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: "queue.Queue[TranslationEvent]" = queue.Queue(maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def send(self, event: TranslationEvent) -> bool:
        """Deliver an event; returns False if it could not be delivered."""
        if self._closed.is_set():
            logger.error(f"Failed to send translation event {event.kind} for {event.request_id}: channel closed")
            return False
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.error(f"Failed to send translation event {event.kind} for {event.request_id}: channel full")
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[TranslationEvent]:
        """Next event, or None if none arrives within timeout."""
        try:
            if timeout is not None and timeout <= 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self, max_events: Optional[int] = None) -> List[TranslationEvent]:
        """Everything currently buffered (up to max_events), without waiting."""
        events: List[TranslationEvent] = []
        while max_events is None or len(events) < max_events:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return events

    def __iter__(self) -> Iterator[TranslationEvent]:
        """Yield events until the channel is closed and empty."""
        while True:
            event = self.get(timeout=0.1)
            if event is not None:
                yield event
            elif self._closed.is_set():
                return
