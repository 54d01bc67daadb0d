"""Priority request queue: strict priority across bands, FIFO within a band."""

import threading
from collections import deque
from typing import Callable, Dict, List, Optional

from llm_translator.translation.models import Priority, TranslationRequest


class RequestQueue:
    """
    Thread-safe priority queue of pending translation requests.

    Priority is evaluated on every pop, so a HIGH request submitted later
    still overtakes older NORMAL and LOW ones.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._bands: Dict[Priority, deque] = {p: deque() for p in Priority}

    def push(self, request: TranslationRequest) -> int:
        """Append to the back of the request's band; returns the new queue size."""
        with self._lock:
            self._bands[request.priority].append(request)
            return self._size_locked()

    def push_front(self, request: TranslationRequest) -> int:
        """Return a request to the front of its band (used when re-queueing)."""
        with self._lock:
            self._bands[request.priority].appendleft(request)
            return self._size_locked()

    def pop(self, gate: Optional[Callable[[], bool]] = None) -> Optional[TranslationRequest]:
        """
        Remove and return the highest-priority request.

        Args:
            gate: Called under the queue lock only when the queue is non-empty;
                a falsy answer leaves the queue untouched.

        Returns:
            The request, or None when the queue is empty or the gate refused.
        """
        with self._lock:
            if self._size_locked() == 0:
                return None
            if gate is not None and not gate():
                return None
            for priority in sorted(Priority, reverse=True):
                band = self._bands[priority]
                if band:
                    return band.popleft()
            return None

    def remove(self, request_id: str) -> Optional[TranslationRequest]:
        """Take a specific request out of the queue, if still there."""
        with self._lock:
            for band in self._bands.values():
                for request in band:
                    if request.id == request_id:
                        band.remove(request)
                        return request
        return None

    def drain(self) -> List[TranslationRequest]:
        """Remove everything, highest priority first."""
        with self._lock:
            drained: List[TranslationRequest] = []
            for priority in sorted(Priority, reverse=True):
                drained.extend(self._bands[priority])
                self._bands[priority].clear()
            return drained

    def __contains__(self, request_id: str) -> bool:
        with self._lock:
            return any(r.id == request_id for band in self._bands.values() for r in band)

    def __len__(self) -> int:
        with self._lock:
            return self._size_locked()

    def _size_locked(self) -> int:
        return sum(len(band) for band in self._bands.values())
