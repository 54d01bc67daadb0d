"""
Rate Limiter Module

Admission control for outbound chat-completion calls:
- Sliding one-minute window of admitted call timestamps
- Per-day counter reset lazily on the first call of a new UTC day
- Atomic check-and-record under a single lock
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional, Union

from llm_translator.logger import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60.0


@dataclass(frozen=True)
class MinuteWindowFull:
    """Minute window is at capacity; `wait` seconds until the oldest entry ages out."""
    wait: float

    def __str__(self) -> str:
        return f"Rate limit exceeded: please wait {self.wait:.1f}s"


@dataclass(frozen=True)
class DailyCapReached:
    used: int
    max: int

    def __str__(self) -> str:
        return f"Daily limit exceeded: {self.used}/{self.max} requests used today"


DeniedReason = Union[MinuteWindowFull, DailyCapReached]


@dataclass(frozen=True)
class Admission:
    """Outcome of RateLimiter.admit(); truthy when the call may proceed."""
    admitted: bool
    reason: Optional[DeniedReason] = None

    def __bool__(self) -> bool:
        return self.admitted


ADMITTED = Admission(True)


@dataclass
class RateLimiterStats:
    requests_this_minute: int
    requests_today: int
    max_per_minute: int
    max_per_day: int
    last_reset: datetime


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """
    Sliding-window plus daily-cap limiter.

    All state lives behind one lock, so concurrent callers can never both
    observe spare capacity and both get admitted past the limit.
    """

    def __init__(
        self,
        max_per_minute: int,
        max_per_day: int,
        clock: Callable[[], float] = time.monotonic,
        utc_now: Callable[[], datetime] = _utc_now,
    ):
        self._lock = threading.Lock()
        self._clock = clock
        self._utc_now = utc_now
        self._max_per_minute = max_per_minute
        self._max_per_day = max_per_day
        self._requests: deque = deque()
        self._daily_count = 0
        self._last_reset = utc_now()

    @property
    def max_per_minute(self) -> int:
        return self._max_per_minute

    @property
    def max_per_day(self) -> int:
        return self._max_per_day

    def admit(self) -> Admission:
        """Admit and record one call, or explain why it must wait."""
        with self._lock:
            now = self._clock()
            self._maybe_reset_day_locked()
            self._trim_locked(now)

            if len(self._requests) >= self._max_per_minute:
                return Admission(False, MinuteWindowFull(wait=self._wait_locked(now)))

            if self._daily_count >= self._max_per_day:
                return Admission(False, DailyCapReached(used=self._daily_count, max=self._max_per_day))

            self._requests.append(now)
            self._daily_count += 1

            # Prevent unbounded growth
            limit = max(self._max_per_minute, 1) * 2
            while len(self._requests) > limit:
                self._requests.popleft()

            return ADMITTED

    def remaining_this_minute(self) -> int:
        with self._lock:
            # The first admit of a new UTC day clears the window too
            if self._rolled_over_locked():
                return self._max_per_minute
            self._trim_locked(self._clock())
            return max(0, self._max_per_minute - len(self._requests))

    def remaining_today(self) -> int:
        with self._lock:
            if self._rolled_over_locked():
                return self._max_per_day
            return max(0, self._max_per_day - self._daily_count)

    def next_available(self) -> Optional[float]:
        """Seconds until a minute-window slot frees, or None if one is free now."""
        with self._lock:
            now = self._clock()
            self._trim_locked(now)
            if self._rolled_over_locked() or len(self._requests) < self._max_per_minute:
                return None
            return self._wait_locked(now)

    def reset(self) -> None:
        """Clear both the daily counter and the minute window."""
        with self._lock:
            self._daily_count = 0
            self._last_reset = self._utc_now()
            self._requests.clear()

    def update_limits(self, max_per_minute: int, max_per_day: int) -> None:
        """Change both limits; recorded calls are kept and count against the new ones."""
        with self._lock:
            self._max_per_minute = max_per_minute
            self._max_per_day = max_per_day
        logger.info(f"Rate limits updated: {max_per_minute}/min, {max_per_day}/day")

    def get_stats(self) -> RateLimiterStats:
        with self._lock:
            self._trim_locked(self._clock())
            return RateLimiterStats(
                requests_this_minute=len(self._requests),
                requests_today=self._daily_count,
                max_per_minute=self._max_per_minute,
                max_per_day=self._max_per_day,
                last_reset=self._last_reset,
            )

    def _last_reset_date(self) -> date:
        return self._last_reset.date()

    def _rolled_over_locked(self) -> bool:
        return self._utc_now().date() != self._last_reset_date()

    def _maybe_reset_day_locked(self) -> None:
        today = self._utc_now()
        if today.date() != self._last_reset_date():
            logger.info(f"New UTC day {today.date()}: resetting daily counter ({self._daily_count} used)")
            self._daily_count = 0
            self._last_reset = today
            self._requests.clear()

    def _wait_locked(self, now: float) -> float:
        if not self._requests:
            return WINDOW_SECONDS
        # Limit lowered below the window size: wait for the excess to age out too
        excess = len(self._requests) - self._max_per_minute
        pivot = self._requests[min(excess, len(self._requests) - 1)]
        return max(0.0, WINDOW_SECONDS - (now - pivot))

    def _trim_locked(self, now: float) -> None:
        # A call at T counts until T + 60s
        while self._requests and now - self._requests[0] >= WINDOW_SECONDS:
            self._requests.popleft()
