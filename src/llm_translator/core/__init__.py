"""
Core module - Admission control and cancellation primitives

This module provides:
- rate_limiter: Sliding-window and daily-cap admission control
- cancellation: Cooperative cancellation tokens
"""

from llm_translator.core.cancellation import CancellationToken
from llm_translator.core.rate_limiter import (
    ADMITTED,
    Admission,
    DailyCapReached,
    MinuteWindowFull,
    RateLimiter,
    RateLimiterStats,
)
