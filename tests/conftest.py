"""
Pytest Configuration and Shared Fixtures

Provides a scripted chat client, fast engine configuration and event helpers.
"""

# Standard library
import os
import sys
import tempfile
import threading
import time
from typing import Callable, List, Optional

# Keep test runs quiet and out of the working directory
os.environ.setdefault("LLM_TRANSLATOR_LOG_MODE", "off")
os.environ.setdefault("LLM_TRANSLATOR_LOG_DIR", tempfile.mkdtemp(prefix="llm-translator-logs-"))

# Make src/ importable without an install
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

# Third-party
import pytest

from llm_translator.ai.api_types import ChatChoice, ChatCompletionRequest, ChatCompletionResponse, Usage
from llm_translator.ai.exceptions import RequestCancelledError
from llm_translator.config import default_config
from llm_translator.core.cancellation import CancellationToken
from llm_translator.core.rate_limiter import RateLimiter
from llm_translator.translation.engine import TranslationEngine
from llm_translator.translation.models import TranslationEvent


def make_response(content: str, prompt_tokens: int = 5, completion_tokens: int = 5) -> ChatCompletionResponse:
    return ChatCompletionResponse(
        choices=[ChatChoice(index=0, content=content, finish_reason="stop")],
        usage=Usage(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens),
    )


class FakeChatClient:
    """
    Stand-in for ChatClient.

    Each call pops the next scripted outcome (a response or an exception);
    with an empty script it answers "[<user text>]". When `gate` is set the
    call blocks until the gate opens or the request is cancelled.
    """

    def __init__(self):
        self.calls: List[ChatCompletionRequest] = []
        self.script: List[object] = []
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()
        self._lock = threading.Lock()

    def send(self, request: ChatCompletionRequest, cancellation: Optional[CancellationToken] = None):
        with self._lock:
            self.calls.append(request)
            outcome = self.script.pop(0) if self.script else None
        self.entered.set()

        if self.gate is not None:
            while not self.gate.wait(0.01):
                if cancellation is not None and cancellation.is_cancelled:
                    raise RequestCancelledError()

        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome
        return make_response(f"[{request.messages[-1].content}]")

    @property
    def user_texts(self) -> List[str]:
        return [call.messages[-1].content for call in self.calls]


def collect_events(engine: TranslationEngine, count: int, timeout: float = 2.0) -> List[TranslationEvent]:
    """Read `count` events from the engine's channel, failing the test on timeout."""
    events: List[TranslationEvent] = []
    deadline = time.monotonic() + timeout
    while len(events) < count:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            pytest.fail(f"Expected {count} events, got {len(events)}: {events}")
        event = engine.events.get(timeout=remaining)
        if event is not None:
            events.append(event)
    return events


def run_next(engine: TranslationEngine) -> bool:
    """Dispatch one request and wait for its worker to finish."""
    thread = engine.process_next()
    if thread is None:
        return False
    thread.join(2.0)
    assert not thread.is_alive()
    return True


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config():
    """Default configuration with a usable key and fast polling."""
    cfg = default_config()
    cfg["api"]["api_key"] = "sk-test"
    cfg["engine"]["poll_interval"] = 0.01
    return cfg


@pytest.fixture
def fake_client():
    return FakeChatClient()


@pytest.fixture
def make_engine(config, fake_client) -> Callable[..., TranslationEngine]:
    """Factory for engines wired to the fake client; stops them at teardown."""
    engines: List[TranslationEngine] = []

    def factory(per_minute: int = 100, per_day: int = 10000, **overrides) -> TranslationEngine:
        engine = TranslationEngine(
            fake_client,
            RateLimiter(per_minute, per_day),
            config=overrides.pop("config", config),
            **overrides,
        )
        engines.append(engine)
        return engine

    yield factory

    for engine in engines:
        engine.stop(timeout=1.0)


@pytest.fixture
def engine(make_engine) -> TranslationEngine:
    return make_engine()
