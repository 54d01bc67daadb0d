"""
Translation Engine Module

TranslationEngine coordinates the translation workflow:
- Accept (text, preset, priority) submissions
- Answer from the result cache, or attach to an identical in-flight request
- Queue by priority and dispatch under rate-limiter admission
- Split oversized text, translate chunk by chunk, merge
- Report every request's fate on one event channel
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import httpx

from llm_translator.ai.api_types import ChatCompletionRequest
from llm_translator.ai.client import ChatClient
from llm_translator.ai.exceptions import (
    RateLimitedError,
    RequestCancelledError,
    TranslationError,
)
from llm_translator.config import default_config, get_prompt_preset
from llm_translator.core.rate_limiter import DailyCapReached, RateLimiter
from llm_translator.logger import get_logger
from llm_translator.translation.cache import TranslationCache, make_cache_key
from llm_translator.translation.chunker import TextChunker, TranslatedChunk
from llm_translator.translation.events import EventChannel
from llm_translator.translation.models import (
    SUBMISSION_CACHED,
    SUBMISSION_DEDUPLICATED,
    SUBMISSION_QUEUED,
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
from llm_translator.translation.queue import RequestQueue
from llm_translator.translation.validator import TextValidator

logger = get_logger(__name__)

DEFAULT_RATE_LIMIT_WAIT = 60.0  # reported when the endpoint gives no Retry-After


@dataclass
class PendingGroup:
    """Requests waiting on one outbound dispatch for the same key."""
    leader: TranslationRequest
    followers: List[TranslationRequest] = field(default_factory=list)


class _Waiter:
    """Blocks translate() until the request's terminal event arrives."""

    def __init__(self):
        self.done = threading.Event()
        self.event: Optional[TranslationEvent] = None


class TranslationEngine:
    """
    Queue, cache, dedup table and processing loop around a ChatClient.

    Threads:
    - one processing loop polling every `poll_interval` seconds
    - one cache cleanup loop
    - one dispatch thread per admitted request

    Lock order is pending-table lock, then queue lock, then rate-limiter lock.
    """

    def __init__(
        self,
        client: ChatClient,
        rate_limiter: RateLimiter,
        config: Optional[Dict[str, Any]] = None,
        events: Optional[EventChannel] = None,
        cache: Optional[TranslationCache] = None,
        chunker: Optional[TextChunker] = None,
        validator: Optional[TextValidator] = None,
    ):
        """
        Initialize the engine.

        Args:
            client: Chat-completion client used for every dispatch
            rate_limiter: Admission control shared by all dispatches
            config: Full configuration dict (defaults when omitted)
            events: Channel receiving lifecycle events (a new one when omitted)
        """
        self.config = config or default_config()
        api = self.config['api']
        limits = self.config['limits']
        engine_config = self.config.get('engine', {})

        self.client = client
        self.rate_limiter = rate_limiter
        self.events = events or EventChannel()
        self.cache = cache or TranslationCache(ttl=engine_config.get('cache_ttl', 300))
        self.chunker = chunker or TextChunker(limits.get('max_chunk_chars', 2000))
        self.validator = validator or TextValidator.from_config(self.config)

        self.model = api['model']
        self.temperature = api.get('temperature')
        self.max_tokens = api.get('max_tokens')
        self.poll_interval = engine_config.get('poll_interval', 0.1)
        self.cache_cleanup_interval = engine_config.get('cache_cleanup_interval', 60)

        self._queue = RequestQueue()
        self._pending_lock = threading.Lock()
        self._pending: Dict[str, PendingGroup] = {}
        self._followers: Dict[str, str] = {}  # follower id -> key
        self._active: Dict[str, TranslationRequest] = {}

        self._listeners: List[Callable[[TranslationEvent], None]] = []
        self._waiters: Dict[str, _Waiter] = {}
        self._waiters_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []
        self._dispatch_threads: Set[threading.Thread] = set()
        self._last_denial: Optional[type] = None

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        transport: Optional[httpx.BaseTransport] = None,
        events: Optional[EventChannel] = None,
    ) -> "TranslationEngine":
        """Build client, rate limiter and engine from one configuration dict."""
        limits = config['limits']
        client = ChatClient.from_config(config['api'], transport=transport)
        rate_limiter = RateLimiter(limits['requests_per_minute'], limits['requests_per_day'])
        return cls(client, rate_limiter, config=config, events=events)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        """Start the processing loop and cache cleanup threads."""
        if self.running:
            return
        self._stop_event.clear()
        self._threads = [
            threading.Thread(target=self._run_loop, name="translation-loop", daemon=True),
            threading.Thread(target=self._run_cache_cleanup, name="translation-cache-cleanup", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            "Translation engine started (poll=%ss, %s/min, %s/day)",
            self.poll_interval,
            self.rate_limiter.max_per_minute,
            self.rate_limiter.max_per_day,
        )

    def stop(self, timeout: float = 5.0) -> None:
        """Stop background threads, cancelling everything still queued or in flight."""
        self._stop_event.set()

        for request in self._queue.drain():
            self._cancel_dequeued(request)
        with self._pending_lock:
            active_ids = list(self._active)
        for request_id in active_ids:
            self.cancel(request_id)

        deadline = time.monotonic() + timeout
        for thread in self._threads:
            thread.join(max(0.0, deadline - time.monotonic()))
        with self._pending_lock:
            dispatch_threads = list(self._dispatch_threads)
        for thread in dispatch_threads:
            thread.join(max(0.0, deadline - time.monotonic()))
        self._threads = []
        logger.info("Translation engine stopped")

    def __enter__(self) -> "TranslationEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def add_listener(self, callback: Callable[[TranslationEvent], None]) -> None:
        """Register a callback invoked (on the emitting thread) for every event."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[TranslationEvent], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def update_limits(self, requests_per_minute: int, requests_per_day: int) -> None:
        self.rate_limiter.update_limits(requests_per_minute, requests_per_day)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def submit(
        self,
        text: str,
        preset: Optional[str] = None,
        priority: Any = Priority.NORMAL,
    ) -> Submission:
        """
        Submit a translation request.

        Args:
            text: Source text
            preset: Prompt preset id; the configured active preset when omitted
            priority: Priority, or its name ("low", "normal", "high")

        Returns:
            Submission with status "cached" (translated_text set), "deduplicated"
            (attached to an identical in-flight request) or "queued".

        Raises:
            TextValidationError: The text was rejected.
            PresetNotFoundError: Unknown preset.
        """
        return self._submit(text, preset, priority)

    def translate(
        self,
        text: str,
        preset: Optional[str] = None,
        priority: Any = Priority.NORMAL,
        timeout: Optional[float] = None,
    ) -> TranslationResult:
        """
        Submit and block until the request reaches a terminal state.

        The engine must be started (or process_next driven by the caller).

        Raises:
            TranslationError: The request failed or timed out.
            RequestCancelledError: The request was cancelled.
        """
        waiter = _Waiter()
        submission = self._submit(text, preset, priority, waiter=waiter)

        if not waiter.done.wait(timeout) and self.cancel(submission.request_id):
            with self._waiters_lock:
                self._waiters.pop(submission.request_id, None)
            raise TranslationError(
                f"Translation timed out after {timeout}s",
                code="timeout",
                details={"request_id": submission.request_id},
            )

        waiter.done.wait()

        event = waiter.event
        if isinstance(event, Completed):
            return event.result
        if isinstance(event, Cancelled):
            raise RequestCancelledError()
        raise TranslationError(event.error, code=event.code, details={"request_id": event.request_id})

    def cancel(self, request_id: str) -> bool:
        """
        Cancel a queued, dispatched or deduplicated request.

        Returns:
            False if the id is unknown or already terminal.
        """
        with self._pending_lock:
            key = self._followers.pop(request_id, None)
            if key is not None:
                group = self._pending.get(key)
                if group is not None:
                    for follower in group.followers:
                        if follower.id == request_id:
                            follower.cancellation_token.cancel()
                    group.followers = [f for f in group.followers if f.id != request_id]
                followers: List[TranslationRequest] = []
            else:
                request = self._queue.remove(request_id)
                if request is None:
                    request = self._active.pop(request_id, None)
                if request is None:
                    return False
                request.cancellation_token.cancel()
                followers = self._close_group_locked(request)

        logger.info(f"Request {request_id} cancelled")
        self._emit(Cancelled(request_id))
        for follower in followers:
            self._emit(Cancelled(follower.id))
        return True

    def _cancel_dequeued(self, request: TranslationRequest) -> None:
        with self._pending_lock:
            request.cancellation_token.cancel()
            self._active.pop(request.id, None)
            followers = self._close_group_locked(request)
        self._emit(Cancelled(request.id))
        for follower in followers:
            self._emit(Cancelled(follower.id))

    def stats(self) -> QueueStats:
        """Point-in-time snapshot; not used for control decisions."""
        with self._pending_lock:
            active = len(self._active)
        return QueueStats(
            queued=len(self._queue),
            active=active,
            cached=len(self.cache),
            remaining_this_minute=self.rate_limiter.remaining_this_minute(),
            remaining_today=self.rate_limiter.remaining_today(),
        )

    def process_next(self) -> Optional[threading.Thread]:
        """
        Run one scheduler tick: admit and dispatch the next queued request.

        Returns:
            The dispatch thread, or None when nothing was dispatched.
        """
        with self._pending_lock:
            request = self._queue.pop(gate=self._admit)
            if request is None:
                return None
            self._active[request.id] = request
            thread = threading.Thread(
                target=self._dispatch,
                args=(request,),
                name=f"translation-dispatch-{request.id}",
                daemon=True,
            )
            self._dispatch_threads = {t for t in self._dispatch_threads if t.is_alive()}
            self._dispatch_threads.add(thread)

        thread.start()
        logger.debug(f"Dispatched {request.id} (priority {request.priority.name})")
        return thread

    # ------------------------------------------------------------------
    # Submission internals
    # ------------------------------------------------------------------

    def _submit(self, text: str, preset: Optional[str], priority: Any, waiter: Optional[_Waiter] = None) -> Submission:
        preset_id = preset or self.config['prompt']['active_preset']
        get_prompt_preset(self.config, preset_id)
        validated = self.validator.validate(text)

        request = TranslationRequest(
            text=validated,
            prompt_preset=preset_id,
            priority=Priority.parse(priority),
            key=make_cache_key(validated, preset_id),
        )
        if waiter is not None:
            with self._waiters_lock:
                self._waiters[request.id] = waiter

        with self._pending_lock:
            # Checked under the pending lock so a leader finishing right now is seen
            cached = self.cache.get(request.key)
            if cached is None:
                group = self._pending.get(request.key)
                if group is not None:
                    group.followers.append(request)
                    self._followers[request.id] = request.key
                    logger.debug(f"Request {request.id} deduplicated onto {group.leader.id}")
                    return Submission(request.id, SUBMISSION_DEDUPLICATED)

                self._pending[request.key] = PendingGroup(leader=request)
                size = self._queue.push(request)

        if cached is not None:
            logger.debug(f"Translation for {request.id} found in cache")
            self._emit(Completed(request.id, TranslationResult(
                request_id=request.id,
                original_text=validated,
                translated_text=cached,
                tokens_used=0,
                duration=time.monotonic() - request.created_at,
            )))
            return Submission(request.id, SUBMISSION_CACHED, cached)

        logger.debug(f"Request {request.id} enqueued ({request.priority.name}), queue size: {size}")
        return Submission(request.id, SUBMISSION_QUEUED)

    def _close_group_locked(self, leader: TranslationRequest) -> List[TranslationRequest]:
        """Drop the leader's pending group and return its followers (pending lock held)."""
        group = self._pending.get(leader.key)
        if group is None or group.leader.id != leader.id:
            return []
        del self._pending[leader.key]
        for follower in group.followers:
            self._followers.pop(follower.id, None)
        return list(group.followers)

    # ------------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            try:
                self.process_next()
            except Exception:
                logger.exception("Translation loop tick failed")

    def _run_cache_cleanup(self) -> None:
        while not self._stop_event.wait(self.cache_cleanup_interval):
            try:
                self.cache.sweep()
            except Exception:
                logger.exception("Cache cleanup failed")

    def _admit(self) -> bool:
        admission = self.rate_limiter.admit()
        if admission:
            self._last_denial = None
            return True

        reason = admission.reason
        if type(reason) is not self._last_denial:
            if isinstance(reason, DailyCapReached):
                logger.warning(f"Daily limit reached ({reason.used}/{reason.max})")
            else:
                logger.debug(f"Rate limited, waiting {reason.wait:.1f}s")
        self._last_denial = type(reason)
        return False

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch(self, request: TranslationRequest) -> None:
        started = time.monotonic()
        try:
            translated, tokens = self._translate(request)
        except RateLimitedError as e:
            self._requeue(request, e.retry_after)
            return
        except RequestCancelledError:
            self._finish_cancelled(request)
            return
        except TranslationError as e:
            self._finish_failed(request, str(e), e.code)
            return
        except Exception as e:
            logger.exception(f"Unexpected error while translating {request.id}")
            self._finish_failed(request, f"{type(e).__name__}: {e}", "internal_error")
            return

        self._finish_completed(request, translated, tokens, time.monotonic() - started)

    def _translate(self, request: TranslationRequest) -> Tuple[str, int]:
        """Translate the request's text, one sequential call per chunk."""
        preset = get_prompt_preset(self.config, request.prompt_preset)
        chunks = self.chunker.split(request.text)
        if len(chunks) > 1:
            logger.info(f"Request {request.id}: {len(request.text)} chars split into {len(chunks)} chunks")

        translated_chunks: List[TranslatedChunk] = []
        tokens_used = 0

        for chunk in chunks:
            if request.cancellation_token.is_cancelled:
                raise RequestCancelledError()
            api_request = self._build_api_request(request, preset['system'], chunk.text)
            response = self.client.send(api_request, request.cancellation_token)
            tokens_used += response.usage.total_tokens if response.usage else 0
            translated_chunks.append(TranslatedChunk(chunk.index, response.content, chunk.overlap_len))
            if len(chunks) > 1:
                logger.debug(f"Request {request.id}: chunk {chunk.index + 1}/{len(chunks)} translated")

        return self.chunker.merge(translated_chunks), tokens_used

    def _build_api_request(self, request: TranslationRequest, system_prompt: str, text: str) -> ChatCompletionRequest:
        api_request = (
            ChatCompletionRequest(self.model)
            .with_system_message(system_prompt)
            .with_user_message(text)
            .with_user_id(request.id)
        )
        if self.temperature is not None:
            api_request.with_temperature(self.temperature)
        if self.max_tokens:
            api_request.with_max_tokens(self.max_tokens)
        return api_request

    def _requeue(self, request: TranslationRequest, retry_after: Optional[float]) -> None:
        with self._pending_lock:
            if self._active.pop(request.id, None) is None:
                return  # cancelled meanwhile
            self._queue.push_front(request)

        wait_time = retry_after if retry_after is not None else DEFAULT_RATE_LIMIT_WAIT
        logger.warning(f"Request {request.id} rate limited by endpoint, re-queued (retry in ~{wait_time:g}s)")
        self._emit(RateLimited(request.id, wait_time))

    def _finish_completed(self, request: TranslationRequest, translated: str, tokens: int, duration: float) -> None:
        with self._pending_lock:
            if self._active.pop(request.id, None) is None:
                return  # cancelled meanwhile; Cancelled already emitted
            self.cache.put(request.key, translated)
            followers = self._close_group_locked(request)

        logger.info(f"Request {request.id} completed in {duration:.2f}s ({tokens} tokens)")
        self._emit(Completed(request.id, TranslationResult(
            request_id=request.id,
            original_text=request.text,
            translated_text=translated,
            tokens_used=tokens,
            duration=duration,
        )))
        for follower in followers:
            self._emit(Completed(follower.id, TranslationResult(
                request_id=follower.id,
                original_text=follower.text,
                translated_text=translated,
                tokens_used=0,
                duration=time.monotonic() - follower.created_at,
            )))

    def _finish_failed(self, request: TranslationRequest, error: str, code: Optional[str]) -> None:
        with self._pending_lock:
            if self._active.pop(request.id, None) is None:
                return
            followers = self._close_group_locked(request)

        logger.error(f"Request {request.id} failed: {error}")
        self._emit(Failed(request.id, error, code))
        for follower in followers:
            self._emit(Failed(follower.id, error, code))

    def _finish_cancelled(self, request: TranslationRequest) -> None:
        with self._pending_lock:
            if self._active.pop(request.id, None) is None:
                return
            followers = self._close_group_locked(request)

        self._emit(Cancelled(request.id))
        for follower in followers:
            self._emit(Cancelled(follower.id))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, event: TranslationEvent) -> None:
        self.events.send(event)

        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Event listener failed on {event.kind} for {event.request_id}")

        if isinstance(event, RateLimited):
            return
        with self._waiters_lock:
            waiter = self._waiters.pop(event.request_id, None)
        if waiter is not None:
            waiter.event = event
            waiter.done.set()
