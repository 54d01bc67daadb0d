"""
Chat Completion Client

Sends one chat-completion call to an OpenAI-compatible endpoint:
- Bearer authentication and per-call timeout
- Error classification (see providers.error_from_response)
- Retry of transient failures with exponential backoff and jitter
- Cooperative cancellation, honoured during backoff sleeps
"""

import random
import threading
import time
from typing import Any, Dict, Optional

import httpx

from llm_translator.logger import get_logger
from llm_translator.ai.api_types import ChatCompletionRequest, ChatCompletionResponse, Usage
from llm_translator.ai.exceptions import (
    ChatClientError,
    InvalidCredentialError,
    RateLimitedError,
    RequestCancelledError,
    TransportError,
)
from llm_translator.ai.providers import error_from_response, get_httpx_timeout
from llm_translator.core.cancellation import CancellationToken

logger = get_logger(__name__)

BASE_RETRY_DELAY = 0.1   # seconds, doubled per attempt
MAX_JITTER = 0.1         # seconds


class ChatClient:
    """Client for a single chat-completion endpoint."""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        max_retries: int = 3,
        timeout_seconds: float = 30,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Full URL of the chat-completions resource
            api_key: Bearer token
            max_retries: Extra attempts allowed for retryable failures
            timeout_seconds: Timeout of one HTTP call (a timeout counts as a transport failure)
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests
        """
        self.endpoint = endpoint
        self.api_key = api_key
        self.max_retries = max_retries
        self.timeout_seconds = timeout_seconds
        self._timeout = get_httpx_timeout(timeout_seconds)
        self._transport = transport
        # Token usage tracking, shared by all dispatch threads
        self._usage_lock = threading.Lock()
        self._last_token_usage = {'prompt_tokens': 0, 'completion_tokens': 0}
        self.total_prompt_tokens = 0
        self.total_completion_tokens = 0

    @classmethod
    def from_config(cls, api_config: Dict[str, Any], transport: Optional[httpx.BaseTransport] = None) -> "ChatClient":
        """Build a client from the `api` section of the configuration."""
        return cls(
            endpoint=api_config['endpoint'],
            api_key=api_config.get('api_key', ''),
            max_retries=api_config.get('max_retries', 3),
            timeout_seconds=api_config.get('timeout_seconds', 30),
            transport=transport,
        )

    def get_last_token_usage(self) -> Dict[str, int]:
        """Get token usage from the last API call."""
        with self._usage_lock:
            return self._last_token_usage.copy()

    def get_total_token_usage(self) -> Dict[str, int]:
        """Get accumulated token usage."""
        with self._usage_lock:
            return {
                'prompt_tokens': self.total_prompt_tokens,
                'completion_tokens': self.total_completion_tokens,
            }

    def send(
        self,
        request: ChatCompletionRequest,
        cancellation: Optional[CancellationToken] = None,
    ) -> ChatCompletionResponse:
        """
        Send a chat-completion request, retrying transient failures.

        Args:
            request: The request body
            cancellation: Optional token; checked before every attempt and
                interrupts backoff sleeps

        Returns:
            Parsed response (usage is estimated when the endpoint omits it)

        Raises:
            ChatClientError: The classified failure; RequestCancelledError on cancellation.
        """
        attempt = 0

        while True:
            if cancellation is not None and cancellation.is_cancelled:
                raise RequestCancelledError()

            failure: Optional[ChatClientError] = None
            try:
                response = self._send_once(request)
            except ChatClientError as e:
                failure = e

            if failure is None:
                if cancellation is not None and cancellation.is_cancelled:
                    raise RequestCancelledError()
                return response

            if not self._should_retry(failure, attempt):
                if attempt > 0:
                    logger.error(f"Request failed after {attempt + 1} attempts: {failure}")
                raise failure

            attempt += 1
            delay = self._retry_delay(attempt, failure)
            logger.warning(
                f"Request failed (attempt {attempt}/{self.max_retries}): {failure}. "
                f"Retrying in {delay:.2f}s"
            )

            if cancellation is not None:
                if cancellation.wait(delay):
                    raise RequestCancelledError()
            else:
                time.sleep(delay)

    def validate_api_key(self, model: str) -> bool:
        """
        Check the key with a 1-token request.

        Only an explicit 401 marks the key as bad; any other failure
        (quota, model, network) says nothing about the key itself.
        """
        check = ChatCompletionRequest(model).with_user_message("test").with_max_tokens(1)
        try:
            self._send_once(check)
        except InvalidCredentialError:
            return False
        except ChatClientError as e:
            logger.debug(f"API key check inconclusive: {e}")
        return True

    def _send_once(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        logger.debug(f"  Calling chat completion API (model: {request.model}, url: {self.endpoint})...")

        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self.endpoint, headers=headers, json=request.to_dict())
        except httpx.TimeoutException:
            raise TransportError(f"request timeout after {self.timeout_seconds} seconds")
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__)

        if not response.is_success:
            raise error_from_response(response)

        parsed = ChatCompletionResponse.from_json(response.text)
        if parsed.usage is None:
            from llm_translator.translation.validator import estimate_tokens
            prompt_tokens = sum(estimate_tokens(m.content) for m in request.messages)
            completion_tokens = estimate_tokens(parsed.content or "")
            parsed.usage = Usage(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens)
            logger.debug(f"  No usage in response, estimated {parsed.usage.total_tokens} tokens")

        self._record_usage(parsed.usage)
        logger.debug(f"  Received {len(parsed.content or '')} chars (tokens: {parsed.usage.total_tokens})")
        return parsed

    def _record_usage(self, usage: Usage) -> None:
        with self._usage_lock:
            self._last_token_usage = {
                'prompt_tokens': usage.prompt_tokens,
                'completion_tokens': usage.completion_tokens,
            }
            self.total_prompt_tokens += usage.prompt_tokens
            self.total_completion_tokens += usage.completion_tokens

    def _should_retry(self, error: ChatClientError, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        return error.retryable

    def _retry_delay(self, attempt: int, error: ChatClientError) -> float:
        """
        Delay before retry number `attempt` (1-based).

        An explicit Retry-After wins; otherwise 100ms * 2^(attempt-1) plus up to 100ms jitter.
        """
        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            return error.retry_after
        return BASE_RETRY_DELAY * (2 ** (attempt - 1)) + random.uniform(0, MAX_JITTER)
