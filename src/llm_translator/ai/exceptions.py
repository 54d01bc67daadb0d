"""
Translation Exceptions

This module contains the exception classes shared by the chat client,
the text validator and the translation engine.
Separated to avoid circular imports between client.py and the engine.
"""

from typing import Optional


class TranslationError(Exception):
    """Translation service error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ConfigError(TranslationError):
    """Configuration is missing or out of range."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, code="config_invalid", details=details)


class PresetNotFoundError(TranslationError):
    """Requested prompt preset is neither built-in nor custom."""

    def __init__(self, preset_id: str):
        super().__init__(
            f"Prompt preset '{preset_id}' not found",
            code="preset_not_found",
            details={"preset": preset_id},
        )
        self.preset_id = preset_id


class TextValidationError(TranslationError):
    """Input text rejected before it reaches the queue."""


# ---------------------------------------------------------------------------
# Chat client errors
# ---------------------------------------------------------------------------

class ChatClientError(TranslationError):
    """Base class for failures of a single chat-completion call."""

    retryable = False


class TransportError(ChatClientError):
    """Connection failure, protocol error or per-call timeout."""

    retryable = True

    def __init__(self, message: str):
        super().__init__(f"HTTP request failed: {message}", code="transport_error")


class InvalidCredentialError(ChatClientError):
    def __init__(self):
        super().__init__("Invalid API key", code="invalid_api_key")


class ModelNotFoundError(ChatClientError):
    def __init__(self, message: str):
        super().__init__(f"Model not found: {message}", code="model_not_found")


class RequestTooLargeError(ChatClientError):
    """The endpoint refused the payload; the caller should shrink the input."""

    def __init__(self, tokens: int = 0):
        super().__init__(f"Request too large: {tokens} tokens", code="request_too_large",
                         details={"tokens": tokens})
        self.tokens = tokens


class RateLimitedError(ChatClientError):
    retryable = True

    def __init__(self, retry_after: Optional[float] = None):
        if retry_after is None:
            message = "Rate limit exceeded"
        else:
            message = f"Rate limit exceeded, retry after {retry_after:g}s"
        super().__init__(message, code="rate_limited", details={"retry_after": retry_after})
        self.retry_after = retry_after


class ServiceUnavailableError(ChatClientError):
    retryable = True

    def __init__(self, status_code: int = 503):
        super().__init__("Service unavailable", code="service_unavailable",
                         details={"status_code": status_code})
        self.status_code = status_code


class InsufficientQuotaError(ChatClientError):
    def __init__(self):
        super().__init__("Insufficient quota", code="insufficient_quota")


class MalformedResponseError(ChatClientError):
    """A 2xx response whose body could not be understood."""

    def __init__(self, reason: str, body: str = ""):
        super().__init__(f"Deserialization error: {reason}", code="malformed_response",
                         details={"body": body[:500]})
        self.body = body[:500]


class ApiError(ChatClientError):
    """Any other non-2xx answer, carrying the endpoint's message and code."""

    def __init__(self, message: str, api_code: Optional[str] = None, status_code: int = 0):
        super().__init__(f"API error: {message}", code=api_code or "api_error",
                         details={"status_code": status_code})
        self.api_code = api_code
        self.status_code = status_code


class RequestCancelledError(ChatClientError):
    def __init__(self):
        super().__init__("Request cancelled", code="cancelled")
