"""
Chat Completion HTTP Helpers

Helpers shared by the chat client for talking to an OpenAI-compatible endpoint:
- httpx timeout construction from configuration
- Status-code to error-taxonomy mapping for non-2xx responses
"""

import re
from typing import Any, Optional

import httpx

from llm_translator.logger import get_logger
from llm_translator.ai.api_types import ErrorDetail
from llm_translator.ai.exceptions import (
    ApiError,
    ChatClientError,
    InsufficientQuotaError,
    InvalidCredentialError,
    ModelNotFoundError,
    RateLimitedError,
    RequestTooLargeError,
    ServiceUnavailableError,
)

logger = get_logger(__name__)

_INTEGER_RE = re.compile(r"\d+")


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (per-call timeout in seconds) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 30.0),
            read=timeout_config.get('read', 30.0),
            pool=timeout_config.get('pool', 10.0),
        )
    else:
        timeout_value = float(timeout_config) if timeout_config else 30.0
        return httpx.Timeout(timeout_value, connect=min(timeout_value, 10.0))


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After header in seconds; HTTP-date and junk values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def extract_token_count(message: str) -> int:
    """First integer mentioned in an error message, 0 if none."""
    match = _INTEGER_RE.search(message or "")
    return int(match.group()) if match else 0


def error_from_response(response: httpx.Response) -> ChatClientError:
    """
    Map a non-2xx response onto the client error taxonomy.

    401 -> InvalidCredentialError
    404 mentioning "model" -> ModelNotFoundError
    413 -> RequestTooLargeError (token count parsed from the message)
    429 -> RateLimitedError (Retry-After honoured)
    502/503 -> ServiceUnavailableError
    507 -> InsufficientQuotaError
    anything else -> ApiError with the endpoint's message and code
    """
    status_code = response.status_code
    body = response.text
    detail = ErrorDetail.from_json(body)

    logger.debug(f"Endpoint answered {status_code}: {body[:500]}")

    if status_code == 401:
        return InvalidCredentialError()

    if status_code == 404:
        if detail is not None and "model" in detail.message:
            return ModelNotFoundError(detail.message)
        if detail is not None:
            return ApiError(detail.message, detail.code, status_code)
        return ApiError("Not found", None, status_code)

    if status_code == 429:
        return RateLimitedError(parse_retry_after(response.headers.get("Retry-After")))

    if status_code == 413:
        return RequestTooLargeError(extract_token_count(detail.message) if detail else 0)

    if status_code in (502, 503):
        return ServiceUnavailableError(status_code)

    if status_code == 507:
        return InsufficientQuotaError()

    if detail is not None:
        return ApiError(detail.message, detail.code, status_code)
    return ApiError(f"HTTP {status_code}: {body[:500]}", None, status_code)
