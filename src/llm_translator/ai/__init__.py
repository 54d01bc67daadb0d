"""
AI Module

This module provides the chat-completion client, its wire types and the error taxonomy.
"""

from llm_translator.ai.exceptions import (
    ApiError,
    ChatClientError,
    ConfigError,
    InsufficientQuotaError,
    InvalidCredentialError,
    MalformedResponseError,
    ModelNotFoundError,
    PresetNotFoundError,
    RateLimitedError,
    RequestCancelledError,
    RequestTooLargeError,
    ServiceUnavailableError,
    TextValidationError,
    TranslationError,
    TransportError,
)
from llm_translator.ai.api_types import (
    ChatChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ErrorDetail,
    Usage,
)
from llm_translator.ai.client import ChatClient

__all__ = [
    'TranslationError', 'ChatClientError', 'ConfigError', 'PresetNotFoundError',
    'TextValidationError', 'TransportError', 'InvalidCredentialError', 'ModelNotFoundError',
    'RequestTooLargeError', 'RateLimitedError', 'ServiceUnavailableError',
    'InsufficientQuotaError', 'MalformedResponseError', 'ApiError', 'RequestCancelledError',
    'ChatMessage', 'ChatCompletionRequest', 'ChatCompletionResponse', 'ChatChoice',
    'Usage', 'ErrorDetail', 'ChatClient',
]
