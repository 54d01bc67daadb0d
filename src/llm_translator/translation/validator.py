"""
Text Validation Module

Checks applied to captured text before it is queued for translation:
- Empty / whitespace-only input
- Length bounds counted in code points
- Binary (control character) detection
"""

import math
from typing import Any, Dict

from llm_translator.ai.exceptions import TextValidationError
from llm_translator.logger import get_logger

logger = get_logger(__name__)

CHARS_PER_TOKEN_ESTIMATE = 4  # ~4 characters per token for most languages
_ALLOWED_CONTROL = {'\n', '\r', '\t'}


def estimate_tokens(text: str) -> int:
    """
    Estimates the number of tokens in text.

    Args:
        text: The text to estimate tokens for.

    Returns:
        Estimated token count, rounded up.
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN_ESTIMATE)


def contains_binary(text: str) -> bool:
    """True if text holds a control character other than newline, CR or tab."""
    return any(
        (ord(c) < 0x20 or 0x7f <= ord(c) < 0xa0) and c not in _ALLOWED_CONTROL
        for c in text
    )


class TextValidator:
    """Validates and normalises text before translation."""

    def __init__(
        self,
        max_length: int = 5000,
        min_length: int = 1,
        allow_only_whitespace: bool = False,
        detect_binary_data: bool = True,
        trim_before_validate: bool = True,
    ):
        self.max_length = max_length
        self.min_length = min_length
        self.allow_only_whitespace = allow_only_whitespace
        self.detect_binary_data = detect_binary_data
        self.trim_before_validate = trim_before_validate

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "TextValidator":
        limits = config.get('limits', {})
        validation = config.get('validation', {})
        return cls(
            max_length=limits.get('max_text_length', 5000),
            min_length=limits.get('min_text_length', 1),
            allow_only_whitespace=validation.get('allow_only_whitespace', False),
            detect_binary_data=validation.get('detect_binary_data', True),
            trim_before_validate=validation.get('trim_before_validate', True),
        )

    def validate(self, text: str) -> str:
        """
        Validate text.

        Returns:
            The text to translate (trimmed if trimming is enabled).

        Raises:
            TextValidationError: code is one of empty, only_whitespace,
                too_short, too_long, contains_binary.
        """
        if text is None:
            raise TextValidationError("Text is empty", code="empty")

        processed = text.strip() if self.trim_before_validate else text

        if not processed:
            raise TextValidationError("Text is empty", code="empty")

        if not self.allow_only_whitespace and processed.isspace():
            raise TextValidationError("Text contains only whitespace", code="only_whitespace")

        length = len(processed)
        if length < self.min_length:
            raise TextValidationError(
                f"Text is too short: {length} characters, minimum: {self.min_length}",
                code="too_short",
                details={"length": length, "min": self.min_length},
            )
        if length > self.max_length:
            raise TextValidationError(
                f"Text is too long: {length} characters, maximum: {self.max_length}",
                code="too_long",
                details={"length": length, "max": self.max_length},
            )

        if self.detect_binary_data and contains_binary(processed):
            raise TextValidationError("Text contains binary data", code="contains_binary")

        return processed
