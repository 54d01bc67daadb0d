"""
Chat Completion Wire Types

Request and response shapes of an OpenAI-compatible chat-completion endpoint:
- ChatCompletionRequest with fluent builders and JSON serialization
- ChatCompletionResponse / Usage parsing with strict shape checks
- ErrorDetail parsing for non-2xx bodies
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from llm_translator.ai.exceptions import MalformedResponseError


@dataclass
class ChatMessage:
    role: str
    content: str

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls("system", content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls("user", content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatCompletionRequest:
    model: str
    messages: List[ChatMessage] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    user: Optional[str] = None
    stream: bool = False

    def with_message(self, message: ChatMessage) -> "ChatCompletionRequest":
        self.messages.append(message)
        return self

    def with_system_message(self, content: str) -> "ChatCompletionRequest":
        return self.with_message(ChatMessage.system(content))

    def with_user_message(self, content: str) -> "ChatCompletionRequest":
        return self.with_message(ChatMessage.user(content))

    def with_temperature(self, temperature: float) -> "ChatCompletionRequest":
        self.temperature = temperature
        return self

    def with_max_tokens(self, max_tokens: int) -> "ChatCompletionRequest":
        self.max_tokens = max_tokens
        return self

    def with_user_id(self, user_id: str) -> "ChatCompletionRequest":
        self.user = user_id
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Build the JSON body, omitting optional fields that are unset."""
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "stream": self.stream,
        }
        if self.temperature is not None:
            body["temperature"] = self.temperature
        if self.max_tokens is not None:
            body["max_tokens"] = self.max_tokens
        if self.user is not None:
            body["user"] = self.user
        return body


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatChoice:
    index: int
    content: str
    finish_reason: Optional[str] = None
    role: str = "assistant"


@dataclass
class ChatCompletionResponse:
    choices: List[ChatChoice]
    usage: Optional[Usage] = None
    id: str = ""
    model: str = ""

    @property
    def content(self) -> Optional[str]:
        """Content of the first choice, if any."""
        if not self.choices:
            return None
        return self.choices[0].content

    @property
    def is_complete(self) -> bool:
        return bool(self.choices) and self.choices[0].finish_reason == "stop"

    @classmethod
    def from_json(cls, body: str) -> "ChatCompletionResponse":
        """
        Parse a 2xx response body.

        Raises:
            MalformedResponseError: Body is not JSON or has no message content.
        """
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(str(e), body)
        return cls.from_dict(data, body)

    @classmethod
    def from_dict(cls, data: Any, raw: str = "") -> "ChatCompletionResponse":
        if not isinstance(data, dict):
            raise MalformedResponseError("response is not a JSON object", raw)

        raw_choices = data.get("choices")
        if not isinstance(raw_choices, list) or not raw_choices:
            raise MalformedResponseError("no choices in response", raw)

        choices: List[ChatChoice] = []
        for i, raw_choice in enumerate(raw_choices):
            message = raw_choice.get("message") if isinstance(raw_choice, dict) else None
            if not isinstance(message, dict) or not isinstance(message.get("content"), str):
                raise MalformedResponseError(f"choice {i} has no message content", raw)
            choices.append(ChatChoice(
                index=raw_choice.get("index", i),
                content=message["content"],
                finish_reason=raw_choice.get("finish_reason"),
                role=message.get("role", "assistant"),
            ))

        usage = None
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            try:
                usage = Usage(
                    prompt_tokens=int(raw_usage.get("prompt_tokens", 0) or 0),
                    completion_tokens=int(raw_usage.get("completion_tokens", 0) or 0),
                    total_tokens=int(raw_usage.get("total_tokens", 0) or 0),
                )
            except (TypeError, ValueError):
                raise MalformedResponseError("usage counts are not integers", raw)
            if usage.total_tokens == 0:
                usage.total_tokens = usage.prompt_tokens + usage.completion_tokens

        return cls(
            choices=choices,
            usage=usage,
            id=str(data.get("id", "")),
            model=str(data.get("model", "")),
        )


@dataclass
class ErrorDetail:
    message: str
    type: str = ""
    code: Optional[str] = None
    param: Optional[str] = None

    @classmethod
    def from_json(cls, body: str) -> Optional["ErrorDetail"]:
        """Parse `{"error": {...}}`; returns None when the body has another shape."""
        try:
            data = json.loads(body)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        detail = data.get("error")
        if isinstance(detail, dict) and isinstance(detail.get("message"), str):
            code = detail.get("code")
            return cls(
                message=detail["message"],
                type=str(detail.get("type", "")),
                code=str(code) if code is not None else None,
                param=detail.get("param"),
            )
        if isinstance(detail, str):
            return cls(message=detail)
        return None
