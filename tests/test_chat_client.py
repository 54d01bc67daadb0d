"""Tests for ChatClient against httpx.MockTransport."""

import json
import threading
import time

import httpx
import pytest

from llm_translator.ai.api_types import ChatCompletionRequest
from llm_translator.ai.client import ChatClient
from llm_translator.ai.exceptions import (
    ApiError,
    InsufficientQuotaError,
    InvalidCredentialError,
    MalformedResponseError,
    ModelNotFoundError,
    RateLimitedError,
    RequestCancelledError,
    RequestTooLargeError,
    ServiceUnavailableError,
    TransportError,
)
from llm_translator.core.cancellation import CancellationToken

ENDPOINT = "https://llm.example.test/v1/chat/completions"


def completion_body(content="Bonjour", usage=True):
    body = {
        "id": "chatcmpl-1",
        "model": "gpt-test",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }
    if usage:
        body["usage"] = {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15}
    return body


class Recorder:
    """MockTransport handler replaying a list of responses (the last one repeats)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_client(handler, max_retries=3, monkeypatch=None, delay=0.0):
    client = ChatClient(ENDPOINT, "sk-test", max_retries=max_retries, transport=httpx.MockTransport(handler))
    if monkeypatch is not None:
        monkeypatch.setattr(client, "_retry_delay", lambda attempt, error: delay)
    return client


def simple_request():
    return (
        ChatCompletionRequest("gpt-test")
        .with_system_message("Translate to English.")
        .with_user_message("Bonjour")
        .with_temperature(0.3)
        .with_user_id("req_1")
    )


def test_successful_call_parses_response():
    handler = Recorder(httpx.Response(200, json=completion_body("Hello")))
    client = make_client(handler)

    response = client.send(simple_request())

    assert response.content == "Hello"
    assert response.is_complete
    assert response.usage.total_tokens == 15
    assert client.get_last_token_usage() == {"prompt_tokens": 12, "completion_tokens": 3}

    sent = handler.requests[0]
    assert sent.headers["Authorization"] == "Bearer sk-test"
    payload = json.loads(sent.content)
    assert payload["model"] == "gpt-test"
    assert payload["user"] == "req_1"
    assert payload["temperature"] == 0.3
    assert "max_tokens" not in payload
    assert [m["role"] for m in payload["messages"]] == ["system", "user"]


def test_missing_usage_is_estimated():
    client = make_client(Recorder(httpx.Response(200, json=completion_body("12345678", usage=False))))

    response = client.send(simple_request())

    assert response.usage.completion_tokens == 2
    assert response.usage.total_tokens > 2


def test_total_usage_accumulates():
    client = make_client(Recorder(httpx.Response(200, json=completion_body())))

    client.send(simple_request())
    client.send(simple_request())

    assert client.get_total_token_usage() == {"prompt_tokens": 24, "completion_tokens": 6}


def test_service_unavailable_retried_until_exhausted(monkeypatch):
    handler = Recorder(httpx.Response(503))
    client = make_client(handler, max_retries=3, monkeypatch=monkeypatch)

    with pytest.raises(ServiceUnavailableError):
        client.send(simple_request())

    assert len(handler.requests) == 4


def test_transient_failure_then_success(monkeypatch):
    handler = Recorder(httpx.Response(502), httpx.Response(200, json=completion_body("Hi")))
    client = make_client(handler, monkeypatch=monkeypatch)

    assert client.send(simple_request()).content == "Hi"
    assert len(handler.requests) == 2


def test_transport_errors_are_retried(monkeypatch):
    handler = Recorder(httpx.ConnectError("connection refused"))
    client = make_client(handler, max_retries=2, monkeypatch=monkeypatch)

    with pytest.raises(TransportError):
        client.send(simple_request())

    assert len(handler.requests) == 3


def test_timeout_is_transport_error(monkeypatch):
    handler = Recorder(httpx.ReadTimeout("slow"))
    client = make_client(handler, max_retries=1, monkeypatch=monkeypatch)

    with pytest.raises(TransportError, match="timeout"):
        client.send(simple_request())


def test_invalid_credential_not_retried():
    handler = Recorder(httpx.Response(401, json={"error": {"message": "bad key"}}))
    client = make_client(handler)

    with pytest.raises(InvalidCredentialError):
        client.send(simple_request())

    assert len(handler.requests) == 1


def test_rate_limited_honours_retry_after(monkeypatch):
    sleeps = []
    handler = Recorder(
        httpx.Response(429, headers={"Retry-After": "0"}),
        httpx.Response(200, json=completion_body()),
    )
    client = make_client(handler)
    monkeypatch.setattr("llm_translator.ai.client.time.sleep", sleeps.append)

    client.send(simple_request())

    assert sleeps == [0.0]
    assert len(handler.requests) == 2


def test_rate_limited_exhausted_raises_with_retry_after(monkeypatch):
    handler = Recorder(httpx.Response(429, headers={"Retry-After": "7"}))
    client = make_client(handler, max_retries=1, monkeypatch=monkeypatch)

    with pytest.raises(RateLimitedError) as exc_info:
        client.send(simple_request())

    assert exc_info.value.retry_after == 7.0


@pytest.mark.parametrize("status,body,error_type", [
    (404, {"error": {"message": "The model gpt-x does not exist"}}, ModelNotFoundError),
    (413, {"error": {"message": "Request has 9000 tokens"}}, RequestTooLargeError),
    (507, {}, InsufficientQuotaError),
    (400, {"error": {"message": "bad temperature", "code": "invalid_value"}}, ApiError),
])
def test_non_retryable_statuses(status, body, error_type):
    handler = Recorder(httpx.Response(status, json=body))
    client = make_client(handler)

    with pytest.raises(error_type):
        client.send(simple_request())

    assert len(handler.requests) == 1


def test_request_too_large_carries_token_count():
    client = make_client(Recorder(httpx.Response(413, json={"error": {"message": "Request has 9000 tokens"}})))

    with pytest.raises(RequestTooLargeError) as exc_info:
        client.send(simple_request())

    assert exc_info.value.tokens == 9000


def test_api_error_keeps_endpoint_code():
    body = {"error": {"message": "bad temperature", "code": "invalid_value"}}
    client = make_client(Recorder(httpx.Response(400, json=body)))

    with pytest.raises(ApiError) as exc_info:
        client.send(simple_request())

    assert exc_info.value.code == "invalid_value"
    assert exc_info.value.status_code == 400


def test_malformed_success_body_not_retried():
    handler = Recorder(httpx.Response(200, text="not json"))
    client = make_client(handler)

    with pytest.raises(MalformedResponseError):
        client.send(simple_request())

    assert len(handler.requests) == 1


def test_response_without_choices_is_malformed():
    client = make_client(Recorder(httpx.Response(200, json={"choices": []})))

    with pytest.raises(MalformedResponseError):
        client.send(simple_request())


def test_cancelled_before_send():
    handler = Recorder(httpx.Response(200, json=completion_body()))
    client = make_client(handler)
    token = CancellationToken()
    token.cancel()

    with pytest.raises(RequestCancelledError):
        client.send(simple_request(), token)

    assert handler.requests == []


def test_cancel_interrupts_backoff(monkeypatch):
    handler = Recorder(httpx.Response(503))
    client = make_client(handler, monkeypatch=monkeypatch, delay=30.0)
    token = CancellationToken()
    threading.Timer(0.1, token.cancel).start()

    started = time.monotonic()
    with pytest.raises(RequestCancelledError):
        client.send(simple_request(), token)

    assert time.monotonic() - started < 5.0
    assert len(handler.requests) == 1


def test_retry_delay_backoff_bounds():
    client = make_client(Recorder(httpx.Response(200, json=completion_body())))

    for attempt, base in [(1, 0.1), (2, 0.2), (3, 0.4)]:
        delay = client._retry_delay(attempt, ServiceUnavailableError())
        assert base <= delay <= base + 0.1

    assert client._retry_delay(1, RateLimitedError(retry_after=4.5)) == 4.5


def test_validate_api_key():
    assert not make_client(Recorder(httpx.Response(401))).validate_api_key("gpt-test")
    assert make_client(Recorder(httpx.Response(200, json=completion_body()))).validate_api_key("gpt-test")
    assert make_client(Recorder(httpx.Response(429))).validate_api_key("gpt-test")


def test_from_config():
    client = ChatClient.from_config({
        "endpoint": ENDPOINT,
        "api_key": "sk-config",
        "max_retries": 5,
        "timeout_seconds": 12,
    })

    assert client.endpoint == ENDPOINT
    assert client.api_key == "sk-config"
    assert client.max_retries == 5
    assert client.timeout_seconds == 12
