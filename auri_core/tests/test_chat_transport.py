import json
import time

import httpx
import pytest

from auri_core.domain.conversation import StaticIdentityProvider
from auri_core.domain.exceptions import (
    ApiError,
    NetworkError,
    RequestTimeoutError,
    UnauthenticatedError,
)
from auri_core.domain.models import ChatMessage, DoneChunk, SessionChunk, TokenChunk
from auri_core.providers.chat_transport import ChatTransport


class SettingsStub:
    api_base_url = "https://auri.test/functions/v1"
    chat_path = "/chat"
    http_timeout = 5.0
    request_timeout = None
    demo_mode_header = "x-demo-mode"


def sse(*events, done=True) -> bytes:
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


def messages():
    return [ChatMessage(role="user", content="Jag kan inte sova")]


def test_send_posts_bearer_and_json_body():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=sse({"type": "session", "session_id": "s1"}, {"type": "token", "content": "Hej"}, {"type": "done", "session_id": "s1"}),
        )

    transport = ChatTransport(StaticIdentityProvider("tok-123"), SettingsStub(), transport=httpx.MockTransport(handler))
    exchange = transport.send(messages(), "sv", {"session_id": "s1", "unused": None})
    chunks = list(exchange.stream)

    assert captured["url"] == "https://auri.test/functions/v1/chat"
    assert captured["auth"] == "Bearer tok-123"
    assert captured["body"] == {
        "messages": [{"role": "user", "content": "Jag kan inte sova"}],
        "lang": "sv",
        "session_id": "s1",
    }
    assert chunks == [SessionChunk(session_id="s1"), TokenChunk(content="Hej"), DoneChunk(session_id="s1")]
    assert exchange.is_demo_mode is False
    assert exchange.finished


def test_demo_mode_header_is_detected():
    def handler(request):
        return httpx.Response(200, headers={"x-demo-mode": "1"}, content=sse({"type": "token", "content": "Demo-läge"}))

    transport = ChatTransport(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    exchange = transport.send(messages(), "sv")
    assert exchange.is_demo_mode is True
    assert list(exchange.stream) == [TokenChunk(content="Demo-läge")]


def test_missing_token_fails_before_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=sse())

    transport = ChatTransport(StaticIdentityProvider(None), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(UnauthenticatedError):
        transport.send(messages(), "sv")
    assert calls == []


def test_token_is_read_fresh_on_every_call():
    seen = []

    def handler(request):
        seen.append(request.headers["authorization"])
        return httpx.Response(200, content=sse({"type": "done"}))

    identity = StaticIdentityProvider("old-token")
    transport = ChatTransport(identity, SettingsStub(), transport=httpx.MockTransport(handler))
    list(transport.send(messages(), "sv").stream)
    identity.token = "refreshed-token"
    list(transport.send(messages(), "sv").stream)
    assert seen == ["Bearer old-token", "Bearer refreshed-token"]


def test_error_body_message_is_surfaced():
    def handler(request):
        return httpx.Response(500, json={"error": "no-openai-key"})

    transport = ChatTransport(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(ApiError) as exc_info:
        transport.send(messages(), "sv")
    assert exc_info.value.message == "no-openai-key"
    assert exc_info.value.http_status == 500


def test_error_without_body_uses_status():
    def handler(request):
        return httpx.Response(502)

    transport = ChatTransport(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(ApiError) as exc_info:
        transport.send(messages(), "sv")
    assert exc_info.value.message == "HTTP 502"


def test_401_maps_to_unauthenticated():
    def handler(request):
        return httpx.Response(401, json={"error": "Unauthorized"})

    transport = ChatTransport(StaticIdentityProvider("expired"), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(UnauthenticatedError):
        transport.send(messages(), "sv")


def test_network_failure_maps_to_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport = ChatTransport(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(NetworkError) as exc_info:
        transport.send(messages(), "sv")
    assert exc_info.value.retryable


def test_httpx_timeout_maps_to_timeout_error():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    transport = ChatTransport(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(RequestTimeoutError) as exc_info:
        transport.send(messages(), "sv")
    assert exc_info.value.code == "TIMEOUT"


def test_deadline_aborts_stream_with_timeout_error():
    def body():
        yield b'data: {"type": "token", "content": "a"}\n\n'
        time.sleep(1.0)
        yield b'data: {"type": "token", "content": "b"}\n\n'

    def handler(request):
        return httpx.Response(200, content=body())

    transport = ChatTransport(
        StaticIdentityProvider("tok"),
        SettingsStub(),
        request_timeout=0.3,
        transport=httpx.MockTransport(handler),
    )
    exchange = transport.send(messages(), "sv")
    assert next(exchange.stream) == TokenChunk(content="a")
    with pytest.raises(RequestTimeoutError):
        next(exchange.stream)
    assert exchange.finished


def test_abort_mid_stream_ends_silently():
    def body():
        yield b'data: {"type": "token", "content": "one"}\n\n'
        yield b'data: {"type": "token", "content": "two"}\n\n'
        yield b'data: {"type": "error", "error": "should not be seen"}\n\n'

    def handler(request):
        return httpx.Response(200, content=body())

    transport = ChatTransport(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    exchange = transport.send(messages(), "sv")
    assert next(exchange.stream) == TokenChunk(content="one")
    exchange.abort()
    assert list(exchange.stream) == []
    assert exchange.cancelled
    exchange.abort()


def test_new_send_aborts_previous_exchange():
    def handler(request):
        return httpx.Response(200, content=sse({"type": "token", "content": "x"}, {"type": "done"}))

    transport = ChatTransport(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    first = transport.send(messages(), "sv")
    second = transport.send(messages(), "sv")
    assert first.cancelled
    assert list(first.stream) == []
    assert list(second.stream) == [TokenChunk(content="x"), DoneChunk()]


def test_deadline_applies_while_waiting_for_headers():
    def handler(request):
        time.sleep(1.0)
        return httpx.Response(200, content=sse({"type": "done"}))

    transport = ChatTransport(
        StaticIdentityProvider("tok"),
        SettingsStub(),
        request_timeout=0.1,
        transport=httpx.MockTransport(handler),
    )
    started = time.monotonic()
    with pytest.raises(RequestTimeoutError):
        transport.send(messages(), "sv")
    assert time.monotonic() - started < 0.8
