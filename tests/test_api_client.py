"""Tests for the HTTP client using httpx.MockTransport."""

import json

import httpx
import pytest

from app.client.api_client import ChatAPIClient
from app.core.errors import ChatAPIError

SSE_BODY = (
    'data: {"type": "start", "mode": "general"}\n\n'
    ": keep-alive comment\n\n"
    'data: {"type": "text-delta", "delta": "Hi"}\n\n'
    "data: {not json}\n\n"
    'data: {"type": "finish", "finishReason": "end_turn"}\n\n'
)


def _client(handler) -> ChatAPIClient:
    return ChatAPIClient(base_url="http://testserver/v1/", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_stream_chat_yields_events():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, text=SSE_BODY, headers={"content-type": "text/event-stream"})

    events = [e async for e in _client(handler).stream_chat({"messages": []})]

    assert seen["path"] == "/v1/chat"
    assert seen["body"] == {"messages": []}
    assert [e["type"] for e in events] == ["start", "text-delta", "finish"]


@pytest.mark.asyncio
async def test_stream_chat_error_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "Invalid request body"})

    with pytest.raises(ChatAPIError) as exc_info:
        async for _ in _client(handler).stream_chat({"messages": []}):
            pass

    assert exc_info.value.status_code == 400
    assert "Invalid request body" in str(exc_info.value)


@pytest.mark.asyncio
async def test_summarize():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/summarize"
        assert json.loads(request.content) == {"conversationHistory": "user: hi"}
        return httpx.Response(
            200,
            json={
                "projectContext": "Greeting",
                "decisions": [],
                "userPreferences": [],
                "keyInformation": [],
                "currentState": "Just started",
            },
        )

    summary = await _client(handler).summarize("user: hi")

    assert summary.current_state == "Just started"


@pytest.mark.asyncio
async def test_summarize_error_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "Failed to generate summary"})

    with pytest.raises(ChatAPIError) as exc_info:
        await _client(handler).summarize("user: hi")
    assert exc_info.value.status_code == 500
