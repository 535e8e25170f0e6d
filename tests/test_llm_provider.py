"""Tests for the Anthropic provider: message conversion, params and streaming."""

import base64
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from app.context.models import (
    FilePart,
    ImagePart,
    IntentClassification,
    Message,
    Mode,
    SourcePart,
    TextPart,
    ThinkingLevel,
    ThinkingPart,
    ToolCallPart,
)
from app.core.errors import StructuredOutputError
from app.core.llm import (
    WEB_FETCH_BETA,
    AnthropicProvider,
    ChatStream,
    GenerationRequest,
    build_stream_params,
    map_final_blocks,
    to_provider_messages,
)


class _AsyncIterator:
    """Async iterator wrapper for mocking ``async for`` loops."""

    def __init__(self, items):
        self._items = list(items)
        self._idx = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._idx >= len(self._items):
            raise StopAsyncIteration
        item = self._items[self._idx]
        self._idx += 1
        return item


# ──────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────


def _text_delta(text: str):
    event = MagicMock()
    event.type = "content_block_delta"
    event.delta = MagicMock(type="text_delta", text=text)
    return event


def _final(content, stop_reason="end_turn", input_tokens=100, output_tokens=20):
    final_msg = MagicMock()
    final_msg.content = content
    final_msg.stop_reason = stop_reason
    final_msg.usage = MagicMock(input_tokens=input_tokens, output_tokens=output_tokens)
    return final_msg


def _text_block(text: str, citations=None):
    return MagicMock(type="text", text=text, citations=citations)


def _mock_client(deltas, finals):
    mock_stream = AsyncMock()
    mock_stream.__aenter__ = AsyncMock(return_value=mock_stream)
    mock_stream.__aexit__ = AsyncMock(return_value=False)
    mock_stream.__aiter__ = lambda self: _AsyncIterator(deltas)
    mock_stream.get_final_message = AsyncMock(side_effect=finals)

    mock_client = MagicMock()
    mock_client.messages.stream.return_value = mock_stream
    return mock_client, mock_stream


def _request(**overrides) -> GenerationRequest:
    params = {
        "system": "system prompt",
        "messages": [Message(id="u1", role="user", content="hello")],
        "model": "claude-sonnet-4-5-20250929",
    }
    params.update(overrides)
    return GenerationRequest(**params)


async def _drain(stream) -> list:
    return [event async for event in stream.events()]


# ──────────────────────────────────────────────────────────────────────
# Message conversion
# ──────────────────────────────────────────────────────────────────────


class TestToProviderMessages:
    def test_plain_content(self):
        converted = to_provider_messages(
            [
                Message(id="s", role="system", content="ignored"),
                Message(id="u", role="user", content="hi"),
                Message(id="a", role="assistant", content="hello"),
            ]
        )
        assert converted == [
            {"role": "user", "content": [{"type": "text", "text": "hi"}]},
            {"role": "assistant", "content": [{"type": "text", "text": "hello"}]},
        ]

    def test_leading_assistant_and_empty_messages_dropped(self):
        converted = to_provider_messages(
            [
                Message(id="a0", role="assistant", content="Welcome!"),
                Message(id="u1", role="user", content="   "),
                Message(id="u2", role="user", content="question"),
            ]
        )
        assert [m["role"] for m in converted] == ["user"]
        assert converted[0]["content"][0]["text"] == "question"

    def test_image_parts(self):
        message = Message(
            id="u",
            role="user",
            parts=[
                TextPart(text="What is this?"),
                ImagePart(url="data:image/png;base64,iVBORw0KGgo="),
                ImagePart(url="https://example.com/cat.jpg"),
            ],
        )

        blocks = to_provider_messages([message])[0]["content"]

        assert blocks[1] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo="},
        }
        assert blocks[2] == {
            "type": "image",
            "source": {"type": "url", "url": "https://example.com/cat.jpg"},
        }

    def test_pdf_file_part(self):
        message = Message(
            id="u",
            role="user",
            parts=[FilePart(name="paper.pdf", url="data:application/pdf;base64,JVBERi0=", mime_type="application/pdf")],
        )

        block = to_provider_messages([message])[0]["content"][0]

        assert block["type"] == "document"
        assert block["title"] == "paper.pdf"
        assert block["source"] == {"type": "base64", "media_type": "application/pdf", "data": "JVBERi0="}

    def test_text_file_part_decoded(self):
        data = base64.b64encode("col1,col2\n1,2".encode("utf-8")).decode("ascii")
        message = Message(
            id="u",
            role="user",
            parts=[FilePart(name="data.csv", url=f"data:text/csv;base64,{data}", mime_type="text/csv")],
        )

        block = to_provider_messages([message])[0]["content"][0]

        assert block["source"] == {"type": "text", "media_type": "text/plain", "data": "col1,col2\n1,2"}

    def test_display_only_parts_skipped(self):
        message = Message(
            id="a",
            role="assistant",
            parts=[
                ThinkingPart(text="unsigned"),
                ThinkingPart(text="signed", signature="sig"),
                ToolCallPart(tool_call_id="t1", tool_name="web_search", args={}),
                SourcePart(url="https://example.com"),
                TextPart(text="answer"),
            ],
        )

        converted = to_provider_messages([Message(id="u", role="user", content="q"), message])

        assert converted[1]["content"] == [
            {"type": "thinking", "thinking": "signed", "signature": "sig"},
            {"type": "text", "text": "answer"},
        ]

    def test_user_thinking_never_sent(self):
        message = Message(
            id="u", role="user", parts=[ThinkingPart(text="x", signature="s"), TextPart(text="q")]
        )
        assert to_provider_messages([message])[0]["content"] == [{"type": "text", "text": "q"}]


# ──────────────────────────────────────────────────────────────────────
# Stream params
# ──────────────────────────────────────────────────────────────────────


class TestBuildStreamParams:
    def test_tools_enabled(self):
        params = build_stream_params(_request(max_steps=10, max_output_tokens=64_000))

        assert [t["name"] for t in params["tools"]] == ["web_search", "web_fetch"]
        assert all(t["max_uses"] == 10 for t in params["tools"])
        assert params["extra_headers"] == {"anthropic-beta": WEB_FETCH_BETA}
        assert params["max_tokens"] == 64_000
        assert params["system"] == "system prompt"

    def test_tools_disabled(self):
        params = build_stream_params(_request(tools_enabled=False))
        assert "tools" not in params
        assert "extra_headers" not in params

    @pytest.mark.parametrize(
        "level, max_tokens, expected",
        [
            (ThinkingLevel.HIGH, 64_000, 12_000),
            (ThinkingLevel.MEDIUM, 8_192, 4_096),
            (ThinkingLevel.HIGH, 8_192, 7_168),
            (ThinkingLevel.LOW, 16_384, 1_024),
        ],
    )
    def test_thinking_budget(self, level, max_tokens, expected):
        params = build_stream_params(_request(thinking_level=level, max_output_tokens=max_tokens))
        assert params["thinking"] == {"type": "enabled", "budget_tokens": expected}

    def test_minimal_thinking_disabled(self):
        params = build_stream_params(_request(thinking_level=ThinkingLevel.MINIMAL))
        assert "thinking" not in params

    def test_budget_too_small_disables_thinking(self):
        params = build_stream_params(_request(thinking_level=ThinkingLevel.LOW, max_output_tokens=2000))
        assert "thinking" not in params


# ──────────────────────────────────────────────────────────────────────
# Structured calls
# ──────────────────────────────────────────────────────────────────────


class TestGenerateStructured:
    @pytest.mark.asyncio
    async def test_forced_tool_call_validated(self):
        tool_block = MagicMock(type="tool_use")
        tool_block.input = {
            "mode": "research",
            "needsSearch": True,
            "needsUrlContext": False,
            "thinkingLevel": "high",
            "reasoning": "asks for the latest news",
        }
        response = MagicMock(content=[tool_block], usage=MagicMock(input_tokens=50, output_tokens=10))
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=response)

        result = await AnthropicProvider(client=mock_client).generate_structured(
            prompt="classify",
            schema=IntentClassification,
            tool_name="submit_intent",
            model="claude-haiku-4-5-20251001",
        )

        assert result.mode == Mode.RESEARCH
        assert result.needs_search is True
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "submit_intent"}
        schema = kwargs["tools"][0]["input_schema"]
        assert "needsSearch" in schema["properties"]
        assert "failureReason" not in schema["properties"]

    @pytest.mark.asyncio
    async def test_missing_tool_use_raises(self):
        response = MagicMock(content=[_text_block("no tool")], usage=None)
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=response)

        with pytest.raises(StructuredOutputError):
            await AnthropicProvider(client=mock_client).generate_structured(
                prompt="classify", schema=IntentClassification, tool_name="submit_intent", model="m"
            )

    @pytest.mark.asyncio
    async def test_invalid_tool_input_raises(self):
        tool_block = MagicMock(type="tool_use")
        tool_block.input = {"mode": "poetry"}
        response = MagicMock(content=[tool_block], usage=None)
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=response)

        with pytest.raises(ValidationError):
            await AnthropicProvider(client=mock_client).generate_structured(
                prompt="classify", schema=IntentClassification, tool_name="submit_intent", model="m"
            )


# ──────────────────────────────────────────────────────────────────────
# Streaming
# ──────────────────────────────────────────────────────────────────────


class TestChatStreamBase:
    def test_is_abstract(self):
        with pytest.raises(TypeError):
            ChatStream()

    def test_subclass_must_implement_aclose(self):
        class EventsOnly(ChatStream):
            async def events(self):
                yield None

        with pytest.raises(TypeError):
            EventsOnly()


class TestAnthropicChatStream:
    @pytest.mark.asyncio
    async def test_text_stream(self):
        mock_client, mock_stream = _mock_client(
            [_text_delta("Hi "), _text_delta("there!")],
            [_final([_text_block("Hi there!")])],
        )

        stream = await AnthropicProvider(client=mock_client).open_stream(_request())
        events = await _drain(stream)

        assert [e.type for e in events] == ["text-delta", "text-delta", "finish"]
        assert events[-1].data["finishReason"] == "end_turn"
        assert events[-1].data["usage"] == {"promptTokens": 100, "completionTokens": 20, "totalTokens": 120}
        mock_stream.__aexit__.assert_awaited()

    @pytest.mark.asyncio
    async def test_open_stream_surfaces_connection_errors(self):
        mock_client = MagicMock()
        failing = AsyncMock()
        failing.__aenter__ = AsyncMock(side_effect=RuntimeError("529 overloaded"))
        mock_client.messages.stream.return_value = failing

        with pytest.raises(RuntimeError, match="overloaded"):
            await AnthropicProvider(client=mock_client).open_stream(_request())

    @pytest.mark.asyncio
    async def test_pause_turn_continues_with_tool_events(self):
        tool_use = MagicMock(type="server_tool_use", id="srvtoolu_1", input={"query": "AI news"})
        tool_use.name = "web_search"
        result_item = MagicMock(url="https://example.com/news", title="AI News")
        tool_result = MagicMock(type="web_search_tool_result", tool_use_id="srvtoolu_1", content=[result_item])
        cited = MagicMock(url="https://example.com/news", title="AI News")

        mock_client, _ = _mock_client(
            [_text_delta("Searching")],
            [
                _final([tool_use, tool_result], stop_reason="pause_turn"),
                _final([_text_block("Done", citations=[cited])], input_tokens=200, output_tokens=30),
            ],
        )

        stream = await AnthropicProvider(client=mock_client).open_stream(_request(max_steps=3))
        events = await _drain(stream)

        types = [e.type for e in events]
        assert types == ["text-delta", "tool-call", "tool-result", "source", "text-delta", "finish"]
        assert events[1].data["toolName"] == "web_search"
        assert events[2].data["toolName"] == "web_search"
        assert events[3].data == {"url": "https://example.com/news", "title": "AI News"}
        assert events[-1].data["usage"]["totalTokens"] == 350

        assert mock_client.messages.stream.call_count == 2
        second_messages = mock_client.messages.stream.call_args_list[1].kwargs["messages"]
        assert [m["role"] for m in second_messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_pause_turn_stops_at_step_ceiling(self):
        mock_client, _ = _mock_client(
            [],
            [_final([], stop_reason="pause_turn"), _final([], stop_reason="pause_turn")],
        )

        stream = await AnthropicProvider(client=mock_client).open_stream(_request(max_steps=2))
        events = await _drain(stream)

        assert mock_client.messages.stream.call_count == 2
        assert events[-1].type == "finish"
        assert events[-1].data["finishReason"] == "pause_turn"

    @pytest.mark.asyncio
    async def test_closed_stream_yields_nothing(self):
        mock_client, mock_stream = _mock_client([_text_delta("x")], [_final([])])

        stream = await AnthropicProvider(client=mock_client).open_stream(_request())
        await stream.aclose()

        assert await _drain(stream) == []
        mock_stream.__aexit__.assert_awaited()


def test_sources_deduplicated_across_blocks():
    seen: set[str] = set()
    cited = MagicMock(url="https://a.example", title="A")
    first = map_final_blocks([_text_block("x", citations=[cited])], seen)
    second = map_final_blocks([_text_block("y", citations=[cited])], seen)
    assert len(first) == 1
    assert second == []
