"""LLM provider: structured calls and streamed generation over Anthropic.

Two call shapes are used by the engine:

- ``generate_structured``: one non-streamed call that forces a single
  tool_use whose input schema is a pydantic model, validated on return.
- ``open_stream``: a streamed answer with optional server tools
  (``web_search`` / ``web_fetch``) and extended thinking. The returned
  ``ChatStream`` has already sent its first request, so connection and
  rate-limit errors surface to the caller (and its retry policy) before any
  event is consumed.
"""

import base64
import re
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol, TypeVar

from anthropic import AsyncAnthropic
from pydantic import BaseModel

from app.context.models import (
    FilePart,
    ImagePart,
    Message,
    TextPart,
    ThinkingLevel,
    ThinkingPart,
    TokenUsage,
)
from app.core.config import get_settings
from app.core.errors import StructuredOutputError
from app.core.file_text import extract_text
from app.core.llm_usage import log_llm_usage
from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

# Extended thinking budget per level (None = thinking disabled)
THINKING_BUDGETS: dict[ThinkingLevel, int | None] = {
    ThinkingLevel.MINIMAL: None,
    ThinkingLevel.LOW: 1024,
    ThinkingLevel.MEDIUM: 4096,
    ThinkingLevel.HIGH: 12_000,
}

WEB_SEARCH_TOOL_TYPE = "web_search_20250305"
WEB_FETCH_TOOL_TYPE = "web_fetch_20250910"
WEB_FETCH_BETA = "web-fetch-2025-09-10"

_DATA_URL_RE = re.compile(r"^data:([^;,]+)(;base64)?,(.*)$", re.DOTALL)


# =========================
# Request / event types
# =========================


@dataclass
class GenerationRequest:
    """Everything needed for one streamed generation call."""

    system: str
    messages: list[Message]
    model: str
    tools_enabled: bool = True
    thinking_level: ThinkingLevel = ThinkingLevel.MEDIUM
    max_steps: int = 3
    max_output_tokens: int = 8192


@dataclass
class StreamEvent:
    """One incremental piece of a streamed answer.

    ``type`` is the wire tag (text-delta, reasoning-delta, source, ...);
    ``data`` holds the camelCase payload fields.
    """

    type: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, **self.data}


class ChatStream(ABC):
    """Handle over one streamed generation.

    ``events()`` yields ``StreamEvent`` objects and ends with a ``finish``
    event. ``aclose()`` tears down the provider connection and is safe to
    call more than once.
    """

    def __init__(self) -> None:
        self.usage = TokenUsage()

    @abstractmethod
    def events(self) -> AsyncIterator[StreamEvent]:
        """Yield stream events until the provider finishes."""

    @abstractmethod
    async def aclose(self) -> None:
        """Release the provider connection."""


class LLMProvider(Protocol):
    """What the orchestration engine needs from a model provider."""

    async def generate_structured(
        self,
        *,
        prompt: str,
        schema: type[T],
        tool_name: str,
        model: str,
        max_tokens: int = 1024,
        system: str | None = None,
    ) -> T: ...

    async def open_stream(self, request: GenerationRequest) -> ChatStream: ...


# =========================
# Message conversion
# =========================


def _parse_data_url(url: str) -> tuple[str, str] | None:
    """Return (media_type, base64_data) for a base64 data URL, else None."""
    match = _DATA_URL_RE.match(url)
    if not match or not match.group(2):
        return None
    return match.group(1), match.group(3)


def _image_block(part: ImagePart) -> dict[str, Any]:
    parsed = _parse_data_url(part.url)
    if parsed:
        media_type, data = parsed
        return {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": data}}
    return {"type": "image", "source": {"type": "url", "url": part.url}}


def _file_block(part: FilePart) -> dict[str, Any] | None:
    parsed = _parse_data_url(part.url)

    if part.mime_type == "application/pdf":
        if parsed:
            return {
                "type": "document",
                "title": part.name,
                "source": {"type": "base64", "media_type": "application/pdf", "data": parsed[1]},
            }
        return {"type": "document", "title": part.name, "source": {"type": "url", "url": part.url}}

    if parsed and part.mime_type.startswith("text/"):
        try:
            result = extract_text(base64.b64decode(parsed[1]))
        except ValueError as e:
            logger.warning(f"Skipping unreadable file part {part.name}: {e}")
            return None
        return {
            "type": "document",
            "title": part.name,
            "source": {"type": "text", "media_type": "text/plain", "data": result.text},
        }

    logger.warning(f"Skipping unsupported file part {part.name} ({part.mime_type})")
    return None


def _content_blocks(message: Message) -> list[dict[str, Any]]:
    if not message.parts:
        return [{"type": "text", "text": message.content}] if message.content.strip() else []

    blocks: list[dict[str, Any]] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            if part.text.strip():
                blocks.append({"type": "text", "text": part.text})
        elif isinstance(part, ThinkingPart):
            # Unsigned thinking cannot be replayed to the provider
            if message.role == "assistant" and part.signature:
                blocks.append({"type": "thinking", "thinking": part.text, "signature": part.signature})
        elif isinstance(part, ImagePart):
            blocks.append(_image_block(part))
        elif isinstance(part, FilePart):
            block = _file_block(part)
            if block:
                blocks.append(block)
        # Sources, tool calls/results and unknown parts are display-only
    return blocks


def to_provider_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """
    Convert chat messages to Anthropic message params.

    System messages are dropped (the system prompt is sent separately), as
    are messages with no sendable content and any assistant turns before the
    first user turn.
    """
    converted: list[dict[str, Any]] = []
    for message in messages:
        if message.role == "system":
            continue
        blocks = _content_blocks(message)
        if not blocks:
            continue
        if not converted and message.role != "user":
            continue
        converted.append({"role": message.role, "content": blocks})
    return converted


def build_server_tools(max_steps: int) -> list[dict[str, Any]]:
    """Web search and URL fetch, each capped at the step ceiling."""
    return [
        {"type": WEB_SEARCH_TOOL_TYPE, "name": "web_search", "max_uses": max_steps},
        {"type": WEB_FETCH_TOOL_TYPE, "name": "web_fetch", "max_uses": max_steps},
    ]


def build_stream_params(request: GenerationRequest) -> dict[str, Any]:
    """Keyword arguments for ``client.messages.stream``."""
    params: dict[str, Any] = {
        "model": request.model,
        "max_tokens": request.max_output_tokens,
        "system": request.system,
        "messages": to_provider_messages(request.messages),
    }

    if request.tools_enabled:
        params["tools"] = build_server_tools(request.max_steps)
        params["extra_headers"] = {"anthropic-beta": WEB_FETCH_BETA}

    budget = THINKING_BUDGETS[ThinkingLevel(request.thinking_level)]
    if budget is not None:
        # budget_tokens must stay below max_tokens
        budget = min(budget, request.max_output_tokens - 1024)
        if budget >= 1024:
            params["thinking"] = {"type": "enabled", "budget_tokens": budget}

    return params


# =========================
# Stream event mapping
# =========================


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def map_stream_event(event: Any) -> StreamEvent | None:
    """Translate a raw content_block_delta into a StreamEvent."""
    if getattr(event, "type", None) != "content_block_delta":
        return None

    delta = event.delta
    if delta.type == "text_delta":
        return StreamEvent("text-delta", {"delta": delta.text})
    if delta.type == "thinking_delta":
        return StreamEvent("reasoning-delta", {"delta": delta.thinking})
    if delta.type == "signature_delta":
        return StreamEvent("reasoning-signature", {"signature": delta.signature})
    return None


def map_final_blocks(content: list[Any], seen_urls: set[str]) -> list[StreamEvent]:
    """Tool calls, tool results and sources from a finished turn."""
    events: list[StreamEvent] = []

    def add_source(url: str | None, title: str | None) -> None:
        if url and url not in seen_urls:
            seen_urls.add(url)
            events.append(StreamEvent("source", {"url": url, "title": title or ""}))

    for block in content:
        block_type = getattr(block, "type", "")
        if block_type == "server_tool_use":
            events.append(
                StreamEvent(
                    "tool-call",
                    {"toolCallId": block.id, "toolName": block.name, "args": _jsonable(block.input)},
                )
            )
        elif block_type.endswith("_tool_result"):
            events.append(
                StreamEvent(
                    "tool-result",
                    {
                        "toolCallId": getattr(block, "tool_use_id", None),
                        "toolName": block_type.removesuffix("_tool_result"),
                        "result": _jsonable(block.content),
                    },
                )
            )
            items = block.content if isinstance(block.content, list) else [block.content]
            for item in items:
                add_source(getattr(item, "url", None), getattr(item, "title", None))
        elif block_type == "text":
            for citation in getattr(block, "citations", None) or []:
                add_source(getattr(citation, "url", None), getattr(citation, "title", None))

    return events


# =========================
# Anthropic implementation
# =========================


class AnthropicChatStream(ChatStream):
    """Streamed answer that follows ``pause_turn`` up to the step ceiling."""

    def __init__(self, client: AsyncAnthropic, request: GenerationRequest):
        super().__init__()
        self._client = client
        self._request = request
        self._params = build_stream_params(request)
        self._manager: Any = None
        self._stream: Any = None
        self._closed = False
        self._seen_urls: set[str] = set()

    async def open(self, messages: list[dict[str, Any]] | None = None) -> None:
        """Send the request for the next turn."""
        params = self._params if messages is None else {**self._params, "messages": messages}
        manager = self._client.messages.stream(**params)
        self._stream = await manager.__aenter__()
        self._manager = manager

    async def _close_turn(self) -> None:
        manager, self._manager, self._stream = self._manager, None, None
        if manager is not None:
            await manager.__aexit__(None, None, None)

    async def aclose(self) -> None:
        self._closed = True
        await self._close_turn()

    def _add_usage(self, usage: Any) -> None:
        if usage is None:
            return
        prompt = getattr(usage, "input_tokens", 0) or 0
        completion = getattr(usage, "output_tokens", 0) or 0
        self.usage = TokenUsage(
            prompt_tokens=self.usage.prompt_tokens + prompt,
            completion_tokens=self.usage.completion_tokens + completion,
            total_tokens=self.usage.total_tokens + prompt + completion,
        )

    async def events(self) -> AsyncIterator[StreamEvent]:
        if self._closed:
            return

        start_time = time.time()
        messages = list(self._params["messages"])
        stop_reason = None

        try:
            for step in range(self._request.max_steps):
                if self._stream is None:
                    await self.open(messages)

                async for event in self._stream:
                    mapped = map_stream_event(event)
                    if mapped is not None:
                        yield mapped

                final = await self._stream.get_final_message()
                await self._close_turn()
                self._add_usage(final.usage)
                stop_reason = final.stop_reason

                for event in map_final_blocks(final.content, self._seen_urls):
                    yield event

                if stop_reason != "pause_turn":
                    break

                logger.debug(f"Turn paused at step {step + 1}/{self._request.max_steps}, continuing")
                messages = [
                    *messages,
                    {
                        "role": "assistant",
                        "content": [b.model_dump(mode="json", exclude_none=True) for b in final.content],
                    },
                ]

            yield StreamEvent(
                "finish",
                {
                    "finishReason": stop_reason,
                    "usage": self.usage.model_dump(by_alias=True),
                },
            )
        finally:
            await self.aclose()
            log_llm_usage(
                operation="generate",
                model=self._request.model,
                tokens_input=self.usage.prompt_tokens,
                tokens_output=self.usage.completion_tokens,
                duration_ms=int((time.time() - start_time) * 1000),
            )


class AnthropicProvider:
    """LLMProvider backed by ``AsyncAnthropic``."""

    def __init__(self, client: AsyncAnthropic | None = None, api_key: str | None = None):
        if client is None:
            client = AsyncAnthropic(api_key=api_key or get_settings().ANTHROPIC_API_KEY)
        self._client = client

    async def generate_structured(
        self,
        *,
        prompt: str,
        schema: type[T],
        tool_name: str,
        model: str,
        max_tokens: int = 1024,
        system: str | None = None,
    ) -> T:
        """
        Force a single tool call whose input is ``schema`` and validate it.

        Raises:
            StructuredOutputError: If the response has no tool_use block
            pydantic.ValidationError: If the tool input doesn't match schema
            anthropic.APIError: Provider errors propagate unchanged
        """
        tool = {
            "name": tool_name,
            "description": schema.__doc__ or f"Submit the {schema.__name__} result.",
            "input_schema": schema.model_json_schema(by_alias=True),
        }
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "tools": [tool],
            "tool_choice": {"type": "tool", "name": tool_name},
        }
        if system:
            kwargs["system"] = system

        start_time = time.time()
        response = await self._client.messages.create(**kwargs)

        usage = getattr(response, "usage", None)
        log_llm_usage(
            operation=tool_name,
            model=model,
            tokens_input=getattr(usage, "input_tokens", 0) or 0,
            tokens_output=getattr(usage, "output_tokens", 0) or 0,
            duration_ms=int((time.time() - start_time) * 1000),
        )

        for block in response.content:
            if block.type == "tool_use":
                return schema.model_validate(block.input)

        raise StructuredOutputError(f"No tool_use block in {tool_name} response")

    async def open_stream(self, request: GenerationRequest) -> ChatStream:
        stream = AnthropicChatStream(self._client, request)
        await stream.open()
        return stream


@lru_cache
def get_llm_provider() -> AnthropicProvider:
    """Process-wide provider instance (FastAPI dependency)."""
    return AnthropicProvider()
