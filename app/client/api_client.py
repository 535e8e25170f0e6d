"""HTTP client for the chat and summarization endpoints."""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from app.context.models import ConversationSummary
from app.core.config import get_settings
from app.core.errors import ChatAPIError
from app.core.logging import get_logger

logger = get_logger(__name__)

# Long answers with many tool steps can run for minutes
_STREAM_TIMEOUT = httpx.Timeout(300.0, connect=10.0)
_REQUEST_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


async def parse_sse_lines(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Decode ``data: {json}`` lines; anything else is ignored."""
    async for line in lines:
        if not line.startswith("data: "):
            continue
        try:
            yield json.loads(line[6:])  # Strip "data: " prefix
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed SSE line: {line[:100]}")


class ChatAPIClient:
    """Talks to ``/v1/chat`` and ``/v1/summarize``."""

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or get_settings().CHAT_API_URL).rstrip("/")
        self._transport = transport

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    async def stream_chat(self, payload: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        """
        POST a chat request and yield its SSE events as dicts.

        Raises:
            ChatAPIError: If the server rejects the request
        """
        async with self._client(_STREAM_TIMEOUT) as client:
            async with client.stream("POST", "/chat", json=payload) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ChatAPIError(response.status_code, body[:500])

                async for event in parse_sse_lines(response.aiter_lines()):
                    yield event

    async def summarize(self, conversation_history: str) -> ConversationSummary:
        """
        Ask the server for a mid-term summary.

        Raises:
            ChatAPIError: On a non-200 response
        """
        async with self._client(_REQUEST_TIMEOUT) as client:
            resp = await client.post("/summarize", json={"conversationHistory": conversation_history})
            if resp.status_code != 200:
                raise ChatAPIError(resp.status_code, resp.text[:500])
            return ConversationSummary.model_validate(resp.json())
