"""Client chat session: one active conversation, streaming, background summaries.

The session owns the client-side store. It restores the last active
conversation on start, persists every user and assistant message, and after
each answer schedules a summary refresh as a background task that gets its
own copy of the messages.
"""

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any
from uuid import uuid4

from app.client.api_client import ChatAPIClient
from app.client.uploads import Upload, upload_to_part
from app.context.context_manager import ContextManager
from app.context.models import (
    Conversation,
    Message,
    MessagePart,
    Mode,
    SourcePart,
    TextPart,
    ThinkingLevel,
    ThinkingPart,
    TokenUsage,
    ToolCallPart,
    ToolResultPart,
    utcnow,
)
from app.core.logging import get_logger
from app.db.conversations import (
    add_message,
    create_conversation,
    get_conversation,
    update_conversation_mode,
)
from app.db.session import get_last_conversation_id, set_last_conversation_id
from app.db.store import DocumentStore

logger = get_logger(__name__)


class AssistantMessageBuilder:
    """Accumulates SSE events into the parts of one assistant message."""

    def __init__(self) -> None:
        self.parts: list[MessagePart] = []
        self.usage: TokenUsage | None = None
        self.mode: str | None = None
        self.error: str | None = None

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    def apply(self, event: dict[str, Any]) -> None:
        event_type = event.get("type")
        last = self.parts[-1] if self.parts else None

        if event_type == "start":
            self.mode = event.get("mode")
        elif event_type == "text-delta":
            if isinstance(last, TextPart):
                last.text += event.get("delta", "")
            else:
                self.parts.append(TextPart(text=event.get("delta", "")))
        elif event_type == "reasoning-delta":
            if isinstance(last, ThinkingPart):
                last.text += event.get("delta", "")
            else:
                self.parts.append(ThinkingPart(text=event.get("delta", "")))
        elif event_type == "reasoning-signature":
            if isinstance(last, ThinkingPart):
                last.signature = event.get("signature")
        elif event_type == "source":
            self.parts.append(SourcePart(url=event["url"], title=event.get("title", "")))
        elif event_type == "tool-call":
            self.parts.append(
                ToolCallPart(
                    tool_call_id=event.get("toolCallId"),
                    tool_name=event.get("toolName", ""),
                    args=event.get("args"),
                )
            )
        elif event_type == "tool-result":
            self.parts.append(
                ToolResultPart(
                    tool_call_id=event.get("toolCallId"),
                    tool_name=event.get("toolName", ""),
                    result=event.get("result"),
                )
            )
        elif event_type == "finish":
            if event.get("usage"):
                self.usage = TokenUsage.model_validate(event["usage"])
        elif event_type == "error":
            self.error = event.get("error", "unknown error")
            logger.error(f"Server reported a stream error: {self.error}")

    def build(self) -> Message:
        return Message(
            id=str(uuid4()),
            role="assistant",
            content=self.text,
            parts=self.parts,
            usage=self.usage,
            created_at=utcnow(),
        )


class ChatSession:
    """One user's chat session against the chat server."""

    def __init__(
        self,
        api: ChatAPIClient,
        store: DocumentStore,
        context_manager: ContextManager | None = None,
    ):
        self.api = api
        self.store = store
        self.context_manager = context_manager or ContextManager(store, summarizer=api.summarize)
        self.conversation: Conversation | None = None
        self.mode: str = "auto"
        self.thinking_level: ThinkingLevel | None = None
        self._stream_task: asyncio.Task | None = None
        self._stop_requested = False
        self._background_tasks: set[asyncio.Task] = set()

    # --------- conversation selection --------- #

    def start(self) -> Conversation:
        """Restore the last active conversation, or create a new one."""
        last_id = get_last_conversation_id(store=self.store)
        conversation = get_conversation(last_id, store=self.store) if last_id else None
        if conversation is None:
            if last_id:
                logger.info(f"Last conversation {last_id} no longer exists, starting fresh")
            return self.new_conversation()

        self.conversation = conversation
        return conversation

    def new_conversation(self) -> Conversation:
        conversation = create_conversation(store=self.store)
        set_last_conversation_id(conversation.id, store=self.store)
        self.conversation = conversation
        return conversation

    def select_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = get_conversation(conversation_id, store=self.store)
        if conversation is None:
            logger.warning(f"Conversation {conversation_id} not found")
            return None
        set_last_conversation_id(conversation.id, store=self.store)
        self.conversation = conversation
        return conversation

    # --------- chat --------- #

    @property
    def is_streaming(self) -> bool:
        return self._stream_task is not None and not self._stream_task.done()

    def _build_user_message(self, text: str, uploads: list[Upload]) -> Message:
        parts: list[MessagePart] = []
        if text.strip():
            parts.append(TextPart(text=text))
        parts.extend(upload_to_part(upload) for upload in uploads)
        return Message(
            id=str(uuid4()),
            role="user",
            content=text.strip(),
            parts=parts,
            created_at=utcnow(),
        )

    def _build_payload(self, conversation: Conversation) -> dict[str, Any]:
        context = self.context_manager.get_integrated_context(
            conversation.id, conversation.messages
        )
        payload: dict[str, Any] = {
            "messages": [m.to_document() for m in context.short_term_messages],
            "conversationId": conversation.id,
            "mode": self.mode,
        }
        if self.thinking_level is not None:
            payload["thinkingLevel"] = ThinkingLevel(self.thinking_level).value
        if context.long_term_memory:
            payload["longTermMemory"] = context.long_term_memory
        if context.mid_term_summary is not None:
            payload["midTermSummary"] = context.mid_term_summary.model_dump(
                mode="json", by_alias=True
            )
        return payload

    async def submit(
        self,
        text: str,
        uploads: list[Upload] | None = None,
        on_event: Callable[[dict[str, Any]], None] | None = None,
    ) -> Message | None:
        """
        Send a message and stream the answer.

        The user message is persisted before the request. The assistant
        message is persisted when the stream ends, including after ``stop()``
        if any text arrived.

        Args:
            text: The user's question
            uploads: Files to attach
            on_event: Called with every SSE event as it arrives

        Returns:
            The persisted assistant message, or None if nothing was received

        Raises:
            ChatAPIError: If the server rejected the request
            ValueError: If there is nothing to send or an upload is unsupported
        """
        if self.conversation is None:
            self.start()
        if self.is_streaming:
            raise RuntimeError("A response is already streaming")

        user_message = self._build_user_message(text, uploads or [])
        if not user_message.parts:
            raise ValueError("Nothing to send")

        conversation = add_message(self.conversation.id, user_message, store=self.store)
        if conversation is None:
            conversation = self.new_conversation()
            conversation = add_message(conversation.id, user_message, store=self.store)
        self.conversation = conversation

        builder = AssistantMessageBuilder()
        payload = self._build_payload(conversation)

        async def consume() -> None:
            async for event in self.api.stream_chat(payload):
                builder.apply(event)
                if on_event is not None:
                    on_event(event)

        self._stop_requested = False
        self._stream_task = asyncio.create_task(consume())
        try:
            await self._stream_task
        except asyncio.CancelledError:
            # Only a stop() keeps the partial answer; cancelling submit() itself propagates
            if not self._stop_requested:
                raise
            logger.info("Response stopped by user")
        finally:
            self._stream_task = None
            self._stop_requested = False

        if not builder.parts:
            return None

        assistant_message = builder.build()
        updated = add_message(conversation.id, assistant_message, store=self.store)
        if updated is not None:
            if builder.mode and builder.mode != updated.mode.value:
                update_conversation_mode(updated.id, Mode(builder.mode), store=self.store)
                updated.mode = Mode(builder.mode)
            self.conversation = updated
            self._schedule_summary(updated)
        return assistant_message

    def stop(self) -> bool:
        """Abort the in-flight response. Returns False if nothing was streaming."""
        if not self.is_streaming:
            return False
        self._stop_requested = True
        self._stream_task.cancel()
        return True

    # --------- background summaries --------- #

    def _schedule_summary(self, conversation: Conversation) -> None:
        if not self.context_manager.needs_summary_refresh(conversation):
            return
        messages = [m.model_copy(deep=True) for m in conversation.messages]
        self._spawn(
            self.context_manager.generate_and_save_summary(conversation.id, messages),
            label=f"summary {conversation.id}",
        )

    def _spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> None:
        async def guarded() -> None:
            try:
                await coro
            except Exception as e:
                logger.error(f"Background task '{label}' failed: {e}")

        task = asyncio.create_task(guarded())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def wait_for_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
