"""Request schemas for the chat and summarization endpoints."""

from typing import Literal

from pydantic import Field

from app.context.attachments import user_question_text
from app.context.models import CamelModel, ConversationSummary, Message, ThinkingLevel
from app.core.orchestrator import OrchestrationRequest

MAX_MESSAGES = 100
MAX_LONG_TERM_MEMORY_CHARS = 10_000


class ChatRequest(CamelModel):
    """Body of POST /v1/chat."""

    messages: list[Message] = Field(..., min_length=1, max_length=MAX_MESSAGES)
    conversation_id: str | None = None
    mode: Literal["auto", "general", "research", "coding"] | None = None
    thinking_level: ThinkingLevel | None = None
    long_term_memory: str | None = Field(default=None, max_length=MAX_LONG_TERM_MEMORY_CHARS)
    mid_term_summary: ConversationSummary | None = None

    def to_orchestration_request(self) -> OrchestrationRequest:
        """Fill each message's plain ``content`` from its text parts."""
        messages = [
            m if m.content else m.model_copy(update={"content": user_question_text(m)})
            for m in self.messages
        ]
        return OrchestrationRequest(
            messages=messages,
            mode=self.mode,
            thinking_level=self.thinking_level,
            long_term_memory=self.long_term_memory,
            mid_term_summary=self.mid_term_summary,
            conversation_id=self.conversation_id,
        )


class SummarizeRequest(CamelModel):
    """Body of POST /v1/summarize."""

    conversation_history: str = Field(..., min_length=1)
