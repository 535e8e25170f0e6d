"""Client-side memory tiers: short-term window, mid-term summary, long-term prefs.

Short-term memory is the last ``2 * short_term_turns`` messages sent verbatim.
Mid-term memory is a structured summary of everything older, regenerated as
the conversation grows. Long-term memory is the rendered user preferences.

This module reads and writes the client-side store. Server code never
imports it.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.context.models import Conversation, ConversationSummary, Message
from app.core.config import get_settings
from app.core.logging import get_logger
from app.db.conversations import get_conversation, update_conversation_summary
from app.db.preferences import get_long_term_memory_string
from app.db.store import DocumentStore

logger = get_logger(__name__)

Summarizer = Callable[[str], Awaitable[ConversationSummary]]


@dataclass
class IntegratedContext:
    """All three memory tiers for one request."""

    short_term_messages: list[Message]
    mid_term_summary: ConversationSummary | None
    long_term_memory: str


def count_user_turns(messages: list[Message]) -> int:
    return sum(1 for m in messages if m.role == "user")


def serialize_history(messages: list[Message]) -> str:
    """``role: content`` lines separated by blank lines."""
    return "\n\n".join(f"{m.role}: {m.content}" for m in messages)


class ContextManager:
    """Assembles memory tiers and maintains the mid-term summary."""

    def __init__(
        self,
        store: DocumentStore,
        summarizer: Summarizer,
        short_term_turns: int | None = None,
        summary_threshold: int | None = None,
        resummarize_every: int | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.summarizer = summarizer
        self.short_term_turns = short_term_turns or settings.SHORT_TERM_TURNS
        self.summary_threshold = summary_threshold or settings.SUMMARY_THRESHOLD
        self.resummarize_every = resummarize_every or settings.SUMMARY_REFRESH_TURNS

    @property
    def short_term_window(self) -> int:
        """Number of messages kept verbatim (user + assistant per turn)."""
        return self.short_term_turns * 2

    def get_integrated_context(
        self, conversation_id: str, all_messages: list[Message]
    ) -> IntegratedContext:
        """
        Collect the three tiers for a request.

        A conversation missing from the store simply has no summary.
        """
        conversation = get_conversation(conversation_id, store=self.store)
        return IntegratedContext(
            short_term_messages=all_messages[-self.short_term_window:],
            mid_term_summary=conversation.summary if conversation else None,
            long_term_memory=get_long_term_memory_string(store=self.store),
        )

    def should_summarize(self, messages: list[Message]) -> bool:
        return count_user_turns(messages) >= self.summary_threshold

    def needs_summary_refresh(self, conversation: Conversation) -> bool:
        """
        True when a (new) summary should be generated now.

        The first summary is created at the threshold; after that it is
        regenerated every ``resummarize_every`` user turns.
        """
        if not self.should_summarize(conversation.messages):
            return False
        if conversation.summary is None or conversation.summary_turn_count is None:
            return True
        turns = count_user_turns(conversation.messages)
        return turns - conversation.summary_turn_count >= self.resummarize_every

    async def generate_and_save_summary(
        self, conversation_id: str, messages: list[Message]
    ) -> ConversationSummary | None:
        """
        Summarize everything but the last ``short_term_turns`` messages and
        persist it. The summarized span overlaps the older half of the
        short-term window, so the first summary exists as soon as the
        threshold is reached.

        Returns:
            The new summary, or None when there is nothing to summarize or
            the summarizer failed (logged, never raised)
        """
        older = messages[: -self.short_term_turns]
        if not older:
            return None

        try:
            summary = await self.summarizer(serialize_history(older))
            update_conversation_summary(
                conversation_id,
                summary,
                turn_count=count_user_turns(messages),
                store=self.store,
            )
        except Exception as e:
            logger.error(f"Summary generation failed for {conversation_id}: {e}")
            return None

        logger.info(f"Summary saved for {conversation_id}: {summary.current_state[:80]}")
        return summary

    def get_recent_context(self, messages: list[Message], count: int = 5) -> str:
        """Last ``count`` turns as ``role: content`` lines (200 chars each)."""
        recent = messages[-(count * 2):]
        return "\n".join(f"{m.role}: {m.content[:200]}" for m in recent)
