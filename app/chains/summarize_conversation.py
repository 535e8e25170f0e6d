"""Generate a structured mid-term summary of older conversation turns."""

from app.context.models import ConversationSummary
from app.context.prompt_blocks import CONTEXT_SUMMARY_PROMPT
from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Upper bound on the serialized history sent for summarization
MAX_HISTORY_CHARS = 50_000


async def summarize_conversation(
    conversation_history: str,
    provider,
    model: str | None = None,
) -> ConversationSummary:
    """
    Summarize serialized history into projectContext / decisions / state.

    Args:
        conversation_history: ``role: content`` lines joined by blank lines
        provider: LLMProvider for the structured call
        model: Override for the summary model

    Returns:
        ConversationSummary

    Raises:
        Exception: Provider and validation errors propagate
    """
    history = conversation_history[:MAX_HISTORY_CHARS]
    if len(conversation_history) > MAX_HISTORY_CHARS:
        logger.info(
            f"Summary input truncated: {len(conversation_history):,} -> {MAX_HISTORY_CHARS:,} chars"
        )

    summary = await provider.generate_structured(
        prompt=CONTEXT_SUMMARY_PROMPT.format(conversation_history=history),
        schema=ConversationSummary,
        tool_name="submit_conversation_summary",
        model=model or get_settings().SUMMARY_MODEL,
        max_tokens=2048,
    )
    logger.info(f"Summary generated: {len(summary.decisions)} decisions")
    return summary
