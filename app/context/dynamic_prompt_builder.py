"""Dynamic system prompt builder for mode-aware chat.

Assembles the system prompt in a fixed order:
1. Base persona and style (current date substituted)
2. Tool-usage policy
3. Mode-specific instructions
4. User preferences (long-term memory), if any
5. Conversation context (mid-term summary), if any

Later blocks refine earlier ones from the model's point of view, so memory
goes last, closest to the live conversation. Per-request blocks (research
plan, attachment handling, error recovery) are appended after that.
"""

from datetime import datetime, timezone

from app.context.models import ConversationSummary, Mode, ResearchPlan
from app.context.prompt_blocks import (
    BLOCK_ATTACHMENT_HANDLING,
    BLOCK_BASE_PERSONA,
    BLOCK_CONVERSATION_CONTEXT,
    BLOCK_ERROR_RECOVERY,
    BLOCK_RESEARCH_PLAN,
    BLOCK_TOOL_USAGE,
    BLOCK_USER_PREFERENCES,
    MODE_BLOCKS,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

SECTION_SEPARATOR = "\n\n"


def build_system_prompt(
    mode: Mode | str,
    long_term_memory: str | None = None,
    mid_term_summary: ConversationSummary | None = None,
    has_attachment: bool = False,
    now: datetime | None = None,
) -> str:
    """
    Build the system prompt for one request.

    Args:
        mode: Resolved response mode
        long_term_memory: Rendered user preferences (skipped when empty)
        mid_term_summary: Current conversation summary (skipped when None)
        has_attachment: Append the attachment-handling block
        now: Clock override for deterministic output

    Returns:
        Complete system prompt string
    """
    mode_value = Mode(mode).value
    current_date = (now or datetime.now(timezone.utc)).isoformat()

    sections = [
        BLOCK_BASE_PERSONA.replace("{current_date}", current_date),
        BLOCK_TOOL_USAGE,
        MODE_BLOCKS[mode_value],
    ]

    if long_term_memory and long_term_memory.strip():
        sections.append(BLOCK_USER_PREFERENCES.format(long_term_memory=long_term_memory.strip()))

    if mid_term_summary is not None:
        sections.append(_build_summary_section(mid_term_summary))

    if has_attachment:
        sections.append(BLOCK_ATTACHMENT_HANDLING)

    return SECTION_SEPARATOR.join(section.strip() for section in sections)


def _build_summary_section(summary: ConversationSummary) -> str:
    return BLOCK_CONVERSATION_CONTEXT.format(
        project_context=summary.project_context,
        decisions=", ".join(summary.decisions) if summary.decisions else "none",
        current_state=summary.current_state,
    )


def build_research_plan_block(plan: ResearchPlan) -> str:
    """Render a research plan as an instruction block."""
    queries = "\n".join(
        f'{i}. "{q.query}" ({q.language}) - {q.purpose}'
        for i, q in enumerate(plan.search_queries, start=1)
    )
    if plan.urls_to_analyze:
        queries += "\n\nURLs to read:\n" + "\n".join(f"- {url}" for url in plan.urls_to_analyze)

    return BLOCK_RESEARCH_PLAN.format(
        queries=queries or "(no specific queries)",
        expected_sources=plan.expected_sources,
        fallback_strategy=plan.fallback_strategy,
    )


def append_blocks(system_prompt: str, *blocks: str | None) -> str:
    """Append non-empty blocks to a prompt using the standard separator."""
    extra = [block.strip() for block in blocks if block and block.strip()]
    if not extra:
        return system_prompt
    return SECTION_SEPARATOR.join([system_prompt, *extra])


def with_error_recovery(system_prompt: str) -> str:
    """System prompt for the degraded no-tool fallback call."""
    return append_blocks(system_prompt, BLOCK_ERROR_RECOVERY)


def estimate_prompt_sections(
    mode: Mode | str,
    long_term_memory: str | None = None,
    mid_term_summary: ConversationSummary | None = None,
) -> dict[str, int]:
    """
    Character size of each prompt section.

    Returns breakdown for debugging/optimization.
    """
    persona = len(BLOCK_BASE_PERSONA)
    tools = len(BLOCK_TOOL_USAGE)
    mode_chars = len(MODE_BLOCKS[Mode(mode).value])
    memory = len(long_term_memory or "")
    summary = len(_build_summary_section(mid_term_summary)) if mid_term_summary else 0

    return {
        "persona": persona,
        "tool_usage": tools,
        "mode": mode_chars,
        "long_term_memory": memory,
        "mid_term_summary": summary,
        "total": persona + tools + mode_chars + memory + summary,
    }
