"""Chat orchestration LangGraph: everything before the generation call.

ANALYZE -> CLASSIFY -> (PLAN) -> BUILD_PROMPT -> TRIM

Nodes close over the provider and the planner retry policy, so one compiled
graph serves one Orchestrator. The generation call, its retries and the
fallback live in ``app.core.orchestrator``.
"""

from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, StateGraph

from app.chains.plan_research import plan_research
from app.context.attachments import AttachmentInfo, analyze_attachments, latest_user_text
from app.context.dynamic_prompt_builder import append_blocks, build_research_plan_block, build_system_prompt
from app.context.mode_detector import build_recent_context, resolve_attachment_mode, resolve_mode
from app.context.models import (
    ConversationSummary,
    IntentClassification,
    Message,
    Mode,
    ResearchPlan,
    ThinkingLevel,
)
from app.context.token_budget import TrimResult, trim_messages_to_budget
from app.core.logging import get_logger
from app.core.retry import RetryPolicy

logger = get_logger(__name__)


@dataclass
class ChatOrchestrationState:
    """State for one chat request's preparation stages."""

    # Input
    messages: list[Message]
    requested_mode: str | None = None
    requested_thinking_level: ThinkingLevel | None = None
    long_term_memory: str | None = None
    mid_term_summary: ConversationSummary | None = None

    # Analysis
    user_text: str = ""
    attachments: AttachmentInfo = field(default_factory=AttachmentInfo)

    # Classification
    mode: Mode = Mode.GENERAL
    thinking_level: ThinkingLevel = ThinkingLevel.MEDIUM
    classification: IntentClassification | None = None

    # Planning
    research_plan: ResearchPlan | None = None

    # Prompt
    system_prompt: str = ""

    # Trimming
    trimmed_messages: list[Message] = field(default_factory=list)
    trim_result: TrimResult | None = None


def analyze(state: ChatOrchestrationState) -> dict[str, Any]:
    """Latest user question and attachment signals across the history."""
    attachments = analyze_attachments(state.messages)
    if attachments.has_any:
        logger.info(
            f"Attachments: image={attachments.has_image}, file={attachments.has_file}, "
            f"text={attachments.has_text_attachment}, code={attachments.has_code_attachment}"
        )
    return {
        "user_text": latest_user_text(state.messages),
        "attachments": attachments,
    }


def should_plan(state: ChatOrchestrationState) -> str:
    """Plan only for research mode without attachments."""
    if state.mode == Mode.RESEARCH and not state.attachments.has_any:
        return "plan"
    return "build_prompt"


def build_prompt(state: ChatOrchestrationState) -> dict[str, Any]:
    system_prompt = build_system_prompt(
        mode=state.mode,
        long_term_memory=state.long_term_memory,
        mid_term_summary=state.mid_term_summary,
        has_attachment=state.attachments.has_any,
    )
    if state.research_plan is not None:
        system_prompt = append_blocks(system_prompt, build_research_plan_block(state.research_plan))
    return {"system_prompt": system_prompt}


def trim(state: ChatOrchestrationState) -> dict[str, Any]:
    result = trim_messages_to_budget(state.messages, state.system_prompt)
    if result.over_budget:
        logger.warning(
            f"Newest message alone exceeds the budget ({result.used:,}/{result.budget:,} chars), "
            "sending it anyway"
        )
    return {"trimmed_messages": result.messages, "trim_result": result}


def build_chat_orchestration_graph(
    provider,
    planner_retry_policy: RetryPolicy | None = None,
) -> StateGraph:
    """Build the preparation graph for one provider."""

    async def classify(state: ChatOrchestrationState) -> dict[str, Any]:
        recent_context = build_recent_context(state.messages[:-1])
        mode, thinking_level, classification = await resolve_mode(
            state.user_text,
            recent_context,
            requested_mode=state.requested_mode,
            provider=provider,
        )
        mode, thinking_level = resolve_attachment_mode(mode, thinking_level, state.attachments)

        if state.requested_thinking_level is not None:
            thinking_level = ThinkingLevel(state.requested_thinking_level)

        logger.info(f"Mode resolved: {mode.value}, thinking={thinking_level.value}")
        return {
            "mode": mode,
            "thinking_level": thinking_level,
            "classification": classification,
        }

    async def plan(state: ChatOrchestrationState) -> dict[str, Any]:
        try:
            research_plan = await plan_research(
                state.user_text, provider, retry_policy=planner_retry_policy
            )
        except Exception as e:
            logger.warning(f"Research planning failed, continuing without a plan: {e}")
            research_plan = None
        return {"research_plan": research_plan}

    graph = StateGraph(ChatOrchestrationState)

    graph.add_node("analyze", analyze)
    graph.add_node("classify", classify)
    graph.add_node("plan", plan)
    graph.add_node("build_prompt", build_prompt)
    graph.add_node("trim", trim)

    graph.set_entry_point("analyze")
    graph.add_edge("analyze", "classify")
    graph.add_conditional_edges(
        "classify",
        should_plan,
        {
            "plan": "plan",
            "build_prompt": "build_prompt",
        },
    )
    graph.add_edge("plan", "build_prompt")
    graph.add_edge("build_prompt", "trim")
    graph.add_edge("trim", END)

    return graph
