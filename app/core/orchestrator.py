"""Chat orchestrator: prepare, generate with retries, degrade to fallback.

Preparation (analysis, mode resolution, research planning, prompt assembly
and trimming) runs as the chat orchestration graph. This module owns the
generation call: it wraps ``open_stream`` in the shared retry policy and,
once retries are exhausted or a non-retryable error occurs, issues a single
tool-less fallback call with the error-recovery block appended.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache

from app.chains.quality_check import check_answer_quality
from app.context.dynamic_prompt_builder import with_error_recovery
from app.context.models import ConversationSummary, Message, Mode, ResearchPlan, ThinkingLevel
from app.context.token_budget import (
    FALLBACK_MAX_OUTPUT_TOKENS,
    estimate_input_chars,
    select_max_output_tokens,
)
from app.core.config import Settings, get_settings
from app.core.errors import FallbackFailedError
from app.core.llm import ChatStream, GenerationRequest, get_llm_provider
from app.core.logging import get_logger
from app.core.retry import RetryPolicy
from app.graphs.chat_orchestration_graph import (
    ChatOrchestrationState,
    build_chat_orchestration_graph,
)

logger = get_logger(__name__)

# Tool step ceilings
ATTACHMENT_STEP_CEILING = 3
GENERAL_STEP_CEILING = 3
RESEARCH_STEP_CEILING = 10
CODING_STEP_CEILING = 5


@dataclass
class OrchestrationRequest:
    """Validated inputs of one chat request."""

    messages: list[Message]
    mode: str | None = None
    thinking_level: ThinkingLevel | None = None
    long_term_memory: str | None = None
    mid_term_summary: ConversationSummary | None = None
    conversation_id: str | None = None


@dataclass
class OrchestrationResult:
    """An open answer stream plus the decisions that produced it."""

    stream: ChatStream
    mode: Mode
    thinking_level: ThinkingLevel
    research_plan: ResearchPlan | None = None
    fallback_used: bool = False
    # Called with the full answer text once the stream finished cleanly
    on_complete: Callable[[str], None] | None = field(default=None, repr=False)


def select_step_ceiling(mode: Mode, has_attachment: bool) -> int:
    """Tool step ceiling: attachments and general chat stay short."""
    if has_attachment:
        return ATTACHMENT_STEP_CEILING
    if mode == Mode.RESEARCH:
        return RESEARCH_STEP_CEILING
    if mode == Mode.CODING:
        # Room for a version-lookup search
        return CODING_STEP_CEILING
    return GENERAL_STEP_CEILING


class Orchestrator:
    """Runs one chat request from raw history to an open answer stream."""

    def __init__(
        self,
        provider,
        retry_policy: RetryPolicy | None = None,
        planner_retry_policy: RetryPolicy | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.settings.GENERATION_MAX_ATTEMPTS,
            base_delay=self.settings.RETRY_BASE_DELAY,
        )
        self.planner_retry_policy = planner_retry_policy or RetryPolicy(
            max_attempts=self.settings.PLANNER_MAX_ATTEMPTS,
            base_delay=self.settings.RETRY_BASE_DELAY,
        )
        self._graph = build_chat_orchestration_graph(
            provider, self.planner_retry_policy
        ).compile()
        self._background_tasks: set[asyncio.Task] = set()

    async def prepare(self, request: OrchestrationRequest) -> ChatOrchestrationState:
        """Run the preparation graph and return its final state."""
        initial_state = ChatOrchestrationState(
            messages=request.messages,
            requested_mode=request.mode,
            requested_thinking_level=request.thinking_level,
            long_term_memory=request.long_term_memory,
            mid_term_summary=request.mid_term_summary,
        )
        final_state = await self._graph.ainvoke(initial_state)
        return ChatOrchestrationState(**final_state)

    async def orchestrate(self, request: OrchestrationRequest) -> OrchestrationResult:
        """
        Prepare the request and open the answer stream.

        Returns:
            OrchestrationResult whose stream is already open

        Raises:
            FallbackFailedError: If the fallback call fails too
        """
        state = await self.prepare(request)

        generation = GenerationRequest(
            system=state.system_prompt,
            messages=state.trimmed_messages,
            model=self.settings.CHAT_MODEL,
            tools_enabled=True,
            thinking_level=state.thinking_level,
            max_steps=select_step_ceiling(state.mode, state.attachments.has_any),
            max_output_tokens=select_max_output_tokens(
                estimate_input_chars(state.system_prompt, state.trimmed_messages)
            ),
        )
        logger.info(
            f"Generating: mode={state.mode.value}, thinking={state.thinking_level.value}, "
            f"steps={generation.max_steps}, max_tokens={generation.max_output_tokens}, "
            f"messages={len(generation.messages)}"
        )

        fallback_used = False
        try:
            stream = await self.retry_policy.run(
                lambda: self.provider.open_stream(generation),
                operation="generation",
            )
        except Exception as e:
            logger.error(f"Generation failed after retries, using fallback: {e}")
            stream = await self._fallback(state, generation)
            fallback_used = True

        on_complete = None
        if state.mode == Mode.RESEARCH and not fallback_used and self.settings.QUALITY_CHECK_ENABLED:
            on_complete = self._quality_check_hook(state.user_text)

        return OrchestrationResult(
            stream=stream,
            mode=state.mode,
            thinking_level=state.thinking_level,
            research_plan=state.research_plan,
            fallback_used=fallback_used,
            on_complete=on_complete,
        )

    async def _fallback(
        self, state: ChatOrchestrationState, generation: GenerationRequest
    ) -> ChatStream:
        """One degraded call: no tools, minimal thinking, small output cap."""
        fallback = GenerationRequest(
            system=with_error_recovery(state.system_prompt),
            messages=generation.messages,
            model=generation.model,
            tools_enabled=False,
            thinking_level=ThinkingLevel.MINIMAL,
            max_steps=1,
            max_output_tokens=FALLBACK_MAX_OUTPUT_TOKENS,
        )
        try:
            return await self.provider.open_stream(fallback)
        except Exception as e:
            logger.error(f"Fallback generation failed: {e}")
            raise FallbackFailedError(f"Fallback generation failed: {e}", cause=e) from e

    def _quality_check_hook(self, question: str) -> Callable[[str], None]:
        def on_complete(answer: str) -> None:
            task = asyncio.create_task(
                check_answer_quality(question, answer, self.provider)
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return on_complete

    async def wait_for_background_tasks(self) -> None:
        """Await pending quality checks (tests and shutdown)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)


@lru_cache
def get_orchestrator() -> Orchestrator:
    """Process-wide orchestrator (FastAPI dependency)."""
    return Orchestrator(get_llm_provider())
