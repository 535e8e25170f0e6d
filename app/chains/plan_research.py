"""Research planning chain.

Before a research-mode answer is generated, a small structured call turns the
user's question into a concrete search strategy: up to five queries (mixed
English and Japanese), URLs to read and a fallback plan. The plan is injected
into the system prompt so the multi-step tool loop has a direction.
"""

from app.context.models import ResearchPlan
from app.context.prompt_blocks import RESEARCH_PLANNER_PROMPT
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.retry import RetryPolicy

logger = get_logger(__name__)

MAX_QUESTION_CHARS = 2000


def default_planner_retry_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        max_attempts=settings.PLANNER_MAX_ATTEMPTS,
        base_delay=settings.RETRY_BASE_DELAY,
    )


async def plan_research(
    question: str,
    provider,
    retry_policy: RetryPolicy | None = None,
    model: str | None = None,
) -> ResearchPlan:
    """
    Produce a search strategy for a research question.

    Args:
        question: User question (truncated to 2000 chars)
        provider: LLMProvider for the structured call
        retry_policy: Shared retry policy (defaults to the planner settings)
        model: Override for the planner model

    Returns:
        ResearchPlan with at most 5 queries

    Raises:
        Exception: The last provider error once retries are exhausted
    """
    policy = retry_policy or default_planner_retry_policy()
    prompt = RESEARCH_PLANNER_PROMPT.format(user_question=question[:MAX_QUESTION_CHARS])
    planner_model = model or get_settings().PLANNER_MODEL

    async def _call() -> ResearchPlan:
        return await provider.generate_structured(
            prompt=prompt,
            schema=ResearchPlan,
            tool_name="submit_research_plan",
            model=planner_model,
            max_tokens=2048,
        )

    plan = await policy.run(_call, operation="research plan")
    logger.info(
        f"Research plan: {len(plan.search_queries)} queries, "
        f"{len(plan.urls_to_analyze)} urls"
    )
    return plan
