"""Post-generation self-review of research answers.

Runs after the stream has finished, off the response path. The result is
only logged; it never changes what the user already received.
"""

import logging

from app.context.models import QualityCheckResult
from app.context.prompt_blocks import QUALITY_CHECK_PROMPT
from app.core.config import get_settings
from app.core.logging import get_logger, log_with_context

logger = get_logger(__name__)

MAX_QUESTION_CHARS = 2000
MAX_ANSWER_CHARS = 20_000


async def check_answer_quality(
    question: str,
    answer: str,
    provider,
    model: str | None = None,
) -> QualityCheckResult | None:
    """
    Score an answer for accuracy, completeness and usefulness.

    Returns:
        QualityCheckResult, or None when there is nothing to check or the
        review call failed (logged)
    """
    if not question.strip() or not answer.strip():
        return None

    prompt = QUALITY_CHECK_PROMPT.format(
        question=question[:MAX_QUESTION_CHARS],
        answer=answer[:MAX_ANSWER_CHARS],
    )
    try:
        result = await provider.generate_structured(
            prompt=prompt,
            schema=QualityCheckResult,
            tool_name="submit_quality_check",
            model=model or get_settings().QUALITY_CHECK_MODEL,
            max_tokens=1024,
        )
    except Exception as e:
        logger.warning(f"Quality check failed: {e}")
        return None

    log_with_context(
        logger,
        logging.INFO,
        "Research answer quality",
        overall_score=result.overall_score,
        accuracy=result.accuracy.score,
        completeness=result.completeness.score,
        usefulness=result.usefulness.score,
        needs_additional_search=result.needs_additional_search,
    )
    return result
