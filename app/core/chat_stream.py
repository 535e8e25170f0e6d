"""SSE encoding of an orchestrated answer stream."""

import asyncio
import json
from collections.abc import AsyncGenerator

from app.core.logging import get_logger
from app.core.orchestrator import OrchestrationResult

logger = get_logger(__name__)


def _sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data)}\n\n"


def start_event(result: OrchestrationResult) -> dict:
    plan = result.research_plan
    return {
        "type": "start",
        "mode": result.mode.value,
        "thinkingLevel": result.thinking_level.value,
        "researchPlan": plan.model_dump(mode="json", by_alias=True) if plan else None,
        "fallback": result.fallback_used,
    }


async def generate_chat_stream(result: OrchestrationResult) -> AsyncGenerator[str, None]:
    """Stream an orchestration result as SSE events.

    Yields SSE events: start -> text-delta / reasoning-delta / source /
    tool-call / tool-result ... -> finish, or error on a mid-stream failure.
    A client disconnect cancels the generator; the provider stream is closed
    and nothing is retried.
    """
    answer_parts: list[str] = []
    completed = False

    try:
        yield _sse_event(start_event(result))

        async for event in result.stream.events():
            if event.type == "text-delta":
                answer_parts.append(event.data.get("delta", ""))
            yield _sse_event(event.to_payload())

        completed = True

    except asyncio.CancelledError:
        logger.info("Stream cancelled by client, closing provider connection")
        raise
    except Exception as e:
        logger.error(f"Chat stream error: {e}", exc_info=True)
        yield _sse_event({"type": "error", "error": str(e)})
    finally:
        await result.stream.aclose()

    if completed and result.on_complete is not None:
        try:
            result.on_complete("".join(answer_parts))
        except Exception as e:
            logger.warning(f"Post-stream hook failed: {e}")
