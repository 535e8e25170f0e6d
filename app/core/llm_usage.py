"""Centralized LLM usage logger for token/cost tracking."""

import logging

from app.core.logging import get_logger, log_with_context

logger = get_logger(__name__)

# Pricing per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "claude-opus-4-5-20251101": (5.0, 25.0),
    "claude-sonnet-4-5-20250929": (3.0, 15.0),
    "claude-sonnet-4-20250514": (3.0, 15.0),
    "claude-haiku-4-5-20251001": (1.0, 5.0),
    "claude-3-5-haiku-20241022": (0.80, 4.0),
}


def _estimate_cost(
    model: str,
    tokens_input: int,
    tokens_output: int,
    tokens_cache_read: int = 0,
) -> float:
    """Estimate cost in USD based on model pricing."""
    pricing = MODEL_PRICING.get(model)
    if not pricing:
        # Try prefix match for model variants
        for key, val in MODEL_PRICING.items():
            if model.startswith(key.rsplit("-", 1)[0]):
                pricing = val
                break
    if not pricing:
        logger.debug(f"No pricing found for model '{model}', using $0")
        return 0.0

    input_rate, output_rate = pricing
    # Cache reads are typically 90% cheaper
    cache_discount = 0.1
    effective_input = (tokens_input - tokens_cache_read) + (tokens_cache_read * cache_discount)
    cost = (effective_input * input_rate / 1_000_000) + (tokens_output * output_rate / 1_000_000)
    return round(cost, 6)


def log_llm_usage(
    operation: str,
    model: str,
    tokens_input: int,
    tokens_output: int,
    duration_ms: int = 0,
    tokens_cache_read: int = 0,
    conversation_id: str | None = None,
) -> float:
    """
    Log a single LLM call with its estimated cost.

    Never fails the main operation due to logging.

    Args:
        operation: What the call was for (classify, plan, generate, ...)
        model: Model identifier
        tokens_input: Prompt tokens
        tokens_output: Completion tokens
        duration_ms: Wall time of the call
        tokens_cache_read: Prompt tokens served from cache
        conversation_id: Conversation the call belongs to, if known

    Returns:
        Estimated cost in USD
    """
    try:
        estimated_cost = _estimate_cost(model, tokens_input, tokens_output, tokens_cache_read)
        context = {
            "operation": operation,
            "model": model,
            "tokens_input": tokens_input,
            "tokens_output": tokens_output,
            "estimated_cost_usd": estimated_cost,
            "duration_ms": duration_ms,
        }
        if conversation_id:
            context["conversation_id"] = conversation_id
        log_with_context(logger, logging.INFO, "LLM usage", **context)
        return estimated_cost
    except Exception as e:
        logger.error(f"Failed to log LLM usage: {e}")
        return 0.0
