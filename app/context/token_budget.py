"""Character budget management for the conversation sent to the provider.

Sizes are estimated from character counts, not tokenization. The global
ceiling sits well below the provider's nominal context window: answer
quality degrades past roughly this size, so it is a fixed constant rather
than something derived from the model's advertised limit.
"""

import json
from dataclasses import dataclass

from app.context.models import (
    FilePart,
    ImagePart,
    Message,
    TextPart,
    ThinkingPart,
    ToolCallPart,
    ToolResultPart,
    dump_part,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

# Global context ceiling in characters (~100K tokens)
CONTEXT_CHAR_CEILING = 400_000

# Reserved for provider overhead: tool definitions, role framing, thinking
PROVIDER_RESERVE_CHARS = 20_000

# Binary parts (images, PDFs) are billed by the provider, not by their data
# URL length, so they count as a flat estimate
BINARY_PART_CHARS = 6_000

# Output token ceilings
DEFAULT_MAX_OUTPUT_TOKENS = 64_000
REDUCED_MAX_OUTPUT_TOKENS = 16_384
FALLBACK_MAX_OUTPUT_TOKENS = 8_192

# Past this many input characters the output ceiling drops
LARGE_INPUT_THRESHOLD_CHARS = 200_000


@dataclass
class TrimResult:
    """Outcome of fitting the message history into the budget."""

    messages: list[Message]
    budget: int
    used: int
    dropped: int

    @property
    def over_budget(self) -> bool:
        return self.used > self.budget


def estimate_message_chars(message: Message) -> int:
    """Approximate size of one message as the provider will see it."""
    if not message.parts:
        return len(message.content)

    total = 0
    for part in message.parts:
        if isinstance(part, (TextPart, ThinkingPart)):
            total += len(part.text)
        elif isinstance(part, (ImagePart, FilePart)):
            total += BINARY_PART_CHARS
        elif isinstance(part, ToolCallPart):
            total += len(json.dumps(part.args, default=str, ensure_ascii=False))
        elif isinstance(part, ToolResultPart):
            total += len(json.dumps(part.result, default=str, ensure_ascii=False))
        else:
            total += len(json.dumps(dump_part(part), ensure_ascii=False))
    return total


def compute_message_budget(system_prompt: str) -> int:
    """Characters left for messages after the system prompt and reserve."""
    return CONTEXT_CHAR_CEILING - len(system_prompt) - PROVIDER_RESERVE_CHARS


def trim_messages_to_budget(messages: list[Message], system_prompt: str) -> TrimResult:
    """
    Keep the longest suffix of ``messages`` that fits the character budget.

    Walks from the newest message backward and stops at the first message
    that would overflow. The newest message is always kept, even when it
    alone exceeds the budget, so the user's latest turn is never dropped.

    Args:
        messages: Chronological message history
        system_prompt: Fully assembled system prompt

    Returns:
        TrimResult with a contiguous suffix of the input
    """
    budget = compute_message_budget(system_prompt)
    if not messages:
        return TrimResult(messages=[], budget=budget, used=0, dropped=0)

    used = 0
    start = len(messages)
    for index in range(len(messages) - 1, -1, -1):
        size = estimate_message_chars(messages[index])
        if used + size > budget and start < len(messages):
            break
        used += size
        start = index
        if used > budget:
            # Only the newest message, and it alone is over budget
            break

    kept = messages[start:]
    dropped = len(messages) - len(kept)
    if dropped:
        logger.info(
            f"Trimmed history: kept {len(kept)}/{len(messages)} messages, "
            f"{used:,}/{budget:,} chars"
        )
    return TrimResult(messages=kept, budget=budget, used=used, dropped=dropped)


def estimate_input_chars(system_prompt: str, messages: list[Message]) -> int:
    return len(system_prompt) + sum(estimate_message_chars(m) for m in messages)


def select_max_output_tokens(input_chars: int) -> int:
    """High output ceiling by default; reduced once the input is large."""
    if input_chars > LARGE_INPUT_THRESHOLD_CHARS:
        return REDUCED_MAX_OUTPUT_TOKENS
    return DEFAULT_MAX_OUTPUT_TOKENS
