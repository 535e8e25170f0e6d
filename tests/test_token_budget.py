"""Tests for character-budget trimming and output ceilings."""

import pytest

from app.context.models import ImagePart, Message, TextPart, ToolCallPart
from app.context.token_budget import (
    BINARY_PART_CHARS,
    CONTEXT_CHAR_CEILING,
    DEFAULT_MAX_OUTPUT_TOKENS,
    PROVIDER_RESERVE_CHARS,
    REDUCED_MAX_OUTPUT_TOKENS,
    compute_message_budget,
    estimate_message_chars,
    select_max_output_tokens,
    trim_messages_to_budget,
)


def _message(index: int, size: int) -> Message:
    role = "user" if index % 2 == 0 else "assistant"
    return Message(id=f"m{index}", role=role, content="x" * size)


def test_budget_subtracts_system_prompt_and_reserve():
    assert compute_message_budget("s" * 1000) == CONTEXT_CHAR_CEILING - 1000 - PROVIDER_RESERVE_CHARS


def test_everything_fits():
    messages = [_message(i, 100) for i in range(6)]

    result = trim_messages_to_budget(messages, "system")

    assert result.messages == messages
    assert result.dropped == 0
    assert not result.over_budget


def test_keeps_contiguous_suffix():
    messages = [_message(i, 100_000) for i in range(5)]

    result = trim_messages_to_budget(messages, "")

    assert result.messages == messages[-3:]
    assert result.dropped == 2
    assert result.used == 300_000


@pytest.mark.parametrize("sizes", [[50_000] * 10, [10, 390_000, 10], [200_000, 10, 150_000, 40_000]])
def test_result_is_always_a_suffix_with_newest(sizes):
    messages = [_message(i, size) for i, size in enumerate(sizes)]

    kept = trim_messages_to_budget(messages, "prompt").messages

    assert kept
    assert kept[-1] is messages[-1]
    assert kept == messages[len(messages) - len(kept):]


def test_stops_at_first_overflow():
    # The small oldest message would fit, but nothing past a gap is kept
    messages = [_message(0, 10), _message(1, 390_000), _message(2, 10)]

    result = trim_messages_to_budget(messages, "")

    assert [m.id for m in result.messages] == ["m2"]


def test_newest_message_kept_even_when_over_budget():
    messages = [_message(0, 10), _message(1, 500_000)]

    result = trim_messages_to_budget(messages, "")

    assert [m.id for m in result.messages] == ["m1"]
    assert result.over_budget


def test_empty_history():
    result = trim_messages_to_budget([], "prompt")
    assert result.messages == []
    assert result.used == 0


def test_estimate_counts_parts():
    message = Message(
        id="m",
        role="user",
        content="ignored when parts exist",
        parts=[
            TextPart(text="hello"),
            ImagePart(url="data:image/png;base64," + "A" * 100_000),
            ToolCallPart(tool_call_id="c1", tool_name="web_search", args={"query": "q"}),
        ],
    )
    assert estimate_message_chars(message) == 5 + BINARY_PART_CHARS + len('{"query": "q"}')


def test_output_ceiling():
    assert select_max_output_tokens(10_000) == DEFAULT_MAX_OUTPUT_TOKENS
    assert select_max_output_tokens(200_000) == DEFAULT_MAX_OUTPUT_TOKENS
    assert select_max_output_tokens(200_001) == REDUCED_MAX_OUTPUT_TOKENS
