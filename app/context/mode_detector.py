"""Mode detection: keyword heuristics first, AI classification when ambiguous.

The quick pass is a pure function over the user's text. Coding patterns are
checked before research patterns, so "implement a function that fetches the
latest prices" is coding. The AI pass runs only when the quick pass says
``general`` but the text looks like it needs fresh information.
"""

import re

from app.context.attachments import AttachmentInfo, user_question_text
from app.context.models import IntentClassification, Message, Mode, ThinkingLevel
from app.context.prompt_blocks import INTENT_CLASSIFICATION_PROMPT
from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Input limits for the classifier call
MAX_CLASSIFIER_MESSAGE_CHARS = 1000
MAX_CLASSIFIER_CONTEXT_CHARS = 2000

# recentContext shape
RECENT_CONTEXT_TURNS = 5
RECENT_CONTEXT_CHARS_PER_MESSAGE = 200


# =========================
# Keyword patterns
# =========================

# English keywords use ASCII word boundaries: kana and kanji are \w in Unicode
# mode, so "Pythonで" would otherwise never match.
_CODING_PATTERNS = [
    # Action verbs and nouns
    re.compile(
        r"(コード|実装|関数|クラス|メソッド|バグ|エラー|デバッグ|リファクタ|"
        r"コンパイル|ビルド|書いて|作って|直して|修正して|プログラム|スクリプト|"
        r"型定義|テストを書)"
    ),
    re.compile(
        r"\b(implement|refactor|debug|compile|traceback|stack\s*trace|exception|"
        r"bug|error|function|class|method|script|snippet|regex|endpoint|"
        r"unit\s*test|type\s*error|syntax)\b",
        re.IGNORECASE | re.ASCII,
    ),
    re.compile(
        r"\b(write|fix|build|create)\s+(a|an|the|this|my)?\s*"
        r"(code|program|function|script|app|component)\b",
        re.IGNORECASE | re.ASCII,
    ),
    # Languages, frameworks and package managers as whole words
    re.compile(
        r"\b(typescript|javascript|python|rust|golang|java|kotlin|swift|"
        r"react|next\.js|nextjs|vue|svelte|tailwind(css)?|node\.js|nodejs|django|fastapi|"
        r"sql|graphql|docker|kubernetes|npm|pnpm|yarn|pip|cargo|git)\b",
        re.IGNORECASE | re.ASCII,
    ),
    # Code fences
    re.compile(r"```"),
]

_RESEARCH_PATTERNS = [
    re.compile(
        r"(調べて|調査|教えて|最新|比較|違い|おすすめ|オススメ|ニュース|動向|"
        r"トレンド|について|メリット|デメリット|評判|ランキング|どっちが|どれが)"
    ),
    re.compile(
        r"\b(research|investigate|latest|compare|comparison|versus|vs\.?|"
        r"recommend(ation)?s?|news|trends?|pros\s+and\s+cons|difference|"
        r"alternatives?|review)\b",
        re.IGNORECASE | re.ASCII,
    ),
    # Question shapes that ask for an explanation of a topic
    re.compile(r"とは[?？]?\s*$"),
    re.compile(r"\b(what|which)\s+(is|are)\s+the\s+(best|latest|differences?)\b", re.IGNORECASE | re.ASCII),
    re.compile(r"\bhow\s+does\s+.+\s+compare\b", re.IGNORECASE | re.ASCII),
    # Explicit URLs
    re.compile(r"https?://\S+"),
]

_SEARCH_PATTERNS = [
    re.compile(
        r"(最新|現在|今日|今年|今月|最近|いつ|どこ|誰が|バージョン|リリース|価格|料金|"
        r"値段|天気|株価|ニュース|検索|調べて)"
    ),
    re.compile(
        r"\b(latest|current(ly)?|today|now|this\s+(year|month|week)|recent(ly)?|"
        r"version|release[ds]?|price|pricing|cost|weather|news|search)\b",
        re.IGNORECASE | re.ASCII,
    ),
    re.compile(r"\b20\d\d\b", re.ASCII),
    re.compile(r"^\s*(who|what|when|where|why|how)\b", re.IGNORECASE | re.ASCII),
]


def _matches_any(patterns: list[re.Pattern], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def classify_quick(text: str) -> Mode:
    """
    Heuristic mode for a user message. Pure, synchronous, no I/O.

    Coding patterns win over research patterns; anything else is general.
    """
    if _matches_any(_CODING_PATTERNS, text):
        return Mode.CODING
    if _matches_any(_RESEARCH_PATTERNS, text):
        return Mode.RESEARCH
    return Mode.GENERAL


def needs_search_quick(text: str) -> bool:
    """True if the message looks like it depends on fresh information."""
    return _matches_any(_SEARCH_PATTERNS, text)


# =========================
# AI classification
# =========================


def default_classification(failure_reason: str | None = None) -> IntentClassification:
    """Fallback used whenever the classifier call fails."""
    return IntentClassification(
        mode=Mode.GENERAL,
        needs_search=False,
        needs_url_context=False,
        thinking_level=ThinkingLevel.MEDIUM,
        reasoning="classification unavailable, using defaults",
        failure_reason=failure_reason,
    )


async def classify_intent(
    message: str,
    recent_context: str = "",
    provider=None,
    model: str | None = None,
) -> IntentClassification:
    """
    Classify a message with the provider's structured output.

    Never raises: any failure returns the general/medium default with
    ``failure_reason`` set so callers can log it.

    Args:
        message: User message text (truncated to 1000 chars)
        recent_context: Rendered recent turns (truncated to 2000 chars)
        provider: LLMProvider used for the structured call
        model: Override for the classifier model

    Returns:
        IntentClassification
    """
    prompt = INTENT_CLASSIFICATION_PROMPT.format(
        user_message=message[:MAX_CLASSIFIER_MESSAGE_CHARS],
        recent_context=(recent_context or "(none)")[:MAX_CLASSIFIER_CONTEXT_CHARS],
    )

    try:
        if provider is None:
            raise RuntimeError("no provider configured")
        result = await provider.generate_structured(
            prompt=prompt,
            schema=IntentClassification,
            tool_name="submit_intent",
            model=model or get_settings().CLASSIFIER_MODEL,
            max_tokens=512,
        )
        logger.info(
            f"Intent classified: mode={result.mode.value}, "
            f"needs_search={result.needs_search}, thinking={result.thinking_level.value}"
        )
        return result
    except Exception as e:
        logger.warning(f"Intent classification failed, using defaults: {e}")
        return default_classification(failure_reason=f"{type(e).__name__}: {e}")


# =========================
# Resolution policy
# =========================


def build_recent_context(messages: list[Message], turns: int = RECENT_CONTEXT_TURNS) -> str:
    """Last ``turns`` user+assistant pairs as ``role: text`` lines, 200 chars each."""
    lines = []
    for message in messages[-(turns * 2):]:
        text = user_question_text(message) if message.role == "user" else message.content
        if not text and message.parts:
            text = user_question_text(message)
        lines.append(f"{message.role}: {text[:RECENT_CONTEXT_CHARS_PER_MESSAGE]}")
    return "\n".join(lines)


def thinking_for_quick_mode(mode: Mode) -> ThinkingLevel:
    """Research needs deeper reasoning; everything else starts at medium."""
    return ThinkingLevel.HIGH if mode == Mode.RESEARCH else ThinkingLevel.MEDIUM


async def resolve_mode(
    text: str,
    recent_context: str,
    requested_mode: Mode | str | None = None,
    provider=None,
) -> tuple[Mode, ThinkingLevel, IntentClassification | None]:
    """
    Decide the response mode and reasoning depth for a request.

    An explicit mode (anything but ``auto``) is honoured as-is with medium
    reasoning; the caller's thinking level, when given, replaces it. Otherwise the
    quick heuristic runs, and only a general-but-needs-search message is
    escalated to AI classification.

    Returns:
        Tuple of (mode, thinking_level, classification or None)
    """
    if requested_mode and requested_mode != "auto":
        return Mode(requested_mode), ThinkingLevel.MEDIUM, None

    quick_mode = classify_quick(text)
    if quick_mode == Mode.GENERAL and needs_search_quick(text):
        classification = await classify_intent(text, recent_context, provider=provider)
        if classification.failure_reason:
            logger.info(f"Classifier fell back to defaults: {classification.failure_reason}")
        return classification.mode, classification.thinking_level, classification

    return quick_mode, thinking_for_quick_mode(quick_mode), None


def resolve_attachment_mode(
    mode: Mode,
    thinking_level: ThinkingLevel,
    attachments: AttachmentInfo,
) -> tuple[Mode, ThinkingLevel]:
    """
    Adjust mode and thinking when the conversation carries attachments.

    The question is about the files, so research mode drops to general and
    reasoning settles at medium. A code attachment in coding mode gets high.
    """
    if not attachments.has_any:
        return mode, thinking_level

    if attachments.has_code_attachment and mode == Mode.CODING:
        return Mode.CODING, ThinkingLevel.HIGH
    if mode == Mode.RESEARCH:
        return Mode.GENERAL, ThinkingLevel.MEDIUM
    return mode, ThinkingLevel.MEDIUM
