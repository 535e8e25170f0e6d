"""Pydantic models for conversations, message parts and orchestration artifacts.

Persisted and wire field names are camelCase (aliases); Python attribute
names are snake_case. Always dump with ``by_alias=True``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic.json_schema import SkipJsonSchema


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model with camelCase aliases, accepting either spelling on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Mode(str, Enum):
    """Response mode. Governs system-prompt selection and tool aggressiveness."""

    GENERAL = "general"
    RESEARCH = "research"
    CODING = "coding"


class ThinkingLevel(str, Enum):
    """Coarse reasoning-depth hint passed to the provider."""

    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =========================
# Message parts
# =========================


class _PartBase(CamelModel):
    """Common base for message parts.

    Extra keys are kept so provider metadata (signatures, ids) survives a
    persistence round trip. ``type`` always counts as explicitly set so that
    ``exclude_unset`` dumps never drop the tag.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    @model_validator(mode="after")
    def _mark_type_set(self):
        self.__pydantic_fields_set__.add("type")
        return self


class TextPart(_PartBase):
    type: Literal["text"] = "text"
    text: str


class ThinkingPart(_PartBase):
    type: Literal["thinking"] = "thinking"
    text: str
    signature: str | None = Field(
        default=None, description="Opaque per-turn signature required on the next provider call"
    )


class ImagePart(_PartBase):
    type: Literal["image"] = "image"
    url: str
    alt: str | None = None


class FilePart(_PartBase):
    type: Literal["file"] = "file"
    name: str
    url: str
    mime_type: str


class SourcePart(_PartBase):
    type: Literal["source"] = "source"
    url: str
    title: str = ""
    snippet: str | None = None


class ToolCallPart(_PartBase):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str | None = None
    tool_name: str
    args: Any = None


class ToolResultPart(_PartBase):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str | None = None
    tool_name: str
    result: Any = None


class UnknownPart(_PartBase):
    """Opaque passthrough for part tags this engine does not model."""

    type: str


KNOWN_PART_TYPES = frozenset(
    {"text", "thinking", "image", "file", "source", "tool-call", "tool-result"}
)


def _part_discriminator(value: Any) -> str:
    if isinstance(value, dict):
        part_type = value.get("type")
    else:
        part_type = getattr(value, "type", None)
    return part_type if part_type in KNOWN_PART_TYPES else "unknown"


MessagePart = Annotated[
    Union[
        Annotated[TextPart, Tag("text")],
        Annotated[ThinkingPart, Tag("thinking")],
        Annotated[ImagePart, Tag("image")],
        Annotated[FilePart, Tag("file")],
        Annotated[SourcePart, Tag("source")],
        Annotated[ToolCallPart, Tag("tool-call")],
        Annotated[ToolResultPart, Tag("tool-result")],
        Annotated[UnknownPart, Tag("unknown")],
    ],
    Discriminator(_part_discriminator),
]


def dump_part(part: BaseModel) -> dict[str, Any]:
    """Serialize a part exactly as it was received (no defaults injected)."""
    return part.model_dump(mode="json", by_alias=True, exclude_unset=True)


# =========================
# Messages & conversations
# =========================


class TokenUsage(CamelModel):
    """Token accounting reported by the provider for one response."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class Message(CamelModel):
    """A chat message. ``content`` is the plain question; ``parts`` is authoritative."""

    id: str
    role: Literal["user", "assistant", "system"]
    content: str = ""
    parts: list[MessagePart] | None = None
    usage: TokenUsage | None = None
    created_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        """Serialize for persistence, preserving parts verbatim."""
        doc = self.model_dump(mode="json", by_alias=True, exclude={"parts"}, exclude_none=True)
        if self.parts is not None:
            doc["parts"] = [dump_part(p) for p in self.parts]
        return doc


class ConversationSummary(CamelModel):
    """Mid-term memory: a structured rolling summary of older turns."""

    project_context: str = Field(..., description="What the conversation is about")
    decisions: list[str] = Field(default_factory=list, description="Decisions made so far")
    user_preferences: list[str] = Field(
        default_factory=list, description="Preferences the user expressed"
    )
    key_information: list[str] = Field(
        default_factory=list, description="Facts worth remembering"
    )
    current_state: str = Field(..., description="Where the conversation stands now")


class Conversation(CamelModel):
    """A persisted conversation owned by the client-side store."""

    id: str
    title: str
    messages: list[Message] = Field(default_factory=list)
    summary: ConversationSummary | None = None
    summary_turn_count: int | None = Field(
        default=None, description="User-turn count when the current summary was generated"
    )
    mode: Mode = Mode.GENERAL
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump(
            mode="json", by_alias=True, exclude={"messages"}, exclude_none=True
        )
        doc["messages"] = [m.to_document() for m in self.messages]
        return doc


class UserPreferences(CamelModel):
    """Long-term memory. Singleton per installation."""

    id: str = "default"
    language: str = "ja"
    coding_style: str = "typescript"
    preferred_stack: list[str] = Field(
        default_factory=lambda: ["next.js", "tailwindcss", "typescript"]
    )
    custom_instructions: str = ""
    updated_at: datetime = Field(default_factory=utcnow)


# =========================
# Orchestration artifacts (ephemeral)
# =========================


class IntentClassification(CamelModel):
    """Result of AI intent classification."""

    mode: Mode = Field(..., description="general, research or coding")
    needs_search: bool = Field(..., description="Whether fresh web information is needed")
    needs_url_context: bool = Field(..., description="Whether a shared URL must be read")
    thinking_level: ThinkingLevel = Field(..., description="minimal, low, medium or high")
    reasoning: str = Field(..., description="Short explanation of the decision")
    # Set when defaults were returned because classification failed
    failure_reason: SkipJsonSchema[str | None] = Field(default=None, exclude=True)


class SearchQuery(CamelModel):
    query: str = Field(..., description="Search query text")
    purpose: str = Field(..., description="What this query is meant to find")
    language: Literal["en", "ja"] = Field(..., description="Query language")


class ResearchPlan(CamelModel):
    """Structured pre-generation search strategy for research mode."""

    search_queries: list[SearchQuery] = Field(
        default_factory=list, max_length=5, description="At most 5 search queries"
    )
    urls_to_analyze: list[str] = Field(default_factory=list, description="URLs worth reading")
    expected_sources: str = Field(..., description="Kinds of sources expected to answer")
    fallback_strategy: str = Field(..., description="What to do if searches come up empty")

    @model_validator(mode="before")
    @classmethod
    def _cap_queries(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for key in ("searchQueries", "search_queries"):
                queries = data.get(key)
                if isinstance(queries, list) and len(queries) > 5:
                    data = {**data, key: queries[:5]}
        return data


class ScoredIssues(BaseModel):
    score: float
    items: list[str] = Field(default_factory=list)


class QualityCheckResult(CamelModel):
    """Self-review of a research answer."""

    accuracy: ScoredIssues
    completeness: ScoredIssues
    usefulness: ScoredIssues
    overall_score: float
    needs_additional_search: bool
    additional_search_queries: list[str] = Field(default_factory=list)
