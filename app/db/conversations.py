"""Conversation CRUD over the client-side document store."""

from uuid import uuid4

from app.context.attachments import user_question_text
from app.context.models import Conversation, ConversationSummary, Message, Mode, utcnow
from app.core.logging import get_logger
from app.db.store import CONVERSATIONS, DocumentStore, get_store

logger = get_logger(__name__)

NEW_CONVERSATION_TITLE = "新しい会話"
TITLE_MAX_CHARS = 30


def generate_title(content: str) -> str:
    """First 30 chars of a message on one line, with '...' when cut."""
    cleaned = content.replace("\n", " ").strip()
    if len(cleaned) <= TITLE_MAX_CHARS:
        return cleaned
    return cleaned[:TITLE_MAX_CHARS] + "..."


def _load(store: DocumentStore, conversation_id: str) -> Conversation | None:
    doc = store.get(CONVERSATIONS, conversation_id)
    return Conversation.model_validate(doc) if doc else None


def create_conversation(mode: Mode = Mode.GENERAL, store: DocumentStore | None = None) -> Conversation:
    """Create and persist an empty conversation."""
    store = store or get_store()
    now = utcnow()
    conversation = Conversation(
        id=str(uuid4()),
        title=NEW_CONVERSATION_TITLE,
        messages=[],
        mode=mode,
        created_at=now,
        updated_at=now,
    )
    store.add(CONVERSATIONS, conversation.to_document())
    logger.info(f"Created conversation {conversation.id}")
    return conversation


def get_conversation(conversation_id: str, store: DocumentStore | None = None) -> Conversation | None:
    return _load(store or get_store(), conversation_id)


def list_conversations(store: DocumentStore | None = None) -> list[Conversation]:
    """All conversations, most recently updated first."""
    store = store or get_store()
    conversations = [Conversation.model_validate(doc) for doc in store.all(CONVERSATIONS)]
    return sorted(conversations, key=lambda c: c.updated_at, reverse=True)


def add_message(
    conversation_id: str,
    message: Message,
    store: DocumentStore | None = None,
) -> Conversation | None:
    """
    Append a message, deriving the title from the first user message.

    Returns:
        Updated conversation, or None if it doesn't exist
    """
    store = store or get_store()
    conversation = _load(store, conversation_id)
    if conversation is None:
        return None

    title = conversation.title
    if title == NEW_CONVERSATION_TITLE and message.role == "user":
        title = generate_title(message.content or user_question_text(message))

    conversation.messages.append(message)
    conversation.title = title
    conversation.updated_at = utcnow()
    store.put(CONVERSATIONS, conversation.to_document())
    return conversation


def _update_fields(store: DocumentStore, conversation_id: str, **changes) -> bool:
    conversation = _load(store, conversation_id)
    if conversation is None:
        logger.warning(f"Conversation {conversation_id} not found")
        return False
    updated = conversation.model_copy(update={**changes, "updated_at": utcnow()})
    store.put(CONVERSATIONS, updated.to_document())
    return True


def update_conversation_mode(
    conversation_id: str, mode: Mode, store: DocumentStore | None = None
) -> bool:
    return _update_fields(store or get_store(), conversation_id, mode=Mode(mode))


def update_conversation_title(
    conversation_id: str, title: str, store: DocumentStore | None = None
) -> bool:
    return _update_fields(store or get_store(), conversation_id, title=title)


def update_conversation_summary(
    conversation_id: str,
    summary: ConversationSummary,
    turn_count: int | None = None,
    store: DocumentStore | None = None,
) -> bool:
    """Replace the mid-term summary (and the user-turn count it covers)."""
    return _update_fields(
        store or get_store(),
        conversation_id,
        summary=summary,
        summary_turn_count=turn_count,
    )


def delete_conversation(conversation_id: str, store: DocumentStore | None = None) -> bool:
    return (store or get_store()).delete(CONVERSATIONS, conversation_id)


def delete_all_conversations(store: DocumentStore | None = None) -> None:
    (store or get_store()).clear(CONVERSATIONS)
