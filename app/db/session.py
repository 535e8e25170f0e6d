"""Last-active conversation pointer, kept in the store's session area."""

from app.db.store import DocumentStore, get_store

LAST_CONVERSATION_KEY = "lastConversationId"


def get_last_conversation_id(store: DocumentStore | None = None) -> str | None:
    return (store or get_store()).get_value(LAST_CONVERSATION_KEY)


def set_last_conversation_id(conversation_id: str, store: DocumentStore | None = None) -> None:
    (store or get_store()).set_value(LAST_CONVERSATION_KEY, conversation_id)


def clear_last_conversation_id(store: DocumentStore | None = None) -> None:
    (store or get_store()).delete_value(LAST_CONVERSATION_KEY)
