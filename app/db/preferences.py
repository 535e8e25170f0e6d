"""User preferences (long-term memory) over the client-side document store."""

from app.context.models import UserPreferences, utcnow
from app.core.logging import get_logger
from app.db.store import PREFERENCES, DocumentStore, get_store

logger = get_logger(__name__)

DEFAULT_USER_ID = "default"

_LANGUAGE_NAMES = {"ja": "Japanese", "en": "English"}


def get_preferences(store: DocumentStore | None = None) -> UserPreferences:
    """Get the preferences row, creating it with defaults on first use."""
    store = store or get_store()
    doc = store.get(PREFERENCES, DEFAULT_USER_ID)
    if doc:
        return UserPreferences.model_validate(doc)

    prefs = UserPreferences(id=DEFAULT_USER_ID)
    store.put(PREFERENCES, prefs.model_dump(mode="json", by_alias=True))
    logger.info("Created default user preferences")
    return prefs


def update_preferences(store: DocumentStore | None = None, **updates) -> UserPreferences:
    """
    Update preference fields (snake_case keyword names).

    ``id`` and ``updated_at`` cannot be set by callers.
    """
    store = store or get_store()
    updates.pop("id", None)
    updates.pop("updated_at", None)

    current = get_preferences(store)
    updated = UserPreferences.model_validate(
        {**current.model_dump(), **updates, "updated_at": utcnow()}
    )
    store.put(PREFERENCES, updated.model_dump(mode="json", by_alias=True))
    return updated


def reset_preferences(store: DocumentStore | None = None) -> UserPreferences:
    store = store or get_store()
    prefs = UserPreferences(id=DEFAULT_USER_ID)
    store.put(PREFERENCES, prefs.model_dump(mode="json", by_alias=True))
    return prefs


def render_long_term_memory(prefs: UserPreferences) -> str:
    """Render preferences as the lines injected into the system prompt."""
    lines = []
    if prefs.language:
        lines.append(f"- Language: {_LANGUAGE_NAMES.get(prefs.language, prefs.language)}")
    if prefs.coding_style:
        lines.append(f"- Coding style: {prefs.coding_style}")
    if prefs.preferred_stack:
        lines.append(f"- Preferred stack: {', '.join(prefs.preferred_stack)}")
    if prefs.custom_instructions:
        lines.append(f"- Custom instructions:\n{prefs.custom_instructions}")
    return "\n".join(lines)


def get_long_term_memory_string(store: DocumentStore | None = None) -> str:
    return render_long_term_memory(get_preferences(store))
