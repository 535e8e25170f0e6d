"""JSON document store for the client side.

Holds two collections keyed by document id (``conversations`` and
``preferences``) plus a small key-value ``session`` area. The whole store is
one JSON file rewritten on every change; writes go through a temp file and
an atomic rename so a crash never leaves a half-written store.
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from app.core.config import get_settings
from app.core.errors import StoreError
from app.core.logging import get_logger

logger = get_logger(__name__)

CONVERSATIONS = "conversations"
PREFERENCES = "preferences"
SESSION = "session"

_AREAS = (CONVERSATIONS, PREFERENCES, SESSION)


class DocumentStore:
    """File-backed document store (one JSON file)."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    # --------- raw read/write --------- #

    def _load(self) -> dict[str, dict[str, Any]]:
        """Load the whole store. A missing file is an empty store."""
        if not self.path.exists():
            return {area: {} for area in _AREAS}

        try:
            with self.path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read store {self.path}: {e}") from e

        for area in _AREAS:
            raw.setdefault(area, {})
        return raw

    def _save(self, data: dict[str, dict[str, Any]]) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreError(f"Failed to write store {self.path}: {e}") from e

    # --------- collections --------- #

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return self._load()[collection].get(doc_id)

    def all(self, collection: str) -> list[dict[str, Any]]:
        return list(self._load()[collection].values())

    def add(self, collection: str, doc: dict[str, Any]) -> None:
        """Insert a new document; the id must not exist yet."""
        data = self._load()
        if doc["id"] in data[collection]:
            raise StoreError(f"{collection}/{doc['id']} already exists")
        data[collection][doc["id"]] = doc
        self._save(data)

    def put(self, collection: str, doc: dict[str, Any]) -> None:
        """Insert or replace a document."""
        data = self._load()
        data[collection][doc["id"]] = doc
        self._save(data)

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> bool:
        """Shallow-merge ``changes`` into a document. False if it doesn't exist."""
        data = self._load()
        doc = data[collection].get(doc_id)
        if doc is None:
            return False
        doc.update(changes)
        self._save(data)
        return True

    def delete(self, collection: str, doc_id: str) -> bool:
        data = self._load()
        if data[collection].pop(doc_id, None) is None:
            return False
        self._save(data)
        return True

    def clear(self, collection: str) -> None:
        data = self._load()
        data[collection] = {}
        self._save(data)

    # --------- session key-value area --------- #

    def get_value(self, key: str, default: Any = None) -> Any:
        return self._load()[SESSION].get(key, default)

    def set_value(self, key: str, value: Any) -> None:
        data = self._load()
        data[SESSION][key] = value
        self._save(data)

    def delete_value(self, key: str) -> None:
        data = self._load()
        if data[SESSION].pop(key, None) is not None:
            self._save(data)


@lru_cache(maxsize=1)
def get_store() -> DocumentStore:
    """
    Get the document store (cached singleton).

    Returns:
        DocumentStore at the configured STORE_PATH
    """
    settings = get_settings()
    logger.debug(f"Opening document store at {settings.STORE_PATH}")
    return DocumentStore(settings.STORE_PATH)
