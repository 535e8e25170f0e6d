"""Pytest configuration and fixtures."""

import os

import pytest

from app.core.config import get_settings
from app.db.store import DocumentStore, get_store


@pytest.fixture(scope="session", autouse=True)
def setup_test_env(tmp_path_factory):
    """Set up test environment variables."""
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["CHAT_ENGINE_ENV"] = "test"
    os.environ["STORE_PATH"] = str(tmp_path_factory.mktemp("store") / "chat_store.json")
    # Modules imported during collection may already have cached settings
    get_settings.cache_clear()
    get_store.cache_clear()


@pytest.fixture
def store(tmp_path):
    """Empty document store in a per-test temp directory."""
    return DocumentStore(tmp_path / "store.json")
