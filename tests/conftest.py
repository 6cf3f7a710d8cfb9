"""Shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from threadkeeper.llm import Completion
from threadkeeper.logging import JSONLLogger, configure_logger
from threadkeeper.storage import ConversationStore


@pytest.fixture(autouse=True)
def event_logger(tmp_path: Path) -> JSONLLogger:
    """Send structured logs to a temporary directory."""
    return configure_logger(tmp_path / "logs")


@pytest.fixture
def store(tmp_path: Path) -> ConversationStore:
    """Create a ConversationStore with a temporary database."""
    store = ConversationStore(tmp_path / "test.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def llm() -> AsyncMock:
    """Create a mock completion client that always answers 'ok'."""
    client = AsyncMock()
    client.complete = AsyncMock(return_value=Completion(content="ok"))
    return client


@pytest.fixture
def conversation_id(store: ConversationStore) -> str:
    """Create an empty conversation."""
    return store.create_conversation().id
