"""
Shared pytest fixtures for cfquery tests.

Fixtures here build sample chats and conversations, isolated sqlite stores
under tmp_path, and mocked API collaborators.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List
from unittest.mock import MagicMock

import httpx
import pytest
from cfquery.config import Settings
from cfquery.models import Chat, Conversation
from cfquery.storage import ConversationStore, KeyValueStore, ModelCache

ACCOUNT_ID = "acct123"
API_TOKEN = "token-abc"

# ===== TEST DATA FIXTURES =====


def make_chats(count: int) -> List[Chat]:
    """Chats whose question/answer carry their index."""
    return [Chat(question=f"question {i}", answer=f"answer {i}") for i in range(count)]


@pytest.fixture
def chat_factory() -> Callable[[int], List[Chat]]:
    return make_chats


@pytest.fixture
def sample_chats() -> List[Chat]:
    return [
        Chat(question="What is Workers AI?", answer="A serverless inference platform."),
        Chat(question="Which models does it host?", answer="Llama, Mistral, Qwen and more."),
    ]


@pytest.fixture
def sample_conversation(sample_chats) -> Conversation:
    return Conversation(model="@cf/meta/llama-3.1-8b-instruct", chats=list(sample_chats))


@pytest.fixture
def empty_conversation() -> Conversation:
    return Conversation(model="@cf/meta/llama-3.1-8b-instruct")


@pytest.fixture
def dated_conversations() -> List[Conversation]:
    """Three conversations with distinct updated_at, oldest first."""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    return [
        Conversation(
            id=f"conv-{i}",
            model="@cf/meta/llama-3.1-8b-instruct",
            chats=[Chat(question=f"q{i}", answer=f"a{i}")],
            updated_at=base + timedelta(hours=i),
        )
        for i in range(3)
    ]


# ===== STORAGE FIXTURES =====


@pytest.fixture
def kv(tmp_path):
    store = KeyValueStore(tmp_path / "data" / "cfquery.db")
    yield store
    store.close()


@pytest.fixture
def conversation_store(kv) -> ConversationStore:
    return ConversationStore(kv)


@pytest.fixture
def model_cache(kv) -> ModelCache:
    return ModelCache(kv)


# ===== API FIXTURES =====


@pytest.fixture
def settings() -> Settings:
    return Settings(account_id=ACCOUNT_ID, api_token=API_TOKEN)


def envelope(result=None, success=True, errors=None) -> dict:
    """A Cloudflare v4 API response body."""
    return {"success": success, "errors": errors or [], "messages": [], "result": result}


@pytest.fixture
def api_response() -> Callable[..., dict]:
    return envelope


@pytest.fixture
def recording_transport():
    """MockTransport that records requests and replies from a handler.

    Usage: ``transport, requests = recording_transport(handler)``.
    """

    def build(handler):
        requests = []

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return handler(request)

        return httpx.MockTransport(record), requests

    return build


@pytest.fixture
def mock_client():
    """Stand-in for WorkersAIClient."""
    mock = MagicMock()
    mock.query.return_value = "Mock answer"
    mock.query_with_history.return_value = "Mock follow-up answer"
    mock.list_models.return_value = []
    return mock


# ===== CONFIGURATION =====


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
