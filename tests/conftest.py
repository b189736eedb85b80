"""
Core pytest configuration and fixtures for geminichat testing.

This module provides shared test fixtures, fake LLM providers and helpers
used by both the unit and integration suites.
"""

import asyncio
from typing import AsyncIterator, List, Optional, Sequence

import pytest
from geminichat.controller import ChatController
from geminichat.llm import LLM, ChatHandle
from geminichat.models import MODEL_ROLE, USER_ROLE, ChatSession, Message
from geminichat.storage import InMemory

# ===== FAKE PROVIDERS =====


class ScriptedChat(ChatHandle):
    """Chat handle that replays a fixed fragment script, optionally failing."""

    def __init__(
        self,
        model: str,
        system_instruction: str,
        fragments: Sequence[Optional[str]],
        fail_after: Optional[int] = None,
    ):
        self.model = model
        self.system_instruction = system_instruction
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.sent: List[str] = []

    async def stream(self, message: str) -> AsyncIterator[str]:
        self.sent.append(message)
        if self.fail_after == 0:
            raise ConnectionError("connection refused")
        for i, fragment in enumerate(self.fragments):
            if self.fail_after is not None and i == self.fail_after:
                raise ConnectionError("stream interrupted")
            await asyncio.sleep(0)
            yield fragment


class ScriptedLLM(LLM):
    """LLM whose handles stream ``fragments`` and whose titles are ``title``."""

    def __init__(
        self,
        fragments: Sequence[Optional[str]] = ("Hel", "lo", " world"),
        title: str = "Greeting Exchange",
        fail_after: Optional[int] = None,
        title_error: Optional[Exception] = None,
    ):
        self.fragments = list(fragments)
        self.title = title
        self.fail_after = fail_after
        self.title_error = title_error
        self.chats: List[ScriptedChat] = []
        self.title_prompts: List[str] = []

    def create_chat(self, model: str, system_instruction: str) -> ChatHandle:
        chat = ScriptedChat(model, system_instruction, self.fragments, self.fail_after)
        self.chats.append(chat)
        return chat

    async def generate_text(self, model: str, prompt: str) -> str:
        self.title_prompts.append(prompt)
        await asyncio.sleep(0)
        if self.title_error is not None:
            raise self.title_error
        return self.title


class FailingStorage(InMemory):
    """Storage whose writes always fail."""

    def write(self, key: str, data: str) -> None:
        raise OSError("disk full")


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[Message]:
    """Sample chat messages for testing."""
    return [
        Message(role=USER_ROLE, content="Hello, how are you?"),
        Message(
            role=MODEL_ROLE,
            content="I'm doing well, thank you! How can I help you today?",
        ),
        Message(role=USER_ROLE, content="Can you explain quantum computing?"),
        Message(
            role=MODEL_ROLE,
            content="Quantum computing uses quantum mechanics principles...",
        ),
    ]


@pytest.fixture
def sample_session(sample_messages) -> ChatSession:
    """Sample session for testing."""
    return ChatSession(title="Quantum questions", messages=sample_messages)


# ===== PROVIDER AND STORAGE FIXTURES =====


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def memory_storage() -> InMemory:
    return InMemory()


@pytest.fixture
def failing_storage() -> FailingStorage:
    return FailingStorage()


@pytest.fixture
def make_llm():
    """Factory for scripted providers with custom fragments or failures."""
    return ScriptedLLM


@pytest.fixture
def controller(scripted_llm, memory_storage) -> ChatController:
    return ChatController(scripted_llm, memory_storage)


@pytest.fixture
def all_storage_implementations(tmp_path):
    """All storage implementations for contract testing."""
    from geminichat import storage

    return [
        ("InMemory", storage.InMemory()),
        ("File", storage.File(str(tmp_path / "file_store"))),
        ("SQLite", storage.SQLite(str(tmp_path / "test.db"))),
    ]


# ===== APP FIXTURES =====


@pytest.fixture
def test_app():
    """
    Provides a GeminiChat app instance with simple, predictable components.

    Uses the Echo provider and in-memory storage so no network or
    filesystem is touched. The loop thread is stopped afterwards.
    """
    from geminichat import GeminiChat
    from geminichat.llm import Echo

    app = GeminiChat(llm=Echo(delay=0), storage=InMemory())
    yield app
    app.runner.stop()


# ===== CONFIGURATION =====


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
