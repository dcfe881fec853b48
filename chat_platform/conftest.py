"""Shared fixtures: in-memory database, scripted backends, a wired-up service."""

import asyncio
from typing import List, Optional, Sequence

import pytest

from chat_platform.config import Settings
from chat_platform.database import init_db, make_engine, make_session_factory
from chat_platform.exceptions import UpstreamError
from chat_platform.providers import Capability, ChatBackend, FakeBackend, PromptMessage, ProviderRegistry
from chat_platform.repository import ChatRepository
from chat_platform.service import ChatService

TEST_SECRET = "test-secret-key-for-unit-tests-1234567890"


class RecordingBackend(ChatBackend):
    """Chat-only backend that remembers every window it was given."""

    name = "recording"

    def __init__(self, model: str = "default", delay: float = 0.0):
        super().__init__(model)
        self.delay = delay
        self.calls: List[List[PromptMessage]] = []

    async def chat(self, messages: Sequence[PromptMessage]) -> str:
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        return f"reply #{len(self.calls)}"


class FailingBackend(ChatBackend):
    name = "failing"

    async def chat(self, messages: Sequence[PromptMessage]) -> str:
        raise UpstreamError("backend exploded")


class StreamingBackend(ChatBackend):
    name = "streaming"
    capabilities = frozenset({Capability.CHAT, Capability.STREAM})

    def __init__(self, model: str = "default", fragments: Sequence[str] = ("Hel", "", "lo"), error: Optional[str] = None):
        super().__init__(model)
        self.fragments = list(fragments)
        self.error = error
        self.calls: List[List[PromptMessage]] = []

    async def chat(self, messages: Sequence[PromptMessage]) -> str:
        self.calls.append(list(messages))
        return "".join(self.fragments)

    async def stream_chat(self, messages: Sequence[PromptMessage]):
        self.calls.append(list(messages))
        for fragment in self.fragments:
            yield fragment
        if self.error:
            raise UpstreamError(self.error)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def repo(engine):
    return ChatRepository(make_session_factory(engine))


@pytest.fixture
def backends():
    return {
        "recording": RecordingBackend(),
        "failing": FailingBackend("default"),
        "streaming": StreamingBackend(),
    }


@pytest.fixture
def registry(backends):
    reg = ProviderRegistry()
    reg.register("fake", lambda model: FakeBackend(model or "default"))
    for name, backend in backends.items():
        reg.register(name, lambda model, backend=backend: backend)
    return reg.freeze()


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", jwt_secret=TEST_SECRET, demo_provider="streaming", demo_model="")


@pytest.fixture
def service(repo, registry, settings):
    return ChatService(repo, registry, settings)
