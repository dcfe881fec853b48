from typing import Sequence

from .base import ChatBackend, PromptMessage


class FakeBackend(ChatBackend):
    """Echoes the latest turn back. Used in development and tests."""

    name = "fake"

    async def chat(self, messages: Sequence[PromptMessage]) -> str:
        if not messages:
            return "Echo: (empty)"
        last = messages[-1].content.strip()
        if not last:
            return "Echo: (empty)"
        return "Echo: " + last
