"""Backend handle abstraction shared by every chat provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, FrozenSet, List, Sequence

import httpx

from ..exceptions import QuotaExceededError, StreamingNotSupportedError, UpstreamError


@dataclass(frozen=True)
class PromptMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class Capability(str, Enum):
    CHAT = "chat"
    STREAM = "stream"


class ChatBackend(ABC):
    """A live handle to one provider/model pair.

    ``chat`` is always available. ``stream_chat`` is only meaningful when the
    backend declares ``Capability.STREAM``; callers check ``supports`` first
    instead of calling it speculatively.
    """

    name: str = ""
    capabilities: FrozenSet[Capability] = frozenset({Capability.CHAT})

    def __init__(self, model: str):
        self.model = model

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @property
    def supports_streaming(self) -> bool:
        return self.supports(Capability.STREAM)

    @abstractmethod
    async def chat(self, messages: Sequence[PromptMessage]) -> str:
        """Return one complete reply for the chronologically ordered messages."""

    def stream_chat(self, messages: Sequence[PromptMessage]) -> AsyncIterator[str]:
        """Yield reply fragments; exhaustion means success, an exception is the terminal error."""
        raise StreamingNotSupportedError(f"provider {self.name!r} does not support streaming")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} model={self.model!r}>"


def as_payload(messages: Sequence[PromptMessage]) -> List[Dict[str, str]]:
    return [m.to_dict() for m in messages]


def raise_for_upstream(response: httpx.Response, provider: str) -> None:
    """Translate a non-2xx provider response into the matching error kind."""
    if response.status_code == 429:
        raise QuotaExceededError(f"{provider} rate limited the request")
    if response.status_code >= 400:
        raise UpstreamError(f"{provider} returned HTTP {response.status_code}")
