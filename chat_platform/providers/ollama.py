"""Local inference backend talking to an Ollama server."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional, Sequence

import httpx

from ..exceptions import UpstreamError
from .base import Capability, ChatBackend, PromptMessage, as_payload, raise_for_upstream

logger = logging.getLogger(__name__)


class OllamaBackend(ChatBackend):
    name = "ollama"
    capabilities = frozenset({Capability.CHAT, Capability.STREAM})

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    async def chat(self, messages: Sequence[PromptMessage]) -> str:
        payload = {"model": self.model, "messages": as_payload(messages), "stream": False}
        try:
            async with self._client() as client:
                response = await client.post("/api/chat", json=payload)
                raise_for_upstream(response, self.name)
                data = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamError("ollama request timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"ollama request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError("ollama returned invalid JSON") from e

        if data.get("error"):
            raise UpstreamError(f"ollama error: {data['error']}")
        message = data.get("message") or {}
        return message.get("content", "") or ""

    async def stream_chat(self, messages: Sequence[PromptMessage]) -> AsyncIterator[str]:
        payload = {"model": self.model, "messages": as_payload(messages), "stream": True}
        logger.debug("Streaming %d message(s) to ollama model %s", len(messages), self.model)
        try:
            async with self._client() as client:
                async with client.stream("POST", "/api/chat", json=payload) as response:
                    raise_for_upstream(response, self.name)
                    async for line in response.aiter_lines():
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            logger.debug("Skipping non-JSON ollama line: %s", line)
                            continue
                        if data.get("error"):
                            raise UpstreamError(f"ollama error: {data['error']}")
                        content = (data.get("message") or {}).get("content") or ""
                        if content:
                            yield content
                        if data.get("done"):
                            return
        except httpx.TimeoutException as e:
            raise UpstreamError("ollama stream timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"ollama stream failed: {e}") from e
