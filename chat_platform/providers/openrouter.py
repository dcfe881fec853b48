"""Hosted backend for OpenRouter's OpenAI-compatible chat-completions API."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Dict, Optional, Sequence

import httpx

from ..exceptions import UpstreamError
from .base import Capability, ChatBackend, PromptMessage, as_payload, raise_for_upstream

logger = logging.getLogger(__name__)


class OpenRouterBackend(ChatBackend):
    name = "openrouter"
    capabilities = frozenset({Capability.CHAT, Capability.STREAM})

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        *,
        site_url: str = "",
        app_name: str = "",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(model)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.site_url = site_url
        self.app_name = app_name
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        # optional attribution headers
        if self.site_url:
            headers["HTTP-Referer"] = self.site_url
        if self.app_name:
            headers["X-Title"] = self.app_name
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def chat(self, messages: Sequence[PromptMessage]) -> str:
        payload = {"model": self.model, "messages": as_payload(messages)}
        try:
            async with self._client() as client:
                response = await client.post("/chat/completions", json=payload)
                raise_for_upstream(response, self.name)
                result = response.json()
        except httpx.TimeoutException as e:
            raise UpstreamError("openrouter request timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"openrouter request failed: {e}") from e
        except ValueError as e:
            raise UpstreamError("openrouter returned invalid JSON") from e

        if result.get("error"):
            raise UpstreamError(f"openrouter error: {_error_message(result['error'])}")
        try:
            return result["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("openrouter returned no choices") from e

    async def stream_chat(self, messages: Sequence[PromptMessage]) -> AsyncIterator[str]:
        payload = {"model": self.model, "messages": as_payload(messages), "stream": True}
        logger.debug("Streaming %d message(s) to openrouter model %s", len(messages), self.model)
        try:
            async with self._client() as client:
                async with client.stream("POST", "/chat/completions", json=payload) as response:
                    raise_for_upstream(response, self.name)
                    async for raw_line in response.aiter_lines():
                        line = raw_line.strip()
                        # SSE comments (": OPENROUTER PROCESSING") keep the connection alive
                        if not line or line.startswith(":"):
                            continue
                        if line.startswith("data:"):
                            line = line[5:].strip()
                        if line == "[DONE]":
                            return
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            logger.debug("Skipping non-JSON stream line: %s", line)
                            continue
                        if data.get("error"):
                            raise UpstreamError(f"openrouter error: {_error_message(data['error'])}")
                        delta = _extract_delta(data)
                        if delta:
                            yield delta
        except httpx.TimeoutException as e:
            raise UpstreamError("openrouter stream timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"openrouter stream failed: {e}") from e


def _extract_delta(payload: dict) -> str:
    choices = payload.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    return str(delta.get("content") or "")


def _error_message(error) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)
