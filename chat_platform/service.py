"""Chat orchestration: sessions, ownership, context windows and the send/reply cycle."""

from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from fastapi.concurrency import run_in_threadpool

from .config import Settings, clamp_window_size
from .exceptions import SessionNotFoundError, StreamingNotSupportedError
from .ids import new_session_id
from .providers import ChatBackend, PromptMessage, ProviderRegistry
from .repository import ChatRepository, MessageRecord, SessionRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    reply: str
    message_id: int


class SessionLocks:
    """One asyncio lock per session id, dropped once nobody holds a reference."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock


class ChatService:
    def __init__(self, repo: ChatRepository, registry: ProviderRegistry, settings: Optional[Settings] = None):
        self.repo = repo
        self.registry = registry
        self.settings = settings or Settings()
        self.context_window_size = clamp_window_size(self.settings.context_window_size)
        self._locks = SessionLocks()

    # ── Sessions ────────────────────────────────────────────────────────────

    async def create_session(self, user_id: str, provider: str = "", model: str = "") -> SessionRecord:
        provider = (provider or "").strip() or self.settings.default_provider
        model = (model or "").strip() or self.settings.default_model

        record = SessionRecord(
            session_id=new_session_id(),
            user_id=user_id,
            provider=provider,
            model=model,
        )
        created = await run_in_threadpool(self.repo.create_session, record)
        logger.info("Created session %s (%s/%s) for user %s", created.session_id, provider, model, user_id)
        return created

    async def get_owned_session(self, user_id: str, session_id: str) -> SessionRecord:
        """Load a session; a foreign owner is reported exactly like a missing session."""
        session = await run_in_threadpool(self.repo.get_session_by_id, session_id)
        if session.user_id != user_id:
            raise SessionNotFoundError()
        return session

    def resolve_backend(self, provider: str, model: str) -> ChatBackend:
        backend = self.registry.get(provider, model)
        logger.debug("Resolved %s/%s to %r", provider, model, backend)
        return backend

    # ── Messages ────────────────────────────────────────────────────────────

    async def send_message(self, user_id: str, session_id: str, content: str) -> SendResult:
        session = await self.get_owned_session(user_id, session_id)

        async with self._locks.get(session_id):
            # the user's turn is durable before any generation is attempted
            await run_in_threadpool(self.repo.insert_message, user_id, session_id, "user", content)
            window = await self._context_window(user_id, session_id)

            backend = self.resolve_backend(session.provider, session.model)
            reply = await backend.chat(window)

            assistant = await run_in_threadpool(
                self.repo.insert_message, user_id, session_id, "assistant", reply
            )

        logger.info("Session %s: reply stored as message %d", session_id, assistant.id)
        return SendResult(reply=reply, message_id=assistant.id)

    async def stream_message(self, user_id: str, session_id: str, content: str) -> AsyncIterator[str]:
        """Start a streamed reply for a persisted session.

        Ownership, provider resolution and the streaming capability are all
        checked before anything is written, so an unsupported backend leaves no
        trace. The returned generator yields reply fragments and stores the
        assistant message once the backend finishes.
        """
        session = await self.get_owned_session(user_id, session_id)
        backend = self.resolve_backend(session.provider, session.model)
        if not backend.supports_streaming:
            raise StreamingNotSupportedError(f"provider {session.provider!r} does not support streaming")

        # only the window assembly is serialised; generation runs after the
        # response has started and the lock must not outlive an abandoned stream
        async with self._locks.get(session_id):
            await run_in_threadpool(self.repo.insert_message, user_id, session_id, "user", content)
            window = await self._context_window(user_id, session_id)

        async def fragments() -> AsyncIterator[str]:
            parts: List[str] = []
            async for fragment in backend.stream_chat(window):
                parts.append(fragment)
                yield fragment
            assistant = await run_in_threadpool(
                self.repo.insert_message, user_id, session_id, "assistant", "".join(parts)
            )
            logger.info("Session %s: streamed reply stored as message %d", session_id, assistant.id)

        return fragments()

    async def list_messages(
        self,
        user_id: str,
        session_id: str,
        limit: int = 0,
        before_id: int = 0,
    ) -> List[MessageRecord]:
        await self.get_owned_session(user_id, session_id)
        limit = self._clamp_limit(limit)
        return await run_in_threadpool(
            self.repo.list_messages_desc, user_id, session_id, limit, before_id or None
        )

    # ── Helpers ─────────────────────────────────────────────────────────────

    async def _context_window(self, user_id: str, session_id: str) -> List[PromptMessage]:
        recent = await run_in_threadpool(
            self.repo.list_messages_desc, user_id, session_id, self.context_window_size
        )
        # stored newest first; backends need oldest first
        return [PromptMessage(role=m.role, content=m.content) for m in reversed(recent)]

    def _clamp_limit(self, limit: int) -> int:
        if limit is None or limit <= 0:
            return self.settings.list_default_limit
        return min(limit, self.settings.list_max_limit)
