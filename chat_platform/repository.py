"""Persistence for chat sessions and messages.

The repository is synchronous; the chat service runs it in a thread pool so
that database round-trips never block the event loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import ChatMessage, ChatSession
from .exceptions import SessionNotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

PERSISTED_ROLES = ("user", "assistant")


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    user_id: str
    provider: str
    model: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class MessageRecord:
    id: int
    session_id: str
    user_id: str
    role: str
    content: str
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "user_id": self.user_id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def _session_record(row: ChatSession) -> SessionRecord:
    return SessionRecord(
        session_id=row.session_id,
        user_id=row.user_id,
        provider=row.provider,
        model=row.model,
        created_at=row.created_at,
    )


def _message_record(row: ChatMessage) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        session_id=row.session_id,
        user_id=row.user_id,
        role=row.role,
        content=row.content,
        created_at=row.created_at,
    )


class ChatRepository:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def create_session(self, session: SessionRecord) -> SessionRecord:
        db = self._session_factory()
        try:
            row = ChatSession(
                session_id=session.session_id,
                user_id=session.user_id,
                provider=session.provider,
                model=session.model,
            )
            db.add(row)
            db.commit()
            return _session_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to create session %s: %s", session.session_id, e)
            raise StorageError(f"failed to create session: {e}") from e
        finally:
            db.close()

    def get_session_by_id(self, session_id: str) -> SessionRecord:
        db = self._session_factory()
        try:
            row = db.query(ChatSession).filter(ChatSession.session_id == session_id).first()
        except SQLAlchemyError as e:
            raise StorageError(f"failed to load session: {e}") from e
        finally:
            db.close()
        if row is None:
            raise SessionNotFoundError()
        return _session_record(row)

    def insert_message(self, user_id: str, session_id: str, role: str, content: str) -> MessageRecord:
        """Insert one message; the (user_id, session_id) pair must own a session."""
        if role not in PERSISTED_ROLES:
            raise ValidationError(f"invalid role {role!r}")

        db = self._session_factory()
        try:
            owner = (
                db.query(ChatSession.id)
                .filter(ChatSession.session_id == session_id, ChatSession.user_id == user_id)
                .first()
            )
            if owner is None:
                raise SessionNotFoundError()

            row = ChatMessage(session_id=session_id, user_id=user_id, role=role, content=content)
            db.add(row)
            db.commit()
            return _message_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to insert %s message into %s: %s", role, session_id, e)
            raise StorageError(f"failed to insert message: {e}") from e
        finally:
            db.close()

    def list_messages_desc(
        self,
        user_id: str,
        session_id: str,
        limit: int,
        before_id: Optional[int] = None,
    ) -> List[MessageRecord]:
        """Newest first; when before_id is positive only ids below it are returned."""
        db = self._session_factory()
        try:
            q = db.query(ChatMessage).filter(
                ChatMessage.user_id == user_id,
                ChatMessage.session_id == session_id,
            )
            if before_id:
                q = q.filter(ChatMessage.id < before_id)
            rows = q.order_by(ChatMessage.id.desc()).limit(limit).all()
            return [_message_record(r) for r in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"failed to list messages: {e}") from e
        finally:
            db.close()
