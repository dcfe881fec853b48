"""
Chat Platform service
Handles: chat sessions, provider-routed replies, message history, streaming
Port: 8002

- Sessions pin a provider/model; every reply is routed through the provider registry
- Ownership is enforced on every read and write (foreign sessions look missing)
- Streaming replies are relayed as server-sent events: chunk / done / error
- Auth: Authorization: Bearer <jwt> with a user_id claim
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .config import Settings, load_settings, setup_logging
from .database import init_db, make_engine, make_session_factory
from .dependencies import get_chat_service, require_user_id
from .exceptions import HTTP_STATUS, ChatError, StreamingNotSupportedError, ValidationError
from .models import (
    CreateSessionRequest,
    CreateSessionResponse,
    DemoChatRequest,
    DemoChatResponse,
    DemoMessage,
    HealthResponse,
    ListMessagesResponse,
    SendMessageRequest,
    SendMessageResponse,
)
from .providers import PromptMessage, ProviderRegistry, build_default_registry
from .relay import SSE_HEADERS, StreamRelay, relay_sse, watch_disconnect
from .repository import ChatRepository
from .service import ChatService

logger = logging.getLogger(__name__)

DEMO_ROLES = ("user", "assistant", "system")


def normalize_demo_messages(messages: List[DemoMessage], max_messages: int) -> List[PromptMessage]:
    out = []
    for m in messages:
        role = (m.role or "").strip().lower()
        if role not in DEMO_ROLES:
            continue
        content = (m.content or "").strip()
        if not content:
            continue
        out.append(PromptMessage(role=role, content=content))
    if max_messages > 0 and len(out) > max_messages:
        out = out[-max_messages:]
    return out


def validation_detail(exc: RequestValidationError) -> str:
    """Name the first offending field, e.g. ``invalid limit`` or ``missing session_id``."""
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    if first.get("type") == "json_invalid":
        return "invalid json"
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
    if first.get("type") == "missing":
        return f"missing {field}"
    return f"invalid {field}"


def _sse_response(request: Request, source: AsyncIterator[str]) -> StreamingResponse:
    cancelled = asyncio.Event()
    relay = StreamRelay(source, cancelled)

    async def body():
        watcher = asyncio.ensure_future(watch_disconnect(request, cancelled))
        try:
            async for frame in relay_sse(relay):
                yield frame
        finally:
            watcher.cancel()

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[ProviderRegistry] = None,
    engine=None,
) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    engine = engine if engine is not None else make_engine(settings.database_url)
    registry = registry if registry is not None else build_default_registry(settings)
    registry.freeze()

    service = ChatService(ChatRepository(make_session_factory(engine)), registry, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        logger.info("Chat platform started (providers: %s)", ", ".join(registry.names()))
        yield

    app = FastAPI(title="Chat Platform", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error mapping ─────────────────────────────────────────────────────────

    @app.exception_handler(ChatError)
    async def chat_error(request: Request, exc: ChatError):
        return JSONResponse(
            status_code=HTTP_STATUS[exc.kind],
            content={"detail": exc.message, "code": exc.kind.value},
        )

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": validation_detail(exc), "code": ValidationError.kind.value},
        )

    # ── Endpoints ─────────────────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return {"status": "ok", "service": "chat"}

    @app.get("/ping")
    async def ping():
        return {"pong": True}

    @app.post("/chat/sessions", response_model=CreateSessionResponse)
    async def create_session(
        body: Optional[CreateSessionRequest] = None,
        user_id: str = Depends(require_user_id),
        service: ChatService = Depends(get_chat_service),
    ):
        body = body or CreateSessionRequest()
        try:
            session = await service.create_session(user_id, body.provider or "", body.model or "")
        except ChatError:
            raise
        except Exception:
            logger.exception("Create session failed for user %s", user_id)
            raise HTTPException(status_code=500, detail="failed to create session")
        return {"session_id": session.session_id}

    @app.post("/chat/messages", response_model=SendMessageResponse)
    async def send_message(
        body: SendMessageRequest,
        user_id: str = Depends(require_user_id),
        service: ChatService = Depends(get_chat_service),
    ):
        try:
            result = await service.send_message(user_id, body.session_id, body.message)
        except ChatError:
            raise
        except Exception:
            logger.exception("Send message failed for session %s", body.session_id)
            raise HTTPException(status_code=400, detail="failed to send message")
        return {"session_id": body.session_id, "reply": result.reply, "message_id": result.message_id}

    @app.post("/chat/messages/stream")
    async def stream_message(
        body: SendMessageRequest,
        request: Request,
        user_id: str = Depends(require_user_id),
        service: ChatService = Depends(get_chat_service),
    ):
        source = await service.stream_message(user_id, body.session_id, body.message)
        return _sse_response(request, source)

    @app.get("/chat/sessions/{session_id}/messages", response_model=ListMessagesResponse)
    async def list_messages(
        session_id: str,
        limit: int = Query(0),
        before_id: int = Query(0, ge=0),
        user_id: str = Depends(require_user_id),
        service: ChatService = Depends(get_chat_service),
    ):
        try:
            messages = await service.list_messages(user_id, session_id, limit, before_id)
        except ChatError:
            raise
        except Exception:
            logger.exception("List messages failed for session %s", session_id)
            raise HTTPException(status_code=500, detail="failed to list messages")

        # the page is newest first, so its last entry is the cursor for older messages
        next_before_id = messages[-1].id if messages else 0
        return {"messages": [m.to_dict() for m in messages], "next_before_id": next_before_id}

    # ── Demo (not session-backed, no auth) ────────────────────────────────────

    def _demo_messages(body: DemoChatRequest) -> List[PromptMessage]:
        messages = normalize_demo_messages(body.messages, settings.demo_max_messages)
        if not messages:
            raise ValidationError("messages required")
        return messages

    @app.post("/demo/chat", response_model=DemoChatResponse)
    async def demo_chat(body: DemoChatRequest, service: ChatService = Depends(get_chat_service)):
        messages = _demo_messages(body)
        backend = service.resolve_backend(settings.demo_provider, settings.demo_model)
        return {"reply": await backend.chat(messages)}

    @app.post("/demo/chat/stream")
    async def demo_chat_stream(
        body: DemoChatRequest,
        request: Request,
        service: ChatService = Depends(get_chat_service),
    ):
        messages = _demo_messages(body)
        backend = service.resolve_backend(settings.demo_provider, settings.demo_model)
        if not backend.supports_streaming:
            raise StreamingNotSupportedError("demo stream not supported")
        return _sse_response(request, backend.stream_chat(messages))

    return app


app = create_app()


def main() -> None:
    import uvicorn

    logger.info("Chat platform starting on port 8002")
    uvicorn.run("chat_platform.main:app", host="0.0.0.0", port=8002)


if __name__ == "__main__":
    main()
