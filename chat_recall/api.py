"""FastAPI server for Chat Recall.

Provides REST API endpoints:
- GET /health, /v1/health: Health check
- GET /v1/config: Resolved request-kind table and finder defaults
- /v1/chats: Thread CRUD and message append
- POST /v1/chats/find: Two-stage chat finder (lexical -> LLM rerank)
- POST /v1/chats/intent: Retrieval-intent classification
- GET /v1/chats/{id}/summary: Stored or generated thread summary
- POST /v1/respond: Chained chat turn
- POST /v1/summarize: Bullet summary of a conversation branch
- /v1/stacks: Smart Stacks metadata and refresh

Every thread-scoped route is keyed by the opaque ``demo_uid`` cookie.
"""

import logging
import platform
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import config
from .correlation import (
    CORRELATION_HEADER,
    REQUEST_ID_HEADER,
    clear_correlation_id,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
    validate_correlation_id,
)
from .exceptions import DispatchError, ThreadNotFoundError
from .finder import FindResult, find_chats
from .intent_classification import IntentContext, IntentOutput, classify_intent
from .llm_client import BackendRejected, ModelDispatcher, build_openai_client, format_dispatch_error
from .prompts import CHAT_INSTRUCTIONS
from .request_config import RequestConfigRegistry, RequestKind
from .stacks import StacksRefreshResult, refresh_stacks
from .store import Category, ChatMessage, MemoryThreadStore, ThreadStore, now_ms
from .summaries import ThreadSummary, get_or_generate_summary, summarize_branch

logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models
# ============================================================================


class FindRequest(BaseModel):
    """Request body for /v1/chats/find."""

    query: str = Field(..., min_length=1, max_length=config.MAX_QUERY_LENGTH, description="What to search for")
    maxCandidates: Optional[int] = Field(
        None, ge=1, le=config.MAX_CANDIDATES_CAP, description="Lexical candidates sent to the rerank"
    )


class IntentRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=config.MAX_QUERY_LENGTH)
    context: IntentContext


class RespondRequest(BaseModel):
    input: str = Field(..., min_length=1)
    previous_response_id: Optional[str] = None
    mode: Literal["fast", "deep"] = "deep"


class RespondResponse(BaseModel):
    id: str
    output_text: str


class BranchMessage(BaseModel):
    role: Literal["user", "assistant"]
    text: str


class SummarizeRequest(BaseModel):
    branchMessages: List[BranchMessage]
    maxBullets: Optional[int] = Field(None, ge=1, le=20)


class CreateThreadRequest(BaseModel):
    title: Optional[str] = None
    category: Optional[Category] = None
    summary: Optional[str] = None
    lastResponseId: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None


class PatchThreadRequest(BaseModel):
    """Only these fields are updatable; anything else is ignored."""

    title: Optional[str] = None
    summary: Optional[str] = None
    category: Optional[Category] = None
    lastResponseId: Optional[str] = None


# PatchThreadRequest field -> store field
_PATCH_FIELDS = {"title": "title", "summary": "summary", "category": "category", "lastResponseId": "last_response_id"}


class AppendMessageRequest(BaseModel):
    id: str = Field(..., min_length=1)
    role: Literal["user", "assistant", "context"]
    text: str
    createdAt: Optional[int] = None
    responseId: Optional[str] = None


class StacksMetaUpdate(BaseModel):
    timestamp: Optional[int] = None


class HealthResponse(BaseModel):
    """Response body for the health endpoints."""

    status: str
    timestamp: datetime
    version: str
    platform: str
    storage_type: str
    llm_configured: bool


class ConfigResponse(BaseModel):
    """Response body for /v1/config."""

    request_kinds: Dict[str, Dict[str, str]]
    max_candidates: int
    max_candidates_cap: int
    top_k: int


# ============================================================================
# FastAPI Application
# ============================================================================


def create_app(store: Optional[ThreadStore] = None, dispatcher: Optional[ModelDispatcher] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Thread store; defaults to a fresh ``MemoryThreadStore``
        dispatcher: Model dispatcher; when omitted one is built at startup from
            the environment, failing fast if OPENAI_API_KEY is missing
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        owns_client = False
        if _app.state.dispatcher is None:
            logger.info("Building OpenAI dispatcher on startup...")
            _app.state.dispatcher = ModelDispatcher(build_openai_client(), RequestConfigRegistry.from_env())
            owns_client = True
        try:
            yield
        finally:
            logger.info("Initiating graceful shutdown...")
            if owns_client:
                await _app.state.dispatcher.client.close()
            logger.info("Graceful shutdown complete")

    from . import __version__

    app = FastAPI(
        title="Chat Recall API",
        description="Find past chat threads with lexical retrieval and LLM rerank",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.store = store if store is not None else MemoryThreadStore()
    app.state.dispatcher = dispatcher

    # Add CORS middleware only when explicitly configured
    if config.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["content-type", "accept", CORRELATION_HEADER, REQUEST_ID_HEADER],
        )

    # ========================================================================
    # Correlation ID Middleware
    # ========================================================================
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """Tag the request with a validated or freshly generated correlation ID."""
        raw_id = request.headers.get(CORRELATION_HEADER) or request.headers.get(REQUEST_ID_HEADER)
        correlation_id = validate_correlation_id(raw_id) or generate_correlation_id()

        set_correlation_id(correlation_id)
        # Exception handlers run after the ContextVar is cleared
        request.state.correlation_id = correlation_id

        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            clear_correlation_id()

    def _correlation_id_for(request: Request) -> str:
        return getattr(request.state, "correlation_id", None) or get_correlation_id() or generate_correlation_id()

    def _require_user(request: Request) -> str:
        uid = request.cookies.get(config.DEMO_UID_COOKIE)
        if not uid:
            raise HTTPException(status_code=401, detail=f"No {config.DEMO_UID_COOKIE} cookie found")
        return uid

    def _dispatcher() -> ModelDispatcher:
        return app.state.dispatcher

    def _store() -> ThreadStore:
        return app.state.store

    # ========================================================================
    # Exception Handlers (ensure correlation ID on error responses)
    # ========================================================================
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers={CORRELATION_HEADER: _correlation_id_for(request)},
        )

    @app.exception_handler(ThreadNotFoundError)
    async def thread_not_found_handler(request: Request, exc: ThreadNotFoundError):
        return JSONResponse(
            status_code=404,
            content={"detail": "Thread not found"},
            headers={CORRELATION_HEADER: _correlation_id_for(request)},
        )

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError):
        """Backend status is forwarded when it is an HTTP error; everything else is 500."""
        outcome = exc.outcome
        status_code = 500
        if isinstance(outcome, BackendRejected) and outcome.status and 400 <= outcome.status < 600:
            status_code = outcome.status
        logger.error(f"Dispatch failed: {exc}")
        return JSONResponse(
            status_code=status_code,
            content=format_dispatch_error(outcome),
            headers={CORRELATION_HEADER: _correlation_id_for(request)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        correlation_id = _correlation_id_for(request)
        logger.exception(f"Unhandled exception [correlation_id={correlation_id}]: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
            headers={CORRELATION_HEADER: correlation_id},
        )

    # ========================================================================
    # Health / Config
    # ========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Liveness plus a summary of wiring (storage backend, LLM client)."""
        llm_configured = app.state.dispatcher is not None
        return HealthResponse(
            status="healthy" if llm_configured else "degraded",
            timestamp=datetime.now(),
            version=__version__,
            platform=f"{platform.system()} {platform.machine()}",
            storage_type=getattr(_store(), "storage_type", "unknown"),
            llm_configured=llm_configured,
        )

    @app.get("/v1/health", response_model=HealthResponse)
    async def health_check_v1() -> HealthResponse:
        return await health_check()

    @app.get("/v1/config", response_model=ConfigResponse)
    async def get_config() -> ConfigResponse:
        dispatcher = _dispatcher()
        registry = dispatcher.registry if dispatcher is not None else RequestConfigRegistry.from_env()
        return ConfigResponse(
            request_kinds={kind: cfg.as_log_fields() for kind, cfg in registry.table().items()},
            max_candidates=min(config.CHAT_FINDER_MAX_CANDIDATES, config.MAX_CANDIDATES_CAP),
            max_candidates_cap=config.MAX_CANDIDATES_CAP,
            top_k=min(config.CHAT_FINDER_TOPK, config.MAX_TOPK_CAP),
        )

    # ========================================================================
    # Threads
    # ========================================================================

    @app.get("/v1/chats")
    async def list_chats(request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        threads = await _store().list_threads(uid)
        return {"threads": [thread.model_dump(by_alias=True) for thread in threads]}

    @app.post("/v1/chats", status_code=201)
    async def create_chat(body: CreateThreadRequest, request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        thread = await _store().create_thread(
            uid,
            title=body.title,
            category=body.category,
            summary=body.summary,
            last_response_id=body.lastResponseId,
            messages=body.messages,
        )
        logger.info("[chats] Created thread %s", thread.id[:8])
        return {"thread": thread.model_dump(by_alias=True)}

    @app.get("/v1/chats/{thread_id}")
    async def get_chat(thread_id: str, request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        thread = await _store().get_thread(uid, thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return {"thread": thread.model_dump(by_alias=True)}

    @app.patch("/v1/chats/{thread_id}")
    async def patch_chat(thread_id: str, body: PatchThreadRequest, request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        store = _store()
        if await store.get_thread(uid, thread_id) is None:
            raise ThreadNotFoundError(thread_id)

        # Only fields the client actually sent; title and category are not nullable
        updates = {
            _PATCH_FIELDS[name]: value
            for name, value in body.model_dump(exclude_unset=True).items()
            if value is not None or name in ("summary", "lastResponseId")
        }
        if updates:
            await store.update_thread(uid, thread_id, **updates)

        thread = await store.get_thread(uid, thread_id)
        return {"thread": thread.model_dump(by_alias=True)}

    @app.delete("/v1/chats/{thread_id}")
    async def delete_chat(thread_id: str, request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        await _store().delete_thread(uid, thread_id)
        return {"success": True}

    @app.post("/v1/chats/{thread_id}/messages", status_code=201)
    async def append_chat_message(thread_id: str, body: AppendMessageRequest, request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        store = _store()
        if await store.get_thread(uid, thread_id) is None:
            raise ThreadNotFoundError(thread_id)
        message = ChatMessage(
            id=body.id,
            role=body.role,
            text=body.text,
            created_at=body.createdAt or now_ms(),
            response_id=body.responseId,
        )
        await store.append_message(uid, thread_id, message)
        return {"success": True, "message": message.model_dump(by_alias=True)}

    # ========================================================================
    # Finder / Intent / Summary
    # ========================================================================

    @app.post("/v1/chats/find", response_model=FindResult)
    async def find(body: FindRequest, request: Request) -> FindResult:
        """Find past chats matching a natural-language query.

        Returns an empty option list (not an error) when the user has no
        threads, nothing survives lexical scoring, or the rerank finds no
        relevant chat.
        """
        uid = _require_user(request)
        threads = await _store().list_threads(uid)
        logger.info("[finder] Query %r over %d threads", body.query[:80], len(threads))
        return await find_chats(_dispatcher(), threads, body.query, max_candidates=body.maxCandidates)

    @app.post("/v1/chats/intent", response_model=IntentOutput)
    async def intent(body: IntentRequest, request: Request) -> IntentOutput:
        _require_user(request)
        return await classify_intent(_dispatcher(), body.message, body.context)

    @app.get("/v1/chats/{thread_id}/summary", response_model=ThreadSummary)
    async def chat_summary(thread_id: str, request: Request) -> ThreadSummary:
        uid = _require_user(request)
        return await get_or_generate_summary(_store(), _dispatcher(), uid, thread_id)

    # ========================================================================
    # Chat / Branch summaries
    # ========================================================================

    @app.post("/v1/respond", response_model=RespondResponse)
    async def respond(body: RespondRequest) -> RespondResponse:
        """One chained chat turn; pass the returned id as the next previous_response_id."""
        kind = RequestKind.CHAT_FAST if body.mode == "fast" else RequestKind.CHAT_DEEP
        outcome = await _dispatcher().create_text_response(
            kind,
            [{"role": "user", "content": body.input}],
            previous_response_id=body.previous_response_id,
            instructions=CHAT_INSTRUCTIONS,
        )
        response = outcome.unwrap()

        if not response.text:
            logger.warning("[respond] Empty output_text for response %s (status=%s)", response.id, response.status)
        if response.status == "incomplete":
            logger.warning("[respond] Response %s incomplete", response.id)

        return RespondResponse(id=response.id, output_text=response.text)

    @app.post("/v1/summarize")
    async def summarize(body: SummarizeRequest) -> Dict[str, str]:
        messages = [message.model_dump() for message in body.branchMessages]
        summary = await summarize_branch(_dispatcher(), messages, body.maxBullets)
        return {"summary": summary}

    # ========================================================================
    # Smart Stacks
    # ========================================================================

    @app.get("/v1/stacks/meta")
    async def stacks_meta(request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        meta = await _store().get_stacks_meta(uid)
        return meta.model_dump(by_alias=True)

    @app.post("/v1/stacks/meta")
    async def update_stacks_meta(body: StacksMetaUpdate, request: Request) -> Dict[str, Any]:
        uid = _require_user(request)
        store = _store()
        await store.set_last_stacks_refresh_at(uid, body.timestamp or now_ms())
        meta = await store.get_stacks_meta(uid)
        return meta.model_dump(by_alias=True)

    @app.post("/v1/stacks/refresh", response_model=StacksRefreshResult)
    async def stacks_refresh(request: Request) -> StacksRefreshResult:
        uid = _require_user(request)
        return await refresh_stacks(_store(), _dispatcher(), uid)

    return app


# ============================================================================
# Standalone Server
# ============================================================================


app = create_app()


def run_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    workers: int = 1,
    log_level: str = "info",
) -> None:
    """Run the FastAPI server.

    Args:
        host: Host to bind to
        port: Port to bind to
        workers: Number of worker processes (the memory store is per process)
        log_level: Logging level
    """
    import uvicorn

    uvicorn.run(
        "chat_recall.api:app",
        host=host,
        port=port,
        workers=workers,
        log_level=log_level,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
