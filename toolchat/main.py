"""
FastAPI application — the toolchat REST facade.

Endpoints:
  GET  /api/hello            liveness, returns "AI"
  POST /api/chapter2..5      one chapter turn, plain-text reply
  POST /api/chat             session turn with every tool
  POST /api/reset-session    drop the caller's session conversation
  POST /api/skChat           stateless full-history turn, {"items": [...]}
  GET  /api/tools            tools advertised per chapter

Orchestrator failures map to JSON {"error": ...} with a status code, never a
200 carrying error text.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from toolchat.backends import make_backend
from toolchat.backends.base import CompletionBackend
from toolchat.chapters import CHAPTERS, ChapterService
from toolchat.config import get_config
from toolchat.errors import (
    BackendError,
    BackendTimeoutError,
    ConversationError,
    EmptyResponseError,
    ToolChatError,
    ToolTimeoutError,
)
from toolchat.storage.vector_store import VectorStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Globals, initialized at startup
# ---------------------------------------------------------------------------
backend: CompletionBackend | None = None
vector_store: VectorStore | None = None
chapter_service: ChapterService | None = None


def _setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, log_cfg.get("level", "INFO").upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        from pathlib import Path
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


def _build_vector_store(cfg: dict) -> VectorStore | None:
    """Document store for the search tool. None when search is disabled."""
    if not cfg.get("tools", {}).get("document_search", {}).get("enabled", False):
        return None
    try:
        return VectorStore.from_config(cfg)
    except Exception as e:
        logger.warning("Vector store unavailable, document search disabled: %s", e)
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    global backend, vector_store, chapter_service

    cfg = get_config()
    _setup_logging(cfg)

    backend = make_backend(cfg)
    vector_store = _build_vector_store(cfg)
    chapter_service = ChapterService.from_config(cfg, backend, vector_store)

    logger.info("Backend: %r", backend)
    for name in CHAPTERS:
        logger.info("Chapter %s tools: %s", name, chapter_service.registry(name).list_tools() or "none")
    logger.info("toolchat started")

    yield

    logger.info("toolchat shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="toolchat",
    description="Tool-augmented chat over an OpenAI-compatible backend.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().get("server", {}).get("cors_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _cookie_name() -> str:
    return get_config().get("sessions", {}).get("cookie_name", "toolchat_session")


def _error_response(e: ToolChatError) -> JSONResponse:
    """Map a typed failure to a JSON error with a status code."""
    if isinstance(e, (BackendTimeoutError, ToolTimeoutError)):
        status = 504
    elif isinstance(e, (BackendError, EmptyResponseError)):
        status = 502
    elif isinstance(e, ConversationError):
        status = 409
    else:
        status = 500
    logger.error("Request failed (%d): %s", status, e)
    return JSONResponse({"error": str(e), "type": type(e).__name__}, status_code=status)


async def _read_message(request: Request) -> str | None:
    """Pull the user text out of {"message": ...} or {"content": ...}."""
    try:
        body = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    text = body.get("message", body.get("content"))
    if not isinstance(text, str) or not text.strip():
        return None
    return text


def _service_unavailable() -> JSONResponse:
    return JSONResponse({"error": "Service not initialized"}, status_code=503)


async def _chapter_turn(chapter: str, request: Request):
    if chapter_service is None:
        return _service_unavailable()
    message = await _read_message(request)
    if message is None:
        return JSONResponse(
            {"error": "Body must be a JSON object with a non-empty 'message' or 'content'"},
            status_code=422,
        )

    session_id = request.cookies.get(_cookie_name())
    try:
        session_id, result = await chapter_service.send(chapter, message, session_id)
    except ToolChatError as e:
        return _error_response(e)

    response = PlainTextResponse(result.final_text)
    if session_id:
        response.set_cookie(_cookie_name(), session_id, httponly=True, samesite="lax")
    return response


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/api/hello")
async def hello():
    return PlainTextResponse("AI")


@app.post("/api/chapter2")
async def chapter2(request: Request):
    """Plain chat, history kept per session."""
    return await _chapter_turn("chapter2", request)


@app.post("/api/chapter3")
async def chapter3(request: Request):
    """Date/time, geocoding and weather tools."""
    return await _chapter_turn("chapter3", request)


@app.post("/api/chapter4")
async def chapter4(request: Request):
    """Chapter 3 tools plus document search."""
    return await _chapter_turn("chapter4", request)


@app.post("/api/chapter5")
async def chapter5(request: Request):
    """Prompt tools."""
    return await _chapter_turn("chapter5", request)


@app.post("/api/chat")
async def chat(request: Request):
    """Every tool, history kept per session."""
    return await _chapter_turn("chat", request)


@app.post("/api/reset-session")
async def reset_session(request: Request):
    if chapter_service is None:
        return _service_unavailable()
    chapter_service.sessions.reset(request.cookies.get(_cookie_name()))
    response = PlainTextResponse("Session reset successfully")
    response.delete_cookie(_cookie_name())
    return response


@app.post("/api/skChat")
async def sk_chat(request: Request):
    """
    Stateless turn over a list of user messages with every tool.
    Body: {"messages": [{"content": "..."}, ...]}
    Returns every message of the exchange as {"items": [{"role", "text"}]}.
    """
    if chapter_service is None:
        return _service_unavailable()
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "invalid JSON"}, status_code=422)

    raw = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(raw, list) or not raw:
        return JSONResponse({"error": "'messages' must be a non-empty list"}, status_code=422)
    messages = []
    for item in raw:
        content = item.get("content") if isinstance(item, dict) else item
        if not isinstance(content, str):
            return JSONResponse({"error": "each message needs a string 'content'"}, status_code=422)
        messages.append(content)

    try:
        result = await chapter_service.sk_chat(messages)
    except ToolChatError as e:
        return _error_response(e)

    return JSONResponse({
        "items": [{"role": m.role, "text": m.content} for m in result.history or []],
    })


@app.get("/api/tools")
async def list_tools():
    """Tools advertised to the backend, per chapter."""
    if chapter_service is None:
        return JSONResponse({"chapters": {}})
    return JSONResponse({
        "chapters": {
            name: [d.to_openai_format()["function"] for d in chapter_service.registry(name).describe_all()]
            for name in CHAPTERS
        },
    })
