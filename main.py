# main.py
from dotenv import load_dotenv
load_dotenv(override=True)

import logging
import sys
from functools import lru_cache
from typing import AsyncIterator, Dict, Tuple

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from catalog import ModelCatalog, load_catalog
from errors import RemoteServiceError, SessionError
from models import ChatRequest, ChatResponse, ErrorResponse, ModelInfo
from remote import GeminiRemote, RemoteModel
from session import Session, TurnStream
from settings import Settings

settings = Settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Gemini Chat API", version="1.0.0")

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Catalog & Gemini client ---
catalog = load_catalog(settings)


def get_catalog() -> ModelCatalog:
    return catalog


@lru_cache
def get_remote() -> RemoteModel:
    # built on first use so the app imports without an API key
    return GeminiRemote.from_settings(settings)


# --- Errors: every failure is reported as {"error": ...} ---
@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=str(exc)).model_dump())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(error=str(exc.detail)).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content=ErrorResponse(error=f"Invalid request: {problems}").model_dump())


def open_turn(req: ChatRequest, remote: RemoteModel, models: ModelCatalog) -> Tuple[Session, str]:
    """Rebuild a session from the client's history; returns it with the new user text."""
    if settings.MAX_HISTORY_MESSAGES and len(req.messages) > settings.MAX_HISTORY_MESSAGES:
        raise HTTPException(
            status_code=400,
            detail=f"History exceeds {settings.MAX_HISTORY_MESSAGES} messages",
        )
    if not req.messages or req.messages[-1].role != "user":
        raise HTTPException(status_code=400, detail="The last message must come from the user")

    *earlier, latest = [m.to_message() for m in req.messages]
    session = Session(remote, catalog=models, model=req.model, history=earlier)
    return session, latest.text


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/models", response_model=Dict[str, ModelInfo])
def list_models(models: ModelCatalog = Depends(get_catalog)):
    return models.as_dict()


@app.post("/api/chat", response_model=ChatResponse)
async def chat(
    req: ChatRequest,
    remote: RemoteModel = Depends(get_remote),
    models: ModelCatalog = Depends(get_catalog),
):
    session, text = open_turn(req, remote, models)
    logger.info(f"Chat turn model={session.model} history={len(session.history)}")
    reply = await session.send_turn(text)
    return ChatResponse(text=reply.text)


async def _relay(stream: TurnStream) -> AsyncIterator[str]:
    # headers are already sent, so a remote failure can only end the body
    try:
        async for fragment in stream:
            yield fragment
    except RemoteServiceError as e:
        logger.error(f"Stream interrupted: {e}")
    finally:
        await stream.aclose()


@app.post("/api/chat/stream")
async def chat_stream(
    req: ChatRequest,
    remote: RemoteModel = Depends(get_remote),
    models: ModelCatalog = Depends(get_catalog),
):
    session, text = open_turn(req, remote, models)
    logger.info(f"Streamed chat turn model={session.model} history={len(session.history)}")
    stream = await session.stream_turn(text)
    return StreamingResponse(_relay(stream), media_type="text/plain; charset=utf-8")
