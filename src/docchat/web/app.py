"""FastAPI application exposing DocChat over HTTP."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, List, Optional, TypeVar

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from docchat import __version__
from docchat.config import AppConfig
from docchat.errors import (
    ConfigurationError,
    DocChatError,
    IngestionFailure,
    NotFoundError,
    ProviderAuthError,
    ProviderRateLimitError,
    ValidationError,
)
from docchat.services import Services, build_services

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

app = FastAPI(title="DocChat", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_config: Optional[AppConfig] = None
_services: Optional[Services] = None
_services_lock = threading.Lock()


def configure(config: AppConfig) -> None:
    """Use ``config`` instead of the environment when services are first built."""
    global _config
    _config = config


def get_services() -> Services:
    """Process-wide services, built on first use."""
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services(_config or AppConfig.from_env())
        return _services


class UploadPayload(BaseModel):
    file_name: str
    content: str


class ChatPayload(BaseModel):
    message: str
    session_id: Optional[str] = None


def _http_error(exc: DocChatError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.user_message)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=exc.user_message)
    if isinstance(exc, ProviderRateLimitError):
        return HTTPException(status_code=429, detail=exc.user_message)
    if isinstance(exc, (ProviderAuthError, ConfigurationError)):
        return HTTPException(status_code=500, detail=ConfigurationError.default_user_message)
    if isinstance(exc, IngestionFailure):
        return HTTPException(status_code=500, detail=exc.user_message)
    return HTTPException(status_code=502, detail=exc.user_message)


async def _run(func: Callable[..., T], *args: Any) -> T:
    try:
        return await asyncio.to_thread(func, *args)
    except DocChatError as exc:
        LOGGER.error("Request failed: %s", exc)
        raise _http_error(exc) from exc


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": __version__}


# -- documents -------------------------------------------------------------------


@app.post("/documents", status_code=201)
async def upload_document(
    payload: UploadPayload, services: Services = Depends(get_services)
) -> dict[str, Any]:
    if not payload.file_name.strip():
        raise HTTPException(status_code=400, detail="No file name provided")
    result = await _run(services.indexer.ingest, payload.content, payload.file_name)
    return {
        "status": "ok",
        "document": {
            "id": result.document_id,
            "title": result.title,
            "file_name": result.file_name,
            "doc_type": result.doc_type,
            "chunk_count": result.chunk_count,
            "size_bytes": result.size_bytes,
        },
    }


@app.get("/documents")
async def list_documents(services: Services = Depends(get_services)) -> dict[str, Any]:
    documents = await _run(services.store.list_documents)
    return {"documents": documents}


@app.get("/documents/stats")
async def document_stats(services: Services = Depends(get_services)) -> dict[str, Any]:
    return await _run(services.store.get_stats)


@app.get("/documents/{document_id}")
async def get_document(document_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    document = await _run(services.store.get_document, document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return document


@app.delete("/documents/{document_id}")
async def delete_document(
    document_id: str, services: Services = Depends(get_services)
) -> dict[str, Any]:
    deleted = await _run(services.store.delete_document, document_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return {"status": "ok", "deleted_id": document_id}


# -- chat ------------------------------------------------------------------------


@app.post("/chat")
async def chat(payload: ChatPayload, services: Services = Depends(get_services)) -> dict[str, Any]:
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message must not be empty")
    response = await _run(services.chat.process_message, payload.message, payload.session_id)
    return response.to_dict()


@app.get("/chat/sessions")
async def list_sessions(
    limit: int = 50, services: Services = Depends(get_services)
) -> dict[str, List[dict[str, Any]]]:
    sessions = await _run(services.chat.list_sessions, max(1, min(limit, 200)))
    return {"sessions": sessions}


@app.get("/chat/sessions/{session_id}/history")
async def session_history(
    session_id: str, limit: Optional[int] = None, services: Services = Depends(get_services)
) -> dict[str, Any]:
    turns = await _run(services.chat.get_history, session_id, limit)
    return {"session_id": session_id, "messages": turns}


@app.delete("/chat/sessions/{session_id}")
async def clear_session(session_id: str, services: Services = Depends(get_services)) -> dict[str, Any]:
    removed = await _run(services.chat.clear_session, session_id)
    return {"status": "ok", "removed": removed}


# -- administration --------------------------------------------------------------


@app.post("/admin/index")
async def build_index(services: Services = Depends(get_services)) -> dict[str, Any]:
    vectors = await _run(services.retriever.build_index)
    return {"status": "ok", "indexed_vectors": vectors}


@app.get("/admin/stats")
async def admin_stats(services: Services = Depends(get_services)) -> dict[str, Any]:
    index_stats = await _run(services.retriever.index_stats)
    session_totals = await _run(services.sessions.totals)
    return {"index": index_stats, "sessions": session_totals}


@app.post("/admin/cache/clear")
async def clear_cache(services: Services = Depends(get_services)) -> dict[str, str]:
    await _run(services.retriever.clear_cache)
    return {"status": "ok"}
