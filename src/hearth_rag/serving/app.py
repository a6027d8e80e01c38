"""FastAPI application exposing ingestion and retrieval over HTTP."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hearth_rag import __version__
from hearth_rag.errors import (
    EmbeddingGenerationFailed,
    FileNotFound,
    FileRejected,
    NoExtractorFound,
    RetrievalError,
    StoreWriteFailed,
)
from hearth_rag.ingestion.files import FileRecord
from hearth_rag.pipeline import Pipeline, build_pipeline
from hearth_rag.retrieval.models import SearchHit, SearchScope

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Hearth RAG API",
    version=__version__,
    description="File ingestion and scoped semantic search for the family chat assistant.",
)


@lru_cache(maxsize=1)
def get_pipeline() -> Pipeline:
    """Process-wide pipeline; override in tests via ``app.dependency_overrides``."""
    return build_pipeline()


PipelineDep = Annotated[Pipeline, Depends(get_pipeline)]
UserId = Annotated[str, Header(alias="X-User-Id", min_length=1)]


# ── Request / Response schemas ────────────────────────────────────────
class UploadResponse(BaseModel):
    file: FileRecord
    deduplicated: bool = False


class MessageEmbeddingRequest(BaseModel):
    content: str


class MessageEmbeddingResponse(BaseModel):
    stored: int


class SearchRequest(BaseModel):
    query: str
    conversation_id: str | None = None
    file_ids: list[str] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=1, le=100)


class SearchResponse(BaseModel):
    results: list[SearchHit]


# ── Error mapping ─────────────────────────────────────────────────────
def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse({"error": {"code": code, "message": message}}, status_code=status)


@app.exception_handler(FileRejected)
@app.exception_handler(NoExtractorFound)
async def _validation_error(request: Request, exc: Exception) -> JSONResponse:
    return _error(400, "VALIDATION_ERROR", str(exc))


@app.exception_handler(FileNotFound)
async def _not_found(request: Request, exc: FileNotFound) -> JSONResponse:
    return _error(404, "NOT_FOUND", "File not found")


@app.exception_handler(RetrievalError)
async def _retrieval_error(request: Request, exc: RetrievalError) -> JSONResponse:
    return _error(502, "RETRIEVAL_ERROR", "Search is temporarily unavailable")


@app.exception_handler(EmbeddingGenerationFailed)
@app.exception_handler(StoreWriteFailed)
async def _indexing_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Indexing failed: %s", exc)
    return _error(503, "INDEXING_UNAVAILABLE", "Indexing is temporarily unavailable")


# ── Background work ───────────────────────────────────────────────────
async def _ingest_in_background(pipeline: Pipeline, user_id: str, file_id: str) -> None:
    try:
        status = await pipeline.orchestrator.ingest_stored_file(user_id, file_id)
    except Exception:
        logger.exception("Background ingestion of file %s crashed", file_id)
        return
    logger.info("File %s settled as %s", file_id, status.value)


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/files", response_model=UploadResponse, status_code=201)
async def upload_file(
    request: Request,
    background_tasks: BackgroundTasks,
    pipeline: PipelineDep,
    user_id: UserId,
    filename: Annotated[str, Header(alias="X-Filename", min_length=1)],
) -> UploadResponse:
    """Store the raw request body as a file and index it in the background."""
    data = await request.body()
    mime = request.headers.get("content-type", "application/octet-stream").split(";")[0].strip()

    record, deduplicated = pipeline.orchestrator.register_upload(user_id, filename, mime, data)
    if not deduplicated:
        background_tasks.add_task(_ingest_in_background, pipeline, user_id, record.id)
    return UploadResponse(file=record, deduplicated=deduplicated)


@app.get("/files", response_model=list[FileRecord])
async def list_files(pipeline: PipelineDep, user_id: UserId) -> list[FileRecord]:
    return pipeline.files.list_by_user(user_id)


@app.get("/files/{file_id}", response_model=FileRecord)
async def get_file(file_id: str, pipeline: PipelineDep, user_id: UserId) -> FileRecord:
    """Poll a file's extraction status."""
    record = pipeline.files.get(user_id, file_id)
    if record is None:
        raise FileNotFound(file_id)
    return record


@app.delete("/files/{file_id}")
def delete_file(file_id: str, pipeline: PipelineDep, user_id: UserId) -> dict[str, bool]:
    pipeline.orchestrator.delete_file(user_id, file_id)
    return {"ok": True}


@app.post(
    "/conversations/{conversation_id}/messages/{message_id}/embeddings",
    response_model=MessageEmbeddingResponse,
    status_code=201,
)
async def embed_message(
    conversation_id: str,
    message_id: str,
    body: MessageEmbeddingRequest,
    pipeline: PipelineDep,
    user_id: UserId,
) -> MessageEmbeddingResponse:
    stored = await pipeline.orchestrator.ingest_message(
        user_id, conversation_id, message_id, body.content
    )
    return MessageEmbeddingResponse(stored=stored)


@app.delete("/conversations/{conversation_id}/embeddings")
def delete_conversation_embeddings(
    conversation_id: str, pipeline: PipelineDep, user_id: UserId
) -> dict[str, bool]:
    pipeline.orchestrator.delete_conversation(user_id, conversation_id)
    return {"ok": True}


@app.post("/search", response_model=SearchResponse)
async def search(body: SearchRequest, pipeline: PipelineDep, user_id: UserId) -> SearchResponse:
    """Nearest chunks for the query, within the requested scope."""
    scope = SearchScope(conversation_id=body.conversation_id, file_ids=body.file_ids)
    hits = await pipeline.retriever.search(user_id, body.query, scope, limit=body.limit)
    return SearchResponse(results=hits)
