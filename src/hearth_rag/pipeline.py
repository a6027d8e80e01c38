"""Pipeline wiring — builds the collaborators from :class:`Settings`.

This is the only place that reads the settings singleton; every component
below receives its configuration through its constructor, so tests can build
them directly with whatever values they need.

Usage::

    pipeline = build_pipeline()
    status = await pipeline.orchestrator.ingest_file(data, mime, name, user_id)
    hits = await pipeline.retriever.search(user_id, "grocery list")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from hearth_rag.config import Settings, settings
from hearth_rag.extraction import create_default_registry
from hearth_rag.ingestion.blobs import BlobStore, LocalBlobStore
from hearth_rag.ingestion.chunker import Chunker
from hearth_rag.ingestion.embedder import EmbeddingGenerator, get_embedding_function
from hearth_rag.ingestion.files import FileRepository, InMemoryFileRepository
from hearth_rag.ingestion.orchestrator import IngestionOrchestrator
from hearth_rag.retrieval.base import EmbeddingStoreBase
from hearth_rag.retrieval.retriever import ScopedRetriever

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """The wired ingestion and retrieval services sharing one store and embedder."""

    orchestrator: IngestionOrchestrator
    retriever: ScopedRetriever
    store: EmbeddingStoreBase
    files: FileRepository
    blobs: BlobStore


def create_chroma_client(cfg: Settings) -> Any:
    """Embedded persistent client when a path is configured, else the HTTP server."""
    import chromadb

    if cfg.chroma_persist_path:
        return chromadb.PersistentClient(path=cfg.chroma_persist_path)
    return chromadb.HttpClient(host=cfg.chroma_host, port=cfg.chroma_port)


def build_pipeline(
    cfg: Settings = settings,
    *,
    embeddings: Embeddings | None = None,
    store: EmbeddingStoreBase | None = None,
    files: FileRepository | None = None,
    blobs: BlobStore | None = None,
) -> Pipeline:
    """Construct the full pipeline; any collaborator may be injected."""
    if store is None:
        from hearth_rag.retrieval.chroma_store import ChromaEmbeddingStore

        store = ChromaEmbeddingStore(
            cfg.chroma_collection,
            dimension=cfg.embedding_dim,
            distance_metric=cfg.distance_metric,
            client=create_chroma_client(cfg),
        )

    embedder = EmbeddingGenerator(
        embeddings if embeddings is not None else get_embedding_function(cfg.embedding_model),
        dimension=cfg.embedding_dim,
        concurrency=cfg.embed_concurrency,
        timeout=cfg.embed_timeout_seconds,
        max_attempts=cfg.embed_max_attempts,
        retry_backoff=cfg.embed_retry_backoff_seconds,
    )
    files = files if files is not None else InMemoryFileRepository()
    blobs = blobs if blobs is not None else LocalBlobStore(cfg.blob_root)

    orchestrator = IngestionOrchestrator(
        registry=create_default_registry(),
        chunker=Chunker(cfg.chunk_size, cfg.chunk_overlap),
        embedder=embedder,
        store=store,
        files=files,
        blobs=blobs,
        extract_timeout=cfg.extract_timeout_seconds,
        preview_chars=cfg.extracted_preview_chars,
        max_upload_bytes=cfg.max_upload_bytes,
        allowed_file_types=cfg.allowed_file_types,
    )
    retriever = ScopedRetriever(store, embedder, default_limit=cfg.search_limit)

    logger.info(
        "Pipeline ready (dim=%d, metric=%s, chunk=%d/%d, concurrency=%d)",
        cfg.embedding_dim, cfg.distance_metric, cfg.chunk_size, cfg.chunk_overlap,
        cfg.embed_concurrency,
    )
    return Pipeline(
        orchestrator=orchestrator,
        retriever=retriever,
        store=store,
        files=files,
        blobs=blobs,
    )
