"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import math
import re
import zlib
from collections.abc import Callable
from uuid import uuid4

import chromadb
import pytest
from langchain_core.embeddings import Embeddings

from hearth_rag.extraction import create_default_registry
from hearth_rag.ingestion.blobs import InMemoryBlobStore
from hearth_rag.ingestion.chunker import Chunker
from hearth_rag.ingestion.embedder import EmbeddingGenerator
from hearth_rag.ingestion.files import InMemoryFileRepository
from hearth_rag.ingestion.orchestrator import IngestionOrchestrator
from hearth_rag.retrieval.base import EmbeddingStoreBase
from hearth_rag.retrieval.chroma_store import ChromaEmbeddingStore

DIM = 16


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class KeywordEmbeddings(Embeddings):
    """Deterministic bag-of-words vectors: identical text → identical vector."""

    def __init__(self, dim: int = DIM) -> None:
        self.dim = dim
        self.calls = 0

    def embed_query(self, text: str) -> list[float]:
        self.calls += 1
        vec = [0.0] * self.dim
        for token in re.findall(r"\w+", text.lower()):
            vec[zlib.crc32(token.encode()) % self.dim] += 1.0
        if not any(vec):
            vec[0] = 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        return [v / norm for v in vec]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(t) for t in texts]


class FailingEmbeddings(Embeddings):
    """Every call raises, like an unreachable embedding service."""

    def embed_query(self, text: str) -> list[float]:
        raise ConnectionError("connection refused")

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        raise ConnectionError("connection refused")


@pytest.fixture()
def keyword_embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture()
def failing_embeddings() -> FailingEmbeddings:
    return FailingEmbeddings()


@pytest.fixture()
def make_store() -> Callable[..., EmbeddingStoreBase]:
    """Factory for Chroma stores on a fresh in-memory collection."""
    client = chromadb.EphemeralClient()

    def _make(dimension: int = DIM, distance_metric: str = "cosine", name: str | None = None):
        return ChromaEmbeddingStore(
            name or f"test_{uuid4().hex}",
            dimension=dimension,
            distance_metric=distance_metric,
            client=client,
        )

    return _make


@pytest.fixture()
def store(make_store: Callable[..., EmbeddingStoreBase]) -> EmbeddingStoreBase:
    return make_store()


@pytest.fixture()
def make_orchestrator(store: EmbeddingStoreBase) -> Callable[..., IngestionOrchestrator]:
    """Orchestrator over in-memory collaborators; override any keyword."""

    def _make(embeddings: Embeddings | None = None, **overrides) -> IngestionOrchestrator:
        kwargs = dict(
            registry=create_default_registry(),
            chunker=Chunker(size=200, overlap=30),
            embedder=EmbeddingGenerator(
                embeddings or KeywordEmbeddings(), dimension=DIM, concurrency=2, timeout=5.0
            ),
            store=store,
            files=InMemoryFileRepository(),
            blobs=InMemoryBlobStore(),
            extract_timeout=5.0,
            preview_chars=500,
            allowed_file_types=["txt", "md", "pdf", "docx", "html", "xlsx"],
            max_upload_bytes=1024 * 1024,
        )
        kwargs.update(overrides)
        return IngestionOrchestrator(**kwargs)

    return _make


def build_pdf(pages: list[str]) -> bytes:
    """Minimal Helvetica PDF with one text line per page and a valid xref table."""
    n = len(pages)
    kids = " ".join(f"{4 + 2 * i} 0 R" for i in range(n))
    objs: dict[int, bytes] = {
        1: b"<< /Type /Catalog /Pages 2 0 R >>",
        2: f"<< /Type /Pages /Kids [{kids}] /Count {n} >>".encode(),
        3: b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    }
    for i, line in enumerate(pages):
        stream = f"BT /F1 18 Tf 72 720 Td ({line}) Tj ET".encode()
        objs[4 + 2 * i] = (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
            f"/Resources << /Font << /F1 3 0 R >> >> /Contents {5 + 2 * i} 0 R >>"
        ).encode()
        objs[5 + 2 * i] = b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"

    out = bytearray(b"%PDF-1.4\n")
    offsets: dict[int, int] = {}
    for num in sorted(objs):
        offsets[num] = len(out)
        out += f"{num} 0 obj\n".encode() + objs[num] + b"\nendobj\n"
    xref_at = len(out)
    size = max(objs) + 1
    out += f"xref\n0 {size}\n".encode()
    out += b"0000000000 65535 f \n"
    for num in range(1, size):
        out += f"{offsets[num]:010d} 00000 n \n".encode()
    out += f"trailer\n<< /Size {size} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n".encode()
    return bytes(out)


@pytest.fixture()
def make_pdf() -> Callable[[list[str]], bytes]:
    return build_pdf
