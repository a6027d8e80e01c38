"""
Retrieval — embedding storage and scoped nearest-neighbour search.

Public surface
--------------
- :class:`ScopedRetriever` — main entry point for natural-language search.
- :class:`EmbeddingStoreBase` — abstract backend.
- :class:`ChromaEmbeddingStore` — default Chroma backend.
- :class:`EmbeddingRecord`, :class:`SearchScope`, :class:`SearchHit`,
  :class:`SourceType` — data models.
- :func:`build_context` — chat-context text from search hits.
"""

from hearth_rag.retrieval.base import EmbeddingStoreBase
from hearth_rag.retrieval.models import EmbeddingRecord, SearchHit, SearchScope, SourceType
from hearth_rag.retrieval.retriever import ScopedRetriever, build_context, describe_attached_files

__all__ = [
    "ChromaEmbeddingStore",
    "EmbeddingRecord",
    "EmbeddingStoreBase",
    "ScopedRetriever",
    "SearchHit",
    "SearchScope",
    "SourceType",
    "build_context",
    "describe_attached_files",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaEmbeddingStore to avoid pulling in chromadb at import time."""
    if name == "ChromaEmbeddingStore":
        from hearth_rag.retrieval.chroma_store import ChromaEmbeddingStore

        return ChromaEmbeddingStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
