"""Scoped retriever — natural-language search with context assembly.

This module is the **primary public interface** for retrieval.  Callers
hand it a user id, a query, and a :class:`SearchScope`; it embeds the query
through the shared :class:`~hearth_rag.ingestion.embedder.EmbeddingGenerator`
and asks the store for the nearest chunks.

Usage::

    retriever = ScopedRetriever(store, embedder)
    hits = await retriever.search(user_id, "when is the recital?",
                                  SearchScope(conversation_id=cid, file_ids=fids))
    system_prompt = build_context(hits)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from hearth_rag.errors import HearthRagError, RetrievalError
from hearth_rag.ingestion.files import ExtractionStatus, FileRecord
from hearth_rag.retrieval.base import EmbeddingStoreBase
from hearth_rag.retrieval.models import SearchHit, SearchScope

if TYPE_CHECKING:
    from hearth_rag.ingestion.embedder import EmbeddingGenerator

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "Additional relevant context from files and messages:"
CONTEXT_SEPARATOR = "\n\n---\n\n"
ATTACHED_FILES_HEADER = "The user has attached the following files to this conversation:"


class ScopedRetriever:
    """High-level retriever over an :class:`EmbeddingStoreBase`.

    Parameters
    ----------
    store:
        A concrete embedding-store backend.
    embedder:
        Generator used to embed query text.
    default_limit:
        Number of hits returned when the caller does not say.
    """

    def __init__(
        self,
        store: EmbeddingStoreBase,
        embedder: EmbeddingGenerator,
        *,
        default_limit: int = 8,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.default_limit = default_limit

    # -- public API -----------------------------------------------------------

    async def search(
        self,
        user_id: str,
        query: str,
        scope: SearchScope | None = None,
        *,
        limit: int | None = None,
    ) -> list[SearchHit]:
        """Embed *query* and return the nearest chunks within *scope*.

        Raises
        ------
        RetrievalError
            On any embedding or store failure. The message is deliberately
            generic; the underlying error is logged and chained.
        """
        if not query or not query.strip():
            return []

        try:
            vector = await self._embedder.embed_one(query.strip())
            return await asyncio.to_thread(
                self._store.search, user_id, vector, scope, limit=limit or self.default_limit
            )
        except HearthRagError as exc:
            logger.error("Search failed for user %s: %s", user_id, exc)
            raise RetrievalError() from exc
        except Exception as exc:
            logger.exception("Search backend error for user %s", user_id)
            raise RetrievalError() from exc

    def search_by_embedding(
        self,
        user_id: str,
        embedding: Sequence[float],
        scope: SearchScope | None = None,
        *,
        limit: int | None = None,
    ) -> list[SearchHit]:
        """Same as :meth:`search` but with a pre-computed query vector.

        Store errors (including ``InvalidQueryVector``) propagate unchanged.
        """
        return self._store.search(user_id, embedding, scope, limit=limit or self.default_limit)


# ---------------------------------------------------------------------------
# Context assembly for the chat model
# ---------------------------------------------------------------------------


def build_context(hits: Iterable[SearchHit]) -> str:
    """System-prompt text carrying the retrieved chunks, or ``""`` when none."""
    contents = [h.content for h in hits if h.content]
    if not contents:
        return ""
    return f"{CONTEXT_HEADER}\n\n{CONTEXT_SEPARATOR.join(contents)}"


def describe_attached_files(files: Iterable[FileRecord], preview_chars: int = 4000) -> str:
    """Summarise a conversation's attachments according to their extraction status.

    Works before embeddings are ready: pending and failed files are
    described instead of quoted.
    """
    parts: list[str] = []
    for f in files:
        if f.extraction_status is ExtractionStatus.DONE and f.extracted_text_preview:
            parts.append(f"--- {f.original_filename} ---\n{f.extracted_text_preview[:preview_chars]}")
        elif f.extraction_status is ExtractionStatus.PENDING:
            parts.append(
                f"--- {f.original_filename} ---\n"
                "[File is still being processed; text content is not yet available]"
            )
        elif f.extraction_status is ExtractionStatus.FAILED:
            parts.append(f"--- {f.original_filename} ---\n[Text extraction failed for this file]")
        else:
            parts.append(
                f"--- {f.original_filename} ({f.mime_type}) ---\n"
                "[This file is attached but its content could not be extracted as text]"
            )
    if not parts:
        return ""
    return f"{ATTACHED_FILES_HEADER}\n\n" + "\n\n".join(parts)
