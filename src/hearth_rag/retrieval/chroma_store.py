"""Chroma implementation of the embedding-store abstraction."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import chromadb

from hearth_rag.errors import InvalidQueryVector, StoreWriteFailed
from hearth_rag.retrieval.base import EmbeddingStoreBase
from hearth_rag.retrieval.models import EmbeddingRecord, SearchHit, SearchScope, SourceType

logger = logging.getLogger(__name__)

SUPPORTED_METRICS = ("cosine", "ip")
_SPACE_KEY = "hnsw:space"


def _all_of(clauses: list[dict[str, Any]]) -> dict[str, Any]:
    """Chroma rejects ``$and`` with fewer than two operands."""
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _conversation_clause(conversation_id: str) -> dict[str, Any]:
    return _all_of(
        [
            {"source_type": {"$eq": SourceType.MESSAGE.value}},
            {"conversation_id": {"$eq": conversation_id}},
        ]
    )


def _file_set_clause(file_ids: Sequence[str]) -> dict[str, Any]:
    return _all_of(
        [
            {"source_type": {"$eq": SourceType.FILE_CHUNK.value}},
            {"source_id": {"$in": list(file_ids)}},
        ]
    )


def _build_scope_where(user_id: str, scope: SearchScope | None) -> dict[str, Any]:
    """Translate a :class:`SearchScope` into Chroma ``where`` syntax.

    The ``user_id`` clause is always present.
    """
    clauses: list[dict[str, Any]] = [{"user_id": {"$eq": user_id}}]
    if scope is None or scope.is_unscoped:
        return _all_of(clauses)

    if scope.conversation_id and scope.file_ids:
        clauses.append(
            {
                "$or": [
                    _conversation_clause(scope.conversation_id),
                    _file_set_clause(scope.file_ids),
                ]
            }
        )
    elif scope.conversation_id:
        clauses.append(_conversation_clause(scope.conversation_id))
    else:
        clauses.append(_file_set_clause(scope.file_ids))
    return _all_of(clauses)


def _record_metadata(record: EmbeddingRecord) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool; absent means absent.
    meta: dict[str, Any] = {
        "user_id": record.user_id,
        "source_type": record.source_type.value,
        "source_id": record.source_id,
        "chunk_index": record.chunk_index,
    }
    if record.conversation_id:
        meta["conversation_id"] = record.conversation_id
    return meta


class ChromaEmbeddingStore(EmbeddingStoreBase):
    """Chroma-backed embedding store.

    All records live in one collection whose distance function is fixed when
    the collection is created; opening an existing collection with a
    different metric is refused.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    dimension:
        Vector length enforced on writes and queries.
    distance_metric:
        ``"cosine"`` or ``"ip"`` (inner product).
    client:
        A ready Chroma client. When *None*, an ``HttpClient`` is created from
        *host* / *port*.
    host / port:
        Chroma server location, used only when *client* is not given.
    """

    def __init__(
        self,
        collection_name: str,
        *,
        dimension: int,
        distance_metric: str = "cosine",
        client: Any = None,
        host: str = "localhost",
        port: int = 8000,
    ) -> None:
        super().__init__(dimension)
        if distance_metric not in SUPPORTED_METRICS:
            raise ValueError(
                f"Unsupported distance metric {distance_metric!r}; choose one of {SUPPORTED_METRICS}"
            )
        self.collection_name = collection_name
        self.distance_metric = distance_metric
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        try:
            self._collection = self._client.get_collection(name=collection_name)
        except Exception:
            # Collection doesn't exist yet; the metric is fixed from here on.
            self._collection = self._client.create_collection(
                name=collection_name,
                metadata={_SPACE_KEY: distance_metric},
            )
            logger.info("Created collection %r (metric=%s)", collection_name, distance_metric)
        existing = (self._collection.metadata or {}).get(_SPACE_KEY, "l2")
        if existing != distance_metric:
            raise ValueError(
                f"Collection {collection_name!r} was built with metric {existing!r}, "
                f"not {distance_metric!r}"
            )

    # -- writes ---------------------------------------------------------------

    def store_many(self, records: Sequence[EmbeddingRecord]) -> None:
        if not records:
            return
        self.validate_records(records)

        ids = [r.id for r in records]
        try:
            taken = self._collection.get(ids=ids, include=[]).get("ids") or []
        except Exception as exc:
            raise StoreWriteFailed(f"Could not check ids before write: {exc}") from exc
        if taken:
            # Chroma's add() skips existing ids without raising.
            raise StoreWriteFailed(
                f"Batch of {len(records)} embeddings reuses existing ids: {sorted(taken)[:5]}"
            )

        try:
            self._collection.add(
                ids=ids,
                embeddings=[list(r.embedding) for r in records],
                documents=[r.content for r in records],
                metadatas=[_record_metadata(r) for r in records],
            )
        except Exception as exc:
            raise StoreWriteFailed(f"Batch of {len(records)} embeddings was refused: {exc}") from exc
        logger.info("Stored %d embeddings in %r", len(records), self.collection_name)

    def delete_by_source(
        self, source_type: SourceType, source_id: str, *, user_id: str | None = None
    ) -> None:
        clauses: list[dict[str, Any]] = [
            {"source_type": {"$eq": SourceType(source_type).value}},
            {"source_id": {"$eq": source_id}},
        ]
        if user_id is not None:
            clauses.append({"user_id": {"$eq": user_id}})
        self._collection.delete(where=_all_of(clauses))
        logger.info("Deleted %s embeddings for source %s", SourceType(source_type).value, source_id)

    def delete_by_conversation(self, user_id: str, conversation_id: str) -> None:
        self._collection.delete(
            where=_all_of(
                [
                    {"user_id": {"$eq": user_id}},
                    {"conversation_id": {"$eq": conversation_id}},
                    {"source_type": {"$eq": SourceType.MESSAGE.value}},
                ]
            )
        )
        logger.info("Deleted message embeddings for conversation %s", conversation_id)

    # -- reads ----------------------------------------------------------------

    def search(
        self,
        user_id: str,
        query_vector: Sequence[float],
        scope: SearchScope | None = None,
        *,
        limit: int = 8,
    ) -> list[SearchHit]:
        vector = self.validate_query_vector(query_vector)
        if self.distance_metric == "cosine" and not any(vector):
            raise InvalidQueryVector("query vector has zero norm; cosine distance is undefined")
        if limit < 1:
            return []

        results = self._collection.query(
            query_embeddings=[vector],
            n_results=limit,
            where=_build_scope_where(user_id, scope),
            include=["documents", "metadatas", "distances"],
        )

        ids = (results.get("ids") or [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        hits: list[SearchHit] = []
        for record_id, content, meta, dist in zip(ids, docs, metas, distances):
            meta = meta or {}
            if meta.get("user_id") != user_id:
                # Never hand another tenant's data back, whatever the backend did.
                logger.error("Dropping hit %s owned by another user", record_id)
                continue
            hits.append(
                SearchHit(
                    id=record_id,
                    conversation_id=meta.get("conversation_id"),
                    source_type=SourceType(meta["source_type"]),
                    source_id=meta["source_id"],
                    chunk_index=int(meta["chunk_index"]),
                    content=content or "",
                    distance=float(dist),
                )
            )
        hits.sort(key=lambda h: h.distance)
        return hits

    def count(
        self,
        user_id: str,
        *,
        source_type: SourceType | None = None,
        source_id: str | None = None,
    ) -> int:
        clauses: list[dict[str, Any]] = [{"user_id": {"$eq": user_id}}]
        if source_type is not None:
            clauses.append({"source_type": {"$eq": SourceType(source_type).value}})
        if source_id is not None:
            clauses.append({"source_id": {"$eq": source_id}})
        found = self._collection.get(where=_all_of(clauses), include=[])
        return len(found.get("ids") or [])

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
