"""Abstract base class for embedding-store backends.

A backend must provide bulk writes, the two deletion paths the external
conversation / message / file flows rely on, and scoped similarity search.
Tenant isolation by ``user_id`` is part of the contract, not an option.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence

from hearth_rag.errors import InvalidQueryVector, StoreWriteFailed
from hearth_rag.retrieval.models import EmbeddingRecord, SearchHit, SearchScope, SourceType


class EmbeddingStoreBase(ABC):
    """Backend-agnostic embedding-store interface.

    Parameters
    ----------
    dimension:
        Vector length every record and query must have.
    """

    def __init__(self, dimension: int) -> None:
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        self.dimension = dimension

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def store_many(self, records: Sequence[EmbeddingRecord]) -> None:
        """Insert *records* in one all-or-nothing batch.

        Raises
        ------
        StoreWriteFailed
            Nothing from the batch was written.
        """
        ...

    @abstractmethod
    def delete_by_source(
        self, source_type: SourceType, source_id: str, *, user_id: str | None = None
    ) -> None:
        """Remove every record derived from one message or file."""
        ...

    @abstractmethod
    def delete_by_conversation(self, user_id: str, conversation_id: str) -> None:
        """Remove the message records of one conversation."""
        ...

    @abstractmethod
    def search(
        self,
        user_id: str,
        query_vector: Sequence[float],
        scope: SearchScope | None = None,
        *,
        limit: int = 8,
    ) -> list[SearchHit]:
        """Return up to *limit* of *user_id*'s records nearest *query_vector*.

        Results are ordered by ascending distance. A scope that matches
        nothing yields ``[]``.

        Raises
        ------
        InvalidQueryVector
            Malformed or wrong-dimension query vector.
        """
        ...

    @abstractmethod
    def count(
        self,
        user_id: str,
        *,
        source_type: SourceType | None = None,
        source_id: str | None = None,
    ) -> int:
        """Number of stored records for *user_id*, optionally narrowed."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- shared validation ----------------------------------------------------

    def validate_query_vector(self, query_vector: Sequence[float]) -> list[float]:
        try:
            vector = [float(v) for v in query_vector]
        except (TypeError, ValueError) as exc:
            raise InvalidQueryVector("query vector must be a sequence of numbers") from exc
        if len(vector) != self.dimension:
            raise InvalidQueryVector(
                f"query vector has {len(vector)} dimensions, expected {self.dimension}"
            )
        if not all(math.isfinite(v) for v in vector):
            raise InvalidQueryVector("query vector contains non-finite values")
        return vector

    def validate_records(self, records: Sequence[EmbeddingRecord]) -> None:
        """Reject the whole batch if any record has the wrong shape."""
        for i, record in enumerate(records):
            if len(record.embedding) != self.dimension:
                raise StoreWriteFailed(
                    f"record {i} ({record.id}) has {len(record.embedding)} dimensions, "
                    f"expected {self.dimension}"
                )
            if not all(math.isfinite(v) for v in record.embedding):
                raise StoreWriteFailed(f"record {i} ({record.id}) has non-finite values")
