"""Domain models for stored embeddings, search scopes, and search hits."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


class SourceType(str, Enum):
    """What an embedding record was derived from."""

    MESSAGE = "message"
    FILE_CHUNK = "file_chunk"


class EmbeddingRecord(BaseModel):
    """One vector-indexed chunk owned by one user.

    Attributes
    ----------
    id:
        Record identifier; generated when omitted.
    user_id:
        Owner. Every search is filtered on it.
    conversation_id:
        Required for ``message`` records; optional for ``file_chunk``.
    source_type:
        ``message`` or ``file_chunk``.
    source_id:
        Message id or file id, depending on ``source_type``.
    chunk_index:
        Position of the chunk inside its source.
    content:
        The chunk text returned by searches.
    embedding:
        Vector of the store's configured dimensionality.
    """

    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    conversation_id: str | None = None
    source_type: SourceType
    source_id: str
    chunk_index: int = Field(ge=0)
    content: str
    embedding: list[float]

    @model_validator(mode="after")
    def _message_needs_conversation(self) -> EmbeddingRecord:
        if self.source_type is SourceType.MESSAGE and not self.conversation_id:
            raise ValueError("message embeddings require a conversation_id")
        return self


class SearchScope(BaseModel):
    """Which part of a user's corpus a search may return.

    * conversation only → that conversation's message chunks
    * file ids only → chunks of those files
    * both → the union of the two, ranked together
    * neither → the user's entire corpus

    An empty ``file_ids`` list counts as absent.
    """

    conversation_id: str | None = None
    file_ids: list[str] = Field(default_factory=list)

    @property
    def is_unscoped(self) -> bool:
        return not self.conversation_id and not self.file_ids

    @classmethod
    def conversation(cls, conversation_id: str) -> SearchScope:
        return cls(conversation_id=conversation_id)

    @classmethod
    def files(cls, file_ids: list[str]) -> SearchScope:
        return cls(file_ids=list(file_ids))


class SearchHit(BaseModel):
    """A stored chunk returned by a similarity search (lower distance = closer)."""

    id: str
    conversation_id: str | None = None
    source_type: SourceType
    source_id: str
    chunk_index: int
    content: str
    distance: float

    def short_ref(self) -> str:
        """Compact ``[source_type:source_id§chunk]`` reference string."""
        return f"[{self.source_type.value}:{self.source_id}§{self.chunk_index}]"
