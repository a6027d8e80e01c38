"""File entity and its extraction-status lifecycle."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from hearth_rag.errors import FileNotFound, InvalidStatusTransition


class ExtractionStatus(str, Enum):
    """Per-file extraction state. Moves forward only."""

    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExtractionStatus.PENDING

    def can_transition_to(self, new: ExtractionStatus) -> bool:
        return self is ExtractionStatus.PENDING and new.is_terminal


class FileRecord(BaseModel):
    """An uploaded file owned by one user."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    original_filename: str
    mime_type: str
    size_bytes: int = Field(ge=0)
    crc32: str | None = None
    object_key: str | None = None
    extracted_text_key: str | None = None
    extracted_text_preview: str | None = None
    extraction_status: ExtractionStatus = ExtractionStatus.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FileRepository(ABC):
    """Persistence for :class:`FileRecord`, always scoped by ``user_id``."""

    @abstractmethod
    def create(self, record: FileRecord) -> FileRecord: ...

    @abstractmethod
    def get(self, user_id: str, file_id: str) -> FileRecord | None: ...

    @abstractmethod
    def find_by_crc(self, user_id: str, crc32: str) -> FileRecord | None: ...

    @abstractmethod
    def list_by_user(self, user_id: str) -> list[FileRecord]: ...

    @abstractmethod
    def update_status(
        self,
        user_id: str,
        file_id: str,
        status: ExtractionStatus,
        *,
        extracted_text_key: str | None = None,
        extracted_text_preview: str | None = None,
    ) -> FileRecord:
        """Advance a file's status.

        Raises
        ------
        FileNotFound
            Unknown ``file_id`` for ``user_id``.
        InvalidStatusTransition
            The move is not ``pending → done|failed``.
        """
        ...

    @abstractmethod
    def delete(self, user_id: str, file_id: str) -> FileRecord | None: ...


class InMemoryFileRepository(FileRepository):
    """Thread-safe dict-backed repository."""

    def __init__(self) -> None:
        self._records: dict[str, FileRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: FileRecord) -> FileRecord:
        with self._lock:
            self._records[record.id] = record
        return record

    def get(self, user_id: str, file_id: str) -> FileRecord | None:
        record = self._records.get(file_id)
        if record is None or record.user_id != user_id:
            return None
        return record

    def find_by_crc(self, user_id: str, crc32: str) -> FileRecord | None:
        for record in list(self._records.values()):
            if record.user_id == user_id and record.crc32 == crc32:
                return record
        return None

    def list_by_user(self, user_id: str) -> list[FileRecord]:
        return [r for r in list(self._records.values()) if r.user_id == user_id]

    def update_status(
        self,
        user_id: str,
        file_id: str,
        status: ExtractionStatus,
        *,
        extracted_text_key: str | None = None,
        extracted_text_preview: str | None = None,
    ) -> FileRecord:
        with self._lock:
            record = self.get(user_id, file_id)
            if record is None:
                raise FileNotFound(file_id)
            if not record.extraction_status.can_transition_to(status):
                raise InvalidStatusTransition(file_id, record.extraction_status.value, status.value)

            changes: dict[str, object] = {"extraction_status": status}
            if extracted_text_key is not None:
                changes["extracted_text_key"] = extracted_text_key
            if extracted_text_preview is not None:
                changes["extracted_text_preview"] = extracted_text_preview
            updated = record.model_copy(update=changes)
            self._records[file_id] = updated
        return updated

    def delete(self, user_id: str, file_id: str) -> FileRecord | None:
        with self._lock:
            record = self.get(user_id, file_id)
            if record is not None:
                del self._records[file_id]
        return record
