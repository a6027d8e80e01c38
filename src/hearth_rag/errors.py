"""Error taxonomy for the ingestion and retrieval pipeline.

Every error raised on purpose by :mod:`hearth_rag` derives from
:class:`HearthRagError`, so the serving layer can map the whole family to
HTTP responses in one place.
"""

from __future__ import annotations


class HearthRagError(Exception):
    """Base class for all pipeline errors."""


class NoExtractorFound(HearthRagError):
    """No registered extractor accepts the file's MIME type / extension."""

    def __init__(self, mime: str, ext: str) -> None:
        super().__init__(f'No extractor found for mime="{mime}" ext="{ext}"')
        self.mime = mime
        self.ext = ext


class ExtractionFailed(HearthRagError):
    """A delegated parser could not decode the file."""

    def __init__(self, filename: str, cause: BaseException) -> None:
        super().__init__(f"Failed to extract text from {filename!r}: {cause}")
        self.filename = filename
        self.cause = cause


class EmbeddingGenerationFailed(HearthRagError):
    """The external embedding generator errored, timed out, or returned garbage."""


class InvalidQueryVector(HearthRagError):
    """The query vector is malformed or has the wrong dimensionality."""


class StoreWriteFailed(HearthRagError):
    """A batch write was refused; nothing from the batch was stored."""


class RetrievalError(HearthRagError):
    """Generic, caller-safe search failure."""

    def __init__(self, message: str = "Retrieval failed") -> None:
        super().__init__(message)


class BlobStoreError(HearthRagError):
    """Read, write, or delete against the blob backend failed."""


class FileRejected(HearthRagError):
    """An upload failed validation (type or size)."""


class FileNotFound(HearthRagError):
    """No file record with that id for that user."""

    def __init__(self, file_id: str) -> None:
        super().__init__(f"File not found: {file_id}")
        self.file_id = file_id


class InvalidStatusTransition(HearthRagError):
    """Attempt to move a file's extraction status backwards or out of a terminal state."""

    def __init__(self, file_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"File {file_id}: cannot move extraction status from {current!r} to {requested!r}"
        )
        self.file_id = file_id
        self.current = current
        self.requested = requested
