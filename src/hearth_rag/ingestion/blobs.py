"""Blob storage for raw uploads and extracted-text bodies."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from hearth_rag.errors import BlobStoreError

logger = logging.getLogger(__name__)


def original_key(user_id: str, object_id: str) -> str:
    return f"user/{user_id}/file/{object_id}/original"


def extracted_text_key(object_key: str) -> str:
    """Sibling key holding the extracted text of *object_key*."""
    return str(PurePosixPath(object_key).with_name("extracted.txt"))


class BlobStore(ABC):
    """Read/write-by-key byte storage."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the bytes at *key*; :class:`BlobStoreError` when missing."""
        ...

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key*. Missing keys are ignored."""
        ...


class InMemoryBlobStore(BlobStore):
    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, str]] = {}

    def get(self, key: str) -> bytes:
        try:
            return self._objects[key][0]
        except KeyError:
            raise BlobStoreError(f"No such object: {key}") from None

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self._objects[key] = (bytes(data), content_type)

    def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    def content_type(self, key: str) -> str | None:
        entry = self._objects.get(key)
        return entry[1] if entry else None

    def __contains__(self, key: object) -> bool:
        return key in self._objects


class LocalBlobStore(BlobStore):
    """Stores each object as a file under *root*, using the key as a relative path.

    Content types are not persisted.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise BlobStoreError(f"Key escapes blob root: {key!r}")
        return path

    def get(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as exc:
            raise BlobStoreError(f"Cannot read {key}: {exc}") from exc

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise BlobStoreError(f"Cannot write {key}: {exc}") from exc
        logger.debug("Stored %d bytes at %s (%s)", len(data), key, content_type)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise BlobStoreError(f"Cannot delete {key}: {exc}") from exc
