"""Ingestion orchestrator — extraction → chunking → embedding → storage.

One call to :meth:`IngestionOrchestrator.ingest_file` drives one file through
the pipeline and settles its extraction status:

* ``pending → done`` once every chunk is stored (zero chunks included);
* ``pending → failed`` when no extractor matches, the parser fails, the
  extraction or embedding call times out, or the embedding generator fails;
* ``pending`` is kept when the store refuses the batch, or when the caller
  abandons the ingestion, so the file can be retried.

Files are independent: :meth:`IngestionOrchestrator.ingest_many` runs them
concurrently and one failure never affects another file's status. Attempts on
the same file id are serialised, so a retry never overlaps a run still in
progress. Store, blob and chunker calls run in worker threads.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import zlib
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import NamedTuple
from uuid import uuid4

from hearth_rag.errors import (
    BlobStoreError,
    EmbeddingGenerationFailed,
    ExtractionFailed,
    FileNotFound,
    FileRejected,
    InvalidStatusTransition,
    StoreWriteFailed,
)
from hearth_rag.extraction import ExtractorRegistry
from hearth_rag.extraction.registry import file_extension
from hearth_rag.ingestion.blobs import BlobStore, extracted_text_key, original_key
from hearth_rag.ingestion.chunker import Chunk, Chunker
from hearth_rag.ingestion.embedder import EmbeddingGenerator
from hearth_rag.ingestion.files import ExtractionStatus, FileRecord, FileRepository
from hearth_rag.retrieval.base import EmbeddingStoreBase
from hearth_rag.retrieval.models import EmbeddingRecord, SourceType

logger = logging.getLogger(__name__)


class Upload(NamedTuple):
    """Raw file handed to :meth:`IngestionOrchestrator.ingest_many`."""

    data: bytes
    mime: str
    filename: str
    user_id: str


@dataclass
class _Claim:
    lock: asyncio.Lock
    holders: int = 0


class IngestionOrchestrator:
    """Coordinates the ingestion collaborators for files and messages.

    Parameters
    ----------
    registry:
        Extractor registry used for files.
    chunker:
        Splits extracted text and message text.
    embedder:
        Bounded-concurrency embedding generator.
    store:
        Destination embedding store.
    files:
        File-record repository holding extraction status.
    blobs:
        Blob storage for raw uploads and extracted text.
    extract_timeout:
        Seconds allowed for one extraction.
    preview_chars:
        Length of the extracted-text preview kept on the file record.
    max_upload_bytes / allowed_file_types:
        Upload validation used by :meth:`register_upload`.
    """

    def __init__(
        self,
        *,
        registry: ExtractorRegistry,
        chunker: Chunker,
        embedder: EmbeddingGenerator,
        store: EmbeddingStoreBase,
        files: FileRepository,
        blobs: BlobStore,
        extract_timeout: float = 120.0,
        preview_chars: int = 200_000,
        max_upload_bytes: int = 25 * 1024 * 1024,
        allowed_file_types: Sequence[str] | None = None,
    ) -> None:
        self.registry = registry
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.files = files
        self.blobs = blobs
        self.extract_timeout = extract_timeout
        self.preview_chars = preview_chars
        self.max_upload_bytes = max_upload_bytes
        self.allowed_file_types = (
            frozenset(t.lower() for t in allowed_file_types) if allowed_file_types else None
        )
        self._claims: dict[str, _Claim] = {}

    # -- uploads --------------------------------------------------------------

    def register_upload(
        self, user_id: str, filename: str, mime: str, data: bytes
    ) -> tuple[FileRecord, bool]:
        """Validate, deduplicate, and store a raw upload.

        Returns
        -------
        tuple[FileRecord, bool]
            The file record and whether it already existed (same CRC32 for
            this user). New records start ``pending``.

        Raises
        ------
        FileRejected
            Disallowed extension or oversized payload.
        """
        if len(data) > self.max_upload_bytes:
            raise FileRejected(
                f"File too large: {len(data)} bytes (limit {self.max_upload_bytes})"
            )
        ext = file_extension(filename)
        if self.allowed_file_types is not None and ext not in self.allowed_file_types:
            raise FileRejected(
                f'File type ".{ext}" is not supported. '
                f"Supported types: {', '.join(sorted(self.allowed_file_types))}"
            )

        crc = f"{zlib.crc32(data):08x}"
        existing = self.files.find_by_crc(user_id, crc)
        if existing is not None:
            logger.info("Upload %s deduplicated to file %s", filename, existing.id)
            return existing, True

        key = original_key(user_id, str(uuid4()))
        self.blobs.put(key, data, mime)
        record = self.files.create(
            FileRecord(
                user_id=user_id,
                original_filename=filename,
                mime_type=mime,
                size_bytes=len(data),
                crc32=crc,
                object_key=key,
            )
        )
        logger.info("Registered file %s (%s, %d bytes)", record.id, filename, len(data))
        return record, False

    async def ingest_stored_file(self, user_id: str, file_id: str) -> ExtractionStatus:
        """Ingest a registered file, reading its bytes from blob storage.

        Concurrent calls for the same file run one after the other.
        """
        async with self._claim(file_id):
            record = self._require_pending(user_id, file_id)
            if record.object_key is None:
                raise FileNotFound(file_id)
            try:
                data = await asyncio.to_thread(self.blobs.get, record.object_key)
            except BlobStoreError:
                logger.exception("Raw bytes for file %s are unavailable", file_id)
                return self._settle(record, ExtractionStatus.FAILED)
            await self._clear_previous_attempt(record)
            return await self._ingest_pending(
                record, data, record.mime_type, record.original_filename
            )

    # -- files ----------------------------------------------------------------

    async def ingest_file(
        self,
        file_bytes: bytes,
        mime: str,
        filename: str,
        user_id: str,
        *,
        file_id: str | None = None,
    ) -> ExtractionStatus:
        """Run one file through extraction, chunking, embedding and storage.

        When *file_id* is omitted a new pending :class:`FileRecord` is
        created. The returned status is the one persisted on the record.
        Concurrent calls for the same *file_id* run one after the other.

        Raises
        ------
        InvalidStatusTransition
            The file already reached ``done`` or ``failed``.
        """
        if file_id is None:
            record = self.files.create(
                FileRecord(
                    user_id=user_id,
                    original_filename=filename,
                    mime_type=mime,
                    size_bytes=len(file_bytes),
                )
            )
            return await self._ingest_pending(record, file_bytes, mime, filename)

        async with self._claim(file_id):
            record = self._require_pending(user_id, file_id)
            await self._clear_previous_attempt(record)
            return await self._ingest_pending(record, file_bytes, mime, filename)

    async def _clear_previous_attempt(self, record: FileRecord) -> None:
        # A previous attempt may have been abandoned after its batch write.
        await asyncio.to_thread(
            self.store.delete_by_source, SourceType.FILE_CHUNK, record.id, user_id=record.user_id
        )

    async def _ingest_pending(
        self, record: FileRecord, file_bytes: bytes, mime: str, filename: str
    ) -> ExtractionStatus:
        if not self.registry.can_extract(mime, filename):
            logger.warning("No extractor for %s (mime=%s); marking failed", filename, mime)
            return self._settle(record, ExtractionStatus.FAILED)

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self.registry.extract, file_bytes, mime, filename),
                timeout=self.extract_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Extraction of %s timed out after %.0fs", filename, self.extract_timeout)
            return self._settle(record, ExtractionStatus.FAILED)
        except ExtractionFailed as exc:
            logger.error("Extraction failed for file %s: %s", record.id, exc)
            return self._settle(record, ExtractionStatus.FAILED)

        text_key = None
        if record.object_key is not None:
            text_key = extracted_text_key(record.object_key)
            try:
                await asyncio.to_thread(
                    self.blobs.put, text_key, result.text.encode("utf-8"), "text/plain"
                )
            except BlobStoreError:
                logger.exception("Could not persist extracted text for file %s", record.id)
                return self._settle(record, ExtractionStatus.FAILED)

        try:
            chunks = await asyncio.to_thread(self.chunker.chunk, result.text)
        except Exception:
            logger.exception("Chunking failed for file %s", record.id)
            return self._settle(record, ExtractionStatus.FAILED)

        try:
            records = await self._embed_chunks(
                chunks,
                user_id=record.user_id,
                source_type=SourceType.FILE_CHUNK,
                source_id=record.id,
            )
        except EmbeddingGenerationFailed as exc:
            logger.error("Embedding failed for file %s: %s", record.id, exc)
            return self._settle(record, ExtractionStatus.FAILED)

        try:
            await asyncio.to_thread(self.store.store_many, records)
        except StoreWriteFailed as exc:
            logger.error("Store refused chunks of file %s; left pending: %s", record.id, exc)
            return ExtractionStatus.PENDING

        logger.info("Ingested file %s (%s): %d chunks", record.id, filename, len(records))
        return self._settle(
            record,
            ExtractionStatus.DONE,
            extracted_text_key=text_key,
            extracted_text_preview=result.text[: self.preview_chars],
        )

    async def ingest_many(self, uploads: Sequence[Upload]) -> list[ExtractionStatus]:
        """Ingest independent files concurrently; statuses in input order."""
        return list(
            await asyncio.gather(
                *(self.ingest_file(u.data, u.mime, u.filename, u.user_id) for u in uploads)
            )
        )

    def delete_file(self, user_id: str, file_id: str) -> FileRecord:
        """Remove a file's embeddings, its record, and (best effort) its blobs."""
        record = self._require_file(user_id, file_id)
        self.store.delete_by_source(SourceType.FILE_CHUNK, file_id, user_id=user_id)
        self.files.delete(user_id, file_id)

        for key in (record.object_key, record.extracted_text_key):
            if not key:
                continue
            try:
                self.blobs.delete(key)
            except BlobStoreError:
                logger.warning("Blob cleanup failed for file %s (%s)", file_id, key, exc_info=True)
        return record

    # -- messages -------------------------------------------------------------

    async def ingest_message(
        self, user_id: str, conversation_id: str, message_id: str, text: str
    ) -> int:
        """Chunk, embed and store a chat message. Returns the records written.

        Errors (``EmbeddingGenerationFailed``, ``StoreWriteFailed``) propagate.
        """
        chunks = await asyncio.to_thread(self.chunker.chunk, text)
        records = await self._embed_chunks(
            chunks,
            user_id=user_id,
            source_type=SourceType.MESSAGE,
            source_id=message_id,
            conversation_id=conversation_id,
        )
        await asyncio.to_thread(self.store.store_many, records)
        return len(records)

    def delete_message(self, user_id: str, message_id: str) -> None:
        self.store.delete_by_source(SourceType.MESSAGE, message_id, user_id=user_id)

    def delete_conversation(self, user_id: str, conversation_id: str) -> None:
        self.store.delete_by_conversation(user_id, conversation_id)

    # -- internals ------------------------------------------------------------

    async def _embed_chunks(
        self,
        chunks: Sequence[Chunk],
        *,
        user_id: str,
        source_type: SourceType,
        source_id: str,
        conversation_id: str | None = None,
    ) -> list[EmbeddingRecord]:
        vectors = await self.embedder.embed_many([c.content for c in chunks])
        return [
            EmbeddingRecord(
                user_id=user_id,
                conversation_id=conversation_id,
                source_type=source_type,
                source_id=source_id,
                chunk_index=chunk.index,
                content=chunk.content,
                embedding=vector,
            )
            for chunk, vector in zip(chunks, vectors)
        ]

    def _require_file(self, user_id: str, file_id: str) -> FileRecord:
        record = self.files.get(user_id, file_id)
        if record is None:
            raise FileNotFound(file_id)
        return record

    def _require_pending(self, user_id: str, file_id: str) -> FileRecord:
        # Read under the claim so a run that just settled the file is seen.
        record = self._require_file(user_id, file_id)
        if record.extraction_status.is_terminal:
            raise InvalidStatusTransition(
                record.id, record.extraction_status.value, ExtractionStatus.PENDING.value
            )
        return record

    @contextlib.asynccontextmanager
    async def _claim(self, file_id: str) -> AsyncIterator[None]:
        """Serialise ingestion attempts for one file id."""
        entry = self._claims.get(file_id)
        if entry is None:
            entry = self._claims[file_id] = _Claim(asyncio.Lock())
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._claims[file_id]

    def _settle(
        self,
        record: FileRecord,
        status: ExtractionStatus,
        **fields: str | None,
    ) -> ExtractionStatus:
        self.files.update_status(record.user_id, record.id, status, **fields)
        return status
