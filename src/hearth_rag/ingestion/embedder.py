"""Embedding generation against the external embedding model.

:class:`EmbeddingGenerator` wraps any LangChain ``Embeddings`` with the
resource policy the pipeline needs: a fixed number of in-flight calls, a hard
timeout per call, and validation of the returned vector.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from typing import TYPE_CHECKING

from hearth_rag.config import settings
from hearth_rag.errors import EmbeddingGenerationFailed

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(model_name: str | None = None) -> Embeddings:
    """Return the configured sentence-transformer embedding function."""
    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(
        model_name=model_name or settings.embedding_model,
        encode_kwargs={"normalize_embeddings": True},
    )


class EmbeddingGenerator:
    """Bounded-concurrency client for an ``Embeddings`` implementation.

    Parameters
    ----------
    embeddings:
        The external embedding model (``aembed_query`` is used).
    dimension:
        Expected vector length; anything else is a malformed response.
    concurrency:
        Maximum number of embedding calls in flight at once, shared by every
        caller of this instance.
    timeout:
        Seconds allowed per call before it counts as failed.
    max_attempts:
        Total attempts per text. ``1`` leaves retrying to the collaborator.
    retry_backoff:
        Base delay in seconds; attempt *n* waits ``retry_backoff * 2 ** (n - 1)``.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        *,
        dimension: int,
        concurrency: int = 4,
        timeout: float = 120.0,
        max_attempts: int = 1,
        retry_backoff: float = 1.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._embeddings = embeddings
        self.dimension = dimension
        self.concurrency = concurrency
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_backoff = retry_backoff
        self._semaphore: asyncio.Semaphore | None = None
        self._semaphore_loop: asyncio.AbstractEventLoop | None = None

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text, honouring the concurrency limit and timeout."""
        last_exc: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self._limiter():
                    raw = await asyncio.wait_for(
                        self._embeddings.aembed_query(text), timeout=self.timeout
                    )
                return self._validate(raw)
            except asyncio.TimeoutError as exc:
                last_exc = exc
                reason = f"timed out after {self.timeout}s"
            except EmbeddingGenerationFailed as exc:
                last_exc = exc
                reason = str(exc)
            except Exception as exc:
                last_exc = exc
                reason = f"{type(exc).__name__}: {exc}"

            if attempt < self.max_attempts:
                wait = self.retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    "Embedding attempt %d/%d failed (wait %.1fs): %s",
                    attempt, self.max_attempts, wait, reason,
                )
                await asyncio.sleep(wait)

        raise EmbeddingGenerationFailed(
            f"Embedding failed after {self.max_attempts} attempt(s): {reason}"
        ) from last_exc

    def _limiter(self) -> asyncio.Semaphore:
        # Semaphores bind to the loop they first wait on.
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._semaphore_loop is not loop:
            self._semaphore = asyncio.Semaphore(self.concurrency)
            self._semaphore_loop = loop
        return self._semaphore

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts* concurrently, preserving order.

        The first failure cancels every call still pending and is re-raised.
        """
        if not texts:
            return []
        tasks = [asyncio.ensure_future(self.embed_one(t)) for t in texts]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    def _validate(self, raw: object) -> list[float]:
        if not isinstance(raw, (list, tuple)):
            raise EmbeddingGenerationFailed(
                f"malformed embedding response of type {type(raw).__name__}"
            )
        if len(raw) != self.dimension:
            raise EmbeddingGenerationFailed(
                f"expected {self.dimension}-dim embedding, got {len(raw)}"
            )
        try:
            vector = [float(v) for v in raw]
        except (TypeError, ValueError) as exc:
            raise EmbeddingGenerationFailed("embedding contains non-numeric values") from exc
        if not all(math.isfinite(v) for v in vector):
            raise EmbeddingGenerationFailed("embedding contains non-finite values")
        return vector
