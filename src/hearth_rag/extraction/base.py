"""Abstract base class for text extractors.

The set of extractors is closed: :func:`~hearth_rag.extraction.registry.create_default_registry`
wires the five concrete implementations in a fixed order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from hearth_rag.extraction.models import ExtractResult


class Extractor(ABC):
    """Capability interface: decide whether a file is ours, then decode it."""

    #: Short identifier used in logs.
    name: str = "extractor"

    @abstractmethod
    def can_handle(self, mime: str, ext: str) -> bool:
        """Return ``True`` when this extractor accepts *mime* / *ext*.

        *ext* is the lower-cased substring after the final ``.`` of the
        filename, or ``""`` when there is none.
        """
        ...

    @abstractmethod
    def extract(self, data: bytes) -> ExtractResult:
        """Decode *data* into plain text.

        Implementations may raise whatever their underlying parser raises;
        the registry translates it into
        :class:`~hearth_rag.errors.ExtractionFailed`.
        """
        ...
