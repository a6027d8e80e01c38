"""First-match extractor dispatch.

The order of the default registry matters: the plain-text extractor accepts
every ``text/*`` MIME type, so it must come after the HTML extractor, and the
richer binary formats are tried before the catch-all.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from hearth_rag.errors import ExtractionFailed, NoExtractorFound
from hearth_rag.extraction.base import Extractor
from hearth_rag.extraction.html import HtmlExtractor
from hearth_rag.extraction.models import ExtractResult
from hearth_rag.extraction.pdf import PdfTextExtractor
from hearth_rag.extraction.plain_text import PlainTextExtractor
from hearth_rag.extraction.spreadsheet import XlsxExtractor
from hearth_rag.extraction.word import DocxExtractor

logger = logging.getLogger(__name__)


def file_extension(filename: str) -> str:
    """Lower-cased substring after the final ``.``; ``""`` when there is none."""
    _, dot, ext = filename.rpartition(".")
    return ext.lower() if dot else ""


class ExtractorRegistry:
    """Select the first extractor whose ``can_handle`` accepts the file.

    Parameters
    ----------
    extractors:
        Extractors in priority order. The set is fixed at construction.
    """

    def __init__(self, extractors: Sequence[Extractor]) -> None:
        self._extractors: tuple[Extractor, ...] = tuple(extractors)

    @property
    def extractors(self) -> tuple[Extractor, ...]:
        return self._extractors

    def find(self, mime: str, filename: str) -> Extractor | None:
        """Return the matching extractor, or ``None``."""
        ext = file_extension(filename)
        for extractor in self._extractors:
            if extractor.can_handle(mime, ext):
                return extractor
        return None

    def can_extract(self, mime: str, filename: str) -> bool:
        return self.find(mime, filename) is not None

    def extract(self, data: bytes, mime: str, filename: str) -> ExtractResult:
        """Decode *data* with the first matching extractor.

        Raises
        ------
        NoExtractorFound
            When no extractor accepts the MIME type / extension.
        ExtractionFailed
            When the chosen extractor's parser raises.
        """
        extractor = self.find(mime, filename)
        if extractor is None:
            raise NoExtractorFound(mime, file_extension(filename))

        logger.debug("Extracting %s with %s extractor", filename, extractor.name)
        try:
            return extractor.extract(data)
        except Exception as exc:
            raise ExtractionFailed(filename, exc) from exc


def create_default_registry() -> ExtractorRegistry:
    """Registry with the five built-in extractors, most specific first."""
    return ExtractorRegistry(
        [
            HtmlExtractor(),
            PdfTextExtractor(),
            XlsxExtractor(),
            DocxExtractor(),
            PlainTextExtractor(),
        ]
    )
