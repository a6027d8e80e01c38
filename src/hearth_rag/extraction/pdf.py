"""PDF text-layer extraction via pypdf."""

from __future__ import annotations

import io
import logging
from typing import Any

from pypdf import PdfReader

from hearth_rag.extraction.base import Extractor
from hearth_rag.extraction.models import ExtractResult

logger = logging.getLogger(__name__)


def _info_to_dict(reader: PdfReader) -> dict[str, Any]:
    """Flatten the document-info dictionary to plain strings."""
    info = reader.metadata
    if not info:
        return {}
    return {str(key).lstrip("/"): str(value) for key, value in info.items()}


class PdfTextExtractor(Extractor):
    """Read the embedded text layer; scanned pages simply yield no text."""

    name = "pdf"

    def can_handle(self, mime: str, ext: str) -> bool:
        return mime == "application/pdf" or ext == "pdf"

    def extract(self, data: bytes) -> ExtractResult:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        text = "\n\n".join(pages)

        if not text.strip():
            logger.info("PDF has no extractable text layer (%d pages)", len(pages))

        return ExtractResult(
            text=text,
            metadata={
                "format": "pdf",
                "page_count": len(pages),
                "info": _info_to_dict(reader),
            },
        )
