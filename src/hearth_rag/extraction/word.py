"""Word documents (DOCX) → raw body text via python-docx."""

from __future__ import annotations

import io
import warnings

import docx
from docx.table import Table

from hearth_rag.extraction.base import Extractor
from hearth_rag.extraction.models import ExtractResult

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class DocxExtractor(Extractor):
    """Paragraphs and table rows, in document order.

    Anything the library warns about while parsing is reported in
    ``metadata["messages"]`` rather than raised.
    """

    name = "docx"

    def can_handle(self, mime: str, ext: str) -> bool:
        return mime == DOCX_MIME or ext == "docx"

    def extract(self, data: bytes) -> ExtractResult:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            document = docx.Document(io.BytesIO(data))
            lines: list[str] = []
            for block in document.iter_inner_content():
                if isinstance(block, Table):
                    for row in block.rows:
                        lines.append("\t".join(cell.text for cell in row.cells))
                else:
                    lines.append(block.text)

        return ExtractResult(
            text="\n\n".join(lines),
            metadata={
                "format": "docx",
                "messages": [str(w.message) for w in caught],
            },
        )
