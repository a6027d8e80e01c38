"""Catch-all extractor for source code, markup, and other text formats."""

from __future__ import annotations

from hearth_rag.extraction.base import Extractor
from hearth_rag.extraction.models import ExtractResult

PLAIN_TEXT_EXTS = frozenset(
    {
        "txt", "md", "csv", "json", "xml", "js", "ts", "jsx", "tsx", "py",
        "java", "c", "cpp", "h", "go", "rs", "rb", "php", "sh", "bash",
        "yaml", "yml", "toml", "sql", "css", "scss", "log", "env", "ini",
        "cfg", "conf", "rtf",
    }
)

STRUCTURED_TEXT_MIMES = frozenset({"application/json", "application/xml", "application/javascript"})


class PlainTextExtractor(Extractor):
    """UTF-8 decode; invalid byte sequences become U+FFFD instead of raising."""

    name = "plain_text"

    def can_handle(self, mime: str, ext: str) -> bool:
        return ext in PLAIN_TEXT_EXTS or mime.startswith("text/") or mime in STRUCTURED_TEXT_MIMES

    def extract(self, data: bytes) -> ExtractResult:
        text = data.decode("utf-8", errors="replace")
        return ExtractResult(text=text, metadata={"encoding": "utf-8", "length": len(text)})
