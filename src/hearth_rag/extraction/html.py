"""HTML → plain text."""

from __future__ import annotations

from bs4 import BeautifulSoup, Comment

from hearth_rag.extraction.base import Extractor
from hearth_rag.extraction.models import ExtractResult

_BLOCK_TAGS = ["p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "tr", "hr"]


class HtmlExtractor(Extractor):
    """Strip markup, keeping one line per block-level element."""

    name = "html"

    def can_handle(self, mime: str, ext: str) -> bool:
        return mime == "text/html" or ext in ("html", "htm")

    def extract(self, data: bytes) -> ExtractResult:
        soup = BeautifulSoup(data.decode("utf-8", errors="replace"), "html.parser")

        for tag in soup(["script", "style"]):
            tag.decompose()
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

        for br in soup.find_all("br"):
            br.replace_with("\n")
        for tag in soup.find_all(_BLOCK_TAGS):
            tag.insert_after("\n")

        raw = soup.get_text().replace("\xa0", " ")
        text = "\n".join(line.strip() for line in raw.split("\n") if line.strip())

        return ExtractResult(text=text, metadata={"format": "html", "length": len(text)})
