"""
Extraction — polymorphic conversion of uploaded file bytes into plain text.

Public surface
--------------
- :class:`ExtractorRegistry` — first-match dispatch over a fixed extractor set.
- :func:`create_default_registry` — the registry in its canonical order.
- :class:`Extractor` — the capability interface every extractor implements.
- :class:`ExtractResult` — text plus extractor-specific metadata.
"""

from hearth_rag.extraction.base import Extractor
from hearth_rag.extraction.models import ExtractResult
from hearth_rag.extraction.registry import ExtractorRegistry, create_default_registry

__all__ = [
    "ExtractResult",
    "Extractor",
    "ExtractorRegistry",
    "create_default_registry",
]
