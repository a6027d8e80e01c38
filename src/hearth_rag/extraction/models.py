"""Result model shared by every extractor."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ExtractResult(BaseModel):
    """Plain text recovered from one file.

    Attributes
    ----------
    text:
        The extracted text. May be empty (e.g. image-only PDFs).
    metadata:
        Extractor-specific details such as page count or sheet names.
        Values must be JSON serializable.
    """

    model_config = {"frozen": True}

    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)
