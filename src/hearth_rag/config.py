"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

ALLOWED_FILE_TYPES: tuple[str, ...] = (
    "txt", "md", "pdf", "docx", "xlsx", "xls", "csv", "json", "xml", "html",
    "htm", "rtf", "js", "ts", "jsx", "tsx", "py", "java", "c", "cpp", "h",
    "go", "rs", "rb", "php", "sh", "bash", "yaml", "yml", "toml", "sql",
    "css", "scss", "log", "env", "ini", "cfg", "conf",
)


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding
    embedding_model: str = "sentence-transformers/all-mpnet-base-v2"
    embedding_dim: int = Field(default=768, ge=1, description="Fixed vector length for every record")
    embed_concurrency: int = Field(default=4, ge=1, description="Max in-flight embedding calls")
    embed_timeout_seconds: float = 120.0
    embed_max_attempts: int = Field(default=1, ge=1)
    embed_retry_backoff_seconds: float = 1.0

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "hearth_embeddings"
    chroma_persist_path: str = Field(
        default="",
        description="Use an embedded PersistentClient at this path instead of the HTTP server.",
    )
    distance_metric: Literal["cosine", "ip"] = "cosine"

    # Chunking
    chunk_size: int = Field(default=1000, ge=1)
    chunk_overlap: int = Field(default=150, ge=0)

    # Extraction
    extract_timeout_seconds: float = 120.0
    extracted_preview_chars: int = 200_000

    # Uploads / blob storage
    blob_root: str = "./data/blobs"
    max_upload_bytes: int = 25 * 1024 * 1024
    allowed_file_types: list[str] = Field(default_factory=lambda: list(ALLOWED_FILE_TYPES))

    # Retrieval
    search_limit: int = Field(default=8, ge=1)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Module-level instance; components receive values through their constructors.
settings = Settings()
