"""hearth-rag — document ingestion and scoped semantic retrieval for a family chat assistant."""

__version__ = "0.1.0"
