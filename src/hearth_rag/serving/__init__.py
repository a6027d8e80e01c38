"""
Serving — thin FastAPI adapter over the ingestion and retrieval operations.

Authentication happens upstream; the authenticated user id arrives in the
``X-User-Id`` header.
"""
