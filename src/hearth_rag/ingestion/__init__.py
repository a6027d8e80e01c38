"""
Ingestion — turning uploaded files and chat messages into embedded chunks.

Files flow through extraction, chunking, embedding, and a single batch write
to the embedding store; each file's extraction status records the outcome.
"""
