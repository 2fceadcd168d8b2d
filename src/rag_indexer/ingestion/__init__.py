"""
Ingestion: document loading, chunking, and embedding into the vector store.

Converts a directory of ``.txt`` / ``.pdf`` files into fixed-size,
overlapping chunks, embeds them, and upserts them into a named
Chroma collection.
"""
