"""Abstract base class for vector-store backends.

A backend instance is bound to one collection and doubles as the
collection handle returned by the indexing service.  Adding a backend
(Qdrant, pgvector …) only requires subclassing :class:`VectorStoreBase`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from rag_indexer.retrieval.models import MetadataFilter


class VectorStoreBase(ABC):
    """Backend-agnostic collection interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    @abstractmethod
    def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        """Write one batch atomically; existing ids are overwritten."""
        ...

    @abstractmethod
    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        """Return up to *k* hits nearest to *query_embedding*.

        Each hit dict **must** contain:

        * ``"id"`` – chunk identifier
        * ``"content"`` – the chunk text
        * ``"score"`` – similarity score (higher = more similar)
        * ``"metadata"`` – associated metadata dict

        Hits are ordered by descending score.
        """
        ...

    @abstractmethod
    def count(self) -> int:
        """Number of entries in the collection."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...
