"""Semantic retriever: embeds a query and ranks a collection's chunks.

Usage::

    from rag_indexer.retrieval.retriever import SemanticRetriever

    retriever = SemanticRetriever(store, embeddings)
    for r in retriever.search("What is this document about?", k=3):
        print(r.citation.short_ref(), r.score, r.content[:80])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from rag_indexer.errors import EmbeddingError
from rag_indexer.retrieval.models import Citation, MetadataFilter, SearchResult

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from rag_indexer.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


def validate_k(k: Any) -> int:
    """Return *k* if it is a positive integer, else raise ``ValueError``."""
    if isinstance(k, bool) or not isinstance(k, int) or k <= 0:
        raise ValueError(f"k must be a positive integer, got {k!r}")
    return k


class SemanticRetriever:
    """Query-side wrapper around one collection handle.

    Parameters
    ----------
    store:
        The collection to search.
    embeddings:
        The embedding function used when the collection was indexed.
    default_k:
        Default number of results returned by :meth:`search`.
    score_threshold:
        Minimum similarity score; results below this are discarded.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embeddings: Embeddings,
        *,
        default_k: int = 4,
        score_threshold: float | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self.default_k = validate_k(default_k)
        self.score_threshold = score_threshold
        self._log = log or logger

    def search(
        self,
        query: str,
        *,
        k: int | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchResult]:
        """Embed *query* and return the nearest chunks, best first.

        Parameters
        ----------
        query:
            Natural-language query string.
        k:
            Number of results (defaults to ``self.default_k``).  When the
            collection holds fewer entries, all of them are returned.
        filters:
            Optional metadata filters forwarded to the vector store.

        Raises
        ------
        ValueError
            If *k* is not a positive integer.
        EmbeddingError
            If the provider fails to embed the query.
        """
        k = self.default_k if k is None else validate_k(k)
        self._log.info("Performing similarity search for: %r (k=%d)", query, k)

        # Nothing to rank; skip the provider round-trip.
        if self._store.count() == 0:
            self._log.info("Collection %r is empty", self._store.collection_name)
            return []

        try:
            embedding = self._embeddings.embed_query(query)
        except Exception as exc:
            raise EmbeddingError(f"Failed to embed query: {exc}") from exc
        return self.search_by_embedding(embedding, k=k, filters=filters)

    def search_by_embedding(
        self,
        embedding: list[float],
        *,
        k: int | None = None,
        filters: list[MetadataFilter] | None = None,
    ) -> list[SearchResult]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        k = self.default_k if k is None else validate_k(k)
        raw_hits = self._store.similarity_search(embedding, k=k, filters=filters)
        results = self._to_results(raw_hits)
        self._log.info("Found %d similar chunks", len(results))
        return results

    # -- internals ------------------------------------------------------------

    def _to_results(self, raw_hits: list[dict[str, Any]]) -> list[SearchResult]:
        results: list[SearchResult] = []
        for hit in raw_hits:
            score = float(hit["score"])
            if self.score_threshold is not None and score < self.score_threshold:
                continue

            meta = hit.get("metadata", {})
            citation = Citation(
                chunk_id=hit.get("id"),
                source=meta.get("source", "unknown"),
                chunk_index=meta.get("chunk_index"),
                file_type=meta.get("file_type"),
                score=score,
                metadata=meta,
            )
            results.append(
                SearchResult(content=hit.get("content", ""), score=score, citation=citation)
            )
        results.sort(key=lambda r: r.score, reverse=True)
        return results
