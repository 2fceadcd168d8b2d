"""Embedding and vector-store persistence.

:class:`IndexService` turns chunks into ``(text, vector, metadata)``
entries of a named collection and answers similarity queries against it.

Batches are the atomicity unit: a batch is embedded in full, checked,
and written with a single upsert call.  The first batch that fails stops
the run; batches written before it stay in the collection, the failed
batch and every later one are reported as not indexed.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

from rag_indexer.errors import EmbeddingError, RagIndexerError, StoreError
from rag_indexer.ingestion.chunker import document_id
from rag_indexer.retrieval.chroma_store import ChromaVectorStore, heartbeat
from rag_indexer.retrieval.retriever import SemanticRetriever

if TYPE_CHECKING:
    from chromadb.api import ClientAPI
    from langchain_core.documents import Document
    from langchain_core.embeddings import Embeddings

    from rag_indexer.retrieval.base import VectorStoreBase
    from rag_indexer.retrieval.models import MetadataFilter, SearchResult

logger = logging.getLogger(__name__)


def chunk_ids(chunks: list[Document]) -> list[str]:
    """The ``chunk_id`` of every chunk, derived from source and position if absent."""
    ids: list[str] = []
    for idx, chunk in enumerate(chunks):
        meta = chunk.metadata
        cid = meta.get("chunk_id")
        if not cid:
            cid = f"{document_id(str(meta.get('source', '')))}_{meta.get('chunk_index', idx)}"
        ids.append(str(cid))
    return ids


class IndexService:
    """Embed chunks, persist them, and query them back.

    Parameters
    ----------
    embeddings:
        LangChain embedding function (``embed_documents`` / ``embed_query``).
    client:
        Connected ``chromadb`` client.
    batch_size:
        Chunks per embedding request and per upsert call.
    max_concurrency:
        Maximum number of embedding requests in flight at once.
    distance_metric:
        Distance space for newly created collections
        (``cosine`` | ``l2`` | ``ip``).
    log:
        Logger for progress messages; defaults to this module's logger.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        client: ClientAPI,
        *,
        batch_size: int = 100,
        max_concurrency: int = 1,
        distance_metric: str = "cosine",
        log: logging.Logger | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be > 0, got {max_concurrency}")
        self._embeddings = embeddings
        self._client = client
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency
        self.distance_metric = distance_metric
        self._log = log or logger

    # -- collections ----------------------------------------------------------

    def check_store(self, collection_name: str) -> None:
        """Raise :class:`StoreError` unless the vector store answers a heartbeat."""
        if not heartbeat(self._client):
            raise StoreError(
                "Vector store unreachable", collection=collection_name, operation="heartbeat"
            )

    def open_collection(self, collection_name: str) -> VectorStoreBase:
        """Return a handle to *collection_name*, creating the collection if absent."""
        return ChromaVectorStore.get_or_create(
            self._client, collection_name, distance_metric=self.distance_metric
        )

    def load_existing(self, collection_name: str) -> VectorStoreBase:
        """Attach to a previously created collection without re-embedding.

        Raises
        ------
        CollectionNotFoundError
            If the collection does not exist.
        """
        self._log.info("Loading vector store from collection: %s", collection_name)
        store = ChromaVectorStore.open_existing(self._client, collection_name)
        self._log.info("Vector store loaded (%d entries)", store.count())
        return store

    # -- indexing -------------------------------------------------------------

    def embed_and_store(self, chunks: list[Document], collection_name: str) -> VectorStoreBase:
        """Embed *chunks* and upsert them into *collection_name*.

        Returns the collection handle so callers can query it immediately.
        """
        store = self.open_collection(collection_name)
        self.add_chunks(chunks, store)
        self._log.info(
            "Successfully stored embeddings in collection: %s", collection_name
        )
        return store

    def add_chunks(self, chunks: list[Document], store: VectorStoreBase) -> int:
        """Embed *chunks* batch by batch and upsert them into *store*.

        Returns
        -------
        int
            Number of chunks written.

        Raises
        ------
        EmbeddingError
            When a batch cannot be embedded; nothing from that batch onward
            is written.
        StoreError
            When the vector store rejects an upsert.

        Either error carries ``indexed`` (chunks written before the failed
        batch) and ``not_indexed`` (ids of the failed batch and every later
        one).
        """
        if not chunks:
            self._log.info("No chunks to embed")
            return 0

        ids = chunk_ids(chunks)
        texts = [c.page_content for c in chunks]
        metadatas = [dict(c.metadata) for c in chunks]
        spans = [
            (start, min(start + self.batch_size, len(chunks)))
            for start in range(0, len(chunks), self.batch_size)
        ]
        self._log.info(
            "Embedding %d chunks in %d batches (batch_size=%d, concurrency=%d)",
            len(chunks), len(spans), self.batch_size, self.max_concurrency,
        )

        stored = 0
        dimension: int | None = None
        t0 = time.monotonic()
        executor = ThreadPoolExecutor(max_workers=self.max_concurrency)
        try:
            futures: list[Future[list[list[float]]]] = [
                executor.submit(self._embeddings.embed_documents, texts[start:end])
                for start, end in spans
            ]
            for batch_no, ((start, end), future) in enumerate(zip(spans, futures), 1):
                try:
                    vectors = future.result()
                except Exception as exc:
                    raise EmbeddingError(
                        f"Embedding batch {batch_no}/{len(spans)} failed: {exc}",
                        batch=batch_no,
                    ).with_progress(stored, ids[start:]) from exc

                try:
                    dimension = self._check_vectors(
                        vectors, end - start, dimension, batch_no, len(spans)
                    )
                    store.upsert(
                        ids=ids[start:end],
                        embeddings=vectors,
                        documents=texts[start:end],
                        metadatas=metadatas[start:end],
                    )
                except RagIndexerError as exc:
                    exc.with_progress(stored, ids[start:])
                    raise

                stored += end - start
                self._log.info(
                    "  upserted batch %d/%d (%d-%d)", batch_no, len(spans), start, end
                )
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        self._log.info(
            "Indexed %d vectors (dim=%s) in %.1fs", stored, dimension, time.monotonic() - t0
        )
        return stored

    def _check_vectors(
        self,
        vectors: list[list[float]],
        expected: int,
        dimension: int | None,
        batch_no: int,
        total: int,
    ) -> int:
        if len(vectors) != expected:
            raise EmbeddingError(
                f"Embedding batch {batch_no}/{total} returned {len(vectors)} vectors "
                f"for {expected} chunks",
                batch=batch_no,
            )
        dims = {len(v) for v in vectors}
        if dimension is not None:
            dims.add(dimension)
        if len(dims) != 1 or 0 in dims:
            raise EmbeddingError(
                f"Embedding batch {batch_no}/{total} has inconsistent dimensions: {sorted(dims)}",
                batch=batch_no,
            )
        return dims.pop()

    # -- retrieval ------------------------------------------------------------

    def query(
        self,
        text: str,
        store: VectorStoreBase,
        k: int = 4,
        *,
        filters: list[MetadataFilter] | None = None,
        score_threshold: float | None = None,
    ) -> list[SearchResult]:
        """Return the *k* chunks of *store* most similar to *text*, best first.

        The query is embedded with the same embedding function used for
        indexing.  Fewer than *k* results are returned when the collection
        is smaller than *k*, or when *score_threshold* discards some.
        """
        retriever = SemanticRetriever(
            store,
            self._embeddings,
            default_k=k,
            score_threshold=score_threshold,
            log=self._log,
        )
        return retriever.search(text, filters=filters)

