"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from rag_indexer.errors import CollectionNotFoundError, StoreError
from rag_indexer.retrieval.base import VectorStoreBase
from rag_indexer.retrieval.models import MetadataFilter

if TYPE_CHECKING:
    from chromadb.api import ClientAPI
    from chromadb.api.models.Collection import Collection

logger = logging.getLogger(__name__)

SPACE_KEY = "hnsw:space"


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    _OP_MAP = {
        "eq": "$eq",
        "ne": "$ne",
        "gt": "$gt",
        "gte": "$gte",
        "lt": "$lt",
        "lte": "$lte",
        "in": "$in",
        "nin": "$nin",
    }

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def distance_to_score(distance: float, space: str) -> float:
    """Map a Chroma distance to a similarity score (higher = more similar).

    Chroma's cosine and ip spaces return ``1 - similarity``; l2 returns the
    squared euclidean distance, which is squashed into ``(0, 1]``.
    """
    if space in ("cosine", "ip"):
        return 1.0 - distance
    return 1.0 / (1.0 + distance)


def flatten_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Keep only the flat ``str/int/float/bool`` values Chroma accepts."""
    return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool))}


def _collection_names(client: ClientAPI) -> set[str]:
    # Older chromadb releases return Collection objects, newer ones plain names.
    return {getattr(c, "name", c) for c in client.list_collections()}


def heartbeat(client: ClientAPI) -> bool:
    """Return ``True`` when the Chroma server answers a heartbeat."""
    try:
        client.heartbeat()
    except Exception:
        logger.warning("Chroma health-check failed", exc_info=True)
        return False
    return True


class ChromaVectorStore(VectorStoreBase):

    """Chroma-backed collection handle.

    Build instances with :meth:`get_or_create` or :meth:`open_existing`
    rather than calling the constructor directly.

    Parameters
    ----------
    client:
        A connected ``chromadb`` client.
    collection:
        The Chroma collection this handle is bound to.
    """

    def __init__(self, client: ClientAPI, collection: Collection) -> None:
        super().__init__(collection.name)
        self._client = client
        self._collection = collection

    @classmethod
    def get_or_create(
        cls,
        client: ClientAPI,
        collection_name: str,
        *,
        distance_metric: str = "cosine",
    ) -> ChromaVectorStore:
        """Open *collection_name*, creating it in *distance_metric* space if absent."""
        try:
            collection = client.get_or_create_collection(
                name=collection_name,
                metadata={SPACE_KEY: distance_metric},
                embedding_function=None,
            )
        except Exception as exc:
            raise StoreError(str(exc), collection=collection_name, operation="create") from exc
        return cls(client, collection)

    @classmethod
    def open_existing(cls, client: ClientAPI, collection_name: str) -> ChromaVectorStore:
        """Attach to an existing collection.

        Raises
        ------
        CollectionNotFoundError
            If no collection named *collection_name* exists.
        """
        try:
            names = _collection_names(client)
        except Exception as exc:
            raise StoreError(str(exc), collection=collection_name, operation="load") from exc
        if collection_name not in names:
            raise CollectionNotFoundError(collection_name)
        try:
            collection = client.get_collection(name=collection_name, embedding_function=None)
        except Exception as exc:
            raise StoreError(str(exc), collection=collection_name, operation="load") from exc
        return cls(client, collection)

    @property
    def space(self) -> str:
        """Distance space of the collection (Chroma defaults to ``l2``)."""
        return (self._collection.metadata or {}).get(SPACE_KEY, "l2")

    # -- VectorStoreBase overrides --------------------------------------------

    def upsert(
        self,
        ids: list[str],
        embeddings: list[list[float]],
        documents: list[str],
        metadatas: list[dict[str, Any]],
    ) -> None:
        try:
            self._collection.upsert(
                ids=ids,
                embeddings=embeddings,
                documents=documents,
                metadatas=[flatten_metadata(m) for m in metadatas],
            )
        except Exception as exc:
            raise StoreError(str(exc), collection=self.collection_name, operation="upsert") from exc

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        where = _build_chroma_where(filters) if filters else None

        # Chroma rejects n_results larger than the collection on some releases.
        n_results = min(k, self.count())
        if n_results == 0:
            return []

        try:
            results = self._collection.query(
                query_embeddings=[query_embedding],
                n_results=n_results,
                where=where,
                include=["documents", "metadatas", "distances"],
            )
        except Exception as exc:
            raise StoreError(str(exc), collection=self.collection_name, operation="query") from exc

        space = self.space
        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = (results.get("documents") or [[]])[0]
        metas = (results.get("metadatas") or [[]])[0]
        distances = (results.get("distances") or [[]])[0]

        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            hits.append(
                {
                    "id": doc_id,
                    "content": content or "",
                    "score": distance_to_score(dist, space),
                    "metadata": dict(meta or {}),
                }
            )
        hits.sort(key=lambda hit: hit["score"], reverse=True)
        return hits

    def count(self) -> int:
        try:
            return self._collection.count()
        except Exception as exc:
            raise StoreError(str(exc), collection=self.collection_name, operation="count") from exc

    def health_check(self) -> bool:
        return heartbeat(self._client)
