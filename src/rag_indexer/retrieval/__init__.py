"""
Retrieval: vector-store backends, search results, and the query side.

Public surface
--------------
- :class:`SemanticRetriever`: embeds a query and ranks a collection.
- :class:`VectorStoreBase`: abstract collection handle.
- :class:`ChromaVectorStore`: default Chroma backend.
- :class:`Citation`, :class:`SearchResult`, :class:`MetadataFilter`: data models.
"""

from rag_indexer.retrieval.base import VectorStoreBase
from rag_indexer.retrieval.chroma_store import ChromaVectorStore
from rag_indexer.retrieval.models import Citation, MetadataFilter, SearchResult
from rag_indexer.retrieval.retriever import SemanticRetriever

__all__ = [
    "Citation",
    "ChromaVectorStore",
    "MetadataFilter",
    "SearchResult",
    "SemanticRetriever",
    "VectorStoreBase",
]
