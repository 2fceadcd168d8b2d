"""Indexing and query runs: load → split → index → demo search.

``run_indexing`` and ``run_query`` are the single place where pipeline
errors are caught.  Each :class:`RagIndexerError` is logged once as a
structured record and returned inside :class:`PipelineResult`; the CLI
turns the result into a process exit status.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from rag_indexer.errors import ErrorKind, RagIndexerError
from rag_indexer.ingestion.chunker import FixedWindowTextSplitter
from rag_indexer.ingestion.indexer import IndexService
from rag_indexer.ingestion.loader import SkippedFile, load_directory
from rag_indexer.retrieval.models import MetadataFilter, SearchResult

if TYPE_CHECKING:
    from chromadb.api import ClientAPI
    from langchain_core.embeddings import Embeddings

    from rag_indexer.config import Settings

logger = logging.getLogger(__name__)

DEMO_QUERY = "What is this document about?"
DEMO_K = 3


class PipelineResult(BaseModel):
    """Outcome of one run; ``error`` is ``None`` on success."""

    collection_name: str
    documents_loaded: int = 0
    skipped_files: list[SkippedFile] = Field(default_factory=list)
    chunks_created: int = 0
    chunks_indexed: int = 0
    not_indexed: list[str] = Field(default_factory=list)
    results: list[SearchResult] = Field(default_factory=list)
    error: ErrorKind | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.error is None else self.error.exit_code


def _fail(result: PipelineResult, exc: RagIndexerError, log: logging.Logger) -> PipelineResult:
    if exc.not_indexed:
        result.chunks_indexed = exc.indexed
        result.not_indexed = exc.not_indexed
    progress = (
        {"indexed": exc.indexed, "not_indexed": len(exc.not_indexed)} if exc.not_indexed else {}
    )
    log.error(
        "%s error: %s",
        exc.kind.value,
        exc,
        extra={"error_kind": exc.kind.value, **exc.context(), **progress},
        exc_info=exc.__cause__ is not None,
    )
    result.error = exc.kind
    result.error_message = str(exc)
    return result



def log_results(results: list[SearchResult], query: str, log: logging.Logger) -> None:
    """Log each search result in rank order."""
    log.info("Search results for: %r", query)
    for rank, r in enumerate(results, 1):
        log.info("Result %d (score: %.4f) %s", rank, r.score, r.citation.short_ref())
        log.info("Content: %s...", r.content[:200])


def build_service(
    settings: Settings,
    embeddings: Embeddings,
    client: ClientAPI,
    log: logging.Logger,
) -> IndexService:
    return IndexService(
        embeddings,
        client,
        batch_size=settings.embed_batch_size,
        max_concurrency=settings.embed_max_concurrency,
        distance_metric=settings.distance_metric,
        log=log.getChild("indexer"),
    )


def run_indexing(
    settings: Settings,
    embeddings: Embeddings,
    client: ClientAPI,
    *,
    documents_dir: str | Path | None = None,
    collection_name: str | None = None,
    demo_query: str | None = DEMO_QUERY,
    demo_k: int = DEMO_K,
    log: logging.Logger | None = None,
) -> PipelineResult:
    """Index every supported file under *documents_dir* into *collection_name*.

    Steps:

    1. Build the splitter (invalid chunk settings fail before any file is read).
    2. Load documents (missing directory aborts; unreadable files are skipped).
    3. Split into chunks.
    4. Check the vector store answers, then embed and upsert batch by batch.
    5. Optionally run *demo_query* against the fresh collection.
    """
    log = log or logger
    collection_name = collection_name or settings.chroma_collection
    documents_dir = documents_dir or settings.documents_dir
    result = PipelineResult(collection_name=collection_name)

    try:
        splitter = FixedWindowTextSplitter(
            chunk_size=settings.chunk_size, chunk_overlap=settings.chunk_overlap
        )

        log.info("=== Starting RAG document processing ===")
        log.info("Step 1: Loading documents from %s", documents_dir)
        loaded = load_directory(documents_dir, log=log.getChild("loader"))
        result.documents_loaded = len(loaded.documents)
        result.skipped_files = loaded.skipped
        if not loaded.documents:
            log.warning(
                "No documents found in %s. Add some .txt or .pdf files.", documents_dir
            )
            return result

        log.info("Step 2: Splitting %d documents into chunks", len(loaded.documents))
        chunks = splitter.split_documents(loaded.documents)
        result.chunks_created = len(chunks)
        log.info("Created %d chunks from documents", len(chunks))

        log.info("Step 3: Creating embeddings and storing in collection %r", collection_name)
        service = build_service(settings, embeddings, client, log)
        service.check_store(collection_name)
        store = service.open_collection(collection_name)
        result.chunks_indexed = service.add_chunks(chunks, store)

        if demo_query:
            log.info("=== Demonstrating similarity search ===")
            result.results = service.query(demo_query, store, demo_k)
            log_results(result.results, demo_query, log)
    except RagIndexerError as exc:
        return _fail(result, exc, log)

    log.info("=== RAG processing complete ===")
    log.info(
        "Documents: %d, chunks: %d, indexed: %d, skipped files: %d, collection: %s",
        result.documents_loaded,
        result.chunks_created,
        result.chunks_indexed,
        len(result.skipped_files),
        collection_name,
    )
    return result


def run_query(
    settings: Settings,
    embeddings: Embeddings,
    client: ClientAPI,
    query: str,
    *,
    k: int = 4,
    collection_name: str | None = None,
    source: str | Path | None = None,
    min_score: float | None = None,
    log: logging.Logger | None = None,
) -> PipelineResult:
    """Search an existing collection without re-embedding its chunks.

    *source* restricts results to chunks of one file; it may be spelled
    relative to the working directory.  *min_score* drops results whose
    similarity score is below it.
    """
    log = log or logger
    collection_name = collection_name or settings.chroma_collection
    result = PipelineResult(collection_name=collection_name)
    filters = [MetadataFilter.equals("source", str(Path(source).resolve()))] if source else None

    try:
        service = build_service(settings, embeddings, client, log)
        store = service.load_existing(collection_name)
        result.results = service.query(
            query, store, k, filters=filters, score_threshold=min_score
        )

    except RagIndexerError as exc:
        return _fail(result, exc, log)

    log_results(result.results, query, log)
    return result
