"""Error taxonomy shared by every pipeline stage.

Each exception class carries an :class:`ErrorKind`.  Library code raises;
the orchestrator in :mod:`rag_indexer.pipeline` is the only place that
catches :class:`RagIndexerError` and turns it into a
:class:`~rag_indexer.pipeline.PipelineResult` (and, in the CLI, into a
process exit status).
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Failure categories, each mapped to a distinct process exit code."""

    CONFIGURATION = "configuration"
    LOAD = "load"
    SPLIT = "split"
    EMBEDDING = "embedding"
    STORE = "store"

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self]


_EXIT_CODES = {
    ErrorKind.CONFIGURATION: 2,
    ErrorKind.LOAD: 3,
    ErrorKind.SPLIT: 4,
    ErrorKind.EMBEDDING: 5,
    ErrorKind.STORE: 6,
}


class RagIndexerError(Exception):
    """Base class for every error raised by the indexing pipeline.

    Errors raised part-way through indexing record how far the run got:
    ``indexed`` chunks were written before the failure and ``not_indexed``
    holds the ids of every chunk that was not.
    """

    kind: ErrorKind
    indexed: int = 0

    def __init__(self, *args: Any) -> None:
        super().__init__(*args)
        self.not_indexed: list[str] = []

    def with_progress(self, indexed: int, not_indexed: list[str]) -> RagIndexerError:
        """Record indexing progress at the point of failure and return ``self``."""
        self.indexed = indexed
        self.not_indexed = list(not_indexed)
        return self

    def context(self) -> dict[str, Any]:
        """Extra fields worth logging alongside the message."""
        return {}


class ConfigurationError(RagIndexerError):
    """A required setting is missing, blank, or malformed."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, message: str, *, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []

    def context(self) -> dict[str, Any]:
        return {"missing": self.missing} if self.missing else {}


class LoadError(RagIndexerError):
    """The documents directory cannot be read."""

    kind = ErrorKind.LOAD

    def __init__(self, message: str, *, path: str) -> None:
        super().__init__(message)
        self.path = path

    def context(self) -> dict[str, Any]:
        return {"path": self.path}


class SplitError(RagIndexerError):
    """Invalid chunking parameters."""

    kind = ErrorKind.SPLIT


class EmbeddingError(RagIndexerError):
    """The embedding provider failed for a batch.

    Attributes
    ----------
    batch:
        1-based number of the batch that failed.
    not_indexed:
        Ids of every chunk that was *not* written to the collection
        (the failed batch and all batches after it).
    indexed:
        Number of chunks written before the failed batch.
    """

    kind = ErrorKind.EMBEDDING

    def __init__(
        self,
        message: str,
        *,
        batch: int | None = None,
        not_indexed: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.batch = batch
        self.not_indexed = not_indexed or []

    def context(self) -> dict[str, Any]:
        return {"batch": self.batch}


class StoreError(RagIndexerError):
    """The vector store is unreachable or rejected an operation."""

    kind = ErrorKind.STORE

    def __init__(self, message: str, *, collection: str, operation: str) -> None:
        super().__init__(f"{message} (collection={collection!r}, operation={operation})")
        self.collection = collection
        self.operation = operation

    def context(self) -> dict[str, Any]:
        return {"collection": self.collection, "operation": self.operation}


class CollectionNotFoundError(StoreError):
    """Raised when attaching to a collection that does not exist."""

    def __init__(self, collection: str) -> None:
        super().__init__("Collection not found", collection=collection, operation="load")
