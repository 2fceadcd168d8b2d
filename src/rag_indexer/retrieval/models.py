"""Domain models for search results and citation tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"source"``, ``"file_type"``).
    operator:
        Comparison operator: one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class Citation(BaseModel):
    """Provenance record linking a retrieved chunk back to its source file.

    Attributes
    ----------
    chunk_id:
        The vector-store id of the chunk (``None`` when unknown).
    source:
        Path of the originating file.
    chunk_index:
        Ordinal position of the chunk within the source document.
    file_type:
        ``"text"`` or ``"pdf"``.
    score:
        Similarity score; higher means more similar.
    metadata:
        Every metadata key stored with the chunk.
    retrieved_at:
        UTC timestamp of when the retrieval happened.
    """

    chunk_id: str | None = None
    source: str = "unknown"
    chunk_index: int | None = None
    file_type: str | None = None
    score: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    retrieved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        chunk = self.chunk_index if self.chunk_index is not None else "?"
        return f"[{self.source}§{chunk}]"


class SearchResult(BaseModel):
    """A single retrieved chunk, its similarity score and its citation."""

    content: str
    score: float
    citation: Citation

    def __str__(self) -> str:  # noqa: D105
        return f"{self.citation.short_ref()} ({self.score:.4f}) {self.content[:120]}…"
