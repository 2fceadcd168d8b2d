"""Fixed-window text chunking with exact character overlap."""

from __future__ import annotations

import hashlib
from typing import Any

from langchain_core.documents import Document
from langchain_text_splitters import TextSplitter

from rag_indexer.errors import SplitError


def document_id(source: str) -> str:
    """Stable identifier for a source file."""
    return hashlib.sha256(source.encode()).hexdigest()[:16]


class FixedWindowTextSplitter(TextSplitter):
    """Split text into windows of ``chunk_size`` characters.

    Each window starts ``chunk_size - chunk_overlap`` characters after the
    previous one, so consecutive chunks share exactly ``chunk_overlap``
    characters.  The last window may be shorter.  Sizes are counted in
    Python characters (code points), never bytes.

    Raises
    ------
    SplitError
        If ``chunk_size`` is not positive, ``chunk_overlap`` is negative, or
        ``chunk_overlap >= chunk_size``.
    """

    def __init__(self, chunk_size: int = 1000, chunk_overlap: int = 200, **kwargs: Any) -> None:
        if chunk_size <= 0:
            raise SplitError(f"chunk_size ({chunk_size}) must be > 0")
        if chunk_overlap < 0:
            raise SplitError(f"chunk_overlap ({chunk_overlap}) must be >= 0")
        if chunk_overlap >= chunk_size:
            raise SplitError(
                f"chunk_overlap ({chunk_overlap}) must be < chunk_size ({chunk_size})"
            )
        super().__init__(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            strip_whitespace=False,
            **kwargs,
        )

    @property
    def step(self) -> int:
        return self._chunk_size - self._chunk_overlap

    def split_text(self, text: str) -> list[str]:
        return [text[start:end] for start, end in self.windows(len(text))]

    def windows(self, length: int) -> list[tuple[int, int]]:
        """``(start, end)`` offsets of every chunk for text of *length* chars."""
        spans: list[tuple[int, int]] = []
        start = 0
        while start < length:
            end = min(start + self._chunk_size, length)
            spans.append((start, end))
            if end == length:
                break
            start += self.step
        return spans

    def split_document(self, document: Document) -> list[Document]:
        """Split one document, copying its metadata onto every chunk.

        Each chunk gains ``chunk_index``, ``chunk_count``, ``start_index``,
        ``doc_id`` and a deterministic ``chunk_id`` so that re-indexing the
        same file overwrites its chunks instead of duplicating them.
        """
        text = document.page_content
        spans = self.windows(len(text))
        source = str(document.metadata.get("source", ""))
        doc_id = document_id(source)

        chunks: list[Document] = []
        for idx, (start, end) in enumerate(spans):
            chunks.append(
                Document(
                    page_content=text[start:end],
                    metadata={
                        **document.metadata,
                        "doc_id": doc_id,
                        "chunk_id": f"{doc_id}_{idx}",
                        "chunk_index": idx,
                        "chunk_count": len(spans),
                        "start_index": start,
                    },
                )
            )
        return chunks

    def split_documents(self, documents: list[Document]) -> list[Document]:  # type: ignore[override]
        chunks: list[Document] = []
        for doc in documents:
            chunks.extend(self.split_document(doc))
        return chunks


def chunk_documents(
    documents: list[Document],
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> list[Document]:
    """Split *documents* into overlapping chunks for embedding.

    Parameters
    ----------
    documents:
        Source documents produced by a loader.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of overlapping characters between consecutive chunks.

    Returns
    -------
    list[Document]
        Chunks in document order, then position order.
    """
    splitter = FixedWindowTextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    return splitter.split_documents(documents)
