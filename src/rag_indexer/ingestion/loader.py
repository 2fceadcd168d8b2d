"""Document loaders: dispatch by file extension to LangChain loaders.

The directory is walked **recursively** and files are visited in
lexicographic order of their POSIX path relative to the root, so two runs
over the same tree produce the same documents in the same order.

PDFs become **one document per file**: page texts are joined with a
blank line and the page count is kept in ``metadata["total_pages"]``.

Sources are absolute paths with symlinks resolved, so the same file
keeps one identity however the directory argument was spelled.

A missing directory aborts the run with :class:`LoadError`.  A single
file that cannot be read is skipped with a warning and reported in
:attr:`LoadResult.skipped`.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable

from langchain_community.document_loaders import PyPDFLoader, TextLoader
from langchain_core.documents import Document
from pydantic import BaseModel, Field

from rag_indexer.errors import LoadError

logger = logging.getLogger(__name__)

PDF_PAGE_SEPARATOR = "\n\n"


class FileKind(str, Enum):
    """Tagged variant resolved once per file from its extension."""

    TEXT = "text"
    PDF = "pdf"
    UNSUPPORTED = "unsupported"


EXTENSION_TABLE: dict[str, FileKind] = {
    ".txt": FileKind.TEXT,
    ".pdf": FileKind.PDF,
}


def classify(path: Path) -> FileKind:
    """Return the :class:`FileKind` for *path* (extension match is case-insensitive)."""
    return EXTENSION_TABLE.get(path.suffix.lower(), FileKind.UNSUPPORTED)


class SkippedFile(BaseModel):
    """A supported file that could not be read."""

    path: str
    reason: str


class LoadResult(BaseModel):
    """Documents loaded from a directory plus the files that were skipped."""

    documents: list[Document] = Field(default_factory=list)
    skipped: list[SkippedFile] = Field(default_factory=list)


def load_text(path: Path) -> Document:
    """Load a plain-text file as-is (UTF-8)."""
    docs = TextLoader(str(path), encoding="utf-8").load()
    content = "".join(doc.page_content for doc in docs)
    return Document(
        page_content=content,
        metadata={"source": str(path), "file_type": FileKind.TEXT.value},
    )


def load_pdf(path: Path) -> Document:
    """Load a PDF, extracting text page by page into a single document."""
    pages = PyPDFLoader(str(path)).load()
    return Document(
        page_content=PDF_PAGE_SEPARATOR.join(page.page_content for page in pages),
        metadata={
            "source": str(path),
            "file_type": FileKind.PDF.value,
            "total_pages": len(pages),
        },
    )


HANDLERS: dict[FileKind, Callable[[Path], Document]] = {
    FileKind.TEXT: load_text,
    FileKind.PDF: load_pdf,
}


def iter_files(root: Path) -> list[Path]:
    """Every regular file under *root*, sorted by relative POSIX path."""
    files = [p for p in root.rglob("*") if p.is_file()]
    return sorted(files, key=lambda p: p.relative_to(root).as_posix())


def load_directory(
    path: str | Path,
    *,
    log: logging.Logger | None = None,
) -> LoadResult:
    """Recursively load all supported documents from *path*.

    Parameters
    ----------
    path:
        Root directory containing source documents.
    log:
        Logger to report progress on; defaults to this module's logger.

    Returns
    -------
    LoadResult
        Loaded documents in stable order, and the files skipped because
        they could not be read.

    Raises
    ------
    LoadError
        If *path* does not exist or is not a directory.
    """
    log = log or logger
    root = Path(path).resolve()
    if not root.exists():
        raise LoadError(f"Documents directory not found: {root}", path=str(root))
    if not root.is_dir():
        raise LoadError(f"Documents path is not a directory: {root}", path=str(root))

    log.info("Loading documents from: %s", root)
    result = LoadResult()
    for file_path in iter_files(root):
        kind = classify(file_path)
        if kind is FileKind.UNSUPPORTED:
            log.debug("Skipping unsupported file: %s", file_path)
            continue
        try:
            doc = HANDLERS[kind](file_path)
        except Exception as exc:
            log.warning("Skipping unreadable %s file %s: %s", kind.value, file_path, exc)
            result.skipped.append(SkippedFile(path=str(file_path), reason=str(exc)))
            continue
        log.debug("Loaded %s (%d chars)", file_path, len(doc.page_content))
        result.documents.append(doc)

    log.info(
        "Loaded %d documents (%d skipped)", len(result.documents), len(result.skipped)
    )
    return result
