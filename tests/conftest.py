"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import logging
import uuid

import chromadb
import pytest
from chromadb.config import Settings as ChromaSettings
from langchain_core.embeddings import DeterministicFakeEmbedding

from rag_indexer.config import Settings
from rag_indexer.logging_setup import ROOT_LOGGER_NAME

EMBEDDING_DIM = 32


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


@pytest.fixture(autouse=True)
def _reset_package_logger():
    """Undo ``configure_logging`` so handlers never outlive a test's captured stream."""
    yield
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture()
def fake_embeddings() -> DeterministicFakeEmbedding:
    """Hash-seeded vectors: identical text always maps to the identical vector."""
    return DeterministicFakeEmbedding(size=EMBEDDING_DIM)


@pytest.fixture()
def chroma_client():
    """In-process Chroma; collections are shared, so tests use unique names."""
    return chromadb.EphemeralClient(settings=ChromaSettings(anonymized_telemetry=False))


@pytest.fixture()
def collection_name() -> str:
    return f"test_{uuid.uuid4().hex[:12]}"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Valid settings that never read the developer's .env file."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        openai_model_name="gpt-4o-mini",
        openai_embedding_model="text-embedding-3-small",
        chroma_url="http://localhost:8000",
        documents_dir=str(tmp_path / "docs"),
        chunk_size=100,
        chunk_overlap=20,
        embed_batch_size=4,
    )
