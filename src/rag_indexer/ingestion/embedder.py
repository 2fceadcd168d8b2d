"""Embedding provider and vector-store client construction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import chromadb
from langchain_openai import OpenAIEmbeddings

from rag_indexer.errors import StoreError

if TYPE_CHECKING:
    from chromadb.api import ClientAPI

    from rag_indexer.config import Settings

logger = logging.getLogger(__name__)


def get_embedding_function(settings: Settings) -> OpenAIEmbeddings:
    """Return the configured OpenAI embedding function.

    When ``settings.openai_base_url`` is set the client is pointed at that
    OpenAI-compatible endpoint instead of the OpenAI cloud API.
    """
    kwargs: dict = {
        "model": settings.openai_embedding_model,
        "api_key": settings.openai_api_key,
        # One provider request per indexer batch.
        "chunk_size": settings.embed_batch_size,
    }
    if settings.openai_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", settings.openai_base_url)
        kwargs["base_url"] = settings.openai_base_url
    return OpenAIEmbeddings(**kwargs)


def get_chroma_client(settings: Settings) -> ClientAPI:
    """Connect to the Chroma server named by ``settings.chroma_url``."""
    url = urlsplit(settings.chroma_url)
    ssl = url.scheme == "https"
    port = url.port or (443 if ssl else 8000)
    try:
        return chromadb.HttpClient(host=url.hostname or "localhost", port=port, ssl=ssl)
    except Exception as exc:
        raise StoreError(
            f"Cannot connect to Chroma at {settings.chroma_url}: {exc}",
            collection=settings.chroma_collection,
            operation="connect",
        ) from exc
