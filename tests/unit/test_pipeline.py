"""Unit tests for the orchestrator and the CLI entry point."""

from __future__ import annotations

import string
from pathlib import Path

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings

from rag_indexer import cli
from rag_indexer.config import REQUIRED_VARS
from rag_indexer.errors import ErrorKind, StoreError
from rag_indexer.pipeline import run_indexing, run_query
from rag_indexer.retrieval.chroma_store import ChromaVectorStore


def _write_docs(root: Path) -> None:
    root.mkdir(parents=True, exist_ok=True)
    alphabet = string.ascii_lowercase + " "
    (root / "a.txt").write_text("".join(alphabet[i % 27] for i in range(250)))
    (root / "b.txt").write_text("A short note about indexing.")
    (root / "ignored.md").write_text("# not indexed")


def _write_notes(root: Path, count: int) -> None:
    """*count* files that each fit in a single chunk."""
    root.mkdir(parents=True, exist_ok=True)
    for i in range(count):
        (root / f"note{i}.txt").write_text(f"Note number {i} about topic {i * 11}.")


class TestRunIndexing:
    def test_end_to_end(self, settings, fake_embeddings, chroma_client, collection_name) -> None:
        _write_docs(Path(settings.documents_dir))

        result = run_indexing(
            settings, fake_embeddings, chroma_client, collection_name=collection_name
        )

        assert result.ok
        assert result.exit_code == 0
        assert result.documents_loaded == 2
        # 250 chars, size 100, overlap 20 → ceil(230 / 80) = 3 chunks, plus 1 for b.txt
        assert result.chunks_created == 4
        assert result.chunks_indexed == 4
        assert 1 <= len(result.results) <= 3

    def test_no_documents_is_not_an_error(
        self, settings, fake_embeddings, chroma_client, collection_name
    ) -> None:
        Path(settings.documents_dir).mkdir()
        result = run_indexing(
            settings, fake_embeddings, chroma_client, collection_name=collection_name
        )
        assert result.ok
        assert result.documents_loaded == 0
        assert result.chunks_indexed == 0

    def test_missing_directory_is_a_load_error(
        self, settings, fake_embeddings, chroma_client, collection_name
    ) -> None:
        result = run_indexing(
            settings, fake_embeddings, chroma_client, collection_name=collection_name
        )
        assert result.error is ErrorKind.LOAD
        assert result.exit_code == ErrorKind.LOAD.exit_code
        assert "not found" in result.error_message

    def test_bad_chunk_settings_fail_before_reading_files(
        self, settings, fake_embeddings, chroma_client, collection_name, monkeypatch
    ) -> None:
        def _must_not_load(*args, **kwargs):
            raise AssertionError("files were read")

        monkeypatch.setattr("rag_indexer.pipeline.load_directory", _must_not_load)
        settings.chunk_overlap = settings.chunk_size

        result = run_indexing(
            settings, fake_embeddings, chroma_client, collection_name=collection_name
        )

        assert result.error is ErrorKind.SPLIT

    def test_embedding_failure_reports_unindexed_chunks(
        self, settings, chroma_client, collection_name
    ) -> None:
        class FailingEmbeddings(Embeddings):
            def embed_documents(self, texts):
                raise RuntimeError("401 invalid api key")

            def embed_query(self, text):
                raise RuntimeError("401 invalid api key")

        _write_docs(Path(settings.documents_dir))
        result = run_indexing(
            settings, FailingEmbeddings(), chroma_client, collection_name=collection_name
        )

        assert result.error is ErrorKind.EMBEDDING
        assert result.chunks_indexed == 0
        assert len(result.not_indexed) == result.chunks_created == 4

    def test_later_embedding_failure_reports_stored_chunks(
        self, settings, chroma_client, collection_name
    ) -> None:
        class SecondCallFails(Embeddings):
            def __init__(self) -> None:
                self.calls = 0
                self._inner = DeterministicFakeEmbedding(size=8)

            def embed_documents(self, texts):
                self.calls += 1
                if self.calls == 2:
                    raise RuntimeError("429 rate limited")
                return self._inner.embed_documents(texts)

            def embed_query(self, text):
                return self._inner.embed_query(text)

        _write_notes(Path(settings.documents_dir), 6)
        settings.embed_batch_size = 2

        result = run_indexing(
            settings, SecondCallFails(), chroma_client, collection_name=collection_name
        )

        assert result.error is ErrorKind.EMBEDDING
        assert result.chunks_created == 6
        assert result.chunks_indexed == 2
        assert len(result.not_indexed) == 4
        assert ChromaVectorStore.open_existing(chroma_client, collection_name).count() == 2

    def test_upsert_failure_reports_unindexed_chunks(
        self, settings, fake_embeddings, chroma_client, collection_name, monkeypatch
    ) -> None:
        original = ChromaVectorStore.upsert
        calls: list[list[str]] = []

        def rejects_second_batch(self, ids, embeddings, documents, metadatas):
            calls.append(ids)
            if len(calls) == 2:
                raise StoreError("disk full", collection=self.collection_name, operation="upsert")
            original(self, ids, embeddings, documents, metadatas)

        monkeypatch.setattr(ChromaVectorStore, "upsert", rejects_second_batch)
        _write_notes(Path(settings.documents_dir), 6)
        settings.embed_batch_size = 2

        result = run_indexing(
            settings, fake_embeddings, chroma_client, collection_name=collection_name
        )

        assert result.error is ErrorKind.STORE
        assert result.chunks_indexed == 2
        assert len(result.not_indexed) == 4
        assert result.not_indexed[:2] == calls[1]
        assert ChromaVectorStore.open_existing(chroma_client, collection_name).count() == 2

    def test_unreachable_store_fails_before_opening_collection(
        self, settings, collection_name
    ) -> None:
        class DownClient:
            def heartbeat(self):
                raise ConnectionError("connection refused")

            def get_or_create_collection(self, **kwargs):
                raise AssertionError("collection opened")

        class MustNotEmbed(Embeddings):
            def embed_documents(self, texts):
                raise AssertionError("embedding requested")

            def embed_query(self, text):
                raise AssertionError("embedding requested")

        _write_docs(Path(settings.documents_dir))
        result = run_indexing(
            settings, MustNotEmbed(), DownClient(), collection_name=collection_name
        )

        assert result.error is ErrorKind.STORE
        assert "heartbeat" in result.error_message
        assert result.chunks_indexed == 0

    def test_reindexing_through_another_path_spelling_overwrites(
        self, settings, fake_embeddings, chroma_client, collection_name, monkeypatch, tmp_path
    ) -> None:
        _write_docs(tmp_path / "docs")
        monkeypatch.chdir(tmp_path)

        for documents_dir in ("docs", str(tmp_path / "docs"), "./docs/../docs"):
            result = run_indexing(
                settings, fake_embeddings, chroma_client,
                documents_dir=documents_dir, collection_name=collection_name, demo_query=None,
            )
            assert result.chunks_indexed == 4

        assert ChromaVectorStore.open_existing(chroma_client, collection_name).count() == 4

    def test_demo_query_can_be_disabled(
        self, settings, fake_embeddings, chroma_client, collection_name
    ) -> None:
        _write_docs(Path(settings.documents_dir))
        result = run_indexing(
            settings, fake_embeddings, chroma_client,
            collection_name=collection_name, demo_query=None,
        )
        assert result.ok
        assert result.results == []


class TestRunQuery:
    def test_query_after_indexing(
        self, settings, fake_embeddings, chroma_client, collection_name
    ) -> None:
        _write_docs(Path(settings.documents_dir))
        run_indexing(
            settings, fake_embeddings, chroma_client,
            collection_name=collection_name, demo_query=None,
        )

        result = run_query(
            settings, fake_embeddings, chroma_client,
            "A short note about indexing.", k=10, collection_name=collection_name,
        )

        assert result.ok
        assert len(result.results) == 4
        assert result.results[0].content == "A short note about indexing."

    def test_query_restricted_to_source(
        self, settings, fake_embeddings, chroma_client, collection_name, monkeypatch, tmp_path
    ) -> None:
        docs = Path(settings.documents_dir)
        _write_docs(docs)
        run_indexing(
            settings, fake_embeddings, chroma_client,
            collection_name=collection_name, demo_query=None,
        )
        monkeypatch.chdir(tmp_path)

        result = run_query(
            settings, fake_embeddings, chroma_client, "anything", k=10,
            collection_name=collection_name, source="docs/a.txt",
        )

        assert len(result.results) == 3
        assert {r.citation.source for r in result.results} == {str((docs / "a.txt").resolve())}

    def test_min_score_drops_weak_matches(
        self, settings, fake_embeddings, chroma_client, collection_name
    ) -> None:
        _write_docs(Path(settings.documents_dir))
        run_indexing(
            settings, fake_embeddings, chroma_client,
            collection_name=collection_name, demo_query=None,
        )

        result = run_query(
            settings, fake_embeddings, chroma_client, "A short note about indexing.",
            k=10, collection_name=collection_name, min_score=0.99,
        )

        assert result.ok
        assert [r.content for r in result.results] == ["A short note about indexing."]


    def test_unknown_collection(self, settings, fake_embeddings, chroma_client, collection_name) -> None:
        result = run_query(
            settings, fake_embeddings, chroma_client, "anything",
            collection_name=collection_name,
        )
        assert result.error is ErrorKind.STORE


class TestCli:
    @pytest.fixture(autouse=True)
    def _isolated_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.chdir(tmp_path)
        for name in REQUIRED_VARS:
            monkeypatch.delenv(name, raising=False)

    def _configure(self, monkeypatch: pytest.MonkeyPatch, fake_embeddings, chroma_client) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("OPENAI_MODEL_NAME", "gpt-4o-mini")
        monkeypatch.setenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
        monkeypatch.setenv("CHUNK_SIZE", "100")
        monkeypatch.setenv("CHUNK_OVERLAP", "20")
        monkeypatch.setattr(cli, "get_embedding_function", lambda settings: fake_embeddings)
        monkeypatch.setattr(cli, "get_chroma_client", lambda settings: chroma_client)

    def test_missing_config_exits_before_network(
        self, monkeypatch: pytest.MonkeyPatch, capsys
    ) -> None:
        def _no_network(settings):
            raise AssertionError("network client built")

        monkeypatch.setattr(cli, "get_embedding_function", _no_network)
        monkeypatch.setattr(cli, "get_chroma_client", _no_network)

        code = cli.main(["index", "docs"])

        assert code == ErrorKind.CONFIGURATION.exit_code
        assert "OPENAI_API_KEY" in capsys.readouterr().err

    def test_index_then_query(
        self, monkeypatch, tmp_path: Path, fake_embeddings, chroma_client, collection_name
    ) -> None:
        self._configure(monkeypatch, fake_embeddings, chroma_client)
        _write_docs(tmp_path / "docs")

        assert cli.main(["index", str(tmp_path / "docs"), "--collection", collection_name]) == 0
        assert cli.main(["query", "indexing", "--collection", collection_name, "-k", "2"]) == 0
        assert (
            cli.main(["query", "indexing", "--collection", collection_name, "--min-score", "0.5"])
            == 0
        )

    def test_index_missing_directory_exit_code(
        self, monkeypatch, tmp_path: Path, fake_embeddings, chroma_client, collection_name
    ) -> None:
        self._configure(monkeypatch, fake_embeddings, chroma_client)
        code = cli.main(["index", str(tmp_path / "missing"), "--collection", collection_name])
        assert code == ErrorKind.LOAD.exit_code

    def test_query_unknown_collection_exit_code(
        self, monkeypatch, fake_embeddings, chroma_client, collection_name
    ) -> None:
        self._configure(monkeypatch, fake_embeddings, chroma_client)
        assert cli.main(["query", "x", "--collection", collection_name]) == ErrorKind.STORE.exit_code

    def test_non_positive_k_rejected(self, monkeypatch, fake_embeddings, chroma_client) -> None:
        self._configure(monkeypatch, fake_embeddings, chroma_client)
        assert cli.main(["query", "x", "-k", "0"]) == 1
