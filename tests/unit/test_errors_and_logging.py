"""Unit tests for the error taxonomy and logging setup."""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest
import structlog

from rag_indexer.config import Settings
from rag_indexer.errors import (
    CollectionNotFoundError,
    ConfigurationError,
    EmbeddingError,
    ErrorKind,
    LoadError,
    SplitError,
    StoreError,
)
from rag_indexer.logging_setup import ROOT_LOGGER_NAME, build_formatter, configure_logging


class TestErrorKinds:
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (ConfigurationError("x"), ErrorKind.CONFIGURATION),
            (LoadError("x", path="/tmp"), ErrorKind.LOAD),
            (SplitError("x"), ErrorKind.SPLIT),
            (EmbeddingError("x"), ErrorKind.EMBEDDING),
            (StoreError("x", collection="c", operation="query"), ErrorKind.STORE),
            (CollectionNotFoundError("c"), ErrorKind.STORE),
        ],
    )
    def test_kind(self, exc, kind: ErrorKind) -> None:
        assert exc.kind is kind

    def test_exit_codes_are_distinct_and_non_zero(self) -> None:
        codes = [kind.exit_code for kind in ErrorKind]
        assert len(set(codes)) == len(codes)
        assert 0 not in codes

    def test_store_error_context(self) -> None:
        err = StoreError("boom", collection="docs", operation="upsert")
        assert "docs" in str(err)
        assert err.context() == {"collection": "docs", "operation": "upsert"}

    def test_progress_is_recorded_on_the_error(self) -> None:
        err = StoreError("boom", collection="docs", operation="upsert")
        assert err.indexed == 0
        assert err.not_indexed == []

        assert err.with_progress(2, ["c_2", "c_3"]) is err
        assert err.indexed == 2
        assert err.not_indexed == ["c_2", "c_3"]

    def test_not_found_is_a_store_error(self) -> None:
        err = CollectionNotFoundError("docs")
        assert isinstance(err, StoreError)
        assert err.operation == "load"


class TestLogging:
    def _settings(self, **overrides) -> Settings:
        return Settings(_env_file=None, **overrides)

    def test_development_logs_debug_to_console(self) -> None:
        log = configure_logging(self._settings(app_env="development"))
        assert log.name == ROOT_LOGGER_NAME
        assert log.level == logging.DEBUG
        formatter = log.handlers[0].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.dev.ConsoleRenderer)

    def test_production_logs_json_at_info(self) -> None:
        log = configure_logging(self._settings(app_env="production"))
        assert log.level == logging.INFO
        formatter = log.handlers[0].formatter
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_log_level_override(self) -> None:
        log = configure_logging(self._settings(app_env="production", log_level="warning"))
        assert log.level == logging.WARNING

    def test_reconfiguring_does_not_duplicate_handlers(self) -> None:
        configure_logging(self._settings())
        log = configure_logging(self._settings())
        assert len(log.handlers) == 1

    def test_json_lines_include_extra_fields(self) -> None:
        record = logging.makeLogRecord(
            {
                "name": "rag_indexer.pipeline",
                "levelname": "ERROR",
                "levelno": logging.ERROR,
                "msg": "store error: %s",
                "args": ("down",),
                "collection": "docs",
            }
        )
        payload = json.loads(build_formatter(json_output=True).format(record))
        assert payload["event"] == "store error: down"
        assert payload["level"] == "error"
        assert payload["logger"] == "rag_indexer.pipeline"
        assert payload["collection"] == "docs"
        assert "timestamp" in payload

    def test_json_lines_render_exceptions(self) -> None:
        try:
            raise RuntimeError("connection refused")
        except RuntimeError:
            exc_info = sys.exc_info()
        record = logging.makeLogRecord(
            {
                "name": "rag_indexer",
                "levelname": "ERROR",
                "levelno": logging.ERROR,
                "msg": "store error",
                "exc_info": exc_info,
            }
        )
        payload = json.loads(build_formatter(json_output=True).format(record))
        assert "connection refused" in payload["exception"]

    def test_child_logger_records_reach_the_package_handler(self) -> None:
        log = configure_logging(self._settings(app_env="production"))
        stream = io.StringIO()
        log.handlers[0].setStream(stream)

        log.getChild("pipeline").info("indexed %d chunks", 4, extra={"collection": "docs"})

        payload = json.loads(stream.getvalue().strip())
        assert payload["event"] == "indexed 4 chunks"
        assert payload["logger"] == "rag_indexer.pipeline"
        assert payload["collection"] == "docs"
