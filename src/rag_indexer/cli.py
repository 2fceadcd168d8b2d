"""Command-line entry point: ``rag-indexer index`` and ``rag-indexer query``."""

from __future__ import annotations

import argparse
import sys

from rag_indexer.config import load_settings
from rag_indexer.errors import ConfigurationError, RagIndexerError
from rag_indexer.ingestion.embedder import get_chroma_client, get_embedding_function
from rag_indexer.logging_setup import configure_logging
from rag_indexer.pipeline import DEMO_K, DEMO_QUERY, run_indexing, run_query

EXAMPLE_ENV = """\
Example .env file:
  OPENAI_API_KEY=sk-...
  OPENAI_MODEL_NAME=gpt-4o-mini
  OPENAI_EMBEDDING_MODEL=text-embedding-3-small
  CHROMA_URL=http://localhost:8000
  APP_ENV=development
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rag-indexer",
        description="Index .txt/.pdf documents into a Chroma collection and query them.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    index = sub.add_parser("index", help="Load, chunk, embed and store documents")
    index.add_argument(
        "directory",
        nargs="?",
        default=None,
        help="Directory of documents (default: DOCUMENTS_DIR setting)",
    )
    index.add_argument("--collection", default=None, help="Target collection name")
    index.add_argument("--demo-query", default=DEMO_QUERY, help="Query run after indexing")
    index.add_argument("-k", type=int, default=DEMO_K, help="Results for the demo query")
    index.add_argument("--no-demo", action="store_true", help="Skip the demo query")

    query = sub.add_parser("query", help="Search an existing collection")
    query.add_argument("text", help="Query text")
    query.add_argument("--collection", default=None, help="Collection name")
    query.add_argument("-k", type=int, default=4, help="Number of results")
    query.add_argument("--source", default=None, help="Only return chunks of this file")
    query.add_argument(
        "--min-score",
        type=float,
        default=None,
        help="Drop results whose similarity score is below this value",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return the process exit status."""
    args = build_parser().parse_args(argv)

    # Validate before any network client is built.
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"CONFIGURATION ERROR: {exc}", file=sys.stderr)
        print("Please set these in your .env file with valid values.\n", file=sys.stderr)
        print(EXAMPLE_ENV, file=sys.stderr)
        return exc.kind.exit_code

    log = configure_logging(settings)
    log.info("Environment validated successfully")

    if args.k <= 0:
        log.error("-k must be a positive integer, got %d", args.k)
        return 1

    try:
        embeddings = get_embedding_function(settings)
        client = get_chroma_client(settings)
    except RagIndexerError as exc:
        log.error("%s error: %s", exc.kind.value, exc, extra=exc.context())
        return exc.kind.exit_code

    if args.command == "index":
        result = run_indexing(
            settings,
            embeddings,
            client,
            documents_dir=args.directory,
            collection_name=args.collection,
            demo_query=None if args.no_demo else args.demo_query,
            demo_k=args.k,
            log=log.getChild("pipeline"),
        )
    else:
        result = run_query(
            settings,
            embeddings,
            client,
            args.text,
            k=args.k,
            collection_name=args.collection,
            source=args.source,
            min_score=args.min_score,
            log=log.getChild("pipeline"),
        )

    if result.not_indexed:
        log.error("%d chunks were not indexed", len(result.not_indexed))
        for chunk_id in result.not_indexed:
            log.debug("not indexed: %s", chunk_id)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
