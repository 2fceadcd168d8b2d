"""``python -m rag_indexer``."""

import sys

from rag_indexer.cli import main

sys.exit(main())
