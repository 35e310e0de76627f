#!/usr/bin/env python3
# ============================================================================
# scripts/import_knowledge.py
# ============================================================================
"""
Import Medical Knowledge

Loads a disease CSV into the knowledge store, one record per disease
(first row wins). Embeddings are read from vector_0..vector_383 columns
when the CSV has them, otherwise computed with the configured embedding
backend unless --no-embed is given.

Usage:
    python scripts/import_knowledge.py data/diseases.csv
    python scripts/import_knowledge.py data/diseases.csv --db data/knowledge.db --no-embed
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prescription_triage.core.config import get_config
from prescription_triage.knowledge.embeddings import create_embedding_provider
from prescription_triage.knowledge.store import KnowledgeStore
from prescription_triage.utils.logging import setup_logging


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Import a disease CSV into the knowledge store")

    parser.add_argument("csv_path", type=str, help="CSV file to import")
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Knowledge database path (default: KNOWLEDGE_DB_PATH)"
    )
    parser.add_argument(
        "--no-embed",
        action="store_true",
        help="Do not compute embeddings for rows without vector columns"
    )

    args = parser.parse_args()
    config = get_config()
    setup_logging(config['log_level'])

    csv_path = Path(args.csv_path)
    if not csv_path.exists():
        print(f"CSV not found: {csv_path}")
        return 1

    store = KnowledgeStore(Path(args.db or config['knowledge_db_path']))
    embedder = None if args.no_embed else create_embedding_provider(config)

    written = store.import_csv(csv_path, embedder=embedder, dimensions=config['embedding_dim'])

    print("=" * 60)
    print(f"Imported {written} records into {store.db_path}")
    print(f"Knowledge base now holds {store.count()} records")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
