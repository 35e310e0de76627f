#!/usr/bin/env python3
# ============================================================================
# scripts/create_vector_index.py
# ============================================================================
"""
Create Vector Index

Registers the cosine vector index the knowledge matcher queries.

Usage:
    python scripts/create_vector_index.py
    python scripts/create_vector_index.py --name vector_index --dimensions 384
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from prescription_triage.core.config import get_config
from prescription_triage.knowledge.store import KnowledgeStore


def main():
    """Main entry point."""
    config = get_config()
    parser = argparse.ArgumentParser(description="Register the knowledge base vector index")

    parser.add_argument("--db", type=str, default=config['knowledge_db_path'], help="Knowledge database path")
    parser.add_argument("--name", type=str, default=config['knowledge_index'], help="Index name")
    parser.add_argument("--dimensions", type=int, default=config['embedding_dim'], help="Embedding dimensions")

    args = parser.parse_args()

    store = KnowledgeStore(Path(args.db))
    store.create_index(args.name, dimensions=args.dimensions, similarity="cosine")

    print(f"Vector index '{args.name}' ready ({args.dimensions} dims, cosine) in {store.db_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
