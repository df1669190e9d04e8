#!/usr/bin/env python3
"""
Store initialization utility.
Creates the Lore store with its FTS5, vector and cache tables.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from lore.core.config import get_db_path, get_embed_dim, validate_config
from lore.core.db import health_check, init_db
from lore.core.errors import ConfigurationError


def main(argv=None):
    """Create the store."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Initialize the Lore knowledge store")
    parser.add_argument("--dimension", type=int, default=None,
                        help=f"Embedding dimension (default: EMBED_DIM or {get_embed_dim()})")
    parser.add_argument("--no-vectors", action="store_true",
                        help="Create only the keyword search tables")
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    try:
        path = init_db(dimension=args.dimension, with_vectors=not args.no_vectors)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    report = health_check(path)
    print(f"✓ Store ready at {path}")
    print(f"  Tables: {', '.join(report['tables'])}")
    if report["embedding_dimension"] is not None:
        print(f"  Embedding dimension: {report['embedding_dimension']}")
        if not report["dimension_matches"]:
            print(f"WARNING: store dimension differs from EMBED_DIM ({get_embed_dim()})")


if __name__ == "__main__":
    main()
