#!/usr/bin/env python3
"""
Embedding backfill utility.
Embeds every Record written by batch collectors that has no vector yet.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from lore.core.errors import ConfigurationError
from lore.vector.backfill import embed_pending
from lore.vector.embeddings import get_embedding_service


def main(argv=None):
    """Backfill missing embeddings."""
    load_dotenv()

    parser = argparse.ArgumentParser(description="Embed Records that have no vector yet")
    parser.add_argument("--batch-size", type=int, default=64, help="Texts per model call")
    args = parser.parse_args(argv)

    service = get_embedding_service()
    print(f"Loading embedding model {service.model_name}...")
    service.warm_up()

    try:
        written = embed_pending(service, batch_size=args.batch_size)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    finally:
        service.shutdown()

    print(f"✓ Embedded {written} records")


if __name__ == "__main__":
    main()
