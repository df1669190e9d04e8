"""
Embed Records that have no vector yet.

Batch collectors only write Records. This job fills in their Embeddings,
reusing the content-hash cache.
"""

from typing import Optional

from ..core.capture import embedding_text
from ..core.db import ensure_store_ready, get_db
from ..core.ingest import IndexEntry
from ..core.search_service import parse_metadata
from ..util.logging import logger
from .cache import embed_with_cache
from .embeddings import EmbeddingService, get_embedding_service
from .semantic import insert_embedding


def embed_pending(embedding_service: Optional[EmbeddingService] = None,
                  batch_size: int = 64) -> int:
    """
    Embed every Record without an Embedding.

    Returns:
        Number of Embeddings written.
    """
    ensure_store_ready()
    service = embedding_service or get_embedding_service()
    written = 0

    with get_db() as conn:
        embedded = {r[0] for r in conn.execute("SELECT doc_id FROM embeddings").fetchall()}
        rows = conn.execute(
            "SELECT rowid, source, title, content, metadata, topic, type, timestamp "
            "FROM search ORDER BY rowid"
        ).fetchall()
        pending = [r for r in rows if r["rowid"] not in embedded]

        for start in range(0, len(pending), batch_size):
            batch = []
            for row in pending[start:start + batch_size]:
                metadata = parse_metadata(row["metadata"], row["rowid"])
                if metadata is None:
                    continue
                batch.append((row, int(metadata.get("chunk_idx", 0))))
            if not batch:
                continue

            texts = [
                embedding_text(IndexEntry(source=row["source"], title=row["title"],
                                          content=row["content"], topic=row["topic"] or ""),
                               row["content"])
                for row, _ in batch
            ]
            try:
                vectors = embed_with_cache(conn, service, texts)
                for (row, chunk_idx), vector in zip(batch, vectors):
                    insert_embedding(conn, row["rowid"], chunk_idx, row["source"], row["topic"],
                                     row["type"], row["timestamp"], vector)
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            written += len(batch)
            logger.log_vector_operation("backfill", f"batch@{start}", {"embedded": len(batch)})

    logger.log_vector_operation("backfill", "all", {"embedded": written, "pending": len(pending)})
    return written
