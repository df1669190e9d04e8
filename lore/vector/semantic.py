"""
Semantic KNN search over the sqlite-vec embeddings table.

Filters on source, topic and type go inside the KNN statement so sqlite-vec
applies them before picking the k nearest, instead of filtering afterwards.
"""

import sqlite3
from typing import List, Optional, Sequence

from ..core.db import ensure_store_ready, get_db, has_vector_table
from ..core.query import EMBEDDING_COLUMNS, FilterValue, QueryBuilder, as_list
from ..core.schema import SemanticResult
from ..core.search_service import parse_metadata
from ..util.logging import logger
from .embeddings import EmbeddingService, get_embedding_service, serialize_embedding

# sqlite-vec upper bound on k
MAX_K = 4096


def knn_search(conn: sqlite3.Connection, query_vector: Sequence[float],
               source: Optional[str] = None, topic: Optional[str] = None,
               type: Optional[str] = None, limit: int = 20) -> List[SemanticResult]:
    """
    One pre-filtered KNN query, joined back to Records.

    Returns:
        Results ordered by ascending cosine distance.
    """
    k = max(1, min(limit, MAX_K))
    builder = (
        QueryBuilder(columns=EMBEDDING_COLUMNS)
        .equals("source", source)
        .equals("topic", topic)
        .equals("type", type)
    )
    where, params = builder.build()

    sql = f"""
        WITH knn AS (
            SELECT doc_id, distance
            FROM embeddings
            WHERE embedding MATCH ? AND k = ?{where}
        )
        SELECT s.rowid AS row_id, s.source, s.title, s.content, s.metadata,
               s.topic, s.type, s.timestamp, knn.distance
        FROM knn
        JOIN search s ON s.rowid = knn.doc_id
        ORDER BY knn.distance, s.rowid
    """
    rows = conn.execute(sql, [serialize_embedding(query_vector), k, *params]).fetchall()

    results = []
    seen = set()
    for row in rows:
        row_id = row["row_id"]
        if row_id in seen:
            continue
        metadata = parse_metadata(row["metadata"], row_id)
        if metadata is None:
            continue
        seen.add(row_id)
        results.append(SemanticResult(
            row_id=row_id,
            source=row["source"],
            title=row["title"],
            content=row["content"],
            metadata=metadata,
            topic=row["topic"] or "",
            type=row["type"] or "",
            timestamp=row["timestamp"] or "",
            distance=row["distance"],
        ))
        if len(results) >= limit:
            break
    return results


def semantic_search(query: str, source: FilterValue = None, topic: Optional[str] = None,
                    type: Optional[str] = None, limit: int = 20,
                    embedding_service: Optional[EmbeddingService] = None) -> List[SemanticResult]:
    """
    Nearest Records to the query by cosine distance.

    A list of sources runs one partition-filtered KNN per source and merges
    the results by distance.

    Raises:
        StoreNotFoundError: the store does not exist
        VectorExtensionError: the vector extension cannot be loaded
    """
    if not query.strip():
        return []

    ensure_store_ready()
    service = embedding_service or get_embedding_service()
    results = search_by_vector(service.embed_query(query), source=source, topic=topic,
                               type=type, limit=limit)

    logger.log_vector_operation("semantic_search", query[:50],
                                {"results": len(results), "sources": as_list(source) or "all"})
    return results


def search_by_vector(query_vector: Sequence[float], source: FilterValue = None,
                     topic: Optional[str] = None, type: Optional[str] = None,
                     limit: int = 20) -> List[SemanticResult]:
    """Semantic search for an already embedded query."""
    ensure_store_ready()
    sources = as_list(source) or [None]
    results: List[SemanticResult] = []
    with get_db(readonly=True) as conn:
        for src in sources:
            results.extend(knn_search(conn, query_vector, src, topic, type, limit))

    results.sort(key=lambda r: (r.distance, r.row_id))
    return results[:limit]


def has_embeddings() -> bool:
    """Whether any Record has been embedded yet."""
    ensure_store_ready()
    with get_db(readonly=True) as conn:
        if not has_vector_table(conn):
            return False
        return conn.execute("SELECT 1 FROM embeddings LIMIT 1").fetchone() is not None


def insert_embedding(conn: sqlite3.Connection, doc_id: int, chunk_idx: int,
                     source: str, topic: str, type: str, timestamp: str,
                     vector: Sequence[float]):
    """Store one chunk vector with its denormalized filter columns. The caller commits."""
    conn.execute(
        "INSERT INTO embeddings (doc_id, chunk_idx, source, topic, type, timestamp, embedding) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (doc_id, chunk_idx, source, topic or "", type or "", timestamp or "",
         serialize_embedding(vector)),
    )
