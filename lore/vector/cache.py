"""
Content-hash embedding cache.

Lookups key on the SHA-256 of the exact embedded text only. The model
identifier is recorded but not part of the lookup, so a model swap that keeps
the same dimension can serve vectors computed by the previous model.
A cached vector of the wrong dimension is treated as a miss and replaced.
"""

import hashlib
import sqlite3
import time
from typing import Dict, Iterable, List, Optional, Set

from .embeddings import EmbeddingService, deserialize_embedding, serialize_embedding
from ..util.logging import logger


def hash_content(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def get_cached_embedding(conn: sqlite3.Connection, content_hash: str,
                         dimension: Optional[int] = None) -> Optional[List[float]]:
    """Return the cached vector, or None on a miss or a dimension mismatch."""
    row = conn.execute(
        "SELECT embedding, dims FROM embedding_cache WHERE hash = ?", (content_hash,)
    ).fetchone()
    if row is None:
        return None

    vector = deserialize_embedding(row[0])
    if dimension is not None and len(vector) != dimension:
        logger.warning(
            f"Cached embedding {content_hash[:12]} has {len(vector)} dims, expected {dimension}; re-embedding"
        )
        return None
    return vector


def cache_embedding(conn: sqlite3.Connection, content_hash: str, vector: List[float], model: str):
    """Write a vector to the cache. The caller owns the transaction."""
    conn.execute(
        "INSERT OR REPLACE INTO embedding_cache (hash, embedding, model, dims, created_at) "
        "VALUES (?, ?, ?, ?, ?)",
        (content_hash, serialize_embedding(vector), model, len(vector), int(time.time())),
    )


def has_embedding_cached(conn: sqlite3.Connection, content_hash: str) -> bool:
    return conn.execute(
        "SELECT 1 FROM embedding_cache WHERE hash = ?", (content_hash,)
    ).fetchone() is not None


def get_missing_hashes(conn: sqlite3.Connection, hashes: Iterable[str]) -> Set[str]:
    """Subset of hashes that have no cache entry."""
    hashes = list(dict.fromkeys(hashes))
    if not hashes:
        return set()
    placeholders = ", ".join("?" for _ in hashes)
    rows = conn.execute(
        f"SELECT hash FROM embedding_cache WHERE hash IN ({placeholders})", hashes
    ).fetchall()
    return set(hashes) - {r[0] for r in rows}


def embed_with_cache(conn: sqlite3.Connection, service: EmbeddingService,
                     texts: List[str], write_back: bool = True) -> List[List[float]]:
    """
    Embed documents, reusing cached vectors by content hash.

    Args:
        conn: Store connection
        service: Embedding service for misses
        texts: Exact texts to embed (without the document prefix)
        write_back: Store new vectors in the cache. The caller commits.

    Returns:
        One vector per text, in input order.
    """
    hashes = [hash_content(t) for t in texts]
    vectors: Dict[str, List[float]] = {}
    misses: List[str] = []
    miss_texts: List[str] = []
    hits = 0

    for digest, text in zip(hashes, texts):
        if digest in misses:
            continue
        if digest in vectors:
            hits += 1
            continue
        cached = get_cached_embedding(conn, digest, service.dimension)
        if cached is None:
            misses.append(digest)
            miss_texts.append(text)
        else:
            vectors[digest] = cached
            hits += 1

    if miss_texts:
        fresh = service.embed_documents(miss_texts)
        for digest, vector in zip(misses, fresh):
            vectors[digest] = vector
            if write_back:
                cache_embedding(conn, digest, vector, service.model_identifier)

    logger.log_vector_operation("embed_with_cache", f"{len(texts)} texts",
                                {"hits": hits, "misses": len(misses)})
    return [vectors[d] for d in hashes]

