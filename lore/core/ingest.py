"""
Ingestion context: the single write path every collector goes through.

insert() validates metadata, deduplicates within the session, chunks long
content and writes one Record row per chunk.
"""

import hashlib
import json
import re
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .db import delete_records, get_db
from .errors import GuardrailViolation
from ..util.logging import logger

CHUNK_SIZE = 2500
CHUNK_OVERLAP = 200
# A boundary is only used when it falls within the last BOUNDARY_WINDOW chars
BOUNDARY_WINDOW = 500

COLUMN_KEYS = ("topic", "content", "timestamp", "type")
RESERVED_KEYS = ("content_hash", "chunk_idx", "total_chunks")

_SENTENCE_END = re.compile(r"[.!?]\s")


@dataclass
class IndexEntry:
    source: str
    title: str
    content: str
    topic: str = ""
    type: str = ""
    timestamp: str = ""
    metadata: Optional[Dict[str, Any]] = field(default=None)


# (row_id, chunk_idx, chunk_text)
InsertedChunk = Tuple[int, int, str]

Collector = Callable[["IngestionContext"], None]


def chunk_content(content: str) -> List[str]:
    """Split content into overlapping chunks of at most CHUNK_SIZE characters."""
    if len(content) <= CHUNK_SIZE:
        return [content]

    chunks = []
    start = 0
    while start < len(content):
        end = start + CHUNK_SIZE
        if end < len(content):
            window = content[start:end]
            paragraph_break = window.rfind("\n\n")
            if paragraph_break > CHUNK_SIZE - BOUNDARY_WINDOW:
                end = start + paragraph_break + 2
            else:
                sentence_breaks = [m.start() for m in _SENTENCE_END.finditer(window)]
                if sentence_breaks and sentence_breaks[-1] > CHUNK_SIZE - BOUNDARY_WINDOW:
                    end = start + sentence_breaks[-1] + 2
        else:
            end = len(content)

        chunks.append(content[start:end])
        if end >= len(content):
            break
        start = end - CHUNK_OVERLAP

    return chunks


def entry_hash(entry: IndexEntry) -> str:
    """Dedup key over (source, title, content, topic)."""
    joined = "\x1f".join((entry.source, entry.title, entry.content, entry.topic or ""))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def validate_entry(entry: IndexEntry) -> Dict[str, Any]:
    """
    Check metadata against the column guardrails.

    Keys that duplicate a dedicated column are dropped with a warning so the
    column value wins. Reserved engine keys raise GuardrailViolation.

    Returns:
        The metadata to store.
    """
    metadata = dict(entry.metadata or {})

    for key in RESERVED_KEYS:
        if key in metadata:
            raise GuardrailViolation(key, entry.source)

    for key in COLUMN_KEYS:
        if key in metadata:
            logger.warning(
                f"'{key}' should not be in metadata for {entry.source}:{entry.title}, using the column value"
            )
            del metadata[key]

    return metadata


class IngestionContext:
    """Shared write handle for collectors in one ingestion session."""

    INSERT_SQL = (
        "INSERT INTO search (source, title, content, metadata, topic, type, timestamp) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)"
    )

    def __init__(self, conn: sqlite3.Connection, seen_hashes: Optional[Set[str]] = None):
        self.conn = conn
        self.seen_hashes = seen_hashes if seen_hashes is not None else set()

    def insert(self, entry: IndexEntry) -> None:
        """Validate, deduplicate, chunk and insert one entry."""
        self.insert_entry(entry)

    def insert_entry(self, entry: IndexEntry) -> List[InsertedChunk]:
        """Same as insert() but returns what was written. Empty when deduplicated."""
        metadata = validate_entry(entry)

        digest = entry_hash(entry)
        if digest in self.seen_hashes:
            return []
        self.seen_hashes.add(digest)

        chunks = chunk_content(entry.content)
        inserted = []
        for idx, chunk in enumerate(chunks):
            chunk_metadata = metadata
            if len(chunks) > 1:
                chunk_metadata = dict(metadata, chunk_idx=idx, total_chunks=len(chunks))
            cursor = self.conn.execute(
                self.INSERT_SQL,
                (
                    entry.source,
                    entry.title,
                    chunk,
                    json.dumps(chunk_metadata),
                    entry.topic or "",
                    entry.type or "",
                    entry.timestamp or "",
                ),
            )
            inserted.append((cursor.lastrowid, idx, chunk))

        logger.log_ingest(entry.source, entry.title, len(inserted))
        return inserted


def delete_source(conn: sqlite3.Connection, source: str) -> int:
    """Remove every Record of a source along with its Embeddings."""
    row_ids = [
        r[0] for r in conn.execute(
            "SELECT rowid FROM search WHERE source = ?", (source,)
        ).fetchall()
    ]
    return delete_records(conn, row_ids)


def run_indexer(sources: Iterable[str], registry: Mapping[str, Collector],
                rebuild: bool = False, seen_hashes: Optional[Set[str]] = None,
                with_vectors: bool = True) -> List[str]:
    """
    Run registered collectors against the store.

    Args:
        sources: Source names to run, or ["all"] for every registered collector
        registry: Source name to collector callable
        rebuild: Delete a source's existing Records before re-collecting it
        seen_hashes: Dedup set to share with a previous session

    Returns:
        Names of the sources that ran.
    """
    sources = list(sources)
    to_run = list(registry.keys()) if sources == ["all"] else sources
    ran = []

    with get_db(with_vectors=with_vectors) as conn:
        ctx = IngestionContext(conn, seen_hashes)
        for source in to_run:
            collector = registry.get(source)
            if collector is None:
                logger.log_indexer_run(source, "skipped", {"reason": "unknown source"})
                continue

            if rebuild:
                removed = delete_source(conn, source)
                logger.log_indexer_run(source, "cleared", {"removed": removed})

            try:
                collector(ctx)
                conn.commit()
            except Exception:
                conn.rollback()
                logger.log_indexer_run(source, "failed")
                raise

            ran.append(source)
            logger.log_indexer_run(source)

    return ran
