"""
Purge captured knowledge.

Only mutable capture sources can be purged. Batch-indexed sources are
rebuilt from their external artifacts and are never touched here.
"""

import json
import os
from pathlib import Path
from typing import List, Optional, Sequence

from .config import get_log_path
from .contradiction import PURGEABLE_SOURCES
from .db import delete_records, ensure_store_ready, get_db
from .query import QueryBuilder
from .schema import PurgeMatch, PurgeResult
from ..util.logging import logger


def find_purge_matches(query: str, source: Optional[str] = None) -> List[PurgeMatch]:
    """
    Records in purgeable sources whose content contains query.

    Matching is plain substring containment, so dots, dashes and quotes in
    the query are taken literally.

    Raises:
        ValueError: source is not purgeable
        StoreNotFoundError: the store does not exist
    """
    if source is not None and source not in PURGEABLE_SOURCES:
        raise ValueError(
            f"Source '{source}' is not purgeable. Must be one of: {', '.join(PURGEABLE_SOURCES)}"
        )
    if not query:
        return []

    builder = QueryBuilder().contains("content", query)
    if source:
        builder.equals("source", source)
    else:
        builder.any_of("source", list(PURGEABLE_SOURCES))
    where, params = builder.build(prefix="WHERE")

    with get_db(readonly=True, with_vectors=False) as conn:
        rows = conn.execute(
            f"SELECT rowid, source, title, content, type FROM search{where} ORDER BY rowid DESC",
            params,
        ).fetchall()

    return [
        PurgeMatch(row_id=r["rowid"], source=r["source"], title=r["title"],
                   content=r["content"], type=r["type"] or "")
        for r in rows
    ]


def delete_entries(row_ids: Sequence[int], match_texts: Sequence[str] = ()) -> PurgeResult:
    """
    Delete Records and their Embeddings in one transaction, then remove
    matching lines from the capture log.

    Args:
        row_ids: Records to delete
        match_texts: Contents of the purged matches. Log lines whose captured
            content contains any of them are removed. Empty skips log cleanup.
    """
    row_ids = list(row_ids)
    if not row_ids:
        return PurgeResult(deleted=0, row_ids=[], log_entries_removed=0)

    ensure_store_ready()
    with get_db() as conn:
        try:
            deleted = delete_records(conn, row_ids)
            conn.commit()
        except Exception:
            conn.rollback()
            logger.log_purge(row_ids, 0, status="failed")
            raise

    removed = purge_log_entries(match_texts)
    logger.log_purge(row_ids, removed)
    return PurgeResult(deleted=deleted, row_ids=row_ids, log_entries_removed=removed)


def _event_content(line: str) -> Optional[str]:
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    data = event.get("data") if isinstance(event, dict) else None
    if not isinstance(data, dict):
        return None
    return str(data.get("content") or data.get("text") or "")


def purge_log_entries(match_texts: Sequence[str], log_path: Optional[Path] = None) -> int:
    """
    Remove capture log lines whose content contains any match text.

    Best effort: a failure is logged and reported as 0 removed lines.
    Unparseable lines are kept.
    """
    match_texts = [m for m in match_texts if m]
    if not match_texts:
        return 0

    path = Path(log_path) if log_path else get_log_path()
    tmp_path = path.with_name(path.name + ".tmp")
    if not path.exists():
        return 0

    try:
        # Stale temp file from an interrupted run
        if tmp_path.exists():
            tmp_path.unlink()

        lines = [line for line in path.read_text(encoding="utf-8").split("\n") if line]
        kept = []
        for line in lines:
            content = _event_content(line)
            if content is not None and any(m in content for m in match_texts):
                continue
            kept.append(line)

        tmp_path.write_text("\n".join(kept) + ("\n" if kept else ""), encoding="utf-8")
        os.replace(tmp_path, path)
        return len(lines) - len(kept)
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Capture log cleanup failed for {path}: {e}")
        return 0
