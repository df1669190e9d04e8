"""
Real-time indexing for capture events.

Makes captures searchable by keyword and by meaning as soon as they are
logged, without waiting for a batch collector run. Events in purgeable
sources are checked against their nearest neighbours first, so a capture
can be dropped as redundant or replace the entry it supersedes.
"""

import sqlite3
from typing import Iterable, List, Optional

from .capture import embedding_text, parse_event
from .config import contradiction_enabled
from .contradiction import (
    ContradictionResolver,
    ResolverFailure,
    find_candidates,
    is_contradiction_checkable,
)
from .db import delete_records, ensure_store_ready, get_db
from .errors import ConfigurationError, GuardrailViolation
from .ingest import IndexEntry, IngestionContext, chunk_content, entry_hash
from .schema import ContradictionAction, ContradictionDecision
from ..util.logging import logger
from ..vector.cache import embed_with_cache
from ..vector.embeddings import EmbeddingService, get_embedding_service
from ..vector.semantic import insert_embedding


def index_and_embed(events: Iterable, resolver: Optional[ContradictionResolver] = None,
                    embedding_service: Optional[EmbeddingService] = None,
                    check_contradictions: Optional[bool] = None) -> List[ContradictionDecision]:
    """
    Index and embed a batch of capture events, in order.

    Args:
        events: Capture event models or raw event dicts
        resolver: Contradiction classifier, built from config when omitted
        embedding_service: Defaults to the process-wide service
        check_contradictions: Defaults to CONTRADICTION_ENABLED

    Returns:
        One decision per event. An event that failed to embed or write has
        its error set, no row_ids, and nothing committed for it.

    Raises:
        StoreNotFoundError: the store does not exist (nothing is written)
        VectorExtensionError: the vector extension cannot be loaded (nothing is written)
        pydantic.ValidationError: an event is malformed (nothing is written)
    """
    events = list(events)
    if not events:
        return []

    ensure_store_ready()
    parsed = [parse_event(e) for e in events]

    service = embedding_service or get_embedding_service()
    if check_contradictions is None:
        check_contradictions = contradiction_enabled()
    if check_contradictions and resolver is None:
        resolver = ContradictionResolver()

    decisions = []
    with get_db() as conn:
        ctx = IngestionContext(conn)
        for event in parsed:
            entry = event.to_entry()
            decision = _index_entry(conn, ctx, entry, service,
                                    resolver if check_contradictions else None)
            decisions.append(decision)

    return decisions


def _decide(conn: sqlite3.Connection, entry: IndexEntry, service: EmbeddingService,
            resolver: Optional[ContradictionResolver]) -> ContradictionDecision:
    decision = ContradictionDecision(
        action=ContradictionAction.ADD, source=entry.source, topic=entry.topic
    )
    if resolver is None or not is_contradiction_checkable(entry.source):
        return decision

    decision.checked = True
    candidates = find_candidates(conn, entry, service)
    if not candidates:
        return decision

    outcome = resolver.classify(entry, candidates)
    if isinstance(outcome, ResolverFailure):
        # fail open
        decision.error = outcome.reason
        return decision

    decision.action = outcome.action
    if outcome.action == ContradictionAction.DELETE_ADD:
        decision.deleted_row_id = outcome.delete_row_id
    return decision


def _index_entry(conn: sqlite3.Connection, ctx: IngestionContext, entry: IndexEntry,
                 service: EmbeddingService,
                 resolver: Optional[ContradictionResolver]) -> ContradictionDecision:
    decision = ContradictionDecision(
        action=ContradictionAction.ADD, source=entry.source, topic=entry.topic
    )
    digest = entry_hash(entry)
    was_seen = digest in ctx.seen_hashes

    try:
        decision = _decide(conn, entry, service, resolver)
        logger.log_contradiction_decision(decision.action.value, entry.source, entry.topic,
                                          decision.deleted_row_id, decision.error)
        if decision.action == ContradictionAction.NOOP:
            return decision

        chunks = chunk_content(entry.content)
        texts = [embedding_text(entry, chunk) for chunk in chunks]
        # Embedding happens before any Record write so a failure leaves this event untouched
        vectors = embed_with_cache(conn, service, texts)

        if decision.deleted_row_id is not None:
            delete_records(conn, [decision.deleted_row_id])

        inserted = ctx.insert_entry(entry)
        for row_id, chunk_idx, _chunk in inserted:
            insert_embedding(conn, row_id, chunk_idx, entry.source, entry.topic,
                             entry.type, entry.timestamp, vectors[chunk_idx])
        conn.commit()
    except (ConfigurationError, GuardrailViolation):
        conn.rollback()
        logger.log_vector_operation("index_and_embed", entry.title, {"source": entry.source}, status="failed")
        raise
    except Exception as e:
        # this event only; the rest of the batch still runs
        conn.rollback()
        if not was_seen:
            ctx.seen_hashes.discard(digest)
        decision.deleted_row_id = None
        decision.error = f"indexing failed: {e}"
        logger.log_vector_operation("index_and_embed", entry.title,
                                    {"source": entry.source, "error": str(e)}, status="failed")
        return decision

    decision.row_ids = [row_id for row_id, _, _ in inserted]
    logger.log_vector_operation("index_and_embed", entry.title,
                                {"source": entry.source, "row_ids": decision.row_ids})
    return decision
