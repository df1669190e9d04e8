"""
Lexical search over the FTS5 table, plus query-free browsing: sources,
domains, projects and store info.
"""

import json
from typing import Any, Dict, List, Optional

from .config import get_db_path
from .db import get_db
from .query import FilterValue, QueryBuilder
from .schema import AboutResult, ListEntry, ListResult, SearchResult
from ..util.logging import logger

SNIPPET_SQL = "snippet(search, 2, '→', '←', '...', 32)"

# Browsable domains. Most are sources; personal subtypes are filtered by type.
DOMAINS = (
    "development", "tasks", "events", "blogs", "commits", "explorations", "readmes",
    "obsidian", "captures", "books", "movies", "podcasts", "interests", "people",
    "habits", "teachings", "sessions", "flux", "observations", "insights", "learnings",
)

PERSONAL_SUBTYPES = {
    "books": "book",
    "movies": "movie",
    "podcasts": "podcast",
    "interests": "interest",
    "people": "person",
    "habits": "habit",
}

# Sources that name their project in metadata. All others use the topic column.
PROJECT_METADATA_FIELDS = {
    "commits": "project",
    "sessions": "project",
    "tasks": "project",
}

# Malformed metadata yields NULL instead of a JSON error.
PROJECT_FIELD_SQL = "CASE WHEN json_valid(metadata) THEN json_extract(metadata, ?) END"

TOPIC_PROJECT_SOURCES = ("captures", "flux", "teachings", "observations", "insights", "learnings")

ABOUT_SOURCES = ("commits", "captures", "flux", "teachings", "sessions", "insights")


def escape_fts5_query(query: str) -> str:
    """Quote each whitespace-separated term so FTS5 treats it literally."""
    terms = query.split()
    return " ".join('"' + term.replace('"', '""') + '"' for term in terms)


def parse_metadata(raw: Optional[str], row_id: int) -> Optional[Dict[str, Any]]:
    """Parse a stored metadata blob. Returns None, with a warning, when malformed."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Skipping row {row_id}: malformed metadata JSON")
        return None
    if not isinstance(value, dict):
        logger.warning(f"Skipping row {row_id}: metadata is not an object")
        return None
    return value


def search(query: str, source: FilterValue = None, type: FilterValue = None,
           topic: Optional[str] = None, since: Optional[str] = None,
           limit: int = 20) -> List[SearchResult]:
    """
    Ranked full-text search.

    Args:
        query: Free text. Every term is matched literally.
        source: One source or a list of sources
        type: One type or a list of types
        topic: Exact topic
        since: Keep rows whose timestamp is non-empty and >= since
        limit: Maximum results

    Returns:
        Results ordered by BM25 rank, best (most negative) first.

    Raises:
        StoreNotFoundError: the store does not exist
    """
    match = escape_fts5_query(query)
    if not match:
        return []

    builder = (
        QueryBuilder()
        .any_of("source", source)
        .any_of("type", type)
        .equals("topic", topic)
        .since("timestamp", since)
    )
    where, params = builder.build()

    sql = f"""
        SELECT rowid, source, title, {SNIPPET_SQL} AS content, metadata,
               topic, type, timestamp, rank
        FROM search
        WHERE search MATCH ?{where}
        ORDER BY rank
        LIMIT ?
    """

    with get_db(readonly=True, with_vectors=False) as conn:
        rows = conn.execute(sql, [match, *params, limit]).fetchall()

    results = []
    for row in rows:
        metadata = parse_metadata(row["metadata"], row["rowid"])
        if metadata is None:
            continue
        results.append(SearchResult(
            row_id=row["rowid"],
            source=row["source"],
            title=row["title"],
            content=row["content"],
            metadata=metadata,
            topic=row["topic"] or "",
            type=row["type"] or "",
            timestamp=row["timestamp"] or "",
            rank=row["rank"],
        ))

    logger.log_operation("search.lexical", "success", {"query": query[:50], "results": len(results)})
    return results


def list_sources() -> List[Dict[str, Any]]:
    """Sources with their Record counts, largest first."""
    with get_db(readonly=True, with_vectors=False) as conn:
        rows = conn.execute("""
            SELECT source, COUNT(*) AS count
            FROM search
            GROUP BY source
            ORDER BY count DESC, source
        """).fetchall()
    return [{"source": r["source"], "count": r["count"]} for r in rows]


def info() -> Dict[str, Any]:
    """Summary of what is indexed. An absent store reports as empty."""
    if not get_db_path().exists():
        return {"sources": [], "topics": [], "total_entries": 0, "last_indexed": None}

    with get_db(readonly=True, with_vectors=False) as conn:
        sources = conn.execute("""
            SELECT source AS name, COUNT(*) AS count
            FROM search
            GROUP BY source
            ORDER BY count DESC, source
        """).fetchall()
        topics = conn.execute(
            "SELECT DISTINCT topic FROM search WHERE topic != '' ORDER BY topic"
        ).fetchall()
        total = conn.execute("SELECT COUNT(*) FROM search").fetchone()[0]
        last = conn.execute(
            "SELECT MAX(timestamp) FROM search WHERE timestamp IS NOT NULL AND timestamp != ''"
        ).fetchone()[0]

    return {
        "sources": [{"name": r["name"], "count": r["count"]} for r in sources],
        "topics": [r[0] for r in topics],
        "total_entries": total,
        "last_indexed": last,
    }


def list_domains() -> List[str]:
    return list(DOMAINS)


def list_domain(domain: str, limit: Optional[int] = None,
                project: Optional[str] = None) -> ListResult:
    """
    Browse one domain without a query, newest first.

    Args:
        domain: One of DOMAINS
        limit: Maximum entries, all when omitted
        project: Keep entries for this project (metadata field or topic,
            depending on the source). Ignored for personal domains.

    Raises:
        ValueError: unknown domain
        StoreNotFoundError: the store does not exist
    """
    if domain not in DOMAINS:
        raise ValueError(f"Invalid domain: {domain}. Valid domains: {', '.join(DOMAINS)}")

    builder = QueryBuilder()
    personal_type = PERSONAL_SUBTYPES.get(domain)
    if personal_type:
        builder.equals("source", "personal").equals("type", personal_type)
    else:
        builder.equals("source", domain)
        if project:
            field = PROJECT_METADATA_FIELDS.get(domain)
            if field:
                builder.raw(PROJECT_FIELD_SQL + " = ?", f"$.{field}", project)
            else:
                builder.equals("topic", project)
    where, params = builder.build(prefix="WHERE")

    sql = f"SELECT rowid, title, content, metadata, topic, type, timestamp FROM search{where} ORDER BY rowid DESC"
    if limit:
        sql += " LIMIT ?"
        params.append(limit)

    with get_db(readonly=True, with_vectors=False) as conn:
        rows = conn.execute(sql, params).fetchall()

    entries = []
    for row in rows:
        metadata = parse_metadata(row["metadata"], row["rowid"])
        if metadata is None:
            continue
        entries.append(ListEntry(
            row_id=row["rowid"],
            title=row["title"],
            content=row["content"],
            metadata=metadata,
            topic=row["topic"] or "",
            type=row["type"] or "",
            timestamp=row["timestamp"] or "",
        ))

    return ListResult(domain=domain, entries=entries, count=len(entries))


def projects() -> List[str]:
    """Every known project name across sources, sorted. An absent store has none."""
    if not get_db_path().exists():
        return []

    names = set()
    with get_db(readonly=True, with_vectors=False) as conn:
        where, params = QueryBuilder().any_of("source", list(TOPIC_PROJECT_SOURCES)).build(prefix="WHERE")
        for row in conn.execute(f"SELECT DISTINCT topic FROM search{where} AND topic != ''", params):
            names.add(row[0])

        for source, field in PROJECT_METADATA_FIELDS.items():
            rows = conn.execute(
                f"SELECT DISTINCT {PROJECT_FIELD_SQL} FROM search WHERE source = ?",
                (f"$.{field}", source),
            ).fetchall()
            names.update(str(r[0]) for r in rows if r[0])

    return sorted(names)


def about(project: str, limit: int = 10) -> AboutResult:
    """Everything indexed about one project, per source."""
    sections = {source: list_domain(source, limit=limit, project=project) for source in ABOUT_SOURCES}
    result = AboutResult(project=project, sections=sections)
    logger.log_operation("search.about", "success", {"project": project, "entries": result.total})
    return result
