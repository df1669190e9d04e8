"""
SQLite store: schema creation, vector extension runtime and connection handles.

The store holds three tables:
- search: FTS5 table of Records (rowid is the Record's row_id)
- embeddings: sqlite-vec vec0 table, one vector per Record chunk
- embedding_cache: content-hash keyed vectors, independent of Record identity
"""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import sqlite_vec

from .config import (
    BUSY_TIMEOUT_MS,
    get_db_path,
    get_embed_dim,
    get_vec_extension_path,
)
from .errors import StoreNotFoundError, VectorExtensionError
from ..util.logging import logger


class StoreRuntime:
    """Process-wide record of the loaded vector extension."""

    def __init__(self):
        self.lock = threading.Lock()
        self.extension_path: Optional[str] = None

    @property
    def initialized(self) -> bool:
        return self.extension_path is not None


_runtime = StoreRuntime()


def _resolve_extension_path(extension_path: Optional[str] = None) -> str:
    path = extension_path or get_vec_extension_path() or sqlite_vec.loadable_path()
    return os.path.normpath(path)


def _load_vector_extension(conn: sqlite3.Connection, extension_path: str):
    if not hasattr(conn, "enable_load_extension"):
        raise VectorExtensionError(
            "This Python's sqlite3 module was built without extension loading support"
        )
    conn.enable_load_extension(True)
    try:
        conn.load_extension(extension_path)
    finally:
        conn.enable_load_extension(False)


def initialize_store_runtime(extension_path: Optional[str] = None) -> str:
    """
    Load and verify the sqlite-vec extension once per process.

    Calling again with the same path is a no-op. Calling with a different
    path after a successful initialization raises VectorExtensionError.

    Returns:
        The resolved extension path.
    """
    resolved = _resolve_extension_path(extension_path)

    with _runtime.lock:
        if _runtime.initialized:
            if _runtime.extension_path != resolved:
                raise VectorExtensionError(
                    f"Store runtime already initialized with {_runtime.extension_path}, "
                    f"refusing to switch to {resolved}"
                )
            return resolved

        check_conn = sqlite3.connect(":memory:")
        try:
            _load_vector_extension(check_conn, resolved)
            version = check_conn.execute("SELECT vec_version()").fetchone()[0]
        except (sqlite3.Error, AttributeError) as e:
            raise VectorExtensionError(
                f"Failed to load sqlite-vec extension from {resolved}: {e}"
            ) from e
        finally:
            check_conn.close()

        _runtime.extension_path = resolved
        logger.log_operation("store.runtime_init", "success",
                             {"extension_path": resolved, "vec_version": version})
        return resolved


def open_store(readonly: bool = False, with_vectors: bool = True,
               db_path: Optional[Path] = None) -> sqlite3.Connection:
    """
    Open a handle to an existing store.

    Raises:
        StoreNotFoundError: the store file does not exist
        VectorExtensionError: vectors requested before initialize_store_runtime()
    """
    path = Path(db_path) if db_path else get_db_path()
    if not path.exists():
        raise StoreNotFoundError(path)

    if with_vectors and not _runtime.initialized:
        raise VectorExtensionError(
            "Vector runtime not initialized. Call initialize_store_runtime() first."
        )

    if readonly:
        conn = sqlite3.connect(path.resolve().as_uri() + "?mode=ro", uri=True)
    else:
        conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")

    if with_vectors:
        try:
            _load_vector_extension(conn, _runtime.extension_path)
        except sqlite3.Error as e:
            conn.close()
            raise VectorExtensionError(f"Failed to load sqlite-vec extension: {e}") from e

    return conn


@contextmanager
def get_db(readonly: bool = False, with_vectors: bool = True,
           db_path: Optional[Path] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a store connection that is always closed on exit."""
    conn = open_store(readonly=readonly, with_vectors=with_vectors, db_path=db_path)
    try:
        yield conn
    finally:
        conn.close()


def init_db(dimension: Optional[int] = None, with_vectors: bool = True,
            db_path: Optional[Path] = None) -> Path:
    """Create the store and its tables if they do not exist yet."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    dim = dimension or get_embed_dim()

    if with_vectors:
        initialize_store_runtime()

    conn = sqlite3.connect(str(path))
    try:
        cursor = conn.cursor()

        # Records. rowid is the stable row_id.
        cursor.execute('''
            CREATE VIRTUAL TABLE IF NOT EXISTS search USING fts5(
                source,
                title,
                content,
                metadata,
                topic,
                type,
                timestamp
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS embedding_cache (
                hash TEXT PRIMARY KEY,
                embedding BLOB NOT NULL,
                model TEXT NOT NULL,
                dims INTEGER NOT NULL,
                created_at INTEGER NOT NULL
            )
        ''')

        if with_vectors:
            _load_vector_extension(conn, _runtime.extension_path)
            # source is a partition key so per-source KNN only scans that partition
            cursor.execute(f'''
                CREATE VIRTUAL TABLE IF NOT EXISTS embeddings USING vec0(
                    doc_id integer,
                    chunk_idx integer,
                    source text partition key,
                    topic text,
                    type text,
                    timestamp text,
                    embedding float[{dim}] distance_metric=cosine
                )
            ''')

        conn.commit()
    finally:
        conn.close()

    logger.log_operation("store.init", "success",
                         {"path": str(path), "dimension": dim, "vectors": with_vectors})
    return path


def _embeddings_dimension(conn: sqlite3.Connection) -> Optional[int]:
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE name = 'embeddings'"
    ).fetchone()
    if not row or not row[0]:
        return None
    sql = row[0]
    marker = "float["
    start = sql.find(marker)
    if start == -1:
        return None
    end = sql.find("]", start)
    return int(sql[start + len(marker):end])


def health_check(db_path: Optional[Path] = None) -> Dict[str, Any]:
    """Report whether the store exists and its tables match the configuration."""
    path = Path(db_path) if db_path else get_db_path()
    result: Dict[str, Any] = {
        "db_path": str(path),
        "exists": path.exists(),
        "tables": [],
        "vector_runtime": _runtime.initialized,
        "embedding_dimension": None,
        "dimension_matches": None,
    }
    if not path.exists():
        return result

    conn = sqlite3.connect(path.resolve().as_uri() + "?mode=ro", uri=True)
    try:
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE name IN ('search', 'embeddings', 'embedding_cache')"
        ).fetchall()
        result["tables"] = sorted(r[0] for r in rows)
        dim = _embeddings_dimension(conn)
        result["embedding_dimension"] = dim
        if dim is not None:
            result["dimension_matches"] = dim == get_embed_dim()
    except sqlite3.Error as e:
        logger.error(f"Health check failed: {e}")
        result["error"] = str(e)
    finally:
        conn.close()

    return result


def has_vector_table(conn: sqlite3.Connection) -> bool:
    return conn.execute(
        "SELECT 1 FROM sqlite_master WHERE name = 'embeddings'"
    ).fetchone() is not None


def delete_records(conn: sqlite3.Connection, row_ids: List[int]) -> int:
    """
    Delete Records and their Embeddings. The caller owns the transaction.

    Embeddings are looked up by doc_id and removed by rowid.
    """
    if not row_ids:
        return 0

    placeholders = ", ".join("?" for _ in row_ids)
    if has_vector_table(conn):
        vector_rowids = [
            r[0] for r in conn.execute(
                f"SELECT rowid FROM embeddings WHERE doc_id IN ({placeholders})", row_ids
            ).fetchall()
        ]
        for rowid in vector_rowids:
            conn.execute("DELETE FROM embeddings WHERE rowid = ?", (rowid,))

    existing = conn.execute(
        f"SELECT COUNT(*) FROM search WHERE rowid IN ({placeholders})", row_ids
    ).fetchone()[0]
    conn.execute(f"DELETE FROM search WHERE rowid IN ({placeholders})", row_ids)
    return existing


def ensure_store_ready(db_path: Optional[Path] = None):
    """Check the store exists and the vector runtime is loaded, before any work."""
    path = Path(db_path) if db_path else get_db_path()
    if not path.exists():
        raise StoreNotFoundError(path)
    initialize_store_runtime()
