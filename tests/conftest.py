"""
Shared fixtures: isolated environment, temporary stores and a deterministic
embedding service.
"""

import sqlite3

import pytest

from lore.core import db as db_module
from lore.core.db import StoreRuntime, init_db
from lore.vector import embeddings as embeddings_module
from lore.vector.embeddings import DeterministicHashEmbedding, EmbeddingService

TEST_DIM = 384


def _vector_extension_available() -> bool:
    conn = sqlite3.connect(":memory:")
    try:
        if not hasattr(conn, "enable_load_extension"):
            return False
        import sqlite_vec
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        return True
    except (sqlite3.Error, AttributeError, ImportError):
        return False
    finally:
        conn.close()


VEC_AVAILABLE = _vector_extension_available()


@pytest.fixture(autouse=True)
def lore_env(tmp_path, monkeypatch):
    """Point every path at a temp dir and reset process-wide state."""
    monkeypatch.setenv("LORE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("LORE_DB_PATH", str(tmp_path / "lore.db"))
    monkeypatch.setenv("LORE_LOG_PATH", str(tmp_path / "log.jsonl"))
    monkeypatch.setenv("EMBED_PROVIDER", "hash")
    monkeypatch.setenv("EMBED_DIM", str(TEST_DIM))
    monkeypatch.setenv("CONTRADICTION_ENABLED", "false")
    monkeypatch.delenv("SQLITE_VEC_PATH", raising=False)
    monkeypatch.delenv("HYBRID_VECTOR_WEIGHT", raising=False)
    monkeypatch.delenv("HYBRID_TEXT_WEIGHT", raising=False)
    monkeypatch.setattr(db_module, "_runtime", StoreRuntime())
    monkeypatch.setattr(embeddings_module, "_default_service", None)
    return tmp_path


@pytest.fixture
def fts_store(lore_env):
    """Store with keyword search and cache tables only."""
    return init_db(with_vectors=False)


@pytest.fixture
def vec_store(lore_env):
    """Full store including the sqlite-vec embeddings table."""
    if not VEC_AVAILABLE:
        pytest.skip("sqlite3 cannot load the sqlite-vec extension here")
    return init_db(dimension=TEST_DIM)


@pytest.fixture
def embedding_service():
    return EmbeddingService(dimension=TEST_DIM, provider=DeterministicHashEmbedding(TEST_DIM))
