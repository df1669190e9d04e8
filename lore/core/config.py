"""
Runtime configuration for the knowledge index.
Every setting is read from the environment when requested so tests and
long-running processes see changes without a re-import.
"""

import os
from pathlib import Path
from typing import List, Optional, Tuple

# Version string
VERSION = "1.0.0"

# Embedding defaults
DEFAULT_EMBED_MODEL_NAME = "nomic-ai/nomic-embed-text-v1.5"
DEFAULT_EMBED_DIM = 768
EMBED_PROVIDERS = ("sentence_transformers", "hash")

# Hybrid fusion defaults
DEFAULT_VECTOR_WEIGHT = 0.7
DEFAULT_TEXT_WEIGHT = 0.3

# Contradiction resolver defaults
DEFAULT_RESOLVER_URL = "http://localhost:8080/v1/chat/completions"
DEFAULT_RESOLVER_MODEL = "mlx-community/Qwen2.5-7B-Instruct-4bit"
DEFAULT_RESOLVER_TIMEOUT_SEC = 3.0

# SQLite lock wait in milliseconds
BUSY_TIMEOUT_MS = 5000


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


def debug_enabled() -> bool:
    """Dynamic check for debug mode."""
    return _env_flag("DEBUG", "false")


def get_data_dir() -> Path:
    """Directory holding the store and the capture log."""
    explicit = os.getenv("LORE_DATA_DIR")
    if explicit:
        return Path(explicit).expanduser()
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / "lore"


def get_db_path() -> Path:
    explicit = os.getenv("LORE_DB_PATH")
    if explicit:
        return Path(explicit).expanduser()
    return get_data_dir() / "lore.db"


def get_log_path() -> Path:
    """Append-only capture log written by the upstream logger."""
    explicit = os.getenv("LORE_LOG_PATH")
    if explicit:
        return Path(explicit).expanduser()
    return get_data_dir() / "log.jsonl"


def get_vec_extension_path() -> Optional[str]:
    """Explicit sqlite-vec extension path, if one is configured."""
    return os.getenv("SQLITE_VEC_PATH") or None


def get_embed_provider() -> str:
    return os.getenv("EMBED_PROVIDER", "sentence_transformers").lower()


def get_embed_model_name() -> str:
    return os.getenv("EMBED_MODEL_NAME", DEFAULT_EMBED_MODEL_NAME)


def get_embed_dim() -> int:
    return int(os.getenv("EMBED_DIM", str(DEFAULT_EMBED_DIM)))


def get_hybrid_weights() -> Tuple[float, float]:
    """Return (vector_weight, text_weight)."""
    vector_weight = float(os.getenv("HYBRID_VECTOR_WEIGHT", str(DEFAULT_VECTOR_WEIGHT)))
    text_weight = float(os.getenv("HYBRID_TEXT_WEIGHT", str(DEFAULT_TEXT_WEIGHT)))
    return vector_weight, text_weight


def contradiction_enabled() -> bool:
    return _env_flag("CONTRADICTION_ENABLED", "true")


def get_resolver_url() -> str:
    return os.getenv("RESOLVER_URL", DEFAULT_RESOLVER_URL)


def get_resolver_model() -> str:
    return os.getenv("RESOLVER_MODEL", DEFAULT_RESOLVER_MODEL)


def get_resolver_timeout() -> float:
    return float(os.getenv("RESOLVER_TIMEOUT_SEC", str(DEFAULT_RESOLVER_TIMEOUT_SEC)))


def ensure_data_directory():
    """Ensure the directory holding the store exists."""
    get_db_path().parent.mkdir(parents=True, exist_ok=True)


def validate_config() -> List[str]:
    """
    Validate configuration values.

    Returns:
        List of configuration issues (empty if valid)
    """
    issues = []

    try:
        if get_embed_dim() <= 0:
            issues.append("EMBED_DIM must be positive")
    except ValueError:
        issues.append("EMBED_DIM must be an integer")

    if get_embed_provider() not in EMBED_PROVIDERS:
        issues.append(f"EMBED_PROVIDER must be one of: {', '.join(EMBED_PROVIDERS)}")

    try:
        vector_weight, text_weight = get_hybrid_weights()
        if vector_weight < 0 or text_weight < 0:
            issues.append("Hybrid weights must not be negative")
        elif vector_weight + text_weight == 0:
            issues.append("Hybrid weights must not both be zero")
    except ValueError:
        issues.append("Hybrid weights must be numbers")

    try:
        if get_resolver_timeout() <= 0:
            issues.append("RESOLVER_TIMEOUT_SEC must be positive")
    except ValueError:
        issues.append("RESOLVER_TIMEOUT_SEC must be a number")

    return issues
