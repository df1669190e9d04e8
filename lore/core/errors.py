"""
Error taxonomy for the knowledge index.
"""


class LoreError(Exception):
    """Base class for all knowledge index errors."""


class ConfigurationError(LoreError):
    """Fatal setup problem. Not retried."""


class StoreNotFoundError(ConfigurationError):
    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Database not found: {self.path}. Run lore-db-init first.")


class VectorExtensionError(ConfigurationError):
    """The sqlite-vec extension is unavailable or the runtime was not initialized."""


class EmbeddingDimensionError(ConfigurationError):
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Embedding dimension mismatch: expected {expected}, got {actual}")


class GuardrailViolation(LoreError):
    """An entry carried a metadata key reserved for the engine."""

    def __init__(self, key: str, source: str = ""):
        self.key = key
        self.source = source
        where = f" (source={source})" if source else ""
        super().__init__(f"Metadata key '{key}' is reserved for the index engine{where}")
