"""
Embedding providers and the embedding service.

Documents and queries are encoded with different task prefixes
("search_document: " / "search_query: ") as the nomic embedding models expect.
Vectors are stored as flat little-endian float32 blobs.
"""

import asyncio
import hashlib
import re
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np
from sentence_transformers import SentenceTransformer

from ..core.config import get_embed_dim, get_embed_model_name, get_embed_provider
from ..core.errors import ConfigurationError, EmbeddingDimensionError
from ..util.logging import logger

QUERY_PREFIX = "search_query: "
DOCUMENT_PREFIX = "search_document: "

_TOKEN = re.compile(r"[A-Za-z0-9_]+")


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for given text."""
        pass

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Batch form. Providers that can batch at the model level override this."""
        return [self.embed_text(t) for t in texts]

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic feature-hashing embedding provider.

    Each token is hashed into a signed bucket and the bucket counts are
    L2-normalized, so texts that share words end up close in cosine space.
    Useful offline and in tests, without model downloads.
    """

    def __init__(self, dimension: int = 768):
        self.dimension = dimension

    def embed_text(self, text: str) -> list[float]:
        vector = np.zeros(self.dimension, dtype=np.float32)
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode()).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign

        norm = np.linalg.norm(vector)
        if norm == 0:
            vector[0] = 1.0
        else:
            vector /= norm
        return vector.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    def __init__(self, model_name: str):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            # nomic models ship custom modeling code
            self._model = SentenceTransformer(
                self.model_name,
                trust_remote_code="nomic" in self.model_name,
            )
        return self._model

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False, normalize_embeddings=True)
        return embedding.tolist()

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        embeddings = self.model.encode(texts, convert_to_tensor=False, normalize_embeddings=True)
        return [e.tolist() for e in embeddings]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = self.model.get_sentence_embedding_dimension()
        return self._dimension


def create_provider(name: str, model_name: str, dimension: int) -> IEmbeddingProvider:
    if name == "hash":
        return DeterministicHashEmbedding(dimension)
    if name == "sentence_transformers":
        return SentenceTransformerEmbedding(model_name)
    raise ConfigurationError(f"Unknown embedding provider: {name}")


class EmbeddingService:
    """
    Turns text into fixed-dimension vectors.

    The provider loads lazily on first use or eagerly via warm_up().
    Inference calls are serialized by an internal lock.
    """

    def __init__(self, model_name: str = None, dimension: int = None,
                 provider: Optional[IEmbeddingProvider] = None):
        """
        Initialize the embedding service.

        Args:
            model_name: Model name to use, defaults to config setting
            dimension: Expected vector length, defaults to config setting
            provider: Explicit provider, otherwise built from EMBED_PROVIDER
        """
        self.dimension = dimension or get_embed_dim()
        self._provider = provider
        if provider is not None:
            # explicit providers are owned by the caller and survive shutdown()
            self.provider_name = None
            self.model_name = model_name or getattr(provider, "model_name", type(provider).__name__)
        else:
            self.provider_name = get_embed_provider()
            self.model_name = model_name or get_embed_model_name()
        self._load_lock = threading.Lock()
        self._infer_lock = threading.Lock()

    @property
    def model_identifier(self) -> str:
        """Identifier recorded alongside cached vectors."""
        if isinstance(self._provider, DeterministicHashEmbedding) or self.provider_name == "hash":
            return f"hash-{self.dimension}"
        return self.model_name

    @property
    def provider(self) -> IEmbeddingProvider:
        """Lazy-loaded embedding provider."""
        if self._provider is None:
            self.warm_up()
        return self._provider

    def warm_up(self):
        """Load the provider once."""
        with self._load_lock:
            if self._provider is None:
                self._provider = create_provider(self.provider_name, self.model_name, self.dimension)
                logger.log_vector_operation("warm_up", self.model_name,
                                            {"provider": self.provider_name, "dimension": self.dimension})

    def shutdown(self):
        """Release the loaded model. A later call loads it again."""
        with self._load_lock:
            if self.provider_name is not None:
                self._provider = None

    def _check(self, vector: List[float]) -> List[float]:
        if len(vector) != self.dimension:
            raise EmbeddingDimensionError(self.dimension, len(vector))
        return vector

    def _embed(self, texts: List[str]) -> List[List[float]]:
        provider = self.provider
        with self._infer_lock:
            vectors = provider.embed_texts(texts)
        return [self._check(list(v)) for v in vectors]

    def embed_query(self, text: str) -> List[float]:
        return self._embed([QUERY_PREFIX + text])[0]

    def embed_document(self, text: str) -> List[float]:
        return self._embed([DOCUMENT_PREFIX + text])[0]

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return self._embed([DOCUMENT_PREFIX + t for t in texts])

    async def aembed_query(self, text: str) -> List[float]:
        return await asyncio.to_thread(self.embed_query, text)


def serialize_embedding(vector) -> bytes:
    """Flat little-endian float32 blob."""
    return np.asarray(vector, dtype="<f4").tobytes()


def deserialize_embedding(blob: bytes) -> List[float]:
    return np.frombuffer(blob, dtype="<f4").tolist()


_default_service: Optional[EmbeddingService] = None
_default_lock = threading.Lock()


def get_embedding_service() -> EmbeddingService:
    """Process-wide default service, created once."""
    global _default_service
    with _default_lock:
        if _default_service is None:
            _default_service = EmbeddingService()
        return _default_service


def reset_embedding_service():
    """Drop the process-wide service so the next call rebuilds it from config."""
    global _default_service
    with _default_lock:
        if _default_service is not None:
            _default_service.shutdown()
        _default_service = None
