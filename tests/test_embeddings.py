"""
Embedding providers, the embedding service and vector serialization.
"""

import asyncio
import struct
from unittest.mock import MagicMock

import numpy as np
import pytest

from lore.core.errors import EmbeddingDimensionError
from lore.vector.embeddings import (
    DOCUMENT_PREFIX,
    QUERY_PREFIX,
    DeterministicHashEmbedding,
    EmbeddingService,
    IEmbeddingProvider,
    deserialize_embedding,
    get_embedding_service,
    reset_embedding_service,
    serialize_embedding,
)


def _cosine(a, b):
    a, b = np.asarray(a), np.asarray(b)
    return float(a @ b / (np.linalg.norm(a) * np.linalg.norm(b)))


def test_embedding_interface():
    embedder = DeterministicHashEmbedding(dimension=64)
    assert isinstance(embedder, IEmbeddingProvider)
    assert embedder.get_dimension() == 64


def test_hash_embedding_is_deterministic_and_normalized():
    embedder = DeterministicHashEmbedding(dimension=64)
    v1 = embedder.embed_text("Always verify store path")
    v2 = DeterministicHashEmbedding(dimension=64).embed_text("Always verify store path")

    assert v1 == v2
    assert len(v1) == 64
    assert np.linalg.norm(v1) == pytest.approx(1.0, abs=1e-5)


def test_hash_embedding_shared_words_are_closer():
    embedder = DeterministicHashEmbedding(dimension=256)
    base = embedder.embed_text("sqlite store path configuration")
    near = embedder.embed_text("the sqlite store path")
    far = embedder.embed_text("guitar chord practice")

    assert _cosine(base, near) > _cosine(base, far)


def test_hash_embedding_of_empty_text():
    vector = DeterministicHashEmbedding(dimension=8).embed_text("")
    assert vector == [1.0] + [0.0] * 7


def test_service_applies_prefixes():
    provider = MagicMock(spec=IEmbeddingProvider)
    provider.embed_texts.side_effect = lambda texts: [[0.0, 1.0] for _ in texts]
    service = EmbeddingService(dimension=2, provider=provider)

    service.embed_query("what is lore")
    service.embed_documents(["doc one", "doc two"])

    assert provider.embed_texts.call_args_list[0].args[0] == [QUERY_PREFIX + "what is lore"]
    assert provider.embed_texts.call_args_list[1].args[0] == [
        DOCUMENT_PREFIX + "doc one", DOCUMENT_PREFIX + "doc two"
    ]


def test_service_rejects_wrong_dimension():
    provider = MagicMock(spec=IEmbeddingProvider)
    provider.embed_texts.return_value = [[0.1, 0.2, 0.3]]
    service = EmbeddingService(dimension=4, provider=provider)

    with pytest.raises(EmbeddingDimensionError) as exc_info:
        service.embed_document("text")
    assert exc_info.value.expected == 4
    assert exc_info.value.actual == 3


def test_service_empty_batch_skips_provider():
    provider = MagicMock(spec=IEmbeddingProvider)
    service = EmbeddingService(dimension=4, provider=provider)
    assert service.embed_documents([]) == []
    provider.embed_texts.assert_not_called()


def test_service_builds_provider_from_config(lore_env):
    service = EmbeddingService()
    assert service.provider_name == "hash"
    assert service.model_identifier == "hash-384"

    service.warm_up()
    assert isinstance(service.provider, DeterministicHashEmbedding)
    assert len(service.embed_query("hello")) == 384

    service.shutdown()
    assert service._provider is None


def test_async_query_matches_sync(embedding_service):
    sync_vector = embedding_service.embed_query("semantic recall")
    async_vector = asyncio.run(embedding_service.aembed_query("semantic recall"))
    assert sync_vector == async_vector


def test_default_service_is_shared(lore_env):
    first = get_embedding_service()
    assert get_embedding_service() is first

    reset_embedding_service()
    assert get_embedding_service() is not first


def test_serialization_is_little_endian_float32():
    vector = [0.5, -1.25, 3.0]
    blob = serialize_embedding(vector)

    assert len(blob) == 12
    assert struct.unpack("<3f", blob) == (0.5, -1.25, 3.0)
    assert deserialize_embedding(blob) == vector


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
