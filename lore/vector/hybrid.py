"""
Hybrid retrieval: weighted fusion of BM25 and vector similarity.

Both sub-searches over-fetch so that Records strong on only one side still
make it into the fused ranking.
"""

import asyncio
from typing import Dict, List, Optional

from ..core.config import get_hybrid_weights
from ..core.query import FilterValue
from ..core.schema import HybridResult, SearchResult, SemanticResult
from ..core.search_service import search
from ..util.logging import logger
from .embeddings import EmbeddingService, get_embedding_service
from .semantic import search_by_vector

MIN_FETCH = 50


def bm25_to_score(rank: float) -> float:
    """Map an FTS5 rank (more negative is better) into [0, 1)."""
    return 1.0 - 1.0 / (1.0 + abs(rank))


def distance_to_score(distance: float) -> float:
    """Map a cosine distance in [0, 2] into [0, 1]."""
    return max(0.0, 1.0 - distance / 2.0)


def fetch_limit(limit: int) -> int:
    return max(2 * limit, MIN_FETCH)


def resolve_weights(vector_weight: Optional[float] = None,
                    text_weight: Optional[float] = None):
    default_vector, default_text = get_hybrid_weights()
    vector_weight = default_vector if vector_weight is None else vector_weight
    text_weight = default_text if text_weight is None else text_weight
    if vector_weight < 0 or text_weight < 0:
        raise ValueError("Hybrid weights must not be negative")
    return vector_weight, text_weight


def fuse_results(lexical: List[SearchResult], semantic: List[SemanticResult],
                 vector_weight: float, text_weight: float, limit: int) -> List[HybridResult]:
    """
    Merge both result sets by row_id and rank by weighted score.

    A side that did not return a row contributes 0. When a row appears on
    both sides the lexical snippet is kept as content. Ties break on row_id.
    """
    merged: Dict[int, HybridResult] = {}

    for r in semantic:
        merged[r.row_id] = HybridResult(
            row_id=r.row_id, source=r.source, title=r.title, content=r.content,
            metadata=r.metadata, topic=r.topic, type=r.type, timestamp=r.timestamp,
            text_score=0.0, vector_score=distance_to_score(r.distance), fused_score=0.0,
        )

    for r in lexical:
        text_score = bm25_to_score(r.rank)
        existing = merged.get(r.row_id)
        if existing:
            existing.content = r.content
            existing.text_score = text_score
        else:
            merged[r.row_id] = HybridResult(
                row_id=r.row_id, source=r.source, title=r.title, content=r.content,
                metadata=r.metadata, topic=r.topic, type=r.type, timestamp=r.timestamp,
                text_score=text_score, vector_score=0.0, fused_score=0.0,
            )

    for result in merged.values():
        result.fused_score = vector_weight * result.vector_score + text_weight * result.text_score

    ranked = sorted(merged.values(), key=lambda r: (-r.fused_score, r.row_id))
    return ranked[:limit]


async def hybrid_search(query: str, source: FilterValue = None, topic: Optional[str] = None,
                        type: Optional[str] = None, limit: int = 20,
                        vector_weight: Optional[float] = None, text_weight: Optional[float] = None,
                        embedding_service: Optional[EmbeddingService] = None) -> List[HybridResult]:
    """Run lexical and semantic search concurrently and fuse the results."""
    vector_weight, text_weight = resolve_weights(vector_weight, text_weight)
    fetch = fetch_limit(limit)

    async def semantic_side() -> List[SemanticResult]:
        if not query.strip():
            return []
        service = embedding_service or get_embedding_service()
        query_vector = await service.aembed_query(query)
        return await asyncio.to_thread(search_by_vector, query_vector, source=source,
                                       topic=topic, type=type, limit=fetch)

    lexical, semantic = await asyncio.gather(
        asyncio.to_thread(search, query, source=source, type=type, topic=topic, limit=fetch),
        semantic_side(),
    )

    results = fuse_results(lexical, semantic, vector_weight, text_weight, limit)
    logger.log_operation("search.hybrid", "success", {
        "query": query[:50],
        "lexical": len(lexical),
        "semantic": len(semantic),
        "results": len(results),
    })
    return results


def hybrid_search_sync(query: str, **kwargs) -> List[HybridResult]:
    """Blocking wrapper for callers without an event loop."""
    return asyncio.run(hybrid_search(query, **kwargs))
