"""
Capabilities the pipeline consumes.

The pipeline only talks to these protocols; concrete backends live in
patent_ranker.backends and tests supply in-memory fakes.
"""

from typing import List, Optional, Protocol

from patent_ranker.models import RetrievalHit


class LexicalSearcher(Protocol):
    """Full-text search over title/abstract."""

    async def search(self, text: str, limit: int) -> List[RetrievalHit]:
        ...


class VectorSearcher(Protocol):
    """Nearest-neighbour search over dense patent embeddings."""

    async def search(self, query_embedding: List[float], min_similarity: float, limit: int) -> List[RetrievalHit]:
        ...


class Embedder(Protocol):
    """Turns query text into the same vector space as the patent embeddings."""

    async def embed(self, text: str) -> List[float]:
        ...


class CoherenceScorer(Protocol):
    """Language-model relevance judgment, rating in [0, 10]."""

    async def score(self, query: str, candidate_text: str) -> float:
        ...


class GraphEmbeddingLookup(Protocol):
    """Graph (citation network) embedding of a patent, if it has one."""

    async def embedding_for(self, candidate_id: str) -> Optional[List[float]]:
        ...
