"""Multi-signal patent ranking: hybrid retrieval, LLM coherence, adaptive weighting and MMR."""

from patent_ranker.agent import RankingPipeline, build_request
from patent_ranker.models import Candidate, RetrievalHit, SearchRequest, SearchResponse

__all__ = [
    "RankingPipeline",
    "build_request",
    "Candidate",
    "RetrievalHit",
    "SearchRequest",
    "SearchResponse",
]
