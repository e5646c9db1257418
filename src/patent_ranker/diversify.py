"""
MMR diversity selection.

Greedy: take the highest-scoring remaining candidate, then penalize every
other remaining candidate by similarity(selected, candidate) * coefficient,
re-sort, repeat until the limit is reached or nothing is left. Exactly equal
final scores are ordered by candidate id so output is deterministic.

Pairwise similarity is pluggable: exact title match is the minimum signal,
embedding cosine similarity the default.
"""

import logging
from typing import Callable, List

from patent_ranker.models import Candidate, ScoredCandidate
from patent_ranker.vectors import cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_DIVERSITY_COEFFICIENT = 0.2

# similarity(a, b) -> [0, 1]
Similarity = Callable[[Candidate, Candidate], float]


class TitleSimilarity:
    """Same title (case-insensitive) counts as near-duplicate."""

    def __init__(self, same: float = 0.9, different: float = 0.1):
        self.same = same
        self.different = different

    def __call__(self, a: Candidate, b: Candidate) -> float:
        if a.title.strip().lower() == b.title.strip().lower():
            return self.same
        return self.different


class EmbeddingSimilarity:
    """Cosine similarity of dense embeddings; title match when either lacks one."""

    def __init__(self, fallback: Similarity = None):
        self.fallback = fallback or TitleSimilarity()

    def __call__(self, a: Candidate, b: Candidate) -> float:
        if a.embedding and b.embedding and len(a.embedding) == len(b.embedding):
            return cosine_similarity(a.embedding, b.embedding)
        return self.fallback(a, b)


def _rank_key(c: ScoredCandidate):
    return (-c.scores.final, c.id)


def mmr_select(
    candidates: List[ScoredCandidate],
    limit: int,
    similarity: Similarity = None,
    coefficient: float = DEFAULT_DIVERSITY_COEFFICIENT,
) -> List[ScoredCandidate]:
    """
    Select up to `limit` candidates, trading relevance against redundancy.

    Mutates final and diversity_penalty of the candidates it penalizes.
    Returns exactly min(limit, len(candidates)) candidates.
    """
    similarity = similarity or EmbeddingSimilarity()
    remaining = sorted(candidates, key=_rank_key)
    selected: List[ScoredCandidate] = []

    while remaining and len(selected) < max(limit, 0):
        chosen = remaining.pop(0)
        selected.append(chosen)

        for c in remaining:
            penalty = similarity(chosen.candidate, c.candidate) * coefficient
            c.scores.diversity_penalty += penalty
            c.scores.final -= penalty

        remaining.sort(key=_rank_key)

    logger.info(f"MMR selected {len(selected)} of {len(candidates)} candidates (coefficient={coefficient})")
    return selected
