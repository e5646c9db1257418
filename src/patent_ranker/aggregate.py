"""
Candidate merging: union lexical and vector hits into one candidate set.

Takes RetrievalHit objects from both retrieval sources and:
1. Groups by candidate id (each id appears exactly once)
2. Keeps the raw score of each source that found it (missing source = 0)
3. Fills in embeddings from whichever hit carried them

No ranking happens here; the result keeps first-seen order.
"""

import logging
from dataclasses import replace
from typing import Dict, List

from patent_ranker.models import RetrievalHit, ScoredCandidate, ScoreVector

logger = logging.getLogger(__name__)

LEXICAL = "lexical"
VECTOR = "vector"

_SIGNAL_FOR_SOURCE = {
    LEXICAL: "lexical",
    VECTOR: "semantic",
}


def merge_hits(lexical_hits: List[RetrievalHit], vector_hits: List[RetrievalHit]) -> List[ScoredCandidate]:
    """
    Merge both hit lists by candidate id.

    - A candidate found by both sources carries both raw scores
    - A candidate found by one source gets 0 for the other
    - If a source returns the same id twice, the higher score wins
    """
    merged: Dict[str, ScoredCandidate] = {}

    for hit in list(lexical_hits) + list(vector_hits):
        signal = _SIGNAL_FOR_SOURCE[hit.source]
        cid = hit.candidate.id

        if cid not in merged:
            merged[cid] = ScoredCandidate(candidate=hit.candidate, scores=ScoreVector())
            merged[cid].debug["sources"] = []
        entry = merged[cid]

        if getattr(entry.scores, signal) < hit.score:
            entry.scores.set_signal(signal, hit.score)
        if hit.source not in entry.debug["sources"]:
            entry.debug["sources"].append(hit.source)

        # Lexical rows may come without vectors; take them from whichever hit has them
        candidate = entry.candidate
        if candidate.embedding is None and hit.candidate.embedding is not None:
            candidate = replace(candidate, embedding=hit.candidate.embedding)
        if candidate.graph_embedding is None and hit.candidate.graph_embedding is not None:
            candidate = replace(candidate, graph_embedding=hit.candidate.graph_embedding)
        entry.candidate = candidate

    candidates = list(merged.values())
    total = len(lexical_hits) + len(vector_hits)
    logger.info(
        f"Merged {total} hits into {len(candidates)} unique candidates "
        f"(lexical={len(lexical_hits)}, vector={len(vector_hits)}, overlap={total - len(candidates)})"
    )
    return candidates
