"""
Weight combination: merge normalized signals into one relevance score.

final = sum(weight[s] * signal[s]) over the six signals, using whichever
WeightProfile the caller hands in. How that profile was chosen (fixed name or
adaptive policy) is not this module's concern.

Candidates under the semantic threshold are dropped before combining; this
is a hard filter, not a penalty.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Union

from patent_ranker.errors import UnknownProfileError
from patent_ranker.models import SIGNALS, ScoredCandidate, ScoreVector, WeightProfile

logger = logging.getLogger(__name__)

STANDARD_PROFILE = WeightProfile(
    name="standard",
    weights={
        "lexical": 0.15,
        "semantic": 0.25,
        "coherence": 0.30,
        "graph": 0.10,
        "feedback": 0.10,
        "historical_feedback": 0.10,
    },
)

# Leans on the dense and LLM signals, less on the sparse graph/feedback ones
ENHANCED_PROFILE = WeightProfile(
    name="enhanced",
    weights={
        "lexical": 0.20,
        "semantic": 0.35,
        "coherence": 0.30,
        "graph": 0.05,
        "feedback": 0.05,
        "historical_feedback": 0.05,
    },
)

# Debug field -> profile recomputed for side-by-side inspection
ALTERNATE_SCORES = {
    "original_score": STANDARD_PROFILE.name,
    "enhanced_score": ENHANCED_PROFILE.name,
}


class ProfileRegistry:
    """Named weight profiles. Unknown names are an error, never a silent default."""

    def __init__(self, profiles: Optional[Iterable[WeightProfile]] = None):
        self._profiles: Dict[str, WeightProfile] = {}
        for profile in profiles or (STANDARD_PROFILE, ENHANCED_PROFILE):
            self.register(profile)

    def register(self, profile: WeightProfile) -> None:
        unknown = set(profile.weights) - set(SIGNALS)
        if unknown:
            raise ValueError(f"Profile {profile.name!r} weights unknown signals: {sorted(unknown)}")
        self._profiles[profile.name] = profile

    def get(self, name: str) -> WeightProfile:
        try:
            return self._profiles[name]
        except KeyError:
            raise UnknownProfileError(name, self.names()) from None

    def names(self) -> List[str]:
        return list(self._profiles)

    def profiles(self) -> List[WeightProfile]:
        return list(self._profiles.values())

    def __contains__(self, name: str) -> bool:
        return name in self._profiles


def combine_scores(scores: Union[ScoreVector, Mapping[str, float]], profile: WeightProfile) -> float:
    """Exact weighted sum of the signals. Weights are used as given, not renormalized."""
    values = scores.signals() if isinstance(scores, ScoreVector) else scores
    return sum(profile.weight(signal) * values.get(signal, 0.0) for signal in SIGNALS)


def apply_threshold(candidates: List[ScoredCandidate], threshold: Optional[float]) -> List[ScoredCandidate]:
    """Drop every candidate whose semantic score is below the threshold."""
    if threshold is None:
        return list(candidates)
    kept = [c for c in candidates if c.scores.semantic >= threshold]
    dropped = len(candidates) - len(kept)
    if dropped:
        logger.info(f"Semantic threshold {threshold:.2f} dropped {dropped} of {len(candidates)} candidates")
    return kept


def combine_candidates(
    candidates: List[ScoredCandidate],
    profile: WeightProfile,
    alternates: Optional[Mapping[str, WeightProfile]] = None,
) -> List[ScoredCandidate]:
    """
    Set each candidate's final score from the profile.

    Debug output always names the profile and weights applied; each entry of
    `alternates` (debug field -> profile) adds the score recomputed with that
    profile.
    """
    weights_used = profile.as_dict()
    for c in candidates:
        c.scores.final = combine_scores(c.scores, profile)
        c.scores.diversity_penalty = 0.0
        c.debug["profile"] = profile.name
        c.debug["weights_used"] = dict(weights_used)
        c.debug["applied_score"] = c.scores.final
        for field_name, alternate in (alternates or {}).items():
            c.debug[field_name] = combine_scores(c.scores, alternate)
    return candidates
