"""
Adaptive weighting and historical feedback.

The combiner only needs "something that produces a WeightProfile for a query
context". FeedbackStore is the default such policy: a UCB1 bandit per context
key over the registered profiles, rewarded with outcomes recorded after each
run. It also keeps per-patent relevance votes that feed the
historical_feedback signal.

FixedProfilePolicy is the other policy shipped here: pass it to
RankingPipeline(policy=...) to pin what "adaptive" requests resolve to.
Any object with profile_for and record can take its place.

The store is the only state shared between requests. A run reads it once
(profile_for + snapshot) and writes to it only after it has finished
(record), so its view never changes mid-run.
"""

import logging
import math
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Protocol

from patent_ranker.combine import ProfileRegistry
from patent_ranker.models import FeedbackOutcome, QueryContext, WeightProfile, clamp01

logger = logging.getLogger(__name__)


class WeightPolicy(Protocol):
    """Chooses a weight profile for a query context and learns from outcomes."""

    def profile_for(self, context: QueryContext) -> WeightProfile:
        ...

    def record(self, context: QueryContext, outcome: FeedbackOutcome) -> None:
        ...


class FeedbackHistory(Protocol):
    """Per-patent feedback statistics, read once per run."""

    def snapshot(self) -> Mapping[str, float]:
        ...


class FixedProfilePolicy:
    """Always the same profile; outcomes are ignored."""

    def __init__(self, profile: WeightProfile):
        self.profile = profile

    def profile_for(self, context: QueryContext) -> WeightProfile:
        return self.profile

    def record(self, context: QueryContext, outcome: FeedbackOutcome) -> None:
        logger.debug(f"Fixed policy ignoring outcome for {context.key}")


@dataclass
class ArmStats:
    pulls: int = 0
    reward_sum: float = 0.0

    @property
    def mean(self) -> float:
        return self.reward_sum / self.pulls if self.pulls else 0.0


@dataclass
class VoteStats:
    relevant: int = 0
    irrelevant: int = 0


class FeedbackStore:
    """
    UCB1 profile selection per query context, plus per-patent vote counts.

    Thread-safe: reads and writes take the same lock. Selection is
    deterministic (untried profiles first in registry order, then highest
    upper confidence bound, ties to registry order).
    """

    def __init__(self, registry: Optional[ProfileRegistry] = None, exploration: float = 1.0, vote_prior: float = 1.0):
        self.registry = registry or ProfileRegistry()
        self.exploration = exploration
        self.vote_prior = vote_prior
        self._lock = threading.Lock()
        self._arms: Dict[str, Dict[str, ArmStats]] = {}
        self._votes: Dict[str, VoteStats] = {}

    def profile_for(self, context: QueryContext) -> WeightProfile:
        names = self.registry.names()
        with self._lock:
            arms = {name: ArmStats(s.pulls, s.reward_sum) for name, s in self._arms.get(context.key, {}).items()}

        for name in names:
            if arms.get(name, ArmStats()).pulls == 0:
                logger.info(f"Adaptive weighting for {context.key}: trying {name!r}")
                return self.registry.get(name)

        total = sum(arms[name].pulls for name in names)
        best_name, best_bound = names[0], -math.inf
        for name in names:
            stats = arms[name]
            bound = stats.mean + self.exploration * math.sqrt(2 * math.log(total) / stats.pulls)
            if bound > best_bound:
                best_name, best_bound = name, bound
        logger.info(f"Adaptive weighting for {context.key}: {best_name!r} (ucb={best_bound:.3f})")
        return self.registry.get(best_name)

    def record(self, context: QueryContext, outcome: FeedbackOutcome) -> None:
        """Fold a finished run's outcome into the statistics."""
        self.registry.get(outcome.profile)  # unknown profile names are rejected
        reward = clamp01(outcome.reward)
        with self._lock:
            arm = self._arms.setdefault(context.key, {}).setdefault(outcome.profile, ArmStats())
            arm.pulls += 1
            arm.reward_sum += reward
            for cid in outcome.relevant_ids:
                self._votes.setdefault(cid, VoteStats()).relevant += 1
            for cid in outcome.irrelevant_ids:
                self._votes.setdefault(cid, VoteStats()).irrelevant += 1
        logger.info(
            f"Recorded outcome for {context.key}: profile={outcome.profile!r} reward={reward:.2f} "
            f"(+{len(outcome.relevant_ids)}/-{len(outcome.irrelevant_ids)} votes)"
        )

    def historical_score(self, votes: VoteStats) -> float:
        # Smoothed share of relevant votes; never-voted patents score 0
        return votes.relevant / (votes.relevant + votes.irrelevant + self.vote_prior)

    def snapshot(self) -> Mapping[str, float]:
        """Read-only historical feedback per patent id, frozen at call time."""
        with self._lock:
            scores = {cid: self.historical_score(v) for cid, v in self._votes.items()}
        return MappingProxyType(scores)

    def arm_stats(self, context: QueryContext) -> Dict[str, ArmStats]:
        with self._lock:
            return {name: ArmStats(s.pulls, s.reward_sum) for name, s in self._arms.get(context.key, {}).items()}


def reward_from_votes(ranked_ids: Iterable[str], relevant_ids: Iterable[str]) -> float:
    """
    Reciprocal rank of the first relevant result (0 when none is relevant).
    A ready-made reward for callers that only know which results were useful.
    """
    relevant = set(relevant_ids)
    for rank, cid in enumerate(ranked_ids, start=1):
        if cid in relevant:
            return 1.0 / rank
    return 0.0


def outcome_from_votes(
    profile: str,
    ranked_ids: List[str],
    relevant_ids: List[str],
    irrelevant_ids: Optional[List[str]] = None,
) -> FeedbackOutcome:
    return FeedbackOutcome(
        profile=profile,
        reward=reward_from_votes(ranked_ids, relevant_ids),
        relevant_ids=list(relevant_ids),
        irrelevant_ids=list(irrelevant_ids or []),
    )
