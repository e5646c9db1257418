"""Tests for patent_ranker.signals - top-K selection, bounded calls, PRF and graph scoring."""

import asyncio

import pytest

from patent_ranker.combine import STANDARD_PROFILE
from patent_ranker.models import Candidate, ScoredCandidate, ScoreVector, SignalOutcome
from patent_ranker.signals import (
    apply_outcomes,
    bounded_call,
    graph_scores,
    provisional_blend,
    resolve_by_deadline,
    score_feedback,
    select_top_k,
)


def scored(cid, lexical=0.0, semantic=0.0, embedding=None, **signals):
    return ScoredCandidate(
        candidate=Candidate(id=cid, title=f"Patent {cid}", embedding=embedding),
        scores=ScoreVector(lexical=lexical, semantic=semantic, **signals),
    )


class TestTopK:
    def test_provisional_blend(self):
        assert provisional_blend(scored("a", lexical=1.0, semantic=0.5)) == pytest.approx(0.7)

    def test_orders_by_blend_then_id(self):
        candidates = [
            scored("b", lexical=1.0),
            scored("a", lexical=1.0),
            scored("c", semantic=0.9),
            scored("d", semantic=0.1),
        ]
        assert [c.id for c in select_top_k(candidates, 3)] == ["c", "a", "b"]

    def test_k_larger_than_pool(self):
        assert len(select_top_k([scored("a")], 20)) == 1


class TestBoundedCall:
    def test_success(self):
        async def call():
            return 7.0

        outcome = asyncio.run(bounded_call(asyncio.Semaphore(1), "ok", call, timeout=1.0))
        assert outcome == SignalOutcome.success(7.0)

    def test_timeout(self):
        async def call():
            await asyncio.sleep(1.0)

        outcome = asyncio.run(bounded_call(asyncio.Semaphore(1), "slow", call, timeout=0.01))
        assert outcome.status == SignalOutcome.TIMED_OUT
        assert outcome.resolve(0.5) == 0.5

    def test_failure(self):
        async def call():
            raise RuntimeError("boom")

        outcome = asyncio.run(bounded_call(asyncio.Semaphore(1), "bad", call, timeout=1.0))
        assert outcome.status == SignalOutcome.FAILED
        assert outcome.reason == "boom"


class TestResolveByDeadline:
    def test_pending_calls_time_out_at_deadline(self):
        async def fast():
            return SignalOutcome.success(1.0)

        async def slow():
            await asyncio.sleep(5.0)
            return SignalOutcome.success(2.0)

        async def scenario():
            deadline = asyncio.get_running_loop().time() + 0.05
            return await resolve_by_deadline({"fast": fast(), "slow": slow()}, deadline)

        outcomes = asyncio.run(scenario())
        assert outcomes["fast"].value == 1.0
        assert outcomes["slow"].status == SignalOutcome.TIMED_OUT

    def test_no_calls(self):
        assert asyncio.run(resolve_by_deadline({}, 0.0)) == {}


class TestApplyOutcomes:
    def test_fallback_is_recorded(self):
        candidates = [scored("a"), scored("b")]
        outcomes = {"a": SignalOutcome.success(0.8), "b": SignalOutcome.failed("down")}
        assert apply_outcomes(candidates, "coherence", outcomes, 0.5) == 1
        assert candidates[0].scores.coherence == 0.8
        assert candidates[1].scores.coherence == 0.5
        assert candidates[1].debug["fallbacks"] == {"coherence": "failed"}

    def test_missing_outcome_counts_as_timed_out(self):
        candidates = [scored("a")]
        apply_outcomes(candidates, "graph", {}, 0.0)
        assert candidates[0].debug["fallbacks"] == {"graph": "timed_out"}


class TestGraphScores:
    def test_similarity_to_seed_centroid(self):
        candidates = [
            scored("a", semantic=0.9),
            scored("b", semantic=0.8),
            scored("c", semantic=0.1),
        ]
        embeddings = {
            "a": SignalOutcome.success([1.0, 0.0]),
            "b": SignalOutcome.success([1.0, 0.0]),
            "c": SignalOutcome.success([0.0, 1.0]),
        }
        scores = graph_scores(candidates, embeddings, seed_count=2)
        assert scores["a"].value == pytest.approx(1.0)
        assert scores["c"].value == pytest.approx(0.0)

    def test_missing_embedding_scores_zero_and_failure_passes_through(self):
        candidates = [scored("a", semantic=0.9), scored("b"), scored("c")]
        embeddings = {
            "a": SignalOutcome.success([1.0, 0.0]),
            "b": SignalOutcome.success(None),
            "c": SignalOutcome.failed("lookup failed"),
        }
        scores = graph_scores(candidates, embeddings, seed_count=5)
        assert scores["b"] == SignalOutcome.success(0.0)
        assert scores["c"].status == SignalOutcome.FAILED

    def test_no_seed_embeddings(self):
        candidates = [scored("a")]
        scores = graph_scores(candidates, {"a": SignalOutcome.success(None)}, seed_count=5)
        assert scores["a"].value == 0.0


class TestFeedback:
    def test_prf_scores_against_seed_centroid(self):
        candidates = [
            scored("a", lexical=1.0, semantic=0.9, coherence=0.9, embedding=[1.0, 0.0]),
            scored("b", lexical=1.0, semantic=0.8, coherence=0.8, embedding=[1.0, 0.0]),
            scored("c", semantic=0.1, embedding=[0.0, 1.0]),
        ]
        seeds = score_feedback(candidates, STANDARD_PROFILE, top_m=2)
        assert seeds == 2
        assert candidates[0].scores.feedback == pytest.approx(1.0)
        assert candidates[2].scores.feedback == pytest.approx(0.0)

    def test_candidates_without_embeddings_score_zero(self):
        candidates = [scored("a", semantic=0.9), scored("b", semantic=0.5)]
        assert score_feedback(candidates, STANDARD_PROFILE, top_m=5) == 0
        assert [c.scores.feedback for c in candidates] == [0.0, 0.0]
