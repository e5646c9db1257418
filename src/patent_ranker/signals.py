"""
Signal scoring for the top candidates.

Only the top-K candidates by a provisional lexical/semantic blend are scored
further; the coherence judge is too slow and costly to run on everything.

1. Coherence - LLM rating 0-10, normalized to 0-1 (fallback 0.5)
2. Graph similarity - candidate graph embedding vs the query's graph
   representation, the centroid of the top-M seeds' graph embeddings (fallback 0)
3. Feedback (PRF) - top-M by an initial blend define an expansion vector,
   every candidate is re-scored against it (local, no second retrieval)

External calls go through one fixed-size worker pool, each with its own
timeout. Calls still running at the request deadline are cancelled and their
candidates get the fallback value. Every call resolves to a SignalOutcome, so
nothing here raises past the pipeline.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from patent_ranker.combine import combine_scores
from patent_ranker.config import PipelineSettings
from patent_ranker.interfaces import CoherenceScorer, GraphEmbeddingLookup
from patent_ranker.models import ScoredCandidate, SignalOutcome, WeightProfile, clamp01
from patent_ranker.timing import TraceRecorder
from patent_ranker.vectors import centroid, cosine_similarity

logger = logging.getLogger(__name__)

STAGE_COHERENCE = "LLM Coherence Scoring"
STAGE_GRAPH = "GNN Embedding Similarity"
STAGE_PRF = "PRF Expansion"

PROVISIONAL_WEIGHTS = {
    "lexical": 0.4,
    "semantic": 0.6,
}

GRAPH_FALLBACK = 0.0

# Signals known before PRF runs
_INITIAL_SIGNALS = ("lexical", "semantic", "coherence", "graph")


def provisional_blend(candidate: ScoredCandidate) -> float:
    scores = candidate.scores
    return PROVISIONAL_WEIGHTS["lexical"] * scores.lexical + PROVISIONAL_WEIGHTS["semantic"] * scores.semantic


def select_top_k(candidates: List[ScoredCandidate], k: int) -> List[ScoredCandidate]:
    """Top-k by provisional blend, ties broken by id."""
    ranked = sorted(candidates, key=lambda c: (-provisional_blend(c), c.id))
    return ranked[:max(k, 0)]


async def bounded_call(
    semaphore: asyncio.Semaphore,
    label: str,
    call: Callable[[], Awaitable],
    timeout: float,
) -> SignalOutcome:
    """Run one external call inside the worker pool and turn its result into an outcome."""
    async with semaphore:
        try:
            value = await asyncio.wait_for(call(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{label} timed out after {timeout:.1f}s")
            return SignalOutcome.timed_out()
        except Exception as e:
            logger.warning(f"{label} failed: {e}")
            return SignalOutcome.failed(str(e) or type(e).__name__)
    return SignalOutcome.success(value)


async def resolve_by_deadline(
    calls: Mapping[str, Awaitable[SignalOutcome]],
    deadline: float,
) -> Dict[str, SignalOutcome]:
    """
    Await all calls until the loop-time deadline.
    Calls still pending at the deadline are cancelled and reported as timed out.
    """
    if not calls:
        return {}
    tasks = {key: asyncio.ensure_future(call) for key, call in calls.items()}
    remaining = max(0.0, deadline - asyncio.get_running_loop().time())
    done, pending = await asyncio.wait(list(tasks.values()), timeout=remaining)

    if pending:
        logger.warning(f"Request deadline reached, abandoning {len(pending)} signal calls")
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    outcomes = {}
    for key, task in tasks.items():
        if task in done and not task.cancelled():
            outcomes[key] = task.result()
        else:
            outcomes[key] = SignalOutcome.timed_out()
    return outcomes


async def fetch_coherence(
    query: str,
    candidates: List[ScoredCandidate],
    judge: Optional[CoherenceScorer],
    semaphore: asyncio.Semaphore,
    settings: PipelineSettings,
    deadline: float,
) -> Dict[str, SignalOutcome]:
    """Coherence outcome per candidate id, value already normalized to 0-1."""
    if judge is None:
        return {c.id: SignalOutcome.failed("no coherence judge configured") for c in candidates}

    async def rate(c: ScoredCandidate) -> SignalOutcome:
        outcome = await bounded_call(
            semaphore,
            f"Coherence judgment for {c.id}",
            lambda: judge.score(query, c.candidate.text),
            settings.coherence_timeout,
        )
        if not outcome.ok:
            return outcome
        return SignalOutcome.success(clamp01(float(outcome.value) / 10.0))

    return await resolve_by_deadline({c.id: rate(c) for c in candidates}, deadline)


async def fetch_graph_embeddings(
    candidates: List[ScoredCandidate],
    lookup: Optional[GraphEmbeddingLookup],
    semaphore: asyncio.Semaphore,
    settings: PipelineSettings,
    deadline: float,
) -> Dict[str, SignalOutcome]:
    """Graph embedding per candidate id. Success with None means the patent has none."""
    outcomes: Dict[str, SignalOutcome] = {}
    calls = {}
    for c in candidates:
        if c.candidate.graph_embedding is not None:
            outcomes[c.id] = SignalOutcome.success(c.candidate.graph_embedding)
        elif lookup is None:
            outcomes[c.id] = SignalOutcome.success(None)
        else:
            calls[c.id] = bounded_call(
                semaphore,
                f"Graph lookup for {c.id}",
                lambda cid=c.id: lookup.embedding_for(cid),
                settings.graph_timeout,
            )
    outcomes.update(await resolve_by_deadline(calls, deadline))
    return outcomes


def graph_scores(
    candidates: List[ScoredCandidate],
    embeddings: Mapping[str, SignalOutcome],
    seed_count: int,
) -> Dict[str, SignalOutcome]:
    """Similarity of each candidate's graph embedding to the seeds' centroid."""
    seeds = []
    for c in select_top_k(candidates, seed_count):
        outcome = embeddings.get(c.id)
        if outcome is not None and outcome.ok and outcome.value is not None:
            seeds.append(outcome.value)
    query_graph = centroid(seeds)

    scores = {}
    for c in candidates:
        outcome = embeddings.get(c.id, SignalOutcome.timed_out())
        if not outcome.ok:
            scores[c.id] = outcome
        elif outcome.value is None or query_graph is None:
            scores[c.id] = SignalOutcome.success(0.0)
        else:
            scores[c.id] = SignalOutcome.success(cosine_similarity(outcome.value, query_graph))
    return scores


def apply_outcomes(
    candidates: List[ScoredCandidate],
    signal: str,
    outcomes: Mapping[str, SignalOutcome],
    fallback: float,
) -> int:
    """Write resolved values into the score vectors; returns how many fell back."""
    fallbacks = 0
    for c in candidates:
        outcome = outcomes.get(c.id, SignalOutcome.timed_out())
        c.scores.set_signal(signal, outcome.resolve(fallback))
        if not outcome.ok:
            fallbacks += 1
            c.debug.setdefault("fallbacks", {})[signal] = outcome.status
    return fallbacks


def score_feedback(candidates: List[ScoredCandidate], profile: WeightProfile, top_m: int) -> int:
    """
    Pseudo-relevance feedback over the already-scored candidates.
    Returns how many seed embeddings formed the expansion vector.
    """
    def initial_blend(c: ScoredCandidate) -> float:
        known = {signal: getattr(c.scores, signal) for signal in _INITIAL_SIGNALS}
        return combine_scores(known, profile)

    ranked = sorted(candidates, key=lambda c: (-initial_blend(c), c.id))
    seeds = [c.candidate.embedding for c in ranked[:max(top_m, 0)] if c.candidate.embedding]
    expansion = centroid(seeds)

    for c in candidates:
        value = cosine_similarity(c.candidate.embedding, expansion) if expansion is not None else 0.0
        c.scores.set_signal("feedback", value)
    return len(seeds)


def apply_historical_feedback(candidates: List[ScoredCandidate], history: Mapping[str, float]) -> None:
    for c in candidates:
        c.scores.set_signal("historical_feedback", history.get(c.id, 0.0))


async def _timed(coro: Awaitable):
    start = time.perf_counter()
    result = await coro
    return result, (time.perf_counter() - start) * 1000


async def score_signals(
    query: str,
    candidates: List[ScoredCandidate],
    judge: Optional[CoherenceScorer],
    graph_lookup: Optional[GraphEmbeddingLookup],
    profile: WeightProfile,
    settings: PipelineSettings,
    recorder: TraceRecorder,
    deadline: float,
) -> List[ScoredCandidate]:
    """
    Score coherence, graph and feedback signals for the top-K candidates.
    Returns the top-K candidates; the rest go no further.
    """
    top = select_top_k(candidates, settings.coherence_top_k)
    logger.info(f"Scoring {len(top)} of {len(candidates)} candidates (pool={settings.worker_pool_size})")

    semaphore = asyncio.Semaphore(max(settings.worker_pool_size, 1))
    (coherence, coherence_ms), (embeddings, graph_ms) = await asyncio.gather(
        _timed(fetch_coherence(query, top, judge, semaphore, settings, deadline)),
        _timed(fetch_graph_embeddings(top, graph_lookup, semaphore, settings, deadline)),
    )

    fell_back = apply_outcomes(top, "coherence", coherence, settings.coherence_fallback)
    recorder.add(STAGE_COHERENCE, coherence_ms, len(top) - fell_back, "ok" if not fell_back else "degraded")
    if fell_back:
        logger.warning(f"Coherence fell back to {settings.coherence_fallback} for {fell_back}/{len(top)} candidates")

    start = time.perf_counter()
    graph = graph_scores(top, embeddings, settings.prf_top_m)
    fell_back = apply_outcomes(top, "graph", graph, GRAPH_FALLBACK)
    # Lookups ran concurrently with coherence; their time is part of this entry
    graph_ms += (time.perf_counter() - start) * 1000
    with_graph = sum(1 for c in top if c.scores.graph > 0)
    recorder.add(STAGE_GRAPH, graph_ms, with_graph, "ok" if not fell_back else "degraded")

    with recorder.stage(STAGE_PRF) as stage:
        stage.result_count = score_feedback(top, profile, settings.prf_top_m)

    return top
