"""
Ranking Pipeline

Runs the pipeline: preprocess -> retrieve -> merge -> score signals -> weight
-> diversify (aka orchestrator).

Every stage is timed into the PipelineTrace whether it succeeds or falls
back. Failing external calls degrade their signal; only an empty candidate
set ends a run early, and that is a normal empty response, not an error.
"""

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from patent_ranker.adaptive import FeedbackHistory, FeedbackStore, WeightPolicy, outcome_from_votes
from patent_ranker.combine import ALTERNATE_SCORES, ProfileRegistry, apply_threshold, combine_candidates
from patent_ranker.config import PipelineSettings
from patent_ranker.diversify import EmbeddingSimilarity, Similarity, mmr_select
from patent_ranker.errors import InvalidRequestError
from patent_ranker.interfaces import (
    CoherenceScorer,
    Embedder,
    GraphEmbeddingLookup,
    LexicalSearcher,
    VectorSearcher,
)
from patent_ranker.models import (
    ADAPTIVE_PROFILE,
    FeedbackOutcome,
    QueryContext,
    RankedResult,
    ScoredCandidate,
    ScoreVector,
    SearchRequest,
    SearchResponse,
    WeightProfile,
)
from patent_ranker.preprocess import expand_query, infer_context, matched_terms
from patent_ranker.retrieve import STAGE_LEXICAL, generate_candidates, timed_call
from patent_ranker.signals import apply_historical_feedback, score_signals
from patent_ranker.timing import TraceRecorder

logger = logging.getLogger(__name__)

STAGE_PREPROCESS = "Query Preprocessing"
STAGE_WEIGHTING = "RL Weighting"
STAGE_MMR = "MMR Diversity"


def build_request(request: Union[SearchRequest, Mapping[str, Any], None] = None, **kwargs) -> SearchRequest:
    """Validate raw request data. Problems surface as InvalidRequestError."""
    if isinstance(request, SearchRequest) and not kwargs:
        return request
    data = dict(request or {}) if not isinstance(request, SearchRequest) else request.model_dump()
    data.update(kwargs)
    try:
        return SearchRequest(**data)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise InvalidRequestError(f"Invalid search request: {problems}") from e


class RankingPipeline:
    """Wires together all the pipeline stages."""

    def __init__(
        self,
        lexical: LexicalSearcher,
        vector: VectorSearcher,
        embedder: Embedder,
        judge: Optional[CoherenceScorer] = None,
        graph_lookup: Optional[GraphEmbeddingLookup] = None,
        settings: Optional[PipelineSettings] = None,
        registry: Optional[ProfileRegistry] = None,
        policy: Optional[WeightPolicy] = None,
        history: Optional[FeedbackHistory] = None,
        similarity: Optional[Similarity] = None,
    ):
        self.lexical = lexical
        self.vector = vector
        self.embedder = embedder
        self.judge = judge
        self.graph_lookup = graph_lookup
        self.settings = settings or PipelineSettings()
        self.registry = registry or ProfileRegistry()

        store = FeedbackStore(self.registry) if policy is None or history is None else None
        self.policy = policy or store
        self.history = history or store
        self.similarity = similarity or EmbeddingSimilarity()

    def validate(self, request: Union[SearchRequest, Mapping[str, Any]]) -> SearchRequest:
        """Reject bad requests and unknown profiles before any work is done."""
        request = build_request(request)
        if request.profile != ADAPTIVE_PROFILE:
            self.registry.get(request.profile)
        return request

    def resolve_profile(self, request: SearchRequest, context: QueryContext) -> WeightProfile:
        if request.profile == ADAPTIVE_PROFILE:
            return self.policy.profile_for(context)
        return self.registry.get(request.profile)

    async def search(self, request: Union[SearchRequest, Mapping[str, Any]]) -> SearchResponse:
        """Run the full pipeline on a search request."""
        request = self.validate(request)
        recorder = TraceRecorder()
        deadline = asyncio.get_running_loop().time() + self.settings.request_deadline
        logger.info(f"Starting patent search for: {request.query!r}")

        # --- Step 1: Preprocess ---
        with recorder.stage(STAGE_PREPROCESS) as stage:
            text = expand_query(request.query, request.use_query_expansion, self.settings.expansion_terms)
            context = infer_context(request.query, expanded=text != request.query)
            profile = self.resolve_profile(request, context)
            history = self.history.snapshot() if self.history is not None else {}
            stage.result_count = 1
        logger.info(f"Context {context.key}, profile {profile.name!r}")

        if not request.use_full_pipeline:
            return await self._basic_search(request, text, context, profile, recorder)

        # --- Step 2: Retrieve + merge ---
        candidates = await generate_candidates(
            text, self.lexical, self.vector, self.embedder, self.settings, recorder
        )
        if not candidates:
            logger.info("No candidates retrieved, returning empty result")
            return self._respond([], recorder, request, text, context, profile)

        # Filter before top-K so below-threshold hits never take a scoring slot
        candidates = apply_threshold(candidates, request.semantic_threshold)
        if not candidates:
            logger.info("No candidates above the semantic threshold, returning empty result")
            return self._respond([], recorder, request, text, context, profile)

        # --- Step 3: Score signals ---
        scored = await score_signals(
            request.query,
            candidates,
            self.judge,
            self.graph_lookup,
            profile,
            self.settings,
            recorder,
            deadline,
        )

        # --- Step 4: Weight ---
        with recorder.stage(STAGE_WEIGHTING) as stage:
            apply_historical_feedback(scored, history)
            kept = apply_threshold(scored, request.semantic_threshold)
            alternates = None
            if request.include_alternate_score:
                alternates = {
                    field_name: self.registry.get(name)
                    for field_name, name in ALTERNATE_SCORES.items()
                    if name in self.registry
                }
            combine_candidates(kept, profile, alternates)
            stage.result_count = len(kept)

        # --- Step 5: Diversify ---
        with recorder.stage(STAGE_MMR) as stage:
            selected = mmr_select(kept, request.limit, self.similarity, self.settings.diversity_coefficient)
            stage.result_count = len(selected)

        results = [self._to_result(c, text) for c in selected]
        for r in results[:3]:
            logger.info(
                f"  - {r.candidate.title[:50]}... "
                f"(final={r.scores.final:.3f}, semantic={r.scores.semantic:.2f}, coherence={r.scores.coherence:.2f})"
            )
        return self._respond(results, recorder, request, text, context, profile)

    async def _basic_search(
        self,
        request: SearchRequest,
        text: str,
        context: QueryContext,
        profile: WeightProfile,
        recorder: TraceRecorder,
    ) -> SearchResponse:
        """Lexical search only, no scoring pipeline."""
        result = await timed_call(
            "Lexical search",
            lambda: self.lexical.search(text, self.settings.lexical_limit),
            self.settings.retrieval_timeout,
        )
        recorder.add(STAGE_LEXICAL, result.timing_ms, result.count, result.status)

        results = []
        seen = set()
        for hit in result.value if result.ok else []:
            if hit.candidate.id in seen:
                continue
            seen.add(hit.candidate.id)
            scores = ScoreVector(lexical=hit.score)
            scores.final = scores.lexical
            results.append(RankedResult(
                candidate=hit.candidate,
                scores=scores,
                matched_terms=matched_terms(text, hit.candidate),
                debug={"mode": "basic"},
            ))
            if len(results) >= request.limit:
                break
        return self._respond(results, recorder, request, text, context, profile)

    def _to_result(self, c: ScoredCandidate, text: str) -> RankedResult:
        return RankedResult(
            candidate=c.candidate,
            scores=c.scores,
            matched_terms=matched_terms(text, c.candidate),
            debug=dict(c.debug),
        )

    def _respond(
        self,
        results: List[RankedResult],
        recorder: TraceRecorder,
        request: SearchRequest,
        text: str,
        context: QueryContext,
        profile: WeightProfile,
    ) -> SearchResponse:
        trace = recorder.finish()
        logger.info(f"Returned {len(results)} results in {trace.total_ms:.0f}ms")
        return SearchResponse(
            results=results,
            trace=trace,
            query=request.query,
            expanded_query=text,
            context=context,
            profile=profile.name,
        )

    def record_feedback(
        self,
        response: SearchResponse,
        relevant_ids: List[str],
        irrelevant_ids: Optional[List[str]] = None,
    ) -> FeedbackOutcome:
        """
        Feed a finished run's outcome back into the weighting policy.
        Only call this after the run has completed.
        """
        outcome = outcome_from_votes(
            response.profile,
            [r.candidate.id for r in response.results],
            relevant_ids,
            irrelevant_ids,
        )
        self.policy.record(response.context, outcome)
        return outcome
