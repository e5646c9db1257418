"""
Retrieval stage: build the candidate set with hybrid search.

Two retrieval calls run concurrently:
1. Lexical (full-text) search over title/abstract - binary matched score
2. Vector search - embeds the query, then finds patents by cosine similarity

Either call may fail or time out; the pipeline continues with whatever came
back and the failed stage is recorded in the trace with zero time and results.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Tuple

from patent_ranker.aggregate import merge_hits
from patent_ranker.config import PipelineSettings
from patent_ranker.interfaces import Embedder, LexicalSearcher, VectorSearcher
from patent_ranker.models import ScoredCandidate
from patent_ranker.timing import TraceRecorder

logger = logging.getLogger(__name__)

STAGE_LEXICAL = "BM25 Filtering"
STAGE_EMBEDDING = "Semantic Embedding"
STAGE_VECTOR = "Vector Similarity"
STAGE_MERGE = "Result Combination"


@dataclass
class CallResult:
    """Outcome of one timed external call."""
    value: Any
    timing_ms: float
    status: str  # ok, failed, timed_out, skipped

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def count(self) -> int:
        if not self.ok:
            return 0
        return len(self.value) if isinstance(self.value, list) else 1


async def timed_call(label: str, call: Callable[[], Awaitable[Any]], timeout: float) -> CallResult:
    """Await an external call under a timeout. Failures come back as a status, not an exception."""
    start = time.perf_counter()
    try:
        value = await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{label} timed out after {timeout:.1f}s")
        return CallResult(value=None, timing_ms=0.0, status="timed_out")
    except Exception as e:
        logger.warning(f"{label} failed: {e}")
        return CallResult(value=None, timing_ms=0.0, status="failed")
    return CallResult(value=value, timing_ms=(time.perf_counter() - start) * 1000, status="ok")


async def _vector_branch(
    text: str,
    vector: VectorSearcher,
    embedder: Embedder,
    settings: PipelineSettings,
) -> Tuple[CallResult, CallResult]:
    embedded = await timed_call(
        "Query embedding",
        lambda: embedder.embed(text),
        settings.embedding_timeout,
    )
    if not embedded.ok:
        return embedded, CallResult(value=None, timing_ms=0.0, status="skipped")

    searched = await timed_call(
        "Vector search",
        lambda: vector.search(embedded.value, settings.vector_min_similarity, settings.vector_limit),
        settings.retrieval_timeout,
    )
    return embedded, searched


async def generate_candidates(
    text: str,
    lexical: LexicalSearcher,
    vector: VectorSearcher,
    embedder: Embedder,
    settings: PipelineSettings,
    recorder: TraceRecorder,
) -> List[ScoredCandidate]:
    """
    Run both retrieval calls concurrently and merge the results.
    Returns an empty list only when neither source produced anything.
    """
    lexical_result, (embedded, searched) = await asyncio.gather(
        timed_call(
            "Lexical search",
            lambda: lexical.search(text, settings.lexical_limit),
            settings.retrieval_timeout,
        ),
        _vector_branch(text, vector, embedder, settings),
    )

    # Trace order is fixed, whatever finished first
    recorder.add(STAGE_LEXICAL, lexical_result.timing_ms, lexical_result.count, lexical_result.status)
    recorder.add(STAGE_EMBEDDING, embedded.timing_ms, 0, embedded.status)
    recorder.add(STAGE_VECTOR, searched.timing_ms, searched.count, searched.status)

    lexical_hits = lexical_result.value if lexical_result.ok else []
    vector_hits = searched.value if searched.ok else []
    if lexical_hits:
        logger.info(f"Lexical search for {text!r}: {len(lexical_hits)} patents")
    if vector_hits:
        logger.info(f"Vector search for {text!r}: {len(vector_hits)} patents")

    with recorder.stage(STAGE_MERGE) as stage:
        candidates = merge_hits(lexical_hits, vector_hits)
        stage.result_count = len(candidates)
    return candidates
