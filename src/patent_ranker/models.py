"""
Data models for the ranking pipeline.

The data structures passed between the pipeline stages: candidates and their
retrieval hits, per-candidate score vectors, weight profiles, the query context
used by adaptive weighting, and the request/response boundary.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Signals that take part in the weighted combination, in display order
SIGNALS = (
    "lexical",
    "semantic",
    "coherence",
    "graph",
    "feedback",
    "historical_feedback",
)

ADAPTIVE_PROFILE = "adaptive"


def clamp01(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class Candidate:
    """A patent that can be ranked. Read-only inside the pipeline."""
    id: str
    title: str
    abstract: str = ""
    embedding: Optional[List[float]] = field(default=None, compare=False, repr=False)
    graph_embedding: Optional[List[float]] = field(default=None, compare=False, repr=False)

    @property
    def text(self) -> str:
        """Title and abstract as one passage (what the judge reads)."""
        if not self.abstract:
            return self.title
        return f"{self.title}. {self.abstract}"


@dataclass(frozen=True)
class RetrievalHit:
    """A single retrieval result before merging."""
    candidate: Candidate
    source: str  # "lexical" or "vector"
    score: float  # matched indicator for lexical, similarity for vector


@dataclass
class ScoreVector:
    """Per-candidate signal values. Signals are kept inside [0, 1]."""
    lexical: float = 0.0
    semantic: float = 0.0
    coherence: float = 0.0
    graph: float = 0.0
    feedback: float = 0.0
    historical_feedback: float = 0.0

    # Derived
    diversity_penalty: float = 0.0
    final: float = 0.0  # may dip below 0 during MMR, clamped for display only

    def __post_init__(self):
        for name in SIGNALS:
            setattr(self, name, clamp01(getattr(self, name)))

    def set_signal(self, name: str, value: float) -> None:
        if name not in SIGNALS:
            raise KeyError(f"Unknown signal {name!r}")
        setattr(self, name, clamp01(value))

    def signals(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in SIGNALS}

    def to_dict(self) -> Dict[str, float]:
        data = {name: round(value, 4) for name, value in self.signals().items()}
        data["diversity_penalty"] = round(self.diversity_penalty, 4)
        data["final"] = round(clamp01(self.final), 4)
        return data


@dataclass(frozen=True)
class SignalOutcome:
    """
    Result of one fallible signal call.

    One of three variants: success (with a value), timed_out, or failed
    (with a reason). Resolved to a number with a per-signal fallback.
    """
    status: str
    value: Optional[float] = None
    reason: Optional[str] = None

    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @classmethod
    def success(cls, value: float) -> "SignalOutcome":
        return cls(status=cls.SUCCESS, value=value)

    @classmethod
    def timed_out(cls) -> "SignalOutcome":
        return cls(status=cls.TIMED_OUT, reason="timed out")

    @classmethod
    def failed(cls, reason: str) -> "SignalOutcome":
        return cls(status=cls.FAILED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.status == self.SUCCESS

    def resolve(self, fallback: float) -> float:
        return self.value if self.ok else fallback


@dataclass
class ScoredCandidate:
    """Working record for a candidate while it moves through the pipeline."""
    candidate: Candidate
    scores: ScoreVector = field(default_factory=ScoreVector)
    debug: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.candidate.id


@dataclass(frozen=True)
class RankedResult:
    """A candidate in the final ranked list."""
    candidate: Candidate
    scores: ScoreVector
    matched_terms: List[str] = field(default_factory=list)
    debug: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "patent": {
                "id": self.candidate.id,
                "title": self.candidate.title,
                "abstract": self.candidate.abstract,
            },
            "scores": self.scores.to_dict(),
            "matched_keywords": list(self.matched_terms),
            "debugging": self.debug,
        }


@dataclass(frozen=True)
class WeightProfile:
    """Named per-signal combination weights. Not assumed to sum to 1."""
    name: str
    weights: Dict[str, float]

    def weight(self, signal: str) -> float:
        return self.weights.get(signal, 0.0)

    def as_dict(self) -> Dict[str, float]:
        return {signal: self.weight(signal) for signal in SIGNALS}


@dataclass(frozen=True)
class QueryContext:
    """
    What the adaptive weighting sees about a query.

    Opaque to the combiner; only the weighting policy interprets it.
    """
    domain: Optional[str]
    length_bucket: str  # "short", "medium" or "long"
    expanded: bool = False

    @property
    def key(self) -> str:
        return f"{self.domain or 'general'}|{self.length_bucket}"

    def to_dict(self) -> dict:
        return {"domain": self.domain, "length_bucket": self.length_bucket, "expanded": self.expanded}


@dataclass(frozen=True)
class FeedbackOutcome:
    """What happened after a run: reward for the profile used, plus judged ids."""
    profile: str
    reward: float
    relevant_ids: List[str] = field(default_factory=list)
    irrelevant_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class StageTiming:
    """One entry of the pipeline trace."""
    stage: str
    timing_ms: float
    result_count: int = 0
    status: str = "ok"  # ok, degraded, failed, timed_out, skipped

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "timing_ms": round(self.timing_ms, 2),
            "result_count": self.result_count,
            "status": self.status,
        }


@dataclass(frozen=True)
class PipelineTrace:
    """Ordered stage timings plus the total wall time of the run."""
    stages: Tuple[StageTiming, ...]
    total_ms: float

    def stage(self, name: str) -> Optional[StageTiming]:
        for entry in self.stages:
            if entry.stage == name:
                return entry
        return None


class SearchRequest(BaseModel):
    """Validated, immutable search request."""
    model_config = ConfigDict(frozen=True)

    query: str = Field(min_length=1)
    limit: int = Field(10, ge=1, le=100)
    profile: str = "standard"
    semantic_threshold: float = Field(0.0, ge=0.0, le=1.0)
    use_query_expansion: bool = False
    use_full_pipeline: bool = True
    include_alternate_score: bool = True

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be blank")
        return value


@dataclass(frozen=True)
class SearchResponse:
    """What a pipeline run returns."""
    results: List[RankedResult]
    trace: PipelineTrace
    query: str
    expanded_query: str
    context: QueryContext
    profile: str

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "expanded_query": self.expanded_query,
            "profile": self.profile,
            "context": self.context.to_dict(),
            "results": [r.to_dict() for r in self.results],
            "timing_ms": round(self.trace.total_ms, 2),
            "pipeline_stages": [s.to_dict() for s in self.trace.stages],
        }
