"""
Pipeline settings.

Every tunable constant of the ranking pipeline lives here. Defaults can be
overridden through RANKER_* environment variables (the CLI loads .env first).
"""

import logging
import os
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

ENV_PREFIX = "RANKER_"


@dataclass(frozen=True)
class PipelineSettings:
    """Request-independent knobs for retrieval, scoring and selection."""

    # Candidate generation
    lexical_limit: int = 100
    vector_limit: int = 100
    vector_min_similarity: float = 0.5

    # Signal scoring
    coherence_top_k: int = 20
    prf_top_m: int = 5
    coherence_fallback: float = 0.5
    worker_pool_size: int = 5

    # Query expansion
    expansion_terms: int = 5

    # MMR
    diversity_coefficient: float = 0.2

    # Timeouts (seconds)
    retrieval_timeout: float = 10.0
    embedding_timeout: float = 10.0
    coherence_timeout: float = 15.0
    graph_timeout: float = 5.0
    request_deadline: float = 45.0

    @classmethod
    def from_env(cls, environ=None) -> "PipelineSettings":
        """Build settings, overriding defaults with RANKER_<FIELD> variables."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            try:
                overrides[f.name] = int(raw) if f.type in (int, "int") else float(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{f.name.upper()} must be numeric, got {raw!r}") from None
        if overrides:
            logger.info(f"Settings overridden from environment: {sorted(overrides)}")
        return cls(**overrides)
