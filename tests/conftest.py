"""Pytest fixtures and in-memory fakes for the pipeline capabilities."""

import asyncio
import re
from typing import Dict, List, Optional

import pytest

from patent_ranker.agent import RankingPipeline
from patent_ranker.config import PipelineSettings
from patent_ranker.models import Candidate, RetrievalHit
from patent_ranker.vectors import cosine_similarity

# Axes: [cryptography, machine learning, vehicles, life sciences]
PATENTS = [
    Candidate(
        id="1",
        title="Method and System for Neural Network Based Image Recognition",
        abstract="A system and method for image recognition using convolutional neural networks. "
                 "The invention provides improved accuracy through a novel layer architecture.",
        embedding=[0.05, 0.95, 0.1, 0.1],
    ),
    Candidate(
        id="2",
        title="Distributed Ledger System for Patent Verification",
        abstract="A blockchain-based system for verifying patent submissions and detecting prior art. "
                 "The system utilizes cryptographic proofs to timestamp inventions.",
        embedding=[0.9, 0.1, 0.0, 0.2],
    ),
    Candidate(
        id="3",
        title="Quantum Computing Method for Pharmaceutical Discovery",
        abstract="A quantum computing method for simulating molecular interactions to accelerate drug discovery.",
        embedding=[0.1, 0.2, 0.0, 0.95],
    ),
    Candidate(
        id="4",
        title="Autonomous Vehicle Navigation System",
        abstract="A system for autonomous vehicle navigation using sensor fusion and reinforcement learning.",
        embedding=[0.0, 0.3, 0.95, 0.0],
    ),
    Candidate(
        id="5",
        title="Enhanced Natural Language Processing Using Transfer Learning",
        abstract="A method for improving natural language processing accuracy through transfer learning "
                 "from large pre-trained language models.",
        embedding=[0.05, 0.95, 0.0, 0.15],
    ),
    Candidate(
        id="6",
        title="Zero-Knowledge Proof System for Identity Verification",
        abstract="A cryptographic system enabling identity verification without revealing personal data.",
        embedding=[0.95, 0.05, 0.0, 0.1],
    ),
    Candidate(
        id="7",
        title="Deep Reinforcement Learning System for Resource Optimization",
        abstract="A deep reinforcement learning approach to optimize resource allocation in distributed systems.",
        embedding=[0.1, 0.8, 0.3, 0.1],
    ),
    Candidate(
        id="8",
        title="Neural Interface for Computer-Brain Interaction",
        abstract="A non-invasive neural interface system enabling direct communication between computers "
                 "and human neural activity.",
        embedding=[0.0, 0.5, 0.1, 0.8],
    ),
]

TOPIC_AXES = [
    ("crypt", [1.0, 0.0, 0.0, 0.0]),
    ("blockchain", [1.0, 0.0, 0.0, 0.0]),
    ("learning", [0.0, 1.0, 0.0, 0.0]),
    ("neural", [0.0, 1.0, 0.0, 0.0]),
    ("vehicle", [0.0, 0.0, 1.0, 0.0]),
    ("drug", [0.0, 0.0, 0.0, 1.0]),
]


def _tokens(text: str) -> List[str]:
    return [t for t in re.findall(r"[a-z0-9\-]+", text.lower()) if len(t) > 2]


class FakeLexicalSearch:
    """Matches when any query token occurs in title or abstract."""

    def __init__(self, patents=PATENTS, fail: bool = False, delay: float = 0.0):
        self.patents = list(patents)
        self.fail = fail
        self.delay = delay
        self.calls: List[str] = []

    async def search(self, text: str, limit: int) -> List[RetrievalHit]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("full-text index unavailable")
        tokens = _tokens(text)
        hits = []
        for p in self.patents:
            haystack = p.text.lower()
            if any(t in haystack for t in tokens):
                hits.append(RetrievalHit(candidate=p, source="lexical", score=1.0))
        return hits[:limit]


class FakeEmbedder:
    """Sums topic axes for keywords found in the text."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding service down")
        vector = [0.0, 0.0, 0.0, 0.0]
        lowered = text.lower()
        for keyword, axis in TOPIC_AXES:
            if keyword in lowered:
                vector = [a + b for a, b in zip(vector, axis)]
        if not any(vector):
            vector = [0.25, 0.25, 0.25, 0.25]
        return vector


class FakeVectorSearch:
    """Exact cosine search over the fixture embeddings."""

    def __init__(self, patents=PATENTS, fail: bool = False, delay: float = 0.0):
        self.patents = list(patents)
        self.fail = fail
        self.delay = delay
        self.calls = 0

    async def search(self, query_embedding, min_similarity: float, limit: int) -> List[RetrievalHit]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("vector index unavailable")
        scored = [(cosine_similarity(query_embedding, p.embedding), p) for p in self.patents]
        scored = [(s, p) for s, p in scored if s >= min_similarity]
        scored.sort(key=lambda sp: (-sp[0], sp[1].id))
        return [RetrievalHit(candidate=p, source="vector", score=s) for s, p in scored[:limit]]


class FakeJudge:
    """Rates 9 when a query stem appears in the patent text, otherwise 2."""

    def __init__(self, delay: float = 0.0, fail: bool = False, ratings: Optional[Dict[str, float]] = None):
        self.delay = delay
        self.fail = fail
        self.ratings = ratings
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def score(self, query: str, candidate_text: str) -> float:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("judge unavailable")
            if self.ratings is not None:
                for title, rating in self.ratings.items():
                    if candidate_text.startswith(title):
                        return rating
                return 5.0
            text = candidate_text.lower()
            return 9.0 if any(t[:5] in text for t in _tokens(query)) else 2.0
        finally:
            self.active -= 1


class FakeGraphLookup:
    def __init__(self, embeddings: Optional[Dict[str, List[float]]] = None, fail_ids=(), delay: float = 0.0):
        self.embeddings = embeddings or {}
        self.fail_ids = set(fail_ids)
        self.delay = delay
        self.calls: List[str] = []

    async def embedding_for(self, candidate_id: str) -> Optional[List[float]]:
        self.calls.append(candidate_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if candidate_id in self.fail_ids:
            raise RuntimeError(f"no graph node for {candidate_id}")
        return self.embeddings.get(candidate_id)


@pytest.fixture
def patents():
    return list(PATENTS)


@pytest.fixture
def settings():
    """Fast settings: every fixture patent is reachable by vector search."""
    return PipelineSettings(
        vector_min_similarity=0.0,
        coherence_timeout=1.0,
        graph_timeout=1.0,
        retrieval_timeout=1.0,
        embedding_timeout=1.0,
        request_deadline=5.0,
    )


@pytest.fixture
def make_pipeline(settings):
    """Build a pipeline from fakes; any capability can be overridden."""

    def factory(**overrides):
        parts = {
            "lexical": FakeLexicalSearch(),
            "vector": FakeVectorSearch(),
            "embedder": FakeEmbedder(),
            "judge": FakeJudge(),
            "graph_lookup": FakeGraphLookup(),
            "settings": settings,
        }
        parts.update(overrides)
        return RankingPipeline(**parts)

    return factory
