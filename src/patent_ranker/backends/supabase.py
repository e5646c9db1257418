"""
Supabase (PostgREST) client for the patents table.

Three capabilities over the same table:
- Lexical search: Postgres full-text search on title/abstract, any term (websearch syntax)
- Vector search: the match_patents pgvector RPC
- Graph lookup: the gnn_embedding column of one patent

The adapters at the bottom expose each one under the pipeline's protocol.
"""

import json
import logging
import os
from typing import Any, List, Optional

import httpx

from patent_ranker.models import Candidate, RetrievalHit
from patent_ranker.preprocess import query_terms

logger = logging.getLogger(__name__)


def websearch_any(text: str) -> str:
    """Websearch expression matching any distinct term (bare words would all be required)."""
    return " or ".join(query_terms(text.replace('"', " ")))


def _parse_vector(value: Any) -> Optional[List[float]]:
    """pgvector columns come back as '[0.1,0.2,...]' strings through PostgREST."""
    if value is None:
        return None
    if isinstance(value, str):
        value = json.loads(value)
    vector = [float(x) for x in value]
    return vector or None


class SupabaseClient:
    """Client for the patents table behind Supabase's REST API."""

    TABLE = "patents"
    MATCH_RPC = "match_patents"

    # Columns we want for each patent
    FIELDS = "id,title,abstract,embedding,gnn_embedding"

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url or os.environ.get("SUPABASE_URL") or "").rstrip("/")
        self.api_key = api_key or os.environ.get("SUPABASE_KEY")
        if not self.url:
            raise ValueError("SUPABASE_URL not set")
        if not self.api_key:
            raise ValueError("SUPABASE_KEY not set")
        self.client = httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            headers={
                "apikey": self.api_key,
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=timeout,
            transport=transport,
        )

    async def text_search(self, text: str, limit: int = 100) -> List[dict]:
        """Full-text match of any query term on title or abstract. Returns raw rows."""
        expression = websearch_any(text)
        logger.info(f"Supabase text search: {expression!r}")
        params = {
            "select": self.FIELDS,
            "or": f'(title.wfts."{expression}",abstract.wfts."{expression}")',
            "limit": str(limit),
        }
        resp = await self.client.get(f"/{self.TABLE}", params=params)
        resp.raise_for_status()
        return resp.json()

    async def match_patents(self, query_embedding: List[float], min_similarity: float, limit: int = 100) -> List[dict]:
        """Cosine nearest neighbours via the match_patents RPC. Returns raw rows."""
        logger.info(f"Supabase vector search (threshold={min_similarity}, limit={limit})")
        payload = {
            "query_embedding": list(query_embedding),
            "match_threshold": min_similarity,
            "match_count": limit,
        }
        resp = await self.client.post(f"/rpc/{self.MATCH_RPC}", json=payload)
        resp.raise_for_status()
        return resp.json()

    async def graph_embedding(self, patent_id: str) -> Optional[List[float]]:
        params = {"select": "gnn_embedding", "id": f"eq.{patent_id}", "limit": "1"}
        resp = await self.client.get(f"/{self.TABLE}", params=params)
        resp.raise_for_status()
        rows = resp.json()
        if not rows:
            return None
        return _parse_vector(rows[0].get("gnn_embedding"))

    def parse_patent(self, row: dict) -> Candidate:
        """Convert a table row to a Candidate."""
        return Candidate(
            id=str(row.get("id", "")),
            title=row.get("title") or "",
            abstract=row.get("abstract") or "",
            embedding=_parse_vector(row.get("embedding")),
            graph_embedding=_parse_vector(row.get("gnn_embedding")),
        )

    async def close(self):
        await self.client.aclose()


class SupabaseLexicalSearch:
    """Lexical searcher. Every row returned matched, so the score is 1.0."""

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def search(self, text: str, limit: int) -> List[RetrievalHit]:
        rows = await self.client.text_search(text, limit)
        return [
            RetrievalHit(candidate=self.client.parse_patent(row), source="lexical", score=1.0)
            for row in rows[:limit]
        ]


class SupabaseVectorSearch:
    """Vector searcher over the match_patents RPC."""

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def search(self, query_embedding: List[float], min_similarity: float, limit: int) -> List[RetrievalHit]:
        rows = await self.client.match_patents(query_embedding, min_similarity, limit)
        hits = []
        for row in rows[:limit]:
            similarity = float(row.get("similarity") or 0.0)
            if similarity < min_similarity:
                continue
            hits.append(RetrievalHit(
                candidate=self.client.parse_patent(row),
                source="vector",
                score=max(0.0, min(1.0, similarity)),
            ))
        return hits


class SupabaseGraphLookup:
    """Graph embedding lookup by patent id."""

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def embedding_for(self, candidate_id: str) -> Optional[List[float]]:
        return await self.client.graph_embedding(candidate_id)
