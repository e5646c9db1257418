"""
OpenAI embeddings client.

Turns query text into the same vector space the patent embeddings were
built in (text-embedding-ada-002 by default).
"""

import logging
import os
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-ada-002"


class OpenAIEmbedder:
    """Client for the OpenAI embeddings endpoint."""

    API_URL = "https://api.openai.com/v1/embeddings"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY not set")
        self.model = model or os.environ.get("RANKER_EMBEDDING_MODEL", DEFAULT_MODEL)
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def embed(self, text: str) -> List[float]:
        logger.debug(f"Embedding {len(text)} chars with {self.model}")
        r = await self.client.post(
            self.API_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.model, "input": text},
        )
        r.raise_for_status()
        data = r.json().get("data") or []
        if not data or not data[0].get("embedding"):
            raise ValueError("Embedding response had no vector")
        return [float(x) for x in data[0]["embedding"]]

    async def close(self):
        await self.client.aclose()
