"""
LLM client for Anthropic Claude.

Uses httpx for async HTTP requests. Backs the coherence judge.
"""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class LLMClient:
    """Minimal Claude API wrapper."""

    API_URL = "https://api.anthropic.com/v1/messages"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 200,
        temperature: float = 0.3,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")
        self.model = model or os.environ.get("RANKER_LLM_MODEL", DEFAULT_MODEL)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        response_format: Optional[dict] = None,
        label: Optional[str] = None,
    ) -> "LLMResponse":
        """Call Claude and return response."""
        if label:
            logger.debug(f"LLM: {label}")
        else:
            prompt_preview = prompt[:60].replace("\n", " ") + "..." if len(prompt) > 60 else prompt
            logger.debug(f"LLM call: {prompt_preview}")

        if response_format and response_format.get("type") == "json_object":
            json_hint = "Respond with valid JSON only."
            system = f"{system} {json_hint}" if system else json_hint

        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        r = await self.client.post(
            self.API_URL,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
            json=payload,
        )
        r.raise_for_status()
        data = r.json()

        blocks = [b.get("text", "") for b in data.get("content", []) if b.get("type", "text") == "text"]
        if not blocks:
            raise ValueError("LLM response had no text content")
        content = "".join(blocks)
        logger.debug(f"LLM response: {len(content)} chars")
        return LLMResponse(content=content)

    async def close(self):
        await self.client.aclose()


class LLMResponse:
    """Response from LLM."""
    def __init__(self, content: str):
        self.content = content
