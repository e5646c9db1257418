"""
LLM Coherence Judgment

Asks a language model how well a patent matches the query and returns its
rating on a 0-10 scale. Parsing accepts the requested JSON object, and falls
back to the first number in a plain-text answer ("7/10", "Score: 8.5").

A malformed answer raises ValueError; the signal scorer turns that into a
failed outcome and substitutes the neutral fallback.
"""

import json
import logging
import re

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a patent expert assistant."

_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:/\s*10)?")


class CoherenceJudgment(BaseModel):
    """Structured answer expected from the judge."""
    score: float = Field(ge=0, le=10)
    reasoning: str = ""


def build_prompt(query: str, candidate_text: str) -> str:
    return f"""You are a patent expert. Judge how relevant this patent is to the search query.

Query: "{query}"

Patent:
{candidate_text}

Think about technical alignment, conceptual overlap, and potential relevance,
then give a score from 0 (unrelated) to 10 (exactly what the query asks for).

Respond with a JSON object:
{{"score": 7.5, "reasoning": "brief explanation"}}

Only output the JSON object, nothing else."""


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        text = "\n".join(line for line in lines[1:] if not line.startswith("```"))
    return text.strip()


def parse_rating(text: str) -> float:
    """Extract a 0-10 rating from the judge's answer."""
    content = _strip_fences(text or "")
    if not content:
        raise ValueError("empty judgment")

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict):
        return CoherenceJudgment(**data).score
    if isinstance(data, (int, float)) and not isinstance(data, bool):
        return CoherenceJudgment(score=data).score

    match = _NUMBER_RE.search(content)
    if not match:
        raise ValueError(f"no rating in judgment: {content[:80]!r}")
    return CoherenceJudgment(score=float(match.group(1))).score


class CoherenceJudge:
    """Coherence scorer backed by an LLM client with a generate() coroutine."""

    def __init__(self, llm_client):
        self.llm_client = llm_client

    async def score(self, query: str, candidate_text: str) -> float:
        response = await self.llm_client.generate(
            prompt=build_prompt(query, candidate_text),
            system=SYSTEM_PROMPT,
            response_format={"type": "json_object"},
            label="judging coherence",
        )
        rating = parse_rating(response.content)
        logger.debug(f"Coherence rating {rating:.1f} for {candidate_text[:50]!r}")
        return rating
