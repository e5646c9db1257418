"""
Query preprocessing: domain-keyword expansion and query context.

If expansion is on and the query mentions a known technical domain
(case-insensitive substring match on the domain name), the first few related
terms of that domain are appended to the query. The same lookup feeds the
QueryContext used by adaptive weighting.
"""

import logging
import re
from typing import List, Optional

from patent_ranker.models import Candidate, QueryContext

logger = logging.getLogger(__name__)

# Domain name -> related terms, most specific first. Lookup order is table order.
DOMAIN_KEYWORDS = {
    "cryptography": [
        "encryption",
        "cryptographic",
        "zero-knowledge",
        "blockchain",
        "digital signature",
        "hash function",
        "public key",
    ],
    "blockchain": [
        "distributed ledger",
        "consensus",
        "smart contract",
        "cryptographic",
        "immutable record",
    ],
    "machine learning": [
        "neural network",
        "deep learning",
        "training",
        "transfer learning",
        "classifier",
        "reinforcement learning",
    ],
    "computer vision": [
        "image recognition",
        "convolutional neural network",
        "object detection",
        "image segmentation",
        "feature extraction",
    ],
    "natural language": [
        "language model",
        "text classification",
        "transfer learning",
        "tokenization",
        "semantic parsing",
    ],
    "quantum": [
        "quantum computing",
        "qubit",
        "superposition",
        "entanglement",
        "quantum simulation",
    ],
    "autonomous": [
        "autonomous vehicle",
        "sensor fusion",
        "navigation",
        "lidar",
        "path planning",
    ],
    "neural interface": [
        "brain-computer interface",
        "neural activity",
        "electrode",
        "signal decoding",
        "non-invasive",
    ],
    "identity": [
        "authentication",
        "credential",
        "zero-knowledge proof",
        "biometric",
        "identity verification",
    ],
}

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9\-]*")


def match_domain(query: str) -> Optional[str]:
    """Return the first domain whose name occurs in the query, if any."""
    lowered = query.lower()
    for domain in DOMAIN_KEYWORDS:
        if domain in lowered:
            return domain
    return None


def expand_query(query: str, use_expansion: bool, max_terms: int = 5) -> str:
    """
    Append related domain terms to the query.
    Returns the query unchanged when expansion is off or no domain matches.
    """
    if not use_expansion:
        return query
    domain = match_domain(query)
    if domain is None:
        return query
    terms = DOMAIN_KEYWORDS[domain][:max_terms]
    expanded = f"{query} {' '.join(terms)}"
    logger.info(f"Expanded query with domain {domain!r}: {expanded!r}")
    return expanded


def infer_context(query: str, expanded: bool = False) -> QueryContext:
    """Derive the structured context the weighting policy keys on."""
    n_terms = len(_TOKEN_RE.findall(query.lower()))
    if n_terms <= 2:
        bucket = "short"
    elif n_terms <= 6:
        bucket = "medium"
    else:
        bucket = "long"
    return QueryContext(domain=match_domain(query), length_bucket=bucket, expanded=expanded)


def query_terms(text: str) -> List[str]:
    """Distinct lowercase terms of a query, in order."""
    terms = []
    for term in _TOKEN_RE.findall(text.lower()):
        if len(term) > 2 and term not in terms:
            terms.append(term)
    return terms


def matched_terms(text: str, candidate: Candidate) -> List[str]:
    """Query terms that occur in the candidate's title or abstract."""
    haystack = candidate.text.lower()
    return [term for term in query_terms(text) if term in haystack]
