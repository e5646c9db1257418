"""Vector helpers shared by the signal scorer and the diversity selector."""

from typing import Optional, Sequence

import numpy as np


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity clamped to [0, 1]. Missing, empty, mismatched or zero vectors give 0."""
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, 0.0, 1.0))


def centroid(vectors: Sequence[Sequence[float]]) -> Optional[np.ndarray]:
    """Mean of same-length vectors; None when nothing usable is given."""
    usable = [v for v in vectors if v is not None and len(v) > 0]
    if not usable:
        return None
    dim = len(usable[0])
    usable = [v for v in usable if len(v) == dim]
    return np.mean(np.asarray(usable, dtype=float), axis=0)
