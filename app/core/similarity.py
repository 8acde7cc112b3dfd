"""Vector similarity helpers."""

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """
    Cosine similarity ``dot(a, b) / (||a|| * ||b||)``.

    Returns 0.0 when either vector has zero magnitude, when the vectors have
    different lengths, or when either is empty. Never NaN.
    """
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)

    if va.size == 0 or vb.size == 0 or va.shape != vb.shape:
        return 0.0

    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / (norm_a * norm_b))
    if np.isnan(score):
        return 0.0
    # Guard tiny float overshoot (e.g. 1.0000000002 for identical vectors)
    return max(-1.0, min(1.0, score))
