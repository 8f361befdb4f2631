"""Vector similarity helpers for embedding comparison."""

from typing import Sequence

import numpy as np


class DimensionMismatchError(ValueError):
    """Raised when two embeddings from the same model differ in length."""

    def __init__(self, left: int, right: int):
        super().__init__(f"Vectors must have same length (got {left} and {right})")
        self.left = left
        self.right = right


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Compute cosine similarity between two embedding vectors.

    A zero-magnitude vector is treated as maximally dissimilar and scores 0.0
    instead of producing NaN.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]

    Raises:
        DimensionMismatchError: If the vectors have different lengths
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
