import math
from collections.abc import Sequence
from typing import Any

from campusmatch.core.constants import NEUTRAL_SIMILARITY
from campusmatch.models.user import GeoPoint
from campusmatch.utils.geo import haversine_km


def jaccard_similarity(set_a: set[Any] | frozenset[Any], set_b: set[Any] | frozenset[Any]) -> float:
    """Calculate Jaccard similarity between two sets. Two empty sets share no signal."""
    if not set_a and not set_b:
        return 0.0

    intersection = len(set_a & set_b)
    union = len(set_a | set_b)
    return intersection / union if union > 0 else 0.0


def gap_similarity(a: float | None, b: float | None, tolerance_span: float) -> float:
    """1 at equality, decaying linearly to 0 once the gap reaches ``tolerance_span``."""
    if a is None or b is None:
        return NEUTRAL_SIMILARITY
    return 1.0 - min(1.0, abs(a - b) / tolerance_span)


def distance_similarity(a: GeoPoint | None, b: GeoPoint | None, normalizer_km: float) -> float:
    if a is None or b is None:
        return NEUTRAL_SIMILARITY
    return 1.0 - min(1.0, haversine_km(a, b) / normalizer_km)


def token_similarity(a: str | None, b: str | None) -> float:
    """Exact match of two normalized tokens (college, major)."""
    if a is None or b is None:
        return NEUTRAL_SIMILARITY
    return 1.0 if a == b else 0.0


def cosine_similarity(vec_a: Sequence[float] | None, vec_b: Sequence[float] | None) -> float:
    """Cosine similarity rescaled from [-1, 1] to [0, 1]."""
    if vec_a is None or vec_b is None:
        return NEUTRAL_SIMILARITY

    norm_a = math.sqrt(sum(x * x for x in vec_a))
    norm_b = math.sqrt(sum(x * x for x in vec_b))
    # Direction is undefined for a zero vector
    if norm_a == 0 or norm_b == 0:
        return NEUTRAL_SIMILARITY

    cos = sum(x * y for x, y in zip(vec_a, vec_b)) / (norm_a * norm_b)
    cos = max(-1.0, min(1.0, cos))
    return (cos + 1.0) / 2.0
