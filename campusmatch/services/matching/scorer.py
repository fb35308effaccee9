import math

from campusmatch.core.config import settings
from campusmatch.core.constants import MAX_SCORE, WEIGHT_FIELDS
from campusmatch.core.exceptions import InvalidPreferencesError
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.matching import ScoreBreakdown
from campusmatch.models.user import MatchWeights
from campusmatch.services.matching.similarity import (
    cosine_similarity,
    distance_similarity,
    gap_similarity,
    jaccard_similarity,
    token_similarity,
)


class CompatibilityScorer:
    """
    Scores a candidate against a requester using the requester's weights.

    Every factor yields a similarity in [0, 1]; the total is the weighted
    average scaled to [0, 100]. Normalizing by the weight sum makes the
    result independent of the absolute weight magnitude.
    """

    def __init__(
        self,
        age_tolerance_span: float | None = None,
        year_tolerance_span: float | None = None,
        max_distance_normalizer_km: float | None = None,
    ):
        self.age_tolerance_span = settings.AGE_TOLERANCE_SPAN if age_tolerance_span is None else age_tolerance_span
        self.year_tolerance_span = settings.YEAR_TOLERANCE_SPAN if year_tolerance_span is None else year_tolerance_span
        self.max_distance_normalizer_km = (
            settings.MAX_DISTANCE_NORMALIZER_KM if max_distance_normalizer_km is None else max_distance_normalizer_km
        )
        for name in ("age_tolerance_span", "year_tolerance_span", "max_distance_normalizer_km"):
            value = getattr(self, name)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"{name} must be a positive number, got {value}")

    def similarities(self, requester: ProfileFeatures, candidate: ProfileFeatures) -> dict[str, float]:
        """Per-factor similarity, keyed by factor name."""
        return {
            "age": gap_similarity(requester.age, candidate.age, self.age_tolerance_span),
            "distance": distance_similarity(requester.location, candidate.location, self.max_distance_normalizer_km),
            "interests": jaccard_similarity(requester.interests, candidate.interests),
            "college": token_similarity(requester.college, candidate.college),
            "major": token_similarity(requester.major, candidate.major),
            "year": gap_similarity(requester.year, candidate.year, self.year_tolerance_span),
            "personality": cosine_similarity(requester.personality, candidate.personality),
        }

    def breakdown(
        self, requester: ProfileFeatures, weights: MatchWeights, candidate: ProfileFeatures
    ) -> ScoreBreakdown:
        """
        Score a candidate and keep the per-factor similarities.

        Args:
            requester: Features of the user asking for candidates
            weights: Requester's factor weights
            candidate: Features of the candidate

        Returns:
            ScoreBreakdown with similarities in [0, 1] and total in [0, 100]

        Raises:
            InvalidPreferencesError: If a weight is negative or non-finite, or all weights are zero
        """
        weight_map = self._validated_weights(weights)
        sims = self.similarities(requester, candidate)

        weighted = sum(weight_map[factor] * sims[factor] for factor in WEIGHT_FIELDS)
        total = MAX_SCORE * weighted / sum(weight_map.values())
        total = max(0.0, min(MAX_SCORE, total))

        return ScoreBreakdown(**sims, total=total)

    def score(self, requester: ProfileFeatures, weights: MatchWeights, candidate: ProfileFeatures) -> float:
        return self.breakdown(requester, weights, candidate).total

    @staticmethod
    def _validated_weights(weights: MatchWeights) -> dict[str, float]:
        weight_map = weights.as_dict()
        for factor, value in weight_map.items():
            if not math.isfinite(value) or value < 0:
                raise InvalidPreferencesError(f"{factor} weight must be finite and >= 0, got {value}")
        total = sum(weight_map.values())
        if total <= 0:
            raise InvalidPreferencesError("at least one weight must be greater than zero")
        if not math.isfinite(total):
            raise InvalidPreferencesError("weights overflow when summed")
        return weight_map
