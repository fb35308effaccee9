import time
from collections.abc import Iterable

from loguru import logger

from campusmatch.core.config import settings
from campusmatch.core.exceptions import FeatureBuildError, InvalidPreferencesError, RankingCancelledError
from campusmatch.models.matching import RankedCandidate
from campusmatch.models.user import MatchProfile
from campusmatch.services.matching.filters import PreferenceFilter
from campusmatch.services.matching.scorer import CompatibilityScorer
from campusmatch.services.profile.builder import ProfileFeatureBuilder


class CandidateRanker:
    """
    Two-stage filter-then-rank over a bounded candidate pool.

    Stateless: one instance can serve many requesters in parallel.
    """

    def __init__(
        self,
        builder: ProfileFeatureBuilder | None = None,
        scorer: CompatibilityScorer | None = None,
        preference_filter: PreferenceFilter | None = None,
        mutual_gender: bool | None = None,
    ):
        self.builder = builder or ProfileFeatureBuilder()
        self.scorer = scorer or CompatibilityScorer()
        self.preference_filter = preference_filter or PreferenceFilter()
        self.mutual_gender = settings.MUTUAL_GENDER_FILTER if mutual_gender is None else mutual_gender

    def rank(
        self,
        requester: MatchProfile,
        candidates: Iterable[MatchProfile],
        limit: int,
        *,
        min_score: float = 0.0,
        deadline: float | None = None,
    ) -> list[RankedCandidate]:
        """
        Filter, score and order a candidate pool for one requester.

        Args:
            requester: Requester profile; must carry preferences
            candidates: Candidate profiles (already paged by the store)
            limit: Maximum number of results
            min_score: Candidates scoring below this are dropped
            deadline: ``time.monotonic()`` value after which ranking is abandoned

        Returns:
            Candidates sorted by score descending, ties by candidate id ascending

        Raises:
            InvalidPreferencesError: If the requester has no usable preferences
            RankingCancelledError: If the deadline passed
        """
        if requester.preferences is None:
            raise InvalidPreferencesError(f"user {requester.user_id} has no preferences set")

        preferences = requester.preferences
        weights = preferences.weights
        # Fail fast on unusable weights instead of once per candidate
        if not weights.is_usable():
            raise InvalidPreferencesError(f"user {requester.user_id} has unusable weights")

        requester_features = self.builder.build_profile(requester)

        ranked: list[RankedCandidate] = []
        ranked_ids: set[str] = set()
        seen = 0
        filtered = 0
        skipped = 0
        for candidate in candidates:
            if deadline is not None and time.monotonic() > deadline:
                logger.warning(f"Ranking for {requester.user_id} cancelled after {seen} candidates")
                raise RankingCancelledError(f"deadline passed after {seen} candidates")
            seen += 1

            if candidate.user_id in ranked_ids:
                logger.debug(f"Duplicate candidate {candidate.user_id} in pool for {requester.user_id}")
                continue

            try:
                features = self.builder.build_profile(candidate)
            except (FeatureBuildError, ValueError) as e:
                skipped += 1
                logger.warning(f"Skipping candidate {candidate.user_id}: cannot build features: {e}")
                continue

            violations = self.preference_filter.violations(requester_features, preferences, features)
            if violations:
                filtered += 1
                logger.debug(f"Candidate {candidate.user_id} filtered for {requester.user_id}: {violations}")
                continue

            if self.mutual_gender and not self._admits_requester(candidate, requester_features.gender):
                filtered += 1
                logger.debug(f"Candidate {candidate.user_id} does not prefer requester's gender")
                continue

            breakdown = self.scorer.breakdown(requester_features, weights, features)
            if breakdown.total < min_score:
                continue

            ranked_ids.add(candidate.user_id)
            ranked.append(RankedCandidate(candidate_id=candidate.user_id, score=breakdown.total, breakdown=breakdown))

        ranked.sort(key=lambda rc: (-rc.score, rc.candidate_id))
        logger.debug(
            f"Ranked {len(ranked)} of {seen} candidates for {requester.user_id} "
            f"(filtered={filtered}, skipped={skipped})"
        )
        return ranked[: max(0, limit)]

    @staticmethod
    def _admits_requester(candidate: MatchProfile, requester_gender: str | None) -> bool:
        # Candidates without preferences accept anyone
        if candidate.preferences is None:
            return True
        return PreferenceFilter.passes_gender(requester_gender, candidate.preferences.preferred_genders)
