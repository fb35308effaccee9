import asyncio
import time
from datetime import datetime, timezone
from typing import Any

from loguru import logger
from pydantic import ValidationError

from campusmatch.core.config import settings
from campusmatch.core.exceptions import (
    InvalidInputError,
    InvalidPreferencesError,
    NotFoundError,
    RankingCancelledError,
)
from campusmatch.models.matching import CandidatePoolHints, LikeResult, Match, RankedCandidate
from campusmatch.models.user import PersonalityTraits, User, UserPreferences
from campusmatch.services.matching.likes import LikeMatcher
from campusmatch.services.matching.ranker import CandidateRanker
from campusmatch.services.profile.service import FeatureService
from campusmatch.services.storage.base import MatchStore


class MatchingService:
    """
    Entry point used by the enclosing service layer.

    Wires the store, feature cache, ranker and like matcher together and
    keeps score cards consistent by invalidating them on every profile write.
    """

    def __init__(
        self,
        store: MatchStore,
        feature_service: FeatureService | None = None,
        ranker: CandidateRanker | None = None,
        like_matcher: LikeMatcher | None = None,
    ):
        self.store = store
        self.feature_service = feature_service or FeatureService(store)
        self.ranker = ranker or CandidateRanker(builder=self.feature_service.builder)
        self.like_matcher = like_matcher or LikeMatcher(store, feature_service=self.feature_service)

    async def find_matches(
        self,
        user_id: str,
        limit: int | None = None,
        *,
        exclude_interacted: bool = True,
        min_score: float | None = None,
        timeout: float | None = None,
    ) -> list[RankedCandidate]:
        """
        Rank potential matches for a user.

        Args:
            user_id: Requesting user
            limit: Maximum results (DEFAULT_MATCH_LIMIT if None)
            exclude_interacted: Skip users already liked by or matched with the requester
            min_score: Score cut-off (MIN_MATCH_SCORE if None)
            timeout: Seconds before the request is abandoned (RANKING_TIMEOUT_SECONDS if None)

        Returns:
            Ranked candidates, best first

        Raises:
            NotFoundError: If the requester does not exist
            InvalidPreferencesError: If the requester has no usable preferences
            RankingCancelledError: If the timeout elapsed
        """
        limit = settings.DEFAULT_MATCH_LIMIT if limit is None else limit
        min_score = settings.MIN_MATCH_SCORE if min_score is None else min_score
        timeout = settings.RANKING_TIMEOUT_SECONDS if timeout is None else timeout
        deadline = time.monotonic() + timeout

        requester = await self.feature_service.load_profile(user_id)
        if requester.preferences is None:
            raise InvalidPreferencesError(f"user {user_id} has no preferences set")

        try:
            candidates = await asyncio.wait_for(
                self._load_candidates(user_id, requester.preferences, exclude_interacted), timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"[{user_id}] Candidate loading exceeded {timeout}s")
            raise RankingCancelledError(f"candidate loading exceeded {timeout}s") from None

        logger.info(f"[{user_id}] Ranking {len(candidates)} candidates")
        return await asyncio.to_thread(
            self.ranker.rank, requester, candidates, limit, min_score=min_score, deadline=deadline
        )

    async def _load_candidates(self, user_id: str, preferences: UserPreferences, exclude_interacted: bool):
        exclude_ids = {user_id}
        if exclude_interacted:
            liked, matched = await asyncio.gather(
                self.store.list_liked_ids(user_id), self.store.list_matched_ids(user_id)
            )
            exclude_ids |= liked | matched

        hints = CandidatePoolHints(
            exclude_ids=exclude_ids,
            min_age=preferences.min_age,
            max_age=preferences.max_age,
            limit=settings.CANDIDATE_POOL_LIMIT,
        )
        users = [user async for user in self.store.query_candidate_pool(hints)]
        return await self.feature_service.load_profiles(users)

    async def record_like(self, sender_id: str, receiver_id: str) -> LikeResult:
        return await self.like_matcher.record_like(sender_id, receiver_id)

    async def list_matches(self, user_id: str) -> list[Match]:
        return await self.store.list_matches(user_id)

    async def get_preferences(self, user_id: str) -> UserPreferences | None:
        try:
            return await self.store.get_preferences(user_id)
        except NotFoundError:
            return None

    async def update_preferences(self, user_id: str, updates: dict[str, Any]) -> UserPreferences:
        """
        Create or partially update a user's preferences.

        Rows whose weights are all zero are rejected here so the scorer never
        sees them.

        Raises:
            NotFoundError: If the user does not exist
            InvalidPreferencesError: If the merged row is invalid
        """
        await self.store.get_user(user_id)
        current = await self.get_preferences(user_id)
        base = current.model_dump() if current is not None else {}

        merged = {**base, **updates, "user_id": user_id, "updated_at": datetime.now(timezone.utc)}
        try:
            preferences = UserPreferences.model_validate(merged)
        except ValidationError as e:
            raise InvalidPreferencesError(str(e)) from e
        if not preferences.weights.is_usable():
            raise InvalidPreferencesError("at least one weight must be greater than zero")

        await self.store.put_preferences(preferences)
        await self.feature_service.invalidate(user_id)
        logger.info(f"[{user_id}] Preferences updated")
        return preferences

    async def update_personality(self, user_id: str, traits: dict[str, Any]) -> PersonalityTraits:
        """
        Create or replace a user's personality traits.

        Raises:
            NotFoundError: If the user does not exist
            InvalidInputError: If a trait is missing or outside the scale
        """
        await self.store.get_user(user_id)
        try:
            record = PersonalityTraits.model_validate(
                {**traits, "user_id": user_id, "updated_at": datetime.now(timezone.utc)}
            )
        except ValidationError as e:
            raise InvalidInputError(str(e)) from e

        await self.store.put_personality_traits(record)
        await self.feature_service.invalidate(user_id)
        logger.info(f"[{user_id}] Personality traits updated")
        return record

    async def update_profile(self, user: User) -> User:
        """Store profile edits and drop the cached features."""
        user = user.model_copy(update={"updated_at": datetime.now(timezone.utc)})
        await self.store.put_user(user)
        await self.feature_service.invalidate(user.id)
        return user
