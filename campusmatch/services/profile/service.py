import asyncio

from cachetools import TTLCache
from loguru import logger

from campusmatch.core.config import settings
from campusmatch.core.exceptions import DataCorruptionError, NotFoundError
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.matching import ScoreCard
from campusmatch.models.user import MatchProfile, PersonalityTraits, User, UserPreferences
from campusmatch.services.profile.builder import ProfileFeatureBuilder
from campusmatch.services.storage.base import MatchStore


class FeatureService:
    """
    Loads profile bundles from the store and serves ProfileFeatures.

    Reads go through two cache layers: an in-process TTL cache, then the
    user's ScoreCard when it is fresh enough. Misses are built from the source
    records and written through to the ScoreCard. Writers must call
    ``invalidate`` after changing a profile, traits or preferences; it bumps
    the store's profile generation, and cards or cache entries built from an
    older generation are never served.
    """

    def __init__(
        self,
        store: MatchStore,
        builder: ProfileFeatureBuilder | None = None,
        write_through: bool | None = None,
    ):
        self.store = store
        self.builder = builder or ProfileFeatureBuilder()
        self.write_through = settings.SCORECARD_WRITE_THROUGH if write_through is None else write_through
        self._features: TTLCache = TTLCache(
            maxsize=settings.FEATURE_CACHE_SIZE, ttl=max(1, settings.FEATURE_CACHE_TTL_SECONDS)
        )

    async def _optional_traits(self, user_id: str) -> PersonalityTraits | None:
        try:
            return await self.store.get_personality_traits(user_id)
        except NotFoundError:
            return None

    async def _optional_preferences(self, user_id: str) -> UserPreferences | None:
        try:
            return await self.store.get_preferences(user_id)
        except NotFoundError:
            return None

    async def load_profile(self, user_id: str) -> MatchProfile:
        """
        Load a user with the optional traits and preference rows.

        Raises:
            NotFoundError: If the user itself does not exist
        """
        user = await self.store.get_user(user_id)
        return await self.complete_profile(user)

    async def complete_profile(self, user: User) -> MatchProfile:
        traits, preferences = await asyncio.gather(
            self._optional_traits(user.id), self._optional_preferences(user.id)
        )
        return MatchProfile(user=user, traits=traits, preferences=preferences)

    async def load_profiles(self, users: list[User]) -> list[MatchProfile]:
        """
        Complete many users in parallel.

        A user whose related records cannot be decoded is skipped and logged.
        """
        results = await asyncio.gather(*(self.complete_profile(u) for u in users), return_exceptions=True)

        profiles = []
        for user, result in zip(users, results):
            if isinstance(result, DataCorruptionError):
                logger.warning(f"Skipping candidate {user.id}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            profiles.append(result)
        return profiles

    async def get_features(self, user_id: str) -> ProfileFeatures:
        """
        Get features for a user, building them on cache miss.

        Raises:
            NotFoundError: If the user does not exist
        """
        cached = self._features.get(user_id)
        if cached is not None:
            return cached

        # Read before loading: a write landing mid-build bumps it past this value
        generation = await self.store.get_profile_generation(user_id)

        card = await self._fresh_score_card(user_id, generation)
        if card is not None:
            logger.debug(f"[{user_id}] Features served from score card")
            self._features[user_id] = card.features
            return card.features

        profile = await self.load_profile(user_id)
        features = self.builder.build_profile(profile)

        if await self.store.get_profile_generation(user_id) != generation:
            logger.debug(f"[{user_id}] Profile changed while building features; not caching")
            return features

        self._features[user_id] = features
        if self.write_through:
            await self._write_score_card(features, profile.preferences, generation)
        return features

    async def refresh_score_card(self, user_id: str) -> ScoreCard:
        """Rebuild features from source and overwrite the user's ScoreCard."""
        generation = await self.store.get_profile_generation(user_id)
        profile = await self.load_profile(user_id)
        features = self.builder.build_profile(profile)
        card = await self._write_score_card(features, profile.preferences, generation)
        if await self.store.get_profile_generation(user_id) == generation:
            self._features[user_id] = features
        return card

    async def invalidate(self, user_id: str) -> None:
        """Drop every cached view of a user. Call after any profile write."""
        self._features.pop(user_id, None)
        generation = await self.store.bump_profile_generation(user_id)
        await self.store.delete_score_card(user_id)
        logger.debug(f"[{user_id}] Invalidated features and score card (generation={generation})")

    async def _fresh_score_card(self, user_id: str, generation: int) -> ScoreCard | None:
        try:
            card = await self.store.get_score_card(user_id)
        except NotFoundError:
            return None
        except DataCorruptionError as e:
            logger.warning(f"[{user_id}] Ignoring unreadable score card: {e}")
            return None

        if card.generation != generation:
            logger.debug(f"[{user_id}] Ignoring score card from generation {card.generation} (current {generation})")
            return None
        if not card.is_fresh(settings.SCORECARD_TTL_SECONDS):
            return None
        return card

    async def _write_score_card(
        self, features: ProfileFeatures, preferences: UserPreferences | None, generation: int
    ) -> ScoreCard:
        weights = preferences.weights.as_dict() if preferences is not None else None
        score = round(features.completeness() * 100, 2)
        card = await self.store.upsert_score_card(features.user_id, features, score, weights, generation)
        logger.debug(f"[{features.user_id}] Score card written (score={score}, generation={generation})")
        return card
