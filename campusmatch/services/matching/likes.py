import asyncio
from collections.abc import Awaitable, Callable

from loguru import logger

from campusmatch.core.exceptions import AlreadyExistsError, DuplicateLikeError, NotFoundError, SelfLikeError
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.matching import LikeResult, LikeStatus, Match, UserLike
from campusmatch.models.user import MatchWeights, UserPreferences
from campusmatch.services.matching.scorer import CompatibilityScorer
from campusmatch.services.profile.service import FeatureService
from campusmatch.services.storage.base import MatchStore

MatchListener = Callable[[Match], Awaitable[None]]


class LikeMatcher:
    """
    Records likes and turns reciprocal likes into matches.

    Per unordered pair: NoLike -> OneSidedLike -> Matched (terminal).
    The like/match uniqueness constraints live in the store; a lost race on
    match insert is treated as "already matched", never as an error.
    """

    def __init__(
        self,
        store: MatchStore,
        feature_service: FeatureService | None = None,
        scorer: CompatibilityScorer | None = None,
        listeners: list[MatchListener] | None = None,
    ):
        self.store = store
        self.feature_service = feature_service or FeatureService(store)
        self.scorer = scorer or CompatibilityScorer()
        self.listeners: list[MatchListener] = list(listeners or [])

    def add_listener(self, listener: MatchListener) -> None:
        """Register a coroutine called once for every newly created match."""
        self.listeners.append(listener)

    async def record_like(self, sender_id: str, receiver_id: str) -> LikeResult:
        """
        Record ``sender -> receiver`` and create a match on reciprocity.

        Args:
            sender_id: User expressing interest
            receiver_id: User being liked

        Returns:
            LikeResult with status PENDING, or MATCHED and the match

        Raises:
            SelfLikeError: If sender and receiver are the same user
            NotFoundError: If either user does not exist
            DuplicateLikeError: If the like exists and the pair is not reciprocal
        """
        if sender_id == receiver_id:
            raise SelfLikeError(sender_id)

        # Nonexistent users are a caller bug: fail before writing anything
        await asyncio.gather(self.store.get_user(sender_id), self.store.get_user(receiver_id))

        like: UserLike | None = None
        try:
            like = await self.store.insert_user_like(sender_id, receiver_id)
            logger.info(f"Like recorded {sender_id} -> {receiver_id}")
        except DuplicateLikeError:
            # A repeat like on a reciprocal pair is idempotent: fall through
            # and return (or repair) the match
            if not await self._has_reciprocal(sender_id, receiver_id):
                logger.debug(f"Duplicate like {sender_id} -> {receiver_id} ignored")
                raise
            logger.debug(f"Repeat like {sender_id} -> {receiver_id} on reciprocal pair")
        else:
            if not await self._has_reciprocal(sender_id, receiver_id):
                return LikeResult(status=LikeStatus.PENDING, like=like)

        match, created = await self._ensure_match(sender_id, receiver_id)
        if created:
            await self._notify(match)
        return LikeResult(status=LikeStatus.MATCHED, like=like, match=match, created=created)

    async def match_score(self, user_a: str, user_b: str) -> float:
        """
        Symmetric compatibility of a pair: the mean of both directions,
        each scored with that side's own weights.
        """
        features_a, features_b, prefs_a, prefs_b = await asyncio.gather(
            self.feature_service.get_features(user_a),
            self.feature_service.get_features(user_b),
            self._optional_preferences(user_a),
            self._optional_preferences(user_b),
        )
        return self.symmetric_score(features_a, prefs_a, features_b, prefs_b)

    def symmetric_score(
        self,
        features_a: ProfileFeatures,
        prefs_a: UserPreferences | None,
        features_b: ProfileFeatures,
        prefs_b: UserPreferences | None,
    ) -> float:
        a_to_b = self.scorer.score(features_a, self._effective_weights(features_a.user_id, prefs_a), features_b)
        b_to_a = self.scorer.score(features_b, self._effective_weights(features_b.user_id, prefs_b), features_a)
        return (a_to_b + b_to_a) / 2

    async def _has_reciprocal(self, sender_id: str, receiver_id: str) -> bool:
        try:
            await self.store.find_reciprocal_like(sender_id, receiver_id)
            return True
        except NotFoundError:
            return False

    async def _ensure_match(self, sender_id: str, receiver_id: str) -> tuple[Match, bool]:
        try:
            return await self.store.get_match(sender_id, receiver_id), False
        except NotFoundError:
            pass

        score = await self.match_score(sender_id, receiver_id)
        try:
            match = await self.store.insert_match(sender_id, receiver_id, score)
        except AlreadyExistsError:
            # Concurrent reciprocal like won the insert
            logger.info(f"Match {sender_id} <-> {receiver_id} created concurrently; reusing it")
            return await self.store.get_match(sender_id, receiver_id), False

        logger.info(f"Match created {match.user1_id} <-> {match.user2_id} (score={score:.2f})")
        return match, True

    async def _optional_preferences(self, user_id: str) -> UserPreferences | None:
        try:
            return await self.store.get_preferences(user_id)
        except NotFoundError:
            return None

    @staticmethod
    def _effective_weights(user_id: str, preferences: UserPreferences | None) -> MatchWeights:
        """The user's weights, or the uniform default when they are missing or all zero."""
        if preferences is not None:
            weights = preferences.weights
            if weights.is_usable():
                return weights
            logger.warning(f"[{user_id}] Unusable weights; scoring match with defaults")
        return MatchWeights.uniform()

    async def _notify(self, match: Match) -> None:
        for listener in self.listeners:
            try:
                await listener(match)
            except Exception as e:
                # The match is committed; a downstream failure must not undo it
                logger.exception(f"Match listener failed for {match.user1_id} <-> {match.user2_id}: {e}")
