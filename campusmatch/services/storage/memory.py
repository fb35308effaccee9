import asyncio
from collections.abc import AsyncIterator

from loguru import logger

from campusmatch.core.exceptions import AlreadyExistsError, DuplicateLikeError, NotFoundError
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.matching import CandidatePoolHints, Match, ScoreCard, UserLike, pair_key
from campusmatch.models.user import PersonalityTraits, User, UserPreferences
from campusmatch.services.storage.base import MatchStore


class InMemoryMatchStore(MatchStore):
    """
    Process-local store for tests, scripts and single-instance deployments.

    Uniqueness of likes and matches is enforced under one asyncio.Lock, which
    plays the role of the database unique index.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._traits: dict[str, PersonalityTraits] = {}
        self._preferences: dict[str, UserPreferences] = {}
        self._score_cards: dict[str, ScoreCard] = {}
        self._likes: dict[tuple[str, str], UserLike] = {}
        self._matches: dict[tuple[str, str], Match] = {}
        self._generations: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def get_user(self, user_id: str) -> User:
        try:
            return self._users[user_id]
        except KeyError:
            raise NotFoundError("user", user_id) from None

    async def put_user(self, user: User) -> None:
        self._users[user.id] = user

    async def get_personality_traits(self, user_id: str) -> PersonalityTraits:
        try:
            return self._traits[user_id]
        except KeyError:
            raise NotFoundError("personality_traits", user_id) from None

    async def put_personality_traits(self, traits: PersonalityTraits) -> None:
        self._traits[traits.user_id] = traits

    async def get_preferences(self, user_id: str) -> UserPreferences:
        try:
            return self._preferences[user_id]
        except KeyError:
            raise NotFoundError("preferences", user_id) from None

    async def put_preferences(self, preferences: UserPreferences) -> None:
        self._preferences[preferences.user_id] = preferences

    async def query_candidate_pool(self, hints: CandidatePoolHints) -> AsyncIterator[User]:
        yielded = 0
        for user_id in sorted(self._users):
            if hints.limit is not None and yielded >= hints.limit:
                return
            if user_id in hints.exclude_ids:
                continue
            user = self._users[user_id]
            if hints.min_age is not None and (user.age is None or user.age < hints.min_age):
                continue
            if hints.max_age is not None and (user.age is None or user.age > hints.max_age):
                continue
            yielded += 1
            yield user

    async def iter_user_ids(self) -> AsyncIterator[str]:
        for user_id in sorted(self._users):
            yield user_id

    async def insert_user_like(self, sender_id: str, receiver_id: str) -> UserLike:
        async with self._lock:
            key = (sender_id, receiver_id)
            if key in self._likes:
                raise DuplicateLikeError(sender_id, receiver_id)
            like = UserLike(sender_id=sender_id, receiver_id=receiver_id)
            self._likes[key] = like
            return like

    async def find_reciprocal_like(self, sender_id: str, receiver_id: str) -> UserLike:
        try:
            return self._likes[(receiver_id, sender_id)]
        except KeyError:
            raise NotFoundError("like", f"{receiver_id}->{sender_id}") from None

    async def list_liked_ids(self, sender_id: str) -> set[str]:
        return {receiver for sender, receiver in self._likes if sender == sender_id}

    async def insert_match(self, user_a: str, user_b: str, score: float) -> Match:
        async with self._lock:
            key = pair_key(user_a, user_b)
            if key in self._matches:
                raise AlreadyExistsError(*key)
            match = Match.for_pair(user_a, user_b, score)
            self._matches[key] = match
            logger.debug(f"Stored match {key[0]} <-> {key[1]}")
            return match

    async def get_match(self, user_a: str, user_b: str) -> Match:
        key = pair_key(user_a, user_b)
        try:
            return self._matches[key]
        except KeyError:
            raise NotFoundError("match", f"{key[0]}<->{key[1]}") from None

    async def list_matches(self, user_id: str) -> list[Match]:
        return [m for key, m in sorted(self._matches.items()) if user_id in key]

    async def get_profile_generation(self, user_id: str) -> int:
        return self._generations.get(user_id, 0)

    async def bump_profile_generation(self, user_id: str) -> int:
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        return self._generations[user_id]

    async def upsert_score_card(
        self,
        user_id: str,
        features: ProfileFeatures,
        score: float,
        weights: dict[str, float] | None = None,
        generation: int = 0,
    ) -> ScoreCard:
        if features.user_id != user_id:
            raise ValueError(f"features belong to {features.user_id}, not {user_id}")
        card = ScoreCard.from_features(features, score, weights, generation)
        self._score_cards[user_id] = card
        return card

    async def get_score_card(self, user_id: str) -> ScoreCard:
        try:
            return self._score_cards[user_id]
        except KeyError:
            raise NotFoundError("score_card", user_id) from None

    async def delete_score_card(self, user_id: str) -> None:
        self._score_cards.pop(user_id, None)
