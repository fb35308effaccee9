from collections.abc import AsyncIterator
from typing import TypeVar

import redis.asyncio as redis
from loguru import logger
from pydantic import BaseModel, ValidationError

from campusmatch.core.config import settings
from campusmatch.core.constants import (
    GENERATION_KEY,
    LIKE_KEY,
    LIKES_OUT_KEY,
    MATCH_KEY,
    MATCHES_OF_KEY,
    PREFERENCES_KEY,
    SCORECARD_KEY,
    TRAITS_KEY,
    USER_KEY,
    USERS_BY_AGE_KEY,
    USERS_SET_KEY,
)
from campusmatch.core.exceptions import AlreadyExistsError, DataCorruptionError, DuplicateLikeError, NotFoundError
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.matching import CandidatePoolHints, Match, ScoreCard, UserLike, pair_key
from campusmatch.models.user import PersonalityTraits, User, UserPreferences
from campusmatch.services.storage.base import MatchStore

ModelT = TypeVar("ModelT", bound=BaseModel)

SCAN_BATCH_SIZE = 500


class RedisMatchStore(MatchStore):
    """
    Redis-backed store.

    Records are stored as JSON strings. Likes and matches are written with
    ``SET NX`` so Redis is the uniqueness authority across engine instances:
    the match key is built from the sorted pair, so concurrent reciprocal
    likes can only ever create one match.
    """

    def __init__(self, url: str | None = None, key_prefix: str | None = None, client: redis.Redis | None = None):
        self.url = url or settings.REDIS_URL
        self.prefix = settings.REDIS_KEY_PREFIX if key_prefix is None else key_prefix
        self._client: redis.Redis | None = client
        if not self.url and client is None:
            logger.warning("REDIS_URL is not set. Store operations will fail until configured.")

    async def get_client(self) -> redis.Redis:
        if self._client is None:
            logger.info("Creating Redis client for RedisMatchStore")
            self._client = redis.from_url(
                self.url,
                decode_responses=True,
                encoding="utf-8",
                socket_connect_timeout=5,
                socket_timeout=5,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                health_check_interval=30,
                socket_keepalive=True,
            )
        return self._client

    async def close(self) -> None:
        """Close and disconnect the Redis client"""
        if self._client is not None:
            try:
                await self._client.aclose()
                logger.info("RedisMatchStore client closed")
            except Exception as exc:
                logger.warning(f"Failed to close RedisMatchStore client: {exc}")
            finally:
                self._client = None

    # Key helpers

    def _key(self, template: str, **kwargs: str) -> str:
        return template.format(prefix=self.prefix, **kwargs)

    def _match_key(self, user_a: str, user_b: str) -> str:
        user1_id, user2_id = pair_key(user_a, user_b)
        return self._key(MATCH_KEY, user1_id=user1_id, user2_id=user2_id)

    @staticmethod
    def _decode(model: type[ModelT], raw: str, key: str) -> ModelT:
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            raise DataCorruptionError(f"cannot decode {key}: {e}") from e

    async def _get_model(self, model: type[ModelT], key: str, entity: str, entity_key: str) -> ModelT:
        client = await self.get_client()
        raw = await client.get(key)
        if raw is None:
            raise NotFoundError(entity, entity_key)
        return self._decode(model, raw, key)

    # Profiles

    async def get_user(self, user_id: str) -> User:
        return await self._get_model(User, self._key(USER_KEY, user_id=user_id), "user", user_id)

    async def put_user(self, user: User) -> None:
        client = await self.get_client()
        by_age = self._key(USERS_BY_AGE_KEY)
        async with client.pipeline(transaction=True) as pipe:
            pipe.set(self._key(USER_KEY, user_id=user.id), user.model_dump_json())
            pipe.sadd(self._key(USERS_SET_KEY), user.id)
            if user.age is not None:
                pipe.zadd(by_age, {user.id: user.age})
            else:
                pipe.zrem(by_age, user.id)
            await pipe.execute()

    async def get_personality_traits(self, user_id: str) -> PersonalityTraits:
        key = self._key(TRAITS_KEY, user_id=user_id)
        return await self._get_model(PersonalityTraits, key, "personality_traits", user_id)

    async def put_personality_traits(self, traits: PersonalityTraits) -> None:
        client = await self.get_client()
        await client.set(self._key(TRAITS_KEY, user_id=traits.user_id), traits.model_dump_json())

    async def get_preferences(self, user_id: str) -> UserPreferences:
        key = self._key(PREFERENCES_KEY, user_id=user_id)
        return await self._get_model(UserPreferences, key, "preferences", user_id)

    async def put_preferences(self, preferences: UserPreferences) -> None:
        client = await self.get_client()
        await client.set(self._key(PREFERENCES_KEY, user_id=preferences.user_id), preferences.model_dump_json())

    async def _candidate_ids(self, hints: CandidatePoolHints) -> AsyncIterator[str]:
        client = await self.get_client()
        if hints.min_age is None and hints.max_age is None:
            async for user_id in client.sscan_iter(self._key(USERS_SET_KEY), count=SCAN_BATCH_SIZE):
                yield user_id
            return

        # Age-indexed pre-filter
        low = "-inf" if hints.min_age is None else hints.min_age
        high = "+inf" if hints.max_age is None else hints.max_age
        offset = 0
        while True:
            page = await client.zrangebyscore(
                self._key(USERS_BY_AGE_KEY), low, high, start=offset, num=SCAN_BATCH_SIZE
            )
            for user_id in page:
                yield user_id
            if len(page) < SCAN_BATCH_SIZE:
                return
            offset += SCAN_BATCH_SIZE

    async def query_candidate_pool(self, hints: CandidatePoolHints) -> AsyncIterator[User]:
        client = await self.get_client()
        yielded = 0
        batch: list[str] = []
        # SSCAN and paged ZRANGEBYSCORE may return a member more than once
        seen: set[str] = set()

        async def _flush(ids: list[str]) -> list[User]:
            keys = [self._key(USER_KEY, user_id=uid) for uid in ids]
            users = []
            for key, raw in zip(keys, await client.mget(keys)):
                if raw is None:
                    continue
                try:
                    users.append(self._decode(User, raw, key))
                except DataCorruptionError as e:
                    logger.warning(f"Skipping unreadable candidate record: {e}")
            return users

        async for user_id in self._candidate_ids(hints):
            if user_id in hints.exclude_ids or user_id in seen:
                continue
            seen.add(user_id)
            batch.append(user_id)
            if len(batch) < SCAN_BATCH_SIZE:
                continue
            for user in await _flush(batch):
                if hints.limit is not None and yielded >= hints.limit:
                    return
                yielded += 1
                yield user
            batch = []

        if batch:
            for user in await _flush(batch):
                if hints.limit is not None and yielded >= hints.limit:
                    return
                yielded += 1
                yield user

    async def iter_user_ids(self) -> AsyncIterator[str]:
        client = await self.get_client()
        async for user_id in client.sscan_iter(self._key(USERS_SET_KEY), count=SCAN_BATCH_SIZE):
            yield user_id

    # Likes

    async def insert_user_like(self, sender_id: str, receiver_id: str) -> UserLike:
        client = await self.get_client()
        like = UserLike(sender_id=sender_id, receiver_id=receiver_id)
        key = self._key(LIKE_KEY, sender_id=sender_id, receiver_id=receiver_id)
        created = await client.set(key, like.model_dump_json(), nx=True)
        if not created:
            raise DuplicateLikeError(sender_id, receiver_id)
        await client.sadd(self._key(LIKES_OUT_KEY, sender_id=sender_id), receiver_id)
        return like

    async def find_reciprocal_like(self, sender_id: str, receiver_id: str) -> UserLike:
        key = self._key(LIKE_KEY, sender_id=receiver_id, receiver_id=sender_id)
        return await self._get_model(UserLike, key, "like", f"{receiver_id}->{sender_id}")

    async def list_liked_ids(self, sender_id: str) -> set[str]:
        client = await self.get_client()
        return set(await client.smembers(self._key(LIKES_OUT_KEY, sender_id=sender_id)))

    # Matches

    async def insert_match(self, user_a: str, user_b: str, score: float) -> Match:
        client = await self.get_client()
        match = Match.for_pair(user_a, user_b, score)
        created = await client.set(self._match_key(user_a, user_b), match.model_dump_json(), nx=True)
        if not created:
            raise AlreadyExistsError(match.user1_id, match.user2_id)

        async with client.pipeline(transaction=True) as pipe:
            pipe.sadd(self._key(MATCHES_OF_KEY, user_id=match.user1_id), match.user2_id)
            pipe.sadd(self._key(MATCHES_OF_KEY, user_id=match.user2_id), match.user1_id)
            await pipe.execute()
        return match

    async def get_match(self, user_a: str, user_b: str) -> Match:
        user1_id, user2_id = pair_key(user_a, user_b)
        return await self._get_model(Match, self._match_key(user_a, user_b), "match", f"{user1_id}<->{user2_id}")

    async def list_matches(self, user_id: str) -> list[Match]:
        client = await self.get_client()
        partners = sorted(await client.smembers(self._key(MATCHES_OF_KEY, user_id=user_id)))
        if not partners:
            return []
        keys = [self._match_key(user_id, other) for other in partners]
        return [self._decode(Match, raw, key) for key, raw in zip(keys, await client.mget(keys)) if raw is not None]

    async def list_matched_ids(self, user_id: str) -> set[str]:
        client = await self.get_client()
        return set(await client.smembers(self._key(MATCHES_OF_KEY, user_id=user_id)))

    # Score cards

    async def get_profile_generation(self, user_id: str) -> int:
        client = await self.get_client()
        raw = await client.get(self._key(GENERATION_KEY, user_id=user_id))
        return int(raw) if raw is not None else 0

    async def bump_profile_generation(self, user_id: str) -> int:
        client = await self.get_client()
        return int(await client.incr(self._key(GENERATION_KEY, user_id=user_id)))

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
        client = await self.get_client()
        key = self._key(SCORECARD_KEY, user_id=user_id)
        if settings.SCORECARD_TTL_SECONDS > 0:
            await client.setex(key, settings.SCORECARD_TTL_SECONDS, card.model_dump_json())
        else:
            await client.set(key, card.model_dump_json())
        return card

    async def get_score_card(self, user_id: str) -> ScoreCard:
        return await self._get_model(ScoreCard, self._key(SCORECARD_KEY, user_id=user_id), "score_card", user_id)

    async def delete_score_card(self, user_id: str) -> None:
        client = await self.get_client()
        await client.delete(self._key(SCORECARD_KEY, user_id=user_id))
