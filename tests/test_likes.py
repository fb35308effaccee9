import asyncio

import pytest

from campusmatch.core.exceptions import AlreadyExistsError, DuplicateLikeError, NotFoundError, SelfLikeError
from campusmatch.models.matching import LikeStatus, pair_key
from campusmatch.models.user import MatchProfile
from campusmatch.services.matching.likes import LikeMatcher
from campusmatch.services.storage.memory import InMemoryMatchStore
from tests.conftest import make_prefs, make_profile, make_traits, make_user, run, seed


def test_one_sided_like_is_pending(store):
    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        result = await LikeMatcher(store).record_like("alice", "bob")
        assert result.status == LikeStatus.PENDING
        assert result.match is None
        assert result.like.sender_id == "alice"
        assert await store.list_matches("alice") == []

    run(scenario())


def test_reciprocal_like_creates_match(store):
    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        matcher = LikeMatcher(store)

        await matcher.record_like("bob", "alice")
        result = await matcher.record_like("alice", "bob")

        assert result.is_match
        assert result.created
        assert (result.match.user1_id, result.match.user2_id) == ("alice", "bob")
        assert 0.0 <= result.match.score <= 100.0
        assert await store.list_matches("bob") == [result.match]

    run(scenario())


def test_repeat_like_on_matched_pair_is_idempotent(store):
    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        matcher = LikeMatcher(store)
        await matcher.record_like("alice", "bob")
        first = await matcher.record_like("bob", "alice")

        again = await matcher.record_like("alice", "bob")
        assert again.is_match
        assert not again.created
        assert again.match == first.match
        assert len(await store.list_matches("alice")) == 1

    run(scenario())


def test_duplicate_one_sided_like_raises(store):
    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        matcher = LikeMatcher(store)
        await matcher.record_like("alice", "bob")
        with pytest.raises(DuplicateLikeError):
            await matcher.record_like("alice", "bob")

    run(scenario())


def test_self_like_rejected(store):
    async def scenario():
        await seed(store, make_profile("alice"))
        with pytest.raises(SelfLikeError):
            await LikeMatcher(store).record_like("alice", "alice")
        assert await store.list_liked_ids("alice") == set()

    run(scenario())


def test_like_of_unknown_user_writes_nothing(store):
    async def scenario():
        await seed(store, make_profile("alice"))
        with pytest.raises(NotFoundError):
            await LikeMatcher(store).record_like("alice", "ghost")
        assert await store.list_liked_ids("alice") == set()

    run(scenario())


def test_concurrent_reciprocal_likes_create_one_match(store):
    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        matcher = LikeMatcher(store)
        results = await asyncio.gather(matcher.record_like("alice", "bob"), matcher.record_like("bob", "alice"))

        assert any(r.is_match for r in results)
        assert sum(r.created for r in results) == 1
        assert len(await store.list_matches("alice")) == 1

    run(scenario())


class LosingRaceStore(InMemoryMatchStore):
    """Another writer inserts the match between our read and our insert."""

    async def insert_match(self, user_a, user_b, score):
        await super().insert_match(user_a, user_b, score)
        raise AlreadyExistsError(*pair_key(user_a, user_b))


def test_lost_match_insert_reuses_existing_match():
    store = LosingRaceStore()
    notified = []

    async def listener(match):
        notified.append(match)

    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        matcher = LikeMatcher(store, listeners=[listener])
        await matcher.record_like("alice", "bob")
        result = await matcher.record_like("bob", "alice")

        assert result.is_match
        assert not result.created
        assert result.match == await store.get_match("alice", "bob")

    run(scenario())
    assert notified == []


def test_listener_notified_once_per_new_match(store):
    notified = []

    async def listener(match):
        notified.append(match)

    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        matcher = LikeMatcher(store)
        matcher.add_listener(listener)
        await matcher.record_like("alice", "bob")
        await matcher.record_like("bob", "alice")
        await matcher.record_like("alice", "bob")

    run(scenario())
    assert len(notified) == 1


def test_failing_listener_does_not_undo_match(store):
    async def broken(match):
        raise RuntimeError("push service down")

    async def scenario():
        await seed(store, make_profile("alice"), make_profile("bob"))
        matcher = LikeMatcher(store, listeners=[broken])
        await matcher.record_like("alice", "bob")
        result = await matcher.record_like("bob", "alice")
        assert result.created
        assert await store.get_match("alice", "bob") == result.match

    run(scenario())


def test_match_score_is_symmetric(store):
    async def scenario():
        alice = MatchProfile(
            user=make_user("alice", age=21, interests=["jazz", "chess"]),
            traits=make_traits("alice", openness=90),
            preferences=make_prefs("alice", interests_weight=5.0, distance_weight=0.0),
        )
        bob = MatchProfile(
            user=make_user("bob", age=26, major="History", interests=["jazz"]),
            preferences=make_prefs("bob", age_weight=3.0),
        )
        await seed(store, alice, bob)
        matcher = LikeMatcher(store)
        assert await matcher.match_score("alice", "bob") == pytest.approx(await matcher.match_score("bob", "alice"))

    run(scenario())


def test_missing_or_zero_weights_fall_back_to_defaults(store):
    async def scenario():
        zero = {f"{f}_weight": 0.0 for f in ("age", "distance", "interests", "college", "major", "year", "personality")}
        alice = MatchProfile(user=make_user("alice"), preferences=make_prefs("alice", **zero))
        bob = MatchProfile(user=make_user("bob"))
        carol = MatchProfile(user=make_user("carol"), preferences=make_prefs("carol"))
        dave = MatchProfile(user=make_user("dave"), preferences=make_prefs("dave"))
        await seed(store, alice, bob, carol, dave)

        matcher = LikeMatcher(store)
        assert await matcher.match_score("alice", "bob") == pytest.approx(await matcher.match_score("carol", "dave"))

    run(scenario())
