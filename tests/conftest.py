import asyncio

import pytest

from campusmatch.models.user import GeoPoint, MatchProfile, PersonalityTraits, User, UserPreferences
from campusmatch.services.storage.memory import InMemoryMatchStore

CAMPUS = GeoPoint(latitude=40.0, longitude=-75.0)

# One degree of latitude on the 6371 km sphere
KM_PER_DEGREE_LAT = 111.19492664455873


def point_north_of(origin: GeoPoint, km: float) -> GeoPoint:
    return GeoPoint(latitude=origin.latitude + km / KM_PER_DEGREE_LAT, longitude=origin.longitude)


def make_user(user_id: str = "u1", **overrides) -> User:
    data = {
        "id": user_id,
        "email": f"{user_id}@campus.edu",
        "name": user_id.upper(),
        "age": 22,
        "gender": "female",
        "college": "State University",
        "major": "Biology",
        "year": 3,
        "location": CAMPUS,
        "interests": ["hiking", "jazz"],
    }
    data.update(overrides)
    return User(**data)


def make_traits(user_id: str = "u1", **overrides) -> PersonalityTraits:
    data = {
        "user_id": user_id,
        "extroversion": 60,
        "openness": 70,
        "conscientiousness": 50,
        "agreeableness": 65,
        "neuroticism": 30,
    }
    data.update(overrides)
    return PersonalityTraits(**data)


def make_prefs(user_id: str = "u1", **overrides) -> UserPreferences:
    data = {
        "user_id": user_id,
        "min_age": 18,
        "max_age": 30,
        "preferred_genders": [],
        "max_distance": None,
    }
    data.update(overrides)
    return UserPreferences(**data)


def make_profile(user_id: str = "u1", traits: bool = True, prefs: bool = True, **user_overrides) -> MatchProfile:
    return MatchProfile(
        user=make_user(user_id, **user_overrides),
        traits=make_traits(user_id) if traits else None,
        preferences=make_prefs(user_id) if prefs else None,
    )


def run(coro):
    return asyncio.run(coro)


async def seed(store: InMemoryMatchStore, *profiles: MatchProfile) -> None:
    for profile in profiles:
        await store.put_user(profile.user)
        if profile.traits is not None:
            await store.put_personality_traits(profile.traits)
        if profile.preferences is not None:
            await store.put_preferences(profile.preferences)


@pytest.fixture
def store() -> InMemoryMatchStore:
    return InMemoryMatchStore()
