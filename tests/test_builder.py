import math

import pytest

from campusmatch.core.exceptions import FeatureBuildError
from campusmatch.models.matching import ScoreCard
from campusmatch.models.user import GeoPoint, MatchProfile
from campusmatch.services.profile.builder import ProfileFeatureBuilder, normalize_token
from tests.conftest import make_prefs, make_profile, make_traits, make_user


@pytest.mark.parametrize(
    "raw,expected",
    [("  Biology ", "biology"), ("STATE University", "state university"), ("   ", None), ("", None), (None, None)],
)
def test_normalize_token(raw, expected):
    assert normalize_token(raw) == expected


def test_build_normalizes_tokens_and_interests():
    user = make_user("u1", college=" State University ", interests=["Hiking", " hiking", "JAZZ", "  "])
    features = ProfileFeatureBuilder().build(user)

    assert features.college == "state university"
    assert features.interests == frozenset({"hiking", "jazz"})
    assert features.personality is None
    assert features.has_preferences is False


def test_personality_is_scaled_to_unit_interval():
    traits = make_traits("u1", extroversion=0, openness=100, conscientiousness=50, agreeableness=25, neuroticism=75)
    features = ProfileFeatureBuilder().build(make_user("u1"), traits)

    assert features.personality == pytest.approx((0.0, 1.0, 0.5, 0.25, 0.75))


def test_custom_trait_scale():
    builder = ProfileFeatureBuilder(trait_min=0, trait_max=10)
    traits = make_traits("u1", extroversion=5, openness=10, conscientiousness=0, agreeableness=1, neuroticism=2)
    assert builder.build(make_user("u1"), traits).personality == pytest.approx((0.5, 1.0, 0.0, 0.1, 0.2))


def test_trait_outside_builder_scale_fails():
    builder = ProfileFeatureBuilder(trait_min=0, trait_max=10)
    with pytest.raises(FeatureBuildError):
        builder.build(make_user("u1"), make_traits("u1", openness=70))


def test_invalid_trait_scale_rejected():
    with pytest.raises(ValueError):
        ProfileFeatureBuilder(trait_min=10, trait_max=10)


def test_records_of_another_user_are_rejected():
    builder = ProfileFeatureBuilder()
    with pytest.raises(FeatureBuildError):
        builder.build(make_user("u1"), make_traits("u2"))
    with pytest.raises(FeatureBuildError):
        builder.build(make_user("u1"), None, make_prefs("u2"))


@pytest.mark.parametrize("field", ["age", "year"])
def test_negative_age_or_year_fails(field):
    with pytest.raises(FeatureBuildError):
        ProfileFeatureBuilder().build(make_user("u1", **{field: -1}))


def test_non_finite_coordinates_fail():
    bad = GeoPoint.model_construct(latitude=math.nan, longitude=0.0)
    user = make_user("u1").model_copy(update={"location": bad})
    with pytest.raises(FeatureBuildError):
        ProfileFeatureBuilder().build(user)


def test_completeness():
    builder = ProfileFeatureBuilder()
    full = builder.build_profile(make_profile("u1"))
    assert full.completeness() == 1.0

    bare = builder.build(make_user("u2", age=None, gender=None, location=None, college=None,
                                   major=None, year=None, interests=[]))
    assert bare.completeness() == 0.0


def test_build_is_deterministic():
    profile = make_profile("u1")
    builder = ProfileFeatureBuilder()
    assert builder.build_profile(profile) == builder.build_profile(MatchProfile(**profile.model_dump()))


def test_score_card_labels_dominant_trait():
    features = ProfileFeatureBuilder().build_profile(make_profile("u1"))
    card = ScoreCard.from_features(features, 100.0, {"age": 1.0})

    assert card.personality == "high openness"
    assert card.interests == ["hiking", "jazz"]
    assert card.preferences == {"age": 1.0}
    assert card.is_fresh(60)
