import random

import pytest
from pydantic import ValidationError

from campusmatch.core.config import Settings
from campusmatch.core.exceptions import InvalidPreferencesError
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.user import MatchWeights
from campusmatch.services.matching.scorer import CompatibilityScorer
from tests.conftest import CAMPUS, point_north_of


def features(user_id: str, **values) -> ProfileFeatures:
    return ProfileFeatures(user_id=user_id, **values)


def random_features(rng: random.Random, user_id: str) -> ProfileFeatures:
    pool = ["hiking", "jazz", "chess", "film", "climbing", "coding", "yoga"]

    def maybe(value):
        return value if rng.random() > 0.3 else None

    return features(
        user_id,
        age=maybe(rng.randint(18, 40)),
        location=maybe(point_north_of(CAMPUS, rng.uniform(0, 300))),
        college=maybe(rng.choice(["state", "tech", "arts"])),
        major=maybe(rng.choice(["biology", "physics", "history"])),
        year=maybe(rng.randint(1, 6)),
        interests=frozenset(rng.sample(pool, rng.randint(0, len(pool)))),
        personality=maybe(tuple(rng.random() for _ in range(5))),
    )


def random_weights(rng: random.Random) -> MatchWeights:
    magnitude = rng.choice([1e-9, 1.0, 1e6, 1e300])
    values = {factor: rng.choice([0.0, rng.random() * magnitude]) for factor in MatchWeights.model_fields}
    values["interests"] = rng.random() * magnitude + magnitude
    return MatchWeights(**values)


def test_shared_interests_and_close_age_scores_seventy():
    u = features("u", age=24, interests=frozenset({"a", "b", "c"}))
    v = features("v", age=25, interests=frozenset({"a", "b", "d"}))
    weights = MatchWeights(age=1.0, interests=1.0)

    breakdown = CompatibilityScorer().breakdown(u, weights, v)

    assert breakdown.age == pytest.approx(0.9)
    assert breakdown.interests == pytest.approx(0.5)
    assert breakdown.total == pytest.approx(70.0)


@pytest.mark.parametrize("seed", range(50))
def test_score_is_bounded(seed):
    rng = random.Random(seed)
    scorer = CompatibilityScorer()
    score = scorer.score(random_features(rng, "u"), random_weights(rng), random_features(rng, "v"))
    assert 0.0 <= score <= 100.0


@pytest.mark.parametrize("seed", range(20))
def test_score_ignores_weight_magnitude(seed):
    rng = random.Random(seed)
    scorer = CompatibilityScorer()
    u, v = random_features(rng, "u"), random_features(rng, "v")
    weights = random_weights(rng)
    scaled = MatchWeights(**{k: w * 7.5 for k, w in weights.as_dict().items()})

    assert scorer.score(u, weights, v) == pytest.approx(scorer.score(u, scaled, v))


def test_identical_profiles_score_full_marks():
    u = features(
        "u",
        age=21,
        location=CAMPUS,
        college="state",
        major="biology",
        year=2,
        interests=frozenset({"jazz"}),
        personality=(0.1, 0.9, 0.5, 0.5, 0.3),
    )
    v = u.model_copy(update={"user_id": "v"})
    assert CompatibilityScorer().score(u, MatchWeights.uniform(), v) == pytest.approx(100.0)


def test_missing_dimension_scores_neutral():
    u = features("u", personality=(0.2, 0.4, 0.6, 0.8, 1.0))
    v = features("v")
    assert CompatibilityScorer().score(u, MatchWeights(personality=3.0), v) == pytest.approx(50.0)


def test_single_factor_distance():
    u = features("u", location=CAMPUS)
    v = features("v", location=point_north_of(CAMPUS, 25))
    scorer = CompatibilityScorer(max_distance_normalizer_km=100)
    assert scorer.score(u, MatchWeights(distance=1.0), v) == pytest.approx(75.0)


def test_zero_weights_rejected():
    with pytest.raises(InvalidPreferencesError):
        CompatibilityScorer().score(features("u"), MatchWeights(), features("v"))


@pytest.mark.parametrize("bad", [-1.0, float("nan"), float("inf")])
def test_invalid_weight_rejected(bad):
    weights = MatchWeights(age=1.0, interests=bad)
    with pytest.raises(InvalidPreferencesError):
        CompatibilityScorer().score(features("u"), weights, features("v"))


def test_overflowing_weight_sum_rejected():
    weights = MatchWeights(age=1.7e308, interests=1.7e308)
    with pytest.raises(InvalidPreferencesError):
        CompatibilityScorer().score(features("u"), weights, features("v"))


@pytest.mark.parametrize("field", ["AGE_TOLERANCE_SPAN", "YEAR_TOLERANCE_SPAN", "MAX_DISTANCE_NORMALIZER_KM"])
def test_settings_reject_non_positive_normalizers(field):
    with pytest.raises(ValidationError):
        Settings(**{field: 0})


@pytest.mark.parametrize(
    "kwargs",
    [{"age_tolerance_span": 0}, {"year_tolerance_span": -1.0}, {"max_distance_normalizer_km": float("nan")}],
)
def test_scorer_rejects_non_positive_normalizers(kwargs):
    with pytest.raises(ValueError):
        CompatibilityScorer(**kwargs)
