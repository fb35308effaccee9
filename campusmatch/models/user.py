import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from campusmatch.core.config import settings
from campusmatch.core.constants import PERSONALITY_TRAITS, WEIGHT_FIELDS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GeoPoint(BaseModel):
    """Coordinates supplied by the location collaborator (no geocoding here)."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class User(BaseModel):
    """Identity and raw profile fields of one user."""

    id: str
    email: str | None = None
    name: str | None = None
    age: int | None = None
    gender: str | None = None
    college: str | None = None
    major: str | None = None
    year: int | None = Field(default=None, description="Academic year (1 = freshman)")
    location: GeoPoint | None = None
    interests: list[str] = Field(default_factory=list, description="Free-text interest tags")
    bio: str | None = None
    avatar: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class PersonalityTraits(BaseModel):
    """Big-five assessment result, one per user."""

    user_id: str
    extroversion: int
    openness: int
    conscientiousness: int
    agreeableness: int
    neuroticism: int
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator(*PERSONALITY_TRAITS)
    @classmethod
    def _within_scale(cls, value: int) -> int:
        if not settings.TRAIT_SCALE_MIN <= value <= settings.TRAIT_SCALE_MAX:
            raise ValueError(
                f"trait must be within [{settings.TRAIT_SCALE_MIN}, {settings.TRAIT_SCALE_MAX}], got {value}"
            )
        return value

    def as_vector(self) -> list[int]:
        return [getattr(self, trait) for trait in PERSONALITY_TRAITS]


class MatchWeights(BaseModel):
    """
    Per-factor weights of the compatibility score.

    Weights need not sum to 1; the scorer normalizes by their sum.
    """

    model_config = ConfigDict(frozen=True)

    age: float = 0.0
    distance: float = 0.0
    interests: float = 0.0
    college: float = 0.0
    major: float = 0.0
    year: float = 0.0
    personality: float = 0.0

    @classmethod
    def uniform(cls, weight: float | None = None) -> "MatchWeights":
        """Every factor gets the same weight (``DEFAULT_WEIGHT`` by default)."""
        value = settings.DEFAULT_WEIGHT if weight is None else weight
        return cls(**{factor: value for factor in WEIGHT_FIELDS})

    def as_dict(self) -> dict[str, float]:
        return {factor: getattr(self, factor) for factor in WEIGHT_FIELDS}

    @property
    def total(self) -> float:
        return sum(self.as_dict().values())

    def is_usable(self) -> bool:
        """True when every weight is finite and non-negative and at least one is positive."""
        values = self.as_dict().values()
        if any(not math.isfinite(v) or v < 0 for v in values):
            return False
        return self.total > 0


class UserPreferences(BaseModel):
    """Hard filters plus scoring weights, one per user."""

    user_id: str

    # Hard constraints (None = not applied)
    min_age: int | None = 18
    max_age: int | None = None
    preferred_genders: list[str] = Field(default_factory=list, description="Empty = any gender")
    max_distance: float | None = Field(default=None, description="Kilometres")
    college_preference: str | None = Field(default=None, description="College name, 'same', 'different' or 'any'")
    major_preference: str | None = Field(default=None, description="Major name, 'same', 'different' or 'any'")
    min_year: int | None = None
    max_year: int | None = None

    # Soft weights
    age_weight: float = 1.0
    distance_weight: float = 1.0
    interests_weight: float = 1.0
    college_weight: float = 1.0
    major_weight: float = 1.0
    year_weight: float = 1.0
    personality_weight: float = 1.0

    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator(*WEIGHT_FIELDS.values())
    @classmethod
    def _finite_non_negative(cls, value: float) -> float:
        if not math.isfinite(value) or value < 0:
            raise ValueError(f"weight must be finite and >= 0, got {value}")
        return value

    @model_validator(mode="after")
    def _ordered_ranges(self) -> "UserPreferences":
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError(f"min_age ({self.min_age}) is greater than max_age ({self.max_age})")
        if self.min_year is not None and self.max_year is not None and self.min_year > self.max_year:
            raise ValueError(f"min_year ({self.min_year}) is greater than max_year ({self.max_year})")
        if self.max_distance is not None and self.max_distance < 0:
            raise ValueError("max_distance must be >= 0")
        return self

    @property
    def weights(self) -> MatchWeights:
        return MatchWeights(**{factor: getattr(self, field) for factor, field in WEIGHT_FIELDS.items()})


class MatchProfile(BaseModel):
    """A user together with the optional one-to-one records the engine reads."""

    user: User
    traits: PersonalityTraits | None = None
    preferences: UserPreferences | None = None

    @property
    def user_id(self) -> str:
        return self.user.id
