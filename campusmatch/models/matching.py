from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from campusmatch.core.constants import PERSONALITY_TRAITS
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.user import GeoPoint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def pair_key(user_a: str, user_b: str) -> tuple[str, str]:
    """Normalized (unordered) key of a user pair: the two ids sorted."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


class UserLike(BaseModel):
    """Directed interest edge sender -> receiver."""

    model_config = ConfigDict(frozen=True)

    sender_id: str
    receiver_id: str
    created_at: datetime = Field(default_factory=_utcnow)


class Match(BaseModel):
    """Confirmed mutual interest. ``user1_id < user2_id`` always holds."""

    model_config = ConfigDict(frozen=True)

    user1_id: str
    user2_id: str
    score: float = Field(ge=0.0, le=100.0)
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _normalized_pair(self) -> "Match":
        if self.user1_id >= self.user2_id:
            raise ValueError(f"match pair must be ordered and distinct: {self.user1_id!r}, {self.user2_id!r}")
        return self

    @classmethod
    def for_pair(cls, user_a: str, user_b: str, score: float) -> "Match":
        user1_id, user2_id = pair_key(user_a, user_b)
        return cls(user1_id=user1_id, user2_id=user2_id, score=score)

    def other(self, user_id: str) -> str:
        return self.user2_id if user_id == self.user1_id else self.user1_id


class LikeStatus(str, Enum):
    PENDING = "pending"
    MATCHED = "matched"


class LikeResult(BaseModel):
    status: LikeStatus
    like: UserLike | None = None
    match: Match | None = None
    # False when the match already existed (repeat like or concurrent insert)
    created: bool = False

    @property
    def is_match(self) -> bool:
        return self.status == LikeStatus.MATCHED


class ScoreBreakdown(BaseModel):
    """Per-factor similarity (0-1) and the weighted total (0-100)."""

    age: float
    distance: float
    interests: float
    college: float
    major: float
    year: float
    personality: float
    total: float


class RankedCandidate(BaseModel):
    candidate_id: str
    score: float
    breakdown: ScoreBreakdown


class CandidatePoolHints(BaseModel):
    """Cheap pre-filters a store may apply; the engine re-validates every candidate."""

    exclude_ids: set[str] = Field(default_factory=set)
    min_age: int | None = None
    max_age: int | None = None
    limit: int | None = None


class ScoreCard(BaseModel):
    """
    Denormalized snapshot of a user's matchability attributes.

    Eventually consistent with the source records, never the source of truth.
    """

    user_id: str
    college: str | None = None
    major: str | None = None
    year: int | None = None
    location: GeoPoint | None = None
    interests: list[str] = Field(default_factory=list)
    preferences: dict[str, float] = Field(default_factory=dict, description="Factor -> weight")
    personality: str | None = Field(default=None, description="Dominant trait label")
    features: ProfileFeatures
    score: float = Field(ge=0.0, le=100.0, description="Profile completeness")
    generation: int = Field(default=0, description="Profile generation the card was built from")
    updated_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def from_features(
        cls,
        features: ProfileFeatures,
        score: float,
        weights: dict[str, float] | None = None,
        generation: int = 0,
    ) -> "ScoreCard":
        personality = None
        if features.personality is not None:
            idx = max(range(len(PERSONALITY_TRAITS)), key=lambda i: features.personality[i])
            personality = f"high {PERSONALITY_TRAITS[idx]}"

        return cls(
            user_id=features.user_id,
            college=features.college,
            major=features.major,
            year=features.year,
            location=features.location,
            interests=sorted(features.interests),
            preferences=dict(weights or {}),
            personality=personality,
            features=features,
            score=score,
            generation=generation,
        )

    def is_fresh(self, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return True
        age = (_utcnow() - self.updated_at).total_seconds()
        return age < ttl_seconds
