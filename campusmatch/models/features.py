from pydantic import BaseModel, ConfigDict, Field

from campusmatch.models.user import GeoPoint


class ProfileFeatures(BaseModel):
    """
    Immutable, comparable view of one user's matchable attributes.

    Tokens are trimmed and casefolded, the personality vector is scaled to
    [0, 1]. ``None`` marks a missing dimension; the scorer gives those the
    neutral similarity instead of dropping them.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    age: int | None = None
    gender: str | None = None
    location: GeoPoint | None = None
    college: str | None = None
    major: str | None = None
    year: int | None = None
    interests: frozenset[str] = Field(default_factory=frozenset)
    personality: tuple[float, float, float, float, float] | None = None
    has_preferences: bool = False

    def completeness(self) -> float:
        """Fraction of optional dimensions that are present (0-1)."""
        present = [
            self.age is not None,
            self.gender is not None,
            self.location is not None,
            self.college is not None,
            self.major is not None,
            self.year is not None,
            bool(self.interests),
            self.personality is not None,
            self.has_preferences,
        ]
        return sum(present) / len(present)
