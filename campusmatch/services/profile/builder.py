import math

from campusmatch.core.config import settings
from campusmatch.core.exceptions import FeatureBuildError
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.user import MatchProfile, PersonalityTraits, User, UserPreferences


def normalize_token(value: str | None) -> str | None:
    """Trim and casefold a free-text token. Blank strings become None."""
    if value is None:
        return None
    token = value.strip().casefold()
    return token or None


class ProfileFeatureBuilder:
    """
    Builds ProfileFeatures from stored profile records.

    Design principles:
    - Pure transformation: same records in, same features out
    - Missing optional records degrade to missing dimensions, never to errors
    - Inconsistent data raises FeatureBuildError so callers can skip the user
    """

    def __init__(self, trait_min: int | None = None, trait_max: int | None = None):
        self.trait_min = settings.TRAIT_SCALE_MIN if trait_min is None else trait_min
        self.trait_max = settings.TRAIT_SCALE_MAX if trait_max is None else trait_max
        if self.trait_max <= self.trait_min:
            raise ValueError("trait scale max must be greater than min")

    def build(
        self,
        user: User,
        traits: PersonalityTraits | None = None,
        preferences: UserPreferences | None = None,
    ) -> ProfileFeatures:
        """
        Build features for one user.

        Args:
            user: User row
            traits: Optional personality assessment
            preferences: Optional preference row (only its presence is recorded)

        Returns:
            Frozen ProfileFeatures

        Raises:
            FeatureBuildError: If the stored data is inconsistent
        """
        if traits is not None and traits.user_id != user.id:
            raise FeatureBuildError(f"traits belong to {traits.user_id}, not {user.id}")
        if preferences is not None and preferences.user_id != user.id:
            raise FeatureBuildError(f"preferences belong to {preferences.user_id}, not {user.id}")

        if user.age is not None and user.age < 0:
            raise FeatureBuildError(f"user {user.id} has negative age {user.age}")
        if user.year is not None and user.year < 0:
            raise FeatureBuildError(f"user {user.id} has negative academic year {user.year}")

        location = user.location
        if location is not None and not (math.isfinite(location.latitude) and math.isfinite(location.longitude)):
            raise FeatureBuildError(f"user {user.id} has non-finite coordinates")

        interests = frozenset(tag for tag in (normalize_token(i) for i in user.interests) if tag)

        return ProfileFeatures(
            user_id=user.id,
            age=user.age,
            gender=normalize_token(user.gender),
            location=location,
            college=normalize_token(user.college),
            major=normalize_token(user.major),
            year=user.year,
            interests=interests,
            personality=self._personality_vector(traits),
            has_preferences=preferences is not None,
        )

    def build_profile(self, profile: MatchProfile) -> ProfileFeatures:
        return self.build(profile.user, profile.traits, profile.preferences)

    def _personality_vector(self, traits: PersonalityTraits | None) -> tuple[float, ...] | None:
        """Scale the five traits to [0, 1] against the configured trait scale."""
        if traits is None:
            return None

        span = self.trait_max - self.trait_min
        vector = []
        for raw in traits.as_vector():
            if not self.trait_min <= raw <= self.trait_max:
                raise FeatureBuildError(f"trait value {raw} outside [{self.trait_min}, {self.trait_max}]")
            vector.append((raw - self.trait_min) / span)
        return tuple(vector)
