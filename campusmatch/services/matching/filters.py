from campusmatch.core.constants import PREFERENCE_ANY, PREFERENCE_DIFFERENT, PREFERENCE_SAME
from campusmatch.models.features import ProfileFeatures
from campusmatch.models.user import UserPreferences
from campusmatch.services.profile.builder import normalize_token
from campusmatch.utils.geo import haversine_km


class PreferenceFilter:
    """
    Hard eligibility rules taken from the requester's preferences.

    Every check is O(1), so this runs before the scorer to shrink the pool.
    A constraint that is set fails when the candidate's value is unknown,
    except distance: locations come from an external collaborator and a
    missing one never excludes a candidate.
    """

    @staticmethod
    def violations(
        requester: ProfileFeatures, preferences: UserPreferences, candidate: ProfileFeatures
    ) -> list[str]:
        """
        Collect the names of all violated constraints.

        Args:
            requester: Features of the user whose preferences apply
            preferences: Requester's preferences
            candidate: Features of the candidate

        Returns:
            Violated constraint names, empty when the candidate is eligible
        """
        failed: list[str] = []

        if candidate.user_id == requester.user_id:
            failed.append("self")

        if not PreferenceFilter._in_range(candidate.age, preferences.min_age, preferences.max_age):
            failed.append("age")

        if not PreferenceFilter.passes_gender(candidate.gender, preferences.preferred_genders):
            failed.append("gender")

        if not PreferenceFilter._within_distance(requester, candidate, preferences.max_distance):
            failed.append("distance")

        if not PreferenceFilter._in_range(candidate.year, preferences.min_year, preferences.max_year):
            failed.append("year")

        if not PreferenceFilter._passes_token(requester.college, candidate.college, preferences.college_preference):
            failed.append("college")

        if not PreferenceFilter._passes_token(requester.major, candidate.major, preferences.major_preference):
            failed.append("major")

        return failed

    @staticmethod
    def passes(requester: ProfileFeatures, preferences: UserPreferences, candidate: ProfileFeatures) -> bool:
        return not PreferenceFilter.violations(requester, preferences, candidate)

    @staticmethod
    def passes_gender(gender: str | None, preferred_genders: list[str]) -> bool:
        """Empty preference list admits everyone; otherwise the gender must be listed."""
        wanted = {g for g in (normalize_token(p) for p in preferred_genders) if g}
        if not wanted:
            return True
        return gender is not None and normalize_token(gender) in wanted

    @staticmethod
    def _in_range(value: int | None, low: int | None, high: int | None) -> bool:
        if low is None and high is None:
            return True
        if value is None:
            return False
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
        return True

    @staticmethod
    def _within_distance(requester: ProfileFeatures, candidate: ProfileFeatures, max_distance: float | None) -> bool:
        if max_distance is None:
            return True
        if requester.location is None or candidate.location is None:
            return True
        return haversine_km(requester.location, candidate.location) <= max_distance

    @staticmethod
    def _passes_token(own: str | None, other: str | None, preference: str | None) -> bool:
        wanted = normalize_token(preference)
        if wanted is None or wanted == PREFERENCE_ANY:
            return True
        if wanted == PREFERENCE_SAME:
            return own is not None and other is not None and own == other
        if wanted == PREFERENCE_DIFFERENT:
            return own is not None and other is not None and own != other
        return other is not None and other == wanted
