"""
Profile features.

Turns stored user records into comparable, normalized ProfileFeatures and
keeps them cached next to the user's ScoreCard.
"""

from campusmatch.services.profile.builder import ProfileFeatureBuilder, normalize_token
from campusmatch.services.profile.service import FeatureService

__all__ = [
    "ProfileFeatureBuilder",
    "FeatureService",
    "normalize_token",
]
