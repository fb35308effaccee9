"""
Matching - filter, score, rank and like.

PreferenceFilter prunes a pool with hard constraints, CompatibilityScorer
turns the survivors into weighted scores, CandidateRanker orders them and
LikeMatcher converts reciprocal likes into matches.
"""

from campusmatch.services.matching.filters import PreferenceFilter
from campusmatch.services.matching.likes import LikeMatcher
from campusmatch.services.matching.ranker import CandidateRanker
from campusmatch.services.matching.scorer import CompatibilityScorer

__all__ = [
    "PreferenceFilter",
    "CompatibilityScorer",
    "CandidateRanker",
    "LikeMatcher",
]
