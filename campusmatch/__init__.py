"""
campusmatch - compatibility scoring and matching engine.

Filters a candidate pool with hard preferences, ranks survivors by a weighted
compatibility score and turns reciprocal likes into matches.
"""

from campusmatch.core.version import __version__

__all__ = ["__version__"]
