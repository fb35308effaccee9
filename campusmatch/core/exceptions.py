"""
Error taxonomy for the matching engine.

Validation errors are never retried, not-found errors are degraded to neutral
data while ranking, conflicts are expected under concurrency. Storage client
errors (``redis.RedisError``, ``OSError``) are not wrapped and reach the caller
unchanged.
"""


class MatchingError(Exception):
    """Base class for every error raised by campusmatch."""


class InvalidInputError(MatchingError):
    """Caller supplied data the engine cannot reason about."""


class InvalidPreferencesError(InvalidInputError):
    """Preference weights are unusable (negative, non-finite or all zero)."""


class SelfLikeError(InvalidInputError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} cannot like themselves")
        self.user_id = user_id


class NotFoundError(MatchingError):
    def __init__(self, entity: str, key: str):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ConflictError(MatchingError):
    """A uniqueness constraint rejected a write."""


class DuplicateLikeError(ConflictError):
    def __init__(self, sender_id: str, receiver_id: str):
        super().__init__(f"Like {sender_id} -> {receiver_id} already exists")
        self.sender_id = sender_id
        self.receiver_id = receiver_id


class AlreadyExistsError(ConflictError):
    def __init__(self, user1_id: str, user2_id: str):
        super().__init__(f"Match {user1_id} <-> {user2_id} already exists")
        self.user1_id = user1_id
        self.user2_id = user2_id


class FeatureBuildError(MatchingError):
    """Stored profile data is inconsistent and cannot be turned into features."""


class DataCorruptionError(MatchingError):
    """A stored record could not be decoded."""


class RankingCancelledError(MatchingError):
    """The ranking deadline passed before the pool was exhausted."""
