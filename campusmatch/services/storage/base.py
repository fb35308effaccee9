from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from campusmatch.models.features import ProfileFeatures
from campusmatch.models.matching import CandidatePoolHints, Match, ScoreCard, UserLike
from campusmatch.models.user import PersonalityTraits, User, UserPreferences


class MatchStore(ABC):
    """
    Narrow persistence interface the engine talks to.

    Implementations must back ``insert_user_like`` with a uniqueness
    constraint on the ordered pair and ``insert_match`` with one on the
    normalized (sorted) pair. Transport errors propagate unchanged.
    """

    # Profiles

    @abstractmethod
    async def get_user(self, user_id: str) -> User:
        """Raises NotFoundError."""

    @abstractmethod
    async def put_user(self, user: User) -> None: ...

    @abstractmethod
    async def get_personality_traits(self, user_id: str) -> PersonalityTraits:
        """Raises NotFoundError."""

    @abstractmethod
    async def put_personality_traits(self, traits: PersonalityTraits) -> None: ...

    @abstractmethod
    async def get_preferences(self, user_id: str) -> UserPreferences:
        """Raises NotFoundError."""

    @abstractmethod
    async def put_preferences(self, preferences: UserPreferences) -> None: ...

    @abstractmethod
    def query_candidate_pool(self, hints: CandidatePoolHints) -> AsyncIterator[User]:
        """Yield users that may be eligible; the engine re-validates each one."""

    @abstractmethod
    def iter_user_ids(self) -> AsyncIterator[str]: ...

    # Likes

    @abstractmethod
    async def insert_user_like(self, sender_id: str, receiver_id: str) -> UserLike:
        """Raises DuplicateLikeError if the ordered pair already exists."""

    @abstractmethod
    async def find_reciprocal_like(self, sender_id: str, receiver_id: str) -> UserLike:
        """Return the like receiver -> sender. Raises NotFoundError."""

    @abstractmethod
    async def list_liked_ids(self, sender_id: str) -> set[str]: ...

    # Matches

    @abstractmethod
    async def insert_match(self, user_a: str, user_b: str, score: float) -> Match:
        """Raises AlreadyExistsError if the unordered pair already has a match."""

    @abstractmethod
    async def get_match(self, user_a: str, user_b: str) -> Match:
        """Raises NotFoundError."""

    @abstractmethod
    async def list_matches(self, user_id: str) -> list[Match]: ...

    async def list_matched_ids(self, user_id: str) -> set[str]:
        return {match.other(user_id) for match in await self.list_matches(user_id)}

    # Score cards

    @abstractmethod
    async def get_profile_generation(self, user_id: str) -> int:
        """Counter bumped on every profile write; 0 for a user never written."""

    @abstractmethod
    async def bump_profile_generation(self, user_id: str) -> int:
        """Atomically increment and return the user's profile generation."""

    @abstractmethod
    async def upsert_score_card(
        self,
        user_id: str,
        features: ProfileFeatures,
        score: float,
        weights: dict[str, float] | None = None,
        generation: int = 0,
    ) -> ScoreCard: ...

    @abstractmethod
    async def get_score_card(self, user_id: str) -> ScoreCard:
        """Raises NotFoundError."""

    @abstractmethod
    async def delete_score_card(self, user_id: str) -> None: ...

    async def close(self) -> None:
        """Release connections. No-op by default."""
