import asyncio

from loguru import logger

from campusmatch.core.config import settings
from campusmatch.core.exceptions import MatchingError
from campusmatch.services.profile.service import FeatureService


class ScoreCardUpdater:
    """
    Recomputes ScoreCards in bulk (e.g. a nightly job).

    Each user is refreshed independently with bounded concurrency; one user's
    failure is logged and counted but does not stop the batch. Uses an
    in-memory set to skip users whose refresh is already running.
    """

    def __init__(self, feature_service: FeatureService, concurrency: int | None = None):
        self.feature_service = feature_service
        self.concurrency = max(1, concurrency or settings.SCORECARD_CONCURRENCY)
        self._updating: set[str] = set()

    async def refresh_user(self, user_id: str) -> bool:
        """
        Refresh one user's ScoreCard.

        Returns:
            True if the card was rewritten, False if skipped or failed
        """
        if user_id in self._updating:
            logger.debug(f"[{user_id}] Score card refresh already in progress, skipping")
            return False

        self._updating.add(user_id)
        try:
            card = await self.feature_service.refresh_score_card(user_id)
            logger.debug(f"[{user_id}] Score card refreshed (score={card.score})")
            return True
        except MatchingError as e:
            logger.warning(f"[{user_id}] Score card refresh failed: {e}")
            return False
        finally:
            self._updating.discard(user_id)

    async def refresh_all(self, user_ids: list[str] | None = None) -> dict[str, int]:
        """
        Refresh ScoreCards for the given users, or for every stored user.

        Returns:
            Counts of refreshed and failed users
        """
        if user_ids is None:
            user_ids = [uid async for uid in self.feature_service.store.iter_user_ids()]
        # A repeated id would hit the in-progress guard and count as a failure
        user_ids = list(dict.fromkeys(user_ids))

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(user_id: str) -> bool:
            async with semaphore:
                return await self.refresh_user(user_id)

        logger.info(f"Refreshing {len(user_ids)} score cards (concurrency={self.concurrency})")
        results = await asyncio.gather(*(_bounded(uid) for uid in user_ids))

        refreshed = sum(1 for ok in results if ok)
        stats = {"refreshed": refreshed, "failed": len(results) - refreshed}
        logger.info(f"Score card refresh finished: {stats}")
        return stats
