import argparse
import asyncio
import sys

from loguru import logger

from campusmatch.core.config import settings
from campusmatch.core.exceptions import MatchingError
from campusmatch.services.matching_service import MatchingService
from campusmatch.services.scorecard_updater import ScoreCardUpdater
from campusmatch.services.storage import get_store


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL.upper())


async def run(args: argparse.Namespace) -> int:
    store = get_store(args.backend)
    service = MatchingService(store)
    try:
        if args.command == "rank":
            ranked = await service.find_matches(args.user_id, args.limit, min_score=args.min_score)
            for position, candidate in enumerate(ranked, start=1):
                print(f"{position:3d}. {candidate.candidate_id}  {candidate.score:6.2f}")
        elif args.command == "like":
            result = await service.record_like(args.sender_id, args.receiver_id)
            message = "It's a match!" if result.is_match else "Like recorded"
            print(f"{message} ({result.status.value})")
        elif args.command == "refresh-scorecards":
            updater = ScoreCardUpdater(service.feature_service, concurrency=args.concurrency)
            stats = await updater.refresh_all(args.user_ids or None)
            print(f"refreshed={stats['refreshed']} failed={stats['failed']}")
        return 0
    except MatchingError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="campusmatch", description="Compatibility matching engine")
    parser.add_argument("--backend", choices=["memory", "redis"], default=None, help="Override STORE_BACKEND")
    sub = parser.add_subparsers(dest="command", required=True)

    rank = sub.add_parser("rank", help="Rank potential matches for a user")
    rank.add_argument("user_id")
    rank.add_argument("--limit", type=int, default=None)
    rank.add_argument("--min-score", type=float, default=None)

    like = sub.add_parser("like", help="Record a like and report whether it matched")
    like.add_argument("sender_id")
    like.add_argument("receiver_id")

    refresh = sub.add_parser("refresh-scorecards", help="Recompute score cards")
    refresh.add_argument("user_ids", nargs="*")
    refresh.add_argument("--concurrency", type=int, default=None)
    return parser


if __name__ == "__main__":
    configure_logging()
    sys.exit(asyncio.run(run(build_parser().parse_args())))
