"""
taskmates.worker — Batch badge sync (``python -m taskmates.worker``)
====================================================================

Recomputes badges for the given profile ids, or for every profile when
none are given.  Each user's nine categories are loaded concurrently;
users are processed one after another so a single run never holds more
than one user's worth of connections.

Exit status is 1 when any sync was partial, so a scheduler can alert and
retry (a sync is always safe to repeat).

Run with::

    python -m taskmates.worker                 # everyone
    python -m taskmates.worker <id> <id> ...   # selected profiles
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from dotenv import load_dotenv
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from taskmates.database.engine import create_db_engine, init_db
from taskmates.database.models import Profile
from taskmates.services.badge_sync_service import SyncReport, sync_user_badges_async

logger = logging.getLogger("taskmates.worker")


def all_profile_ids(engine: Engine) -> list[str]:
    with Session(engine) as session:
        return list(session.scalars(select(Profile.id).order_by(Profile.created_at, Profile.id)).all())


async def sync_users(engine: Engine, user_ids: Sequence[str]) -> list[SyncReport]:
    """Sync each user in turn; one user's failure never stops the batch."""
    reports: list[SyncReport] = []
    for user_id in user_ids:
        try:
            reports.append(await sync_user_badges_async(engine, user_id))
        except Exception as exc:
            logger.exception("Badge sync crashed for user %s", user_id)
            reports.append(SyncReport(user_id=user_id, error=str(exc) or type(exc).__name__))
    return reports


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m taskmates.worker",
        description="Recompute member badges from task, social and rating activity.",
    )
    parser.add_argument(
        "user_ids", nargs="*", metavar="USER_ID",
        help="profile ids to sync (default: every profile)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Bootstrap and run one batch; returns the process exit status."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    args = _parse_args(argv)

    # 1. Environment variables (DATABASE_URL).
    load_dotenv()

    # 2. Database.
    engine = create_db_engine()
    init_db(engine)

    # 3. Who to sync.
    user_ids = args.user_ids or all_profile_ids(engine)
    logger.info("Syncing badges for %d profile(s)…", len(user_ids))

    # 4. Run.
    reports = asyncio.run(sync_users(engine, user_ids))

    partial = [r.user_id for r in reports if r.partial]
    level_ups = sum(len(r.level_ups) for r in reports)
    logger.info(
        "Badge batch done — %d user(s), %d level-up(s), %d partial",
        len(reports), level_ups, len(partial),
    )
    if partial:
        logger.warning("Partial syncs (safe to retry): %s", ", ".join(partial))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
