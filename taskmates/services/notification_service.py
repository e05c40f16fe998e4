"""
taskmates.services.notification_service — Level-up Acknowledgment
==================================================================

A badge shows a level-up toast until its owner acknowledges it.  The sync
service resets ``notified`` on every level-up; this module is the only
place that sets it back to True.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select, update

from taskmates.database.engine import get_session
from taskmates.database.models import UserBadge

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def acknowledge_badge(engine: Engine, badge_id: str, user_id: str | None = None) -> bool:
    """Mark one badge as notified.

    Idempotent: acknowledging an already-acknowledged badge returns True
    and changes nothing else.  Returns False when the badge does not exist,
    or belongs to someone else when *user_id* is given.
    """
    conditions = [UserBadge.id == badge_id]
    if user_id is not None:
        conditions.append(UserBadge.user_id == user_id)

    with get_session(engine) as session:
        exists = session.scalar(select(UserBadge.id).where(*conditions))
        if exists is None:
            logger.debug("Acknowledge: badge %s not found for user %s", badge_id, user_id)
            return False

        session.execute(
            update(UserBadge)
            .where(*conditions, UserBadge.notified.is_(False))
            .values(notified=True)
            .execution_options(synchronize_session=False)
        )

    logger.info("Badge %s acknowledged", badge_id)
    return True
