"""
taskmates.api.routes.badges — Badge reads, sync & acknowledgment
=================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from taskmates.api.deps import get_config, get_current_user_id, get_engine, get_session
from taskmates.config import TaskmatesConfig
from taskmates.constants import category_catalogue
from taskmates.database.engine import run_db
from taskmates.database.models import BadgeCategory, Profile
from taskmates.engine.levels import LEVEL_THRESHOLDS, level_display_name
from taskmates.services import badge_query_service as queries
from taskmates.services.badge_sync_service import sync_user_badges_async
from taskmates.services.notification_service import acknowledge_badge

router = APIRouter(tags=["badges"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AcknowledgeMany(BaseModel):
    badge_ids: list[str] = Field(min_length=1, max_length=100)


def _locale(locale: str | None, config: TaskmatesConfig) -> str:
    return locale or config.default_locale


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------
@router.get("/badges/levels")
def get_levels(
    locale: str | None = Query(None, max_length=10),
    config: TaskmatesConfig = Depends(get_config),
):
    """The level ladder with localized names."""
    lang = _locale(locale, config)
    return [
        {"level": level, "name": level_display_name(level, lang), "threshold": threshold}
        for level, threshold in enumerate(LEVEL_THRESHOLDS, start=1)
    ]


@router.get("/badges/categories")
def get_categories(
    locale: str | None = Query(None, max_length=10),
    config: TaskmatesConfig = Depends(get_config),
):
    return category_catalogue(_locale(locale, config))


# ---------------------------------------------------------------------------
# Someone's badges (public profile)
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/badges")
def get_user_badges(
    user_id: str,
    locale: str | None = Query(None, max_length=10),
    session: Session = Depends(get_session),
    config: TaskmatesConfig = Depends(get_config),
):
    lang = _locale(locale, config)
    return {
        "user_id": user_id,
        "badges": [queries.badge_to_dict(b, lang) for b in queries.list_badges(session, user_id)],
    }


@router.get("/users/{user_id}/badges/top")
def get_top_badges(
    user_id: str,
    limit: int | None = Query(None, ge=1, le=100),
    locale: str | None = Query(None, max_length=10),
    session: Session = Depends(get_session),
    config: TaskmatesConfig = Depends(get_config),
):
    """Profile banner: the user's best badges."""
    lang = _locale(locale, config)
    badges = queries.top_badges(session, user_id, limit or config.top_badges_limit)
    return [queries.badge_to_dict(b, lang) for b in badges]


@router.get("/users/{user_id}/badges/gallery")
def get_badge_gallery(
    user_id: str,
    category: BadgeCategory | None = Query(None),
    locale: str | None = Query(None, max_length=10),
    session: Session = Depends(get_session),
    config: TaskmatesConfig = Depends(get_config),
):
    lang = _locale(locale, config)
    badges = queries.gallery_badges(session, user_id, category)
    return [queries.badge_to_dict(b, lang) for b in badges]


@router.get("/users/{user_id}/badges/{badge_id}/tasks")
def get_badge_tasks(
    user_id: str,
    badge_id: str,
    limit: int | None = Query(None, ge=1, le=100),
    session: Session = Depends(get_session),
    config: TaskmatesConfig = Depends(get_config),
):
    """Tasks that earned one badge, most recent first."""
    badge = queries.get_badge(session, badge_id)
    if badge is None or badge.user_id != user_id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Badge not found")
    tasks = queries.badge_task_history(session, badge, limit or config.task_history_limit)
    return {
        "badge_id": badge.id,
        "tasks": [queries.task_to_dict(t) for t in tasks],
    }


# ---------------------------------------------------------------------------
# The caller's own badges
# ---------------------------------------------------------------------------
def _profile_exists(engine: Engine, user_id: str) -> bool:
    with Session(engine) as session:
        return session.get(Profile, user_id) is not None


@router.post("/me/badges/sync")
async def sync_my_badges(
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    """Recompute the caller's badges.  Partial failures are reported, not raised."""
    if not await run_db(_profile_exists, engine, user_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Profile not found")
    report = await sync_user_badges_async(engine, user_id)
    return report.to_dict()


@router.get("/me/badges/pending")
def get_my_pending_badges(
    locale: str | None = Query(None, max_length=10),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    config: TaskmatesConfig = Depends(get_config),
):
    """Level-ups the caller has not seen yet, oldest first."""
    lang = _locale(locale, config)
    return [queries.badge_to_dict(b, lang) for b in queries.pending_badges(session, user_id)]


@router.post("/me/badges/{badge_id}/acknowledge")
def acknowledge_my_badge(
    badge_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    if not acknowledge_badge(engine, badge_id, user_id=user_id):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Badge not found")
    return {"id": badge_id, "notified": True}


@router.post("/me/badges/acknowledge")
def acknowledge_my_badges(
    body: AcknowledgeMany,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    """Dismiss several level-up toasts at once; unknown ids are reported back."""
    acknowledged: list[str] = []
    missing: list[str] = []
    for badge_id in dict.fromkeys(body.badge_ids):
        if acknowledge_badge(engine, badge_id, user_id=user_id):
            acknowledged.append(badge_id)
        else:
            missing.append(badge_id)
    return {"acknowledged": acknowledged, "missing": missing}
