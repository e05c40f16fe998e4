"""
taskmates.services.badge_query_service — Badge Read Paths
==========================================================

Read-only queries behind the profile banner, the badges gallery, the
level-up toasts and the per-badge task list.  Ordering everywhere is
"best first": ``level`` desc, then ``metric_value`` desc.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import ColumnElement, Select, or_, select
from sqlalchemy.orm import Session

from taskmates.constants import CATEGORY_ICONS, category_label
from taskmates.database.models import (
    ApprovalStatus,
    BadgeCategory,
    CollaboratorRole,
    Task,
    TaskCollaborator,
    TaskStatus,
    TaskTag,
    UserBadge,
)
from taskmates.engine.levels import level_display_name, level_progress, next_threshold
from taskmates.services.activity_service import (
    approved_task_ids_for,
    involved_completed_tasks_query,
)

logger = logging.getLogger(__name__)

_BEST_FIRST = (UserBadge.level.desc(), UserBadge.metric_value.desc(), UserBadge.earned_at.desc())


# ---------------------------------------------------------------------------
# Badge lists
# ---------------------------------------------------------------------------
def get_badge(session: Session, badge_id: str) -> UserBadge | None:
    return session.get(UserBadge, badge_id)


def list_badges(session: Session, user_id: str) -> list[UserBadge]:
    """Every badge the user holds, best first."""
    return list(session.scalars(
        select(UserBadge).where(UserBadge.user_id == user_id).order_by(*_BEST_FIRST)
    ).all())


def top_badges(session: Session, user_id: str, limit: int = 10) -> list[UserBadge]:
    """The user's *limit* best badges (profile banner)."""
    if limit <= 0:
        return []
    return list(session.scalars(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(*_BEST_FIRST)
        .limit(limit)
    ).all())


def gallery_badges(
    session: Session, user_id: str, category: BadgeCategory | str | None = None,
) -> list[UserBadge]:
    """One badge per (category, entity), best first, optionally one category only.

    The unique key already guarantees one row per pair; the dedupe keeps
    the gallery correct against legacy data that predates it.
    """
    query = select(UserBadge).where(UserBadge.user_id == user_id)
    if category is not None:
        query = query.where(UserBadge.category == BadgeCategory(category).value)

    best: dict[tuple[str, str], UserBadge] = {}
    for badge in session.scalars(query.order_by(*_BEST_FIRST)).all():
        best.setdefault((badge.category, badge.entity_key), badge)
    return list(best.values())


def pending_badges(session: Session, user_id: str) -> list[UserBadge]:
    """Badges whose latest level-up has not been acknowledged, oldest first."""
    return list(session.scalars(
        select(UserBadge)
        .where(UserBadge.user_id == user_id, UserBadge.notified.is_(False))
        .order_by(UserBadge.earned_at, UserBadge.id)
    ).all())


# ---------------------------------------------------------------------------
# Tasks behind a badge
# ---------------------------------------------------------------------------
def _tagged(tag_id: str) -> ColumnElement[bool]:
    return Task.id.in_(select(TaskTag.task_id).where(TaskTag.tag_id == tag_id))


def _history_query(badge: UserBadge) -> Select | None:
    user_id = badge.user_id
    category = BadgeCategory(badge.category)

    if category is BadgeCategory.TEAMMATES:
        mate = badge.entity_key
        return involved_completed_tasks_query(user_id).where(
            or_(Task.created_by == mate, Task.id.in_(approved_task_ids_for(mate))),
        )

    if category in (BadgeCategory.HABITS, BadgeCategory.COMMUNITIES):
        return involved_completed_tasks_query(user_id).where(_tagged(badge.entity_key))

    if category is BadgeCategory.LEADERSHIP:
        gathered = select(TaskCollaborator.task_id).where(
            TaskCollaborator.user_id != user_id,
            TaskCollaborator.approval_status == ApprovalStatus.APPROVED.value,
        )
        return select(Task).where(
            Task.created_by == user_id,
            Task.status == TaskStatus.COMPLETED.value,
            Task.id.in_(gathered),
        )

    if category is BadgeCategory.COLLABORATION:
        collaborated = select(TaskCollaborator.task_id).where(
            TaskCollaborator.user_id == user_id,
            TaskCollaborator.status == CollaboratorRole.COLLABORATOR.value,
            TaskCollaborator.approval_status == ApprovalStatus.APPROVED.value,
        )
        return select(Task).where(
            Task.status == TaskStatus.COMPLETED.value,
            Task.created_by != user_id,
            Task.id.in_(collaborated),
        )

    if category is BadgeCategory.POSITIVE_IMPACT:
        query = select(Task).where(
            Task.created_by == user_id, Task.status == TaskStatus.COMPLETED.value,
        )
    elif category is BadgeCategory.CONSISTENCY:
        query = select(Task).where(
            Task.created_by == user_id,
            Task.status == TaskStatus.COMPLETED.value,
            Task.repeat_type.is_not(None),
        )
    else:
        # Follower counts and rating runs are not backed by tasks.
        return None

    if badge.entity_key:
        query = query.where(_tagged(badge.entity_key))
    return query


def badge_task_history(session: Session, badge: UserBadge, limit: int = 20) -> list[Task]:
    """Completed tasks that earned *badge*, most recently updated first.

    Empty for sociability and reliability, whose metrics are not task counts.
    """
    query = _history_query(badge)
    if query is None or limit <= 0:
        return []
    return list(session.scalars(
        query.order_by(Task.updated_at.desc(), Task.created_at.desc(), Task.id).limit(limit)
    ).all())


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def badge_to_dict(badge: UserBadge, locale: str = "en") -> dict[str, Any]:
    return {
        "id": badge.id,
        "user_id": badge.user_id,
        "category": badge.category,
        "category_label": category_label(badge.category, locale),
        "icon": CATEGORY_ICONS[BadgeCategory(badge.category)],
        "entity_id": badge.entity_id,
        "entity_name": badge.entity_name,
        "level": badge.level,
        "level_name": level_display_name(badge.level, locale),
        "metric_value": badge.metric_value,
        "next_threshold": next_threshold(badge.level),
        "progress": round(level_progress(badge.metric_value, badge.level), 4),
        "earned_at": badge.earned_at.isoformat() if badge.earned_at else None,
        "notified": badge.notified,
    }


def task_to_dict(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "created_by": task.created_by,
        "status": task.status,
        "likes": task.likes,
        "repeat_type": task.repeat_type,
        "streak_count": task.streak_count,
        "updated_at": task.updated_at.isoformat() if task.updated_at else None,
    }
