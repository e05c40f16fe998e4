"""
taskmates.services.activity_service — Per-Category Snapshot Loaders
====================================================================

One loader per badge category.  Each loader runs a handful of flat
queries against the (read-only) source tables and packs the rows into an
:class:`~taskmates.engine.activity.ActivitySnapshot` for the matching
aggregator.  Loaders never write.

Loaders are independent of each other so the sync service can run them
concurrently, each on its own session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from taskmates.database.models import (
    ApprovalStatus,
    BadgeCategory,
    CollaboratorRole,
    Follow,
    Profile,
    Tag,
    TagCategory,
    Task,
    TaskCollaborator,
    TaskRating,
    TaskStatus,
    TaskTag,
)
from taskmates.engine.activity import (
    ActivitySnapshot,
    ParticipationFact,
    RatingFact,
    TagFact,
    TaskFact,
)

logger = logging.getLogger(__name__)

Loader = Callable[[Session, str], ActivitySnapshot]


# ---------------------------------------------------------------------------
# Row → fact helpers
# ---------------------------------------------------------------------------
def _tag_ids_by_task(session: Session, task_ids: Iterable[str]) -> dict[str, tuple[str, ...]]:
    """Tag ids per task, in attachment order."""
    ids = list(task_ids)
    if not ids:
        return {}
    rows = session.execute(
        select(TaskTag.task_id, TaskTag.tag_id)
        .where(TaskTag.task_id.in_(ids))
        .order_by(TaskTag.created_at, TaskTag.id)
    ).all()
    out: dict[str, list[str]] = {}
    for row in rows:
        out.setdefault(row.task_id, []).append(row.tag_id)
    return {task_id: tuple(tags) for task_id, tags in out.items()}


def _task_facts(session: Session, query: Select, *, with_tags: bool = False) -> tuple[TaskFact, ...]:
    tasks = session.scalars(query).all()
    tags = _tag_ids_by_task(session, (t.id for t in tasks)) if with_tags else {}
    return tuple(
        TaskFact(
            id=t.id,
            created_by=t.created_by,
            status=t.status,
            likes=t.likes or 0,
            repeat_type=t.repeat_type,
            streak_count=t.streak_count or 0,
            tag_ids=tags.get(t.id, ()),
        )
        for t in tasks
    )


def _participation_facts(session: Session, query: Select) -> tuple[ParticipationFact, ...]:
    return tuple(
        ParticipationFact(
            task_id=c.task_id,
            user_id=c.user_id,
            role=c.status,
            approval_status=c.approval_status,
        )
        for c in session.scalars(query).all()
    )


def _tag_facts(
    session: Session,
    tag_ids: Iterable[str],
    category: TagCategory | None = None,
) -> dict[str, TagFact]:
    ids = set(tag_ids)
    if not ids:
        return {}
    query = select(Tag).where(Tag.id.in_(ids))
    if category is not None:
        query = query.where(Tag.category == category.value)
    return {
        t.id: TagFact(id=t.id, name=t.name, category=t.category)
        for t in session.scalars(query).all()
    }


def approved_task_ids_for(user_id: str) -> Select:
    return select(TaskCollaborator.task_id).where(
        TaskCollaborator.user_id == user_id,
        TaskCollaborator.approval_status == ApprovalStatus.APPROVED.value,
    )


def involved_completed_tasks_query(user_id: str) -> Select:
    """Completed tasks the user created or was approved to join."""
    return select(Task).where(
        Task.status == TaskStatus.COMPLETED.value,
        or_(Task.created_by == user_id, Task.id.in_(approved_task_ids_for(user_id))),
    )


def _own_approved_participations(session: Session, user_id: str) -> tuple[ParticipationFact, ...]:
    return _participation_facts(
        session,
        select(TaskCollaborator).where(
            TaskCollaborator.user_id == user_id,
            TaskCollaborator.approval_status == ApprovalStatus.APPROVED.value,
        ),
    )


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------
def load_teammates(session: Session, user_id: str) -> ActivitySnapshot:
    tasks = _task_facts(session, involved_completed_tasks_query(user_id))
    task_ids = [t.id for t in tasks]
    participations = _participation_facts(
        session,
        select(TaskCollaborator).where(
            TaskCollaborator.task_id.in_(task_ids),
            TaskCollaborator.approval_status == ApprovalStatus.APPROVED.value,
        ),
    ) if task_ids else ()

    people = {t.created_by for t in tasks} | {p.user_id for p in participations}
    people.discard(user_id)
    names = {
        row.id: row.full_name
        for row in session.execute(
            select(Profile.id, Profile.full_name).where(Profile.id.in_(people))
        ).all()
        if row.full_name
    } if people else {}

    return ActivitySnapshot(
        user_id=user_id,
        tasks=tasks,
        participations=participations,
        profile_names=names,
    )


def _load_tag_category(session: Session, user_id: str, category: TagCategory) -> ActivitySnapshot:
    tasks = _task_facts(session, involved_completed_tasks_query(user_id), with_tags=True)
    tags = _tag_facts(session, (tag_id for t in tasks for tag_id in t.tag_ids), category)
    return ActivitySnapshot(
        user_id=user_id,
        tasks=tasks,
        participations=_own_approved_participations(session, user_id),
        tags=tags,
    )


def load_habits(session: Session, user_id: str) -> ActivitySnapshot:
    return _load_tag_category(session, user_id, TagCategory.SKILLS)


def load_communities(session: Session, user_id: str) -> ActivitySnapshot:
    return _load_tag_category(session, user_id, TagCategory.COMMUNITIES)


def load_leadership(session: Session, user_id: str) -> ActivitySnapshot:
    tasks = _task_facts(session, select(Task).where(Task.created_by == user_id))
    task_ids = [t.id for t in tasks]
    participations = _participation_facts(
        session,
        select(TaskCollaborator).where(
            TaskCollaborator.task_id.in_(task_ids),
            TaskCollaborator.approval_status == ApprovalStatus.APPROVED.value,
        ),
    ) if task_ids else ()
    return ActivitySnapshot(user_id=user_id, tasks=tasks, participations=participations)


def load_collaboration(session: Session, user_id: str) -> ActivitySnapshot:
    participations = _participation_facts(
        session,
        select(TaskCollaborator).where(
            TaskCollaborator.user_id == user_id,
            TaskCollaborator.status == CollaboratorRole.COLLABORATOR.value,
            TaskCollaborator.approval_status == ApprovalStatus.APPROVED.value,
        ),
    )
    task_ids = {p.task_id for p in participations}
    tasks = _task_facts(
        session, select(Task).where(Task.id.in_(task_ids)),
    ) if task_ids else ()
    return ActivitySnapshot(user_id=user_id, tasks=tasks, participations=participations)


def load_positive_impact(session: Session, user_id: str) -> ActivitySnapshot:
    tasks = _task_facts(
        session,
        select(Task).where(
            Task.created_by == user_id,
            Task.status == TaskStatus.COMPLETED.value,
        ),
        with_tags=True,
    )
    tags = _tag_facts(session, (t.tag_ids[0] for t in tasks if t.tag_ids))
    return ActivitySnapshot(user_id=user_id, tasks=tasks, tags=tags)


def load_sociability(session: Session, user_id: str) -> ActivitySnapshot:
    followers = session.scalar(
        select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
    ) or 0
    return ActivitySnapshot(user_id=user_id, follower_count=followers)


def load_reliability(session: Session, user_id: str) -> ActivitySnapshot:
    rows = session.execute(
        select(TaskRating.rating, TaskRating.created_at)
        .where(TaskRating.rated_user_id == user_id)
        .order_by(TaskRating.created_at, TaskRating.id)
    ).all()
    return ActivitySnapshot(
        user_id=user_id,
        ratings=tuple(RatingFact(rating=r.rating, created_at=r.created_at) for r in rows),
    )


def load_consistency(session: Session, user_id: str) -> ActivitySnapshot:
    tasks = _task_facts(
        session,
        select(Task).where(Task.created_by == user_id, Task.repeat_type.is_not(None)),
        with_tags=True,
    )
    tags = _tag_facts(session, (t.tag_ids[0] for t in tasks if t.tag_ids))
    return ActivitySnapshot(user_id=user_id, tasks=tasks, tags=tags)


# ---------------------------------------------------------------------------
# Loader registry
# ---------------------------------------------------------------------------
LOADERS: dict[BadgeCategory, Loader] = {
    BadgeCategory.TEAMMATES: load_teammates,
    BadgeCategory.HABITS: load_habits,
    BadgeCategory.COMMUNITIES: load_communities,
    BadgeCategory.LEADERSHIP: load_leadership,
    BadgeCategory.COLLABORATION: load_collaboration,
    BadgeCategory.POSITIVE_IMPACT: load_positive_impact,
    BadgeCategory.SOCIABILITY: load_sociability,
    BadgeCategory.RELIABILITY: load_reliability,
    BadgeCategory.CONSISTENCY: load_consistency,
}


def load_snapshot(session: Session, category: BadgeCategory, user_id: str) -> ActivitySnapshot:
    """Load the snapshot the *category* aggregator needs for *user_id*."""
    return LOADERS[category](session, user_id)
