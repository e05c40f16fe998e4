"""
taskmates.engine.metrics — Badge Metric Aggregators
====================================================

Handler-registry implementation of the nine badge categories.  Each
BadgeCategory maps to a pure aggregator that receives the
:class:`ActivitySnapshot` loaded for that category and returns the
candidates worth a badge (metric at or above the level-1 threshold).

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Iterable

from taskmates.database.models import (
    ApprovalStatus,
    BadgeCategory,
    CollaboratorRole,
    TagCategory,
    TaskStatus,
)
from taskmates.engine.activity import (
    ActivitySnapshot,
    BadgeCandidate,
    EntityRef,
    ParticipationFact,
    TaskFact,
)
from taskmates.engine.levels import LEVEL_THRESHOLDS

logger = logging.getLogger(__name__)

# Top of the 1–5 star scale; reliability counts runs of these.
MAX_RATING = 5

Aggregator = Callable[[ActivitySnapshot], list[BadgeCandidate]]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------
def _earns_badge(metric_value: int) -> bool:
    return metric_value >= LEVEL_THRESHOLDS[0]


def _approved(participations: Iterable[ParticipationFact]) -> list[ParticipationFact]:
    return [p for p in participations if p.approval_status == ApprovalStatus.APPROVED]


def _involved_completed_tasks(snapshot: ActivitySnapshot) -> list[TaskFact]:
    """Completed tasks the user created or was approved to take part in."""
    joined = {
        p.task_id for p in _approved(snapshot.participations)
        if p.user_id == snapshot.user_id
    }
    return [
        t for t in snapshot.tasks
        if t.status == TaskStatus.COMPLETED
        and (t.created_by == snapshot.user_id or t.id in joined)
    ]


def _first_tag(snapshot: ActivitySnapshot, task: TaskFact) -> EntityRef | None:
    if not task.tag_ids:
        return None
    tag_id = task.tag_ids[0]
    tag = snapshot.tags.get(tag_id)
    return EntityRef(id=tag_id, name=tag.name if tag else None)


def _best_task(
    snapshot: ActivitySnapshot,
    category: BadgeCategory,
    tasks: list[TaskFact],
    metric: Callable[[TaskFact], int],
) -> list[BadgeCandidate]:
    """Candidate for the single task with the highest *metric*, labelled by its first tag."""
    if not tasks:
        return []
    best = max(tasks, key=metric)
    value = metric(best)
    if not _earns_badge(value):
        return []
    return [BadgeCandidate(category, value, _first_tag(snapshot, best))]


def _tag_counts(snapshot: ActivitySnapshot, tag_category: TagCategory) -> Counter[str]:
    counts: Counter[str] = Counter()
    for task in _involved_completed_tasks(snapshot):
        for tag_id in dict.fromkeys(task.tag_ids):
            tag = snapshot.tags.get(tag_id)
            if tag is not None and tag.category == tag_category:
                counts[tag_id] += 1
    return counts


# ---------------------------------------------------------------------------
# Aggregators — pure functions snapshot → candidates
# ---------------------------------------------------------------------------
def aggregate_teammates(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Shared completed tasks per co-participant.

    Co-participants of a task are its creator and its approved
    participants, minus the user.
    """
    approved_by_task: dict[str, set[str]] = {}
    for p in _approved(snapshot.participations):
        approved_by_task.setdefault(p.task_id, set()).add(p.user_id)

    counts: Counter[str] = Counter()
    for task in _involved_completed_tasks(snapshot):
        people = {task.created_by} | approved_by_task.get(task.id, set())
        people.discard(snapshot.user_id)
        counts.update(people)

    return [
        BadgeCandidate(
            BadgeCategory.TEAMMATES,
            count,
            EntityRef(id=person_id, name=snapshot.profile_names.get(person_id) or person_id),
        )
        for person_id, count in counts.items()
        if _earns_badge(count)
    ]


def _aggregate_tag_category(
    snapshot: ActivitySnapshot,
    tag_category: TagCategory,
    badge_category: BadgeCategory,
) -> list[BadgeCandidate]:
    return [
        BadgeCandidate(
            badge_category,
            count,
            EntityRef(id=tag_id, name=snapshot.tags[tag_id].name),
        )
        for tag_id, count in _tag_counts(snapshot, tag_category).items()
        if _earns_badge(count)
    ]


def aggregate_habits(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Completions per skill tag."""
    return _aggregate_tag_category(snapshot, TagCategory.SKILLS, BadgeCategory.HABITS)


def aggregate_communities(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Completions per community tag."""
    return _aggregate_tag_category(
        snapshot, TagCategory.COMMUNITIES, BadgeCategory.COMMUNITIES,
    )


def aggregate_leadership(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Most approved participants gathered on one of the user's tasks."""
    own_tasks = {t.id for t in snapshot.tasks if t.created_by == snapshot.user_id}
    people: dict[str, set[str]] = {}
    for p in _approved(snapshot.participations):
        if p.task_id in own_tasks and p.user_id != snapshot.user_id:
            people.setdefault(p.task_id, set()).add(p.user_id)

    value = max((len(members) for members in people.values()), default=0)
    if not _earns_badge(value):
        return []
    return [BadgeCandidate(BadgeCategory.LEADERSHIP, value)]


def aggregate_collaboration(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Completed tasks of other members the user collaborated on."""
    completed_elsewhere = {
        t.id for t in snapshot.tasks
        if t.status == TaskStatus.COMPLETED and t.created_by != snapshot.user_id
    }
    value = len({
        p.task_id for p in _approved(snapshot.participations)
        if p.user_id == snapshot.user_id
        and p.role == CollaboratorRole.COLLABORATOR
        and p.task_id in completed_elsewhere
    })
    if not _earns_badge(value):
        return []
    return [BadgeCandidate(BadgeCategory.COLLABORATION, value)]


def aggregate_positive_impact(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Most likes on a single completed task the user created."""
    tasks = [
        t for t in snapshot.tasks
        if t.created_by == snapshot.user_id and t.status == TaskStatus.COMPLETED
    ]
    return _best_task(snapshot, BadgeCategory.POSITIVE_IMPACT, tasks, lambda t: t.likes or 0)


def aggregate_sociability(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Follower count."""
    if not _earns_badge(snapshot.follower_count):
        return []
    return [BadgeCandidate(BadgeCategory.SOCIABILITY, snapshot.follower_count)]


def aggregate_reliability(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Longest run of consecutive top ratings, oldest first."""
    longest = current = 0
    for r in sorted(snapshot.ratings, key=lambda r: r.created_at):
        if r.rating >= MAX_RATING:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    if not _earns_badge(longest):
        return []
    return [BadgeCandidate(BadgeCategory.RELIABILITY, longest)]


def aggregate_consistency(snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Longest streak on any of the user's repeating tasks."""
    tasks = [
        t for t in snapshot.tasks
        if t.created_by == snapshot.user_id and t.repeat_type is not None
    ]
    return _best_task(
        snapshot, BadgeCategory.CONSISTENCY, tasks, lambda t: t.streak_count or 0,
    )


# ---------------------------------------------------------------------------
# Aggregator registry
# ---------------------------------------------------------------------------
AGGREGATORS: dict[BadgeCategory, Aggregator] = {
    BadgeCategory.TEAMMATES: aggregate_teammates,
    BadgeCategory.HABITS: aggregate_habits,
    BadgeCategory.COMMUNITIES: aggregate_communities,
    BadgeCategory.LEADERSHIP: aggregate_leadership,
    BadgeCategory.COLLABORATION: aggregate_collaboration,
    BadgeCategory.POSITIVE_IMPACT: aggregate_positive_impact,
    BadgeCategory.SOCIABILITY: aggregate_sociability,
    BadgeCategory.RELIABILITY: aggregate_reliability,
    BadgeCategory.CONSISTENCY: aggregate_consistency,
}


def aggregate(category: BadgeCategory, snapshot: ActivitySnapshot) -> list[BadgeCandidate]:
    """Run the registered aggregator for *category* on *snapshot*."""
    candidates = AGGREGATORS[category](snapshot)
    logger.debug(
        "Aggregated %s for user %s: %d candidate(s)",
        category, snapshot.user_id, len(candidates),
    )
    return candidates
