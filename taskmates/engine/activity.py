"""
taskmates.engine.activity — Activity Snapshots & Badge Candidates
==================================================================

The data envelopes that flow through the badge pipeline:

    loaders (services) → ActivitySnapshot → aggregators (engine) → BadgeCandidate

Snapshots are flat, read-only copies of the source rows a category needs.
Aggregators never see ORM objects, so there is no task ↔ person ↔ tag
object graph to walk.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from taskmates.database.models import GLOBAL_ENTITY_KEY, BadgeCategory

__all__ = [
    "CATEGORY_SCOPE",
    "ActivitySnapshot",
    "BadgeCandidate",
    "EntityRef",
    "EntityScope",
    "ParticipationFact",
    "RatingFact",
    "TagFact",
    "TaskFact",
]


# ---------------------------------------------------------------------------
# Entity scoping per category
# ---------------------------------------------------------------------------
class EntityScope(enum.Enum):
    """Whether a category's badges are tied to another person or a tag."""
    REQUIRED = "required"   # one badge per teammate / tag
    OPTIONAL = "optional"   # labelled by a tag when the winning task has one
    NONE = "none"           # one global badge per user


CATEGORY_SCOPE: dict[BadgeCategory, EntityScope] = {
    BadgeCategory.TEAMMATES: EntityScope.REQUIRED,
    BadgeCategory.HABITS: EntityScope.REQUIRED,
    BadgeCategory.COMMUNITIES: EntityScope.REQUIRED,
    BadgeCategory.LEADERSHIP: EntityScope.NONE,
    BadgeCategory.COLLABORATION: EntityScope.NONE,
    BadgeCategory.POSITIVE_IMPACT: EntityScope.OPTIONAL,
    BadgeCategory.SOCIABILITY: EntityScope.NONE,
    BadgeCategory.RELIABILITY: EntityScope.NONE,
    BadgeCategory.CONSISTENCY: EntityScope.OPTIONAL,
}


# ---------------------------------------------------------------------------
# Source facts
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TaskFact:
    """One task row.  ``tag_ids`` keeps attachment order."""

    id: str
    created_by: str
    status: str
    likes: int = 0
    repeat_type: str | None = None
    streak_count: int = 0
    tag_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ParticipationFact:
    """One task_collaborators row."""

    task_id: str
    user_id: str
    role: str
    approval_status: str


@dataclass(frozen=True, slots=True)
class TagFact:
    id: str
    name: str
    category: str


@dataclass(frozen=True, slots=True)
class RatingFact:
    rating: int
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ActivitySnapshot:
    """Read-only view of the source rows one category needs for one user.

    Parameters
    ----------
    user_id : The member whose badges are being computed.
    tasks : Task rows relevant to the category.
    participations : task_collaborators rows relevant to the category.
    tags : Tag rows keyed by id (for habits/communities and tag labels).
    ratings : Ratings received, any order (the aggregator sorts them).
    follower_count : Number of follows targeting the user.
    profile_names : Display name per profile id (teammate labels).
    """

    user_id: str
    tasks: tuple[TaskFact, ...] = ()
    participations: tuple[ParticipationFact, ...] = ()
    tags: Mapping[str, TagFact] = field(default_factory=dict)
    ratings: tuple[RatingFact, ...] = ()
    follower_count: int = 0
    profile_names: Mapping[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Aggregator output
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EntityRef:
    """The teammate or tag a badge is about."""

    id: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class BadgeCandidate:
    """A ``(category, entity, metric)`` triple proposed by an aggregator.

    Raises ``ValueError`` when *entity* contradicts the category's
    :data:`CATEGORY_SCOPE`.
    """

    category: BadgeCategory
    metric_value: int
    entity: EntityRef | None = None

    def __post_init__(self) -> None:
        scope = CATEGORY_SCOPE[self.category]
        if scope is EntityScope.REQUIRED and self.entity is None:
            raise ValueError(f"{self.category} badges must name an entity")
        if scope is EntityScope.NONE and self.entity is not None:
            raise ValueError(f"{self.category} badges are global to the user")
        if self.metric_value < 0:
            raise ValueError("metric_value must be non-negative")

    @property
    def entity_id(self) -> str | None:
        return self.entity.id if self.entity else None

    @property
    def entity_name(self) -> str | None:
        return self.entity.name if self.entity else None

    @property
    def key(self) -> tuple[str, str]:
        """``(category, entity_key)`` — the badge identity within one user."""
        return self.category.value, self.entity.id if self.entity else GLOBAL_ENTITY_KEY
