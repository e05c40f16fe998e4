"""
taskmates.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- profiles           — Member identity + display name (read-only mirror)
- tasks              — Tasks with status, likes and repeat streaks (read-only mirror)
- task_collaborators — Participation requests and their approval state (read-only mirror)
- tags               — Skill / community tags (read-only mirror)
- task_tags          — Tag attachments, in attachment order (read-only mirror)
- follows            — Follower graph (read-only mirror)
- task_ratings       — Ratings members give each other after a task (read-only mirror)
- user_badges        — Earned badges, one row per (user, category, entity)

Every table except ``user_badges`` is owned by the task, tag, social and
rating services; the badge engine only ever reads them.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Stored in user_badges.entity_key for categories that are global to the user.
# SQL treats NULLs as distinct, so a NULL key could not back the unique constraint.
GLOBAL_ENTITY_KEY = ""


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Taskmates ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class BadgeCategory(enum.StrEnum):
    """The nine dimensions of activity that earn badges."""
    TEAMMATES = "teammates"
    HABITS = "habits"
    COMMUNITIES = "communities"
    LEADERSHIP = "leadership"
    COLLABORATION = "collaboration"
    POSITIVE_IMPACT = "positive_impact"
    SOCIABILITY = "sociability"
    RELIABILITY = "reliability"
    CONSISTENCY = "consistency"


class TagCategory(enum.StrEnum):
    SKILLS = "skills"
    COMMUNITIES = "communities"


class TaskStatus(enum.StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CollaboratorRole(enum.StrEnum):
    """How a member joined someone else's task."""
    COLLABORATOR = "collaborator"
    REQUESTER = "requester"


class ApprovalStatus(enum.StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Profiles — one row per member
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    full_name: Mapped[str | None] = mapped_column(String(200), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    badges: Mapped[list[UserBadge]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Profile id={self.id} name={self.full_name!r}>"


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    created_by: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.OPEN.value
    )
    likes: Mapped[int] = mapped_column(Integer, default=0)
    repeat_type: Mapped[str | None] = mapped_column(String(20), default=None)  # daily, weekly, ...; NULL = one-off
    streak_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_tasks_created_by_status", "created_by", "status"),
        Index("ix_tasks_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Task id={self.id} status={self.status!r} by={self.created_by}>"


# ---------------------------------------------------------------------------
# TaskCollaborator — participation on someone else's task
# ---------------------------------------------------------------------------
class TaskCollaborator(Base):
    __tablename__ = "task_collaborators"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CollaboratorRole.COLLABORATOR.value
    )
    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_task_collaborators_task", "task_id", "approval_status"),
        Index("ix_task_collaborators_user", "user_id", "approval_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<TaskCollaborator task={self.task_id} user={self.user_id} "
            f"role={self.status!r} approval={self.approval_status!r}>"
        )


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------
class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<Tag id={self.id} name={self.name!r} category={self.category!r}>"


class TaskTag(Base):
    __tablename__ = "task_tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    tag_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("task_id", "tag_id", name="uq_task_tags_task_tag"),
        Index("ix_task_tags_tag", "tag_id"),
    )

    def __repr__(self) -> str:
        return f"<TaskTag task={self.task_id} tag={self.tag_id}>"


# ---------------------------------------------------------------------------
# Follows — follower graph
# ---------------------------------------------------------------------------
class Follow(Base):
    __tablename__ = "follows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    follower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    following_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        Index("ix_follows_following", "following_id"),
    )

    def __repr__(self) -> str:
        return f"<Follow {self.follower_id} → {self.following_id}>"


# ---------------------------------------------------------------------------
# TaskRating — post-task ratings between members
# ---------------------------------------------------------------------------
class TaskRating(Base):
    __tablename__ = "task_ratings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    rated_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    rater_user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_task_ratings_rated_time", "rated_user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TaskRating rated={self.rated_user_id} rating={self.rating}>"


# ---------------------------------------------------------------------------
# UserBadge — earned badges (the only table the engine writes)
# ---------------------------------------------------------------------------
class UserBadge(Base):
    """One badge per (user, category, entity).

    ``level`` and ``metric_value`` are high-water marks: the sync service
    only ever moves them forward.  ``earned_at`` and ``notified`` change
    only when ``level`` goes up.
    """
    __tablename__ = "user_badges"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_key: Mapped[str] = mapped_column(
        String(36), nullable=False, default=GLOBAL_ENTITY_KEY,
        server_default=GLOBAL_ENTITY_KEY,
    )
    entity_name: Mapped[str | None] = mapped_column(String(200), default=None)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    metric_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[Profile] = relationship(back_populates="badges")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "category", "entity_key",
            name="uq_user_badges_user_category_entity",
        ),
        Index("ix_user_badges_user_level", "user_id", "level", "metric_value"),
        Index("ix_user_badges_user_notified", "user_id", "notified"),
    )

    @property
    def entity_id(self) -> str | None:
        """The scoping entity, or ``None`` for a global badge."""
        return self.entity_key or None

    def __repr__(self) -> str:
        return (
            f"<UserBadge user={self.user_id} category={self.category!r} "
            f"entity={self.entity_key!r} lvl={self.level} metric={self.metric_value}>"
        )
