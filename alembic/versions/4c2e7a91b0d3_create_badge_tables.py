"""Create user_badges and the read-only source mirrors

Revision ID: 4c2e7a91b0d3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c2e7a91b0d3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=True,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create the source mirrors, then user_badges with its unique key."""
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("full_name", sa.String(200), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "created_by", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("likes", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("repeat_type", sa.String(20), nullable=True),
        sa.Column("streak_count", sa.Integer(), nullable=True, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_tasks_created_by_status", "tasks", ["created_by", "status"])
    op.create_index("ix_tasks_status", "tasks", ["status"])

    op.create_table(
        "task_collaborators",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "task_id", sa.String(36),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="collaborator"),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="pending"),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_task_collaborators_task", "task_collaborators", ["task_id", "approval_status"],
    )
    op.create_index(
        "ix_task_collaborators_user", "task_collaborators", ["user_id", "approval_status"],
    )

    op.create_table(
        "tags",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
    )

    op.create_table(
        "task_tags",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "task_id", sa.String(36),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "tag_id", sa.String(36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"), nullable=False,
        ),
        _timestamp("created_at"),
        sa.UniqueConstraint("task_id", "tag_id", name="uq_task_tags_task_tag"),
    )
    op.create_index("ix_task_tags_tag", "task_tags", ["tag_id"])

    op.create_table(
        "follows",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "follower_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "following_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        _timestamp("created_at"),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
    )
    op.create_index("ix_follows_following", "follows", ["following_id"])

    op.create_table(
        "task_ratings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "task_id", sa.String(36),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "rated_user_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "rater_user_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("rating", sa.Integer(), nullable=False),
        _timestamp("created_at"),
    )
    op.create_index(
        "ix_task_ratings_rated_time", "task_ratings", ["rated_user_id", "created_at"],
    )

    op.create_table(
        "user_badges",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.String(36),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("entity_key", sa.String(36), nullable=False, server_default=""),
        sa.Column("entity_name", sa.String(200), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("metric_value", sa.BigInteger(), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notified", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint(
            "user_id", "category", "entity_key",
            name="uq_user_badges_user_category_entity",
        ),
    )
    op.create_index(
        "ix_user_badges_user_level", "user_badges", ["user_id", "level", "metric_value"],
    )
    op.create_index("ix_user_badges_user_notified", "user_badges", ["user_id", "notified"])


def downgrade() -> None:
    """Drop everything created above, children first."""
    op.drop_index("ix_user_badges_user_notified", table_name="user_badges")
    op.drop_index("ix_user_badges_user_level", table_name="user_badges")
    op.drop_table("user_badges")
    op.drop_index("ix_task_ratings_rated_time", table_name="task_ratings")
    op.drop_table("task_ratings")
    op.drop_index("ix_follows_following", table_name="follows")
    op.drop_table("follows")
    op.drop_index("ix_task_tags_tag", table_name="task_tags")
    op.drop_table("task_tags")
    op.drop_table("tags")
    op.drop_index("ix_task_collaborators_user", table_name="task_collaborators")
    op.drop_index("ix_task_collaborators_task", table_name="task_collaborators")
    op.drop_table("task_collaborators")
    op.drop_index("ix_tasks_status", table_name="tasks")
    op.drop_index("ix_tasks_created_by_status", table_name="tasks")
    op.drop_table("tasks")
    op.drop_table("profiles")
