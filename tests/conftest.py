"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of taskmates.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine, delete, event, select  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from taskmates.config import TaskmatesConfig  # noqa: E402
from taskmates.database.models import (  # noqa: E402
    Base,
    Follow,
    Profile,
    Tag,
    Task,
    TaskCollaborator,
    TaskRating,
    TaskTag,
    UserBadge,
)


# BigInteger → INTEGER so SQLite accepts it like PostgreSQL's BIGINT.
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


def _use_real_sqlite_transactions(engine: Engine) -> None:
    """SQLAlchemy's documented pysqlite workaround: emit BEGIN ourselves so
    SAVEPOINT/RELEASE nest inside the outer transaction (as on PostgreSQL)."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with every Taskmates table.

    Uses StaticPool so every session sees the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _use_real_sqlite_transactions(engine)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for code that fans out across threads.

    ``sync_user_badges_async`` runs nine loaders concurrently; each needs
    its own connection, which a single StaticPool connection cannot give.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'taskmates.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def test_config() -> TaskmatesConfig:
    return TaskmatesConfig(app_name="Taskmates Test")


# ---------------------------------------------------------------------------
# Source-data builder
# ---------------------------------------------------------------------------
BASE_TIME = datetime(2026, 1, 1, 9, 0, 0)


class Seeder:
    """Writes source rows the way the task/social/rating services would.

    Every timestamp comes from a private clock that advances one minute
    per row, so "attachment order" and "newest first" are deterministic.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._tick = 0

    def _at(self) -> datetime:
        self._tick += 1
        return BASE_TIME + timedelta(minutes=self._tick)

    def _add(self, obj):
        with Session(self.engine, expire_on_commit=False) as session:
            session.add(obj)
            session.commit()
            return obj.id

    # -- source tables -----------------------------------------------------
    def profile(self, full_name: str | None = None, id: str | None = None) -> str:
        fields = {"id": id} if id else {}
        return self._add(Profile(full_name=full_name, created_at=self._at(), **fields))

    def task(
        self,
        owner: str,
        *,
        status: str = "completed",
        likes: int = 0,
        repeat_type: str | None = None,
        streak_count: int = 0,
        title: str = "Task",
    ) -> str:
        at = self._at()
        return self._add(Task(
            created_by=owner, status=status, likes=likes, repeat_type=repeat_type,
            streak_count=streak_count, title=title, created_at=at, updated_at=at,
        ))

    def join(
        self, task_id: str, user_id: str, *,
        role: str = "collaborator", approval: str = "approved",
    ) -> str:
        return self._add(TaskCollaborator(
            task_id=task_id, user_id=user_id, status=role,
            approval_status=approval, created_at=self._at(),
        ))

    def tag(self, name: str, category: str = "skills") -> str:
        return self._add(Tag(name=name, category=category))

    def attach(self, task_id: str, *tag_ids: str) -> None:
        for tag_id in tag_ids:
            self._add(TaskTag(task_id=task_id, tag_id=tag_id, created_at=self._at()))

    def follow(self, follower: str, following: str) -> str:
        return self._add(Follow(follower_id=follower, following_id=following, created_at=self._at()))

    def unfollow(self, follower: str, following: str) -> None:
        with Session(self.engine) as session:
            session.execute(delete(Follow).where(
                Follow.follower_id == follower, Follow.following_id == following,
            ))
            session.commit()

    def rate(self, rated: str, rater: str, task_id: str, rating: int) -> str:
        return self._add(TaskRating(
            task_id=task_id, rated_user_id=rated, rater_user_id=rater,
            rating=rating, created_at=self._at(),
        ))

    def update_task(self, task_id: str, **fields) -> None:
        with Session(self.engine) as session:
            task = session.get(Task, task_id)
            for key, value in fields.items():
                setattr(task, key, value)
            task.updated_at = self._at()
            session.commit()

    # -- shortcuts ---------------------------------------------------------
    def shared_tasks(self, owner: str, mate: str, n: int, **task_fields) -> list[str]:
        """*n* completed tasks created by *owner* with *mate* approved on each."""
        ids = []
        for _ in range(n):
            task_id = self.task(owner, **task_fields)
            self.join(task_id, mate)
            ids.append(task_id)
        return ids

    # -- reads -------------------------------------------------------------
    def badges(self, user_id: str) -> list[UserBadge]:
        with Session(self.engine, expire_on_commit=False) as session:
            rows = session.scalars(
                select(UserBadge).where(UserBadge.user_id == user_id)
                .order_by(UserBadge.category, UserBadge.entity_key)
            ).all()
            for r in rows:
                session.expunge(r)
            return list(rows)

    def badge(self, user_id: str, category: str, entity_key: str = "") -> UserBadge | None:
        for b in self.badges(user_id):
            if b.category == category and b.entity_key == entity_key:
                return b
        return None


@pytest.fixture
def seed(db_engine: Engine) -> Seeder:
    return Seeder(db_engine)


@pytest.fixture
def file_seed(file_engine: Engine) -> Seeder:
    return Seeder(file_engine)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
def make_token(sub: str) -> str:
    """Create a user JWT the way the auth service issues them."""
    import jwt

    from taskmates.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth_header(sub: str) -> dict:
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture
def client(file_engine: Engine, test_config: TaskmatesConfig):
    """FastAPI TestClient bound to a file-backed SQLite database."""
    from fastapi.testclient import TestClient

    from taskmates.api.main import app
    from taskmates.api.routes import badges as routes

    app.dependency_overrides[routes.get_engine] = lambda: file_engine
    app.dependency_overrides[routes.get_config] = lambda: test_config
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
