"""
taskmates.services.badge_sync_service — Badge Synchronization
==============================================================

Shared service module callable by the API and the batch worker.  One sync
for one user runs in two phases:

1. **Collect** — for each of the nine categories, load its snapshot and
   run its aggregator.  Categories are independent: a failure in one is
   logged and reported, the rest carry on.  ``sync_user_badges_async``
   runs the nine collectors concurrently on worker threads.
2. **Apply** — under a per-user lock, plan the changes against the stored
   badges and write each one inside its own SAVEPOINT.  Every UPDATE is a
   compare-and-set on the values that were read, so a writer in another
   process can never move a badge backwards; a lost race is re-planned
   against the fresh row.

A failed sync leaves existing badges untouched and is safe to retry.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from taskmates.database.engine import run_db
from taskmates.database.models import BadgeCategory, UserBadge
from taskmates.engine.activity import BadgeCandidate
from taskmates.engine.metrics import aggregate
from taskmates.engine.reconcile import (
    BadgeChange,
    ChangeKind,
    plan_badge_changes,
    plan_change,
)
from taskmates.services.activity_service import load_snapshot

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Attempts per candidate before a write is reported as failed
_MAX_WRITE_ATTEMPTS = 3

# One writer per user inside this process
_user_locks: dict[str, threading.Lock] = {}
_user_locks_guard = threading.Lock()


class ConcurrentUpdateError(SQLAlchemyError):
    """A badge kept changing underneath us across every write attempt."""


def _user_lock(user_id: str) -> threading.Lock:
    with _user_locks_guard:
        lock = _user_locks.get(user_id)
        if lock is None:
            lock = _user_locks[user_id] = threading.Lock()
        return lock


# ---------------------------------------------------------------------------
# SyncReport — what happened during one sync
# ---------------------------------------------------------------------------
@dataclass
class SyncReport:
    """Outcome of one user's sync.

    ``failed_categories`` maps category → error for collectors that
    raised; ``failed_writes`` maps ``"category/entity"`` → error for
    candidates whose write failed.  ``error`` is set when the apply phase
    could not start or its commit failed (nothing from it was persisted).
    """

    user_id: str
    candidates: int = 0
    inserted: int = 0
    updated: int = 0
    level_ups: list[dict[str, Any]] = field(default_factory=list)
    failed_categories: dict[str, str] = field(default_factory=dict)
    failed_writes: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def writes(self) -> int:
        return self.inserted + self.updated

    @property
    def partial(self) -> bool:
        return bool(self.failed_categories or self.failed_writes or self.error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "candidates": self.candidates,
            "inserted": self.inserted,
            "updated": self.updated,
            "level_ups": list(self.level_ups),
            "failed_categories": dict(self.failed_categories),
            "failed_writes": dict(self.failed_writes),
            "error": self.error,
            "partial": self.partial,
        }


def _change_label(candidate: BadgeCandidate) -> str:
    category, entity_key = candidate.key
    return f"{category}/{entity_key or '-'}"


# ---------------------------------------------------------------------------
# Phase 1: collect
# ---------------------------------------------------------------------------
def collect_category(engine: Engine, category: BadgeCategory, user_id: str) -> list[BadgeCandidate]:
    """Load and aggregate a single category (read-only, own session)."""
    with Session(engine) as session:
        snapshot = load_snapshot(session, category, user_id)
    return aggregate(category, snapshot)


def collect_candidates(engine: Engine, user_id: str, report: SyncReport) -> list[BadgeCandidate]:
    """Run every category collector in turn; failures land in *report*."""
    candidates: list[BadgeCandidate] = []
    for category in BadgeCategory:
        try:
            candidates.extend(collect_category(engine, category, user_id))
        except Exception as exc:
            logger.exception("Badge category %s failed for user %s", category, user_id)
            report.failed_categories[category.value] = str(exc) or type(exc).__name__
    report.candidates = len(candidates)
    return candidates


async def collect_candidates_async(
    engine: Engine, user_id: str, report: SyncReport,
) -> list[BadgeCandidate]:
    """Run the nine category collectors concurrently on worker threads."""
    categories = list(BadgeCategory)
    results = await asyncio.gather(
        *(run_db(collect_category, engine, category, user_id) for category in categories),
        return_exceptions=True,
    )

    candidates: list[BadgeCandidate] = []
    for category, result in zip(categories, results, strict=True):
        if isinstance(result, BaseException):
            logger.error(
                "Badge category %s failed for user %s",
                category, user_id, exc_info=result,
            )
            report.failed_categories[category.value] = str(result) or type(result).__name__
            continue
        candidates.extend(result)
    report.candidates = len(candidates)
    return candidates


# ---------------------------------------------------------------------------
# Phase 2: apply
# ---------------------------------------------------------------------------
def _find_badge(session: Session, user_id: str, candidate: BadgeCandidate) -> UserBadge | None:
    category, entity_key = candidate.key
    return session.scalar(
        select(UserBadge)
        .where(
            UserBadge.user_id == user_id,
            UserBadge.category == category,
            UserBadge.entity_key == entity_key,
        )
        .execution_options(populate_existing=True)
    )


def _insert(session: Session, user_id: str, change: BadgeChange, now: datetime) -> None:
    category, entity_key = change.candidate.key
    with session.begin_nested():   # SAVEPOINT
        session.add(UserBadge(
            user_id=user_id,
            category=category,
            entity_key=entity_key,
            entity_name=change.candidate.entity_name,
            level=change.level,
            metric_value=change.metric_value,
            earned_at=now,
            notified=False,
        ))
        session.flush()


def _compare_and_set(session: Session, change: BadgeChange, now: datetime) -> bool:
    """UPDATE guarded by the level/metric that were read.  False → row moved."""
    values: dict[str, Any] = {
        "level": change.level,
        "metric_value": change.metric_value,
        "entity_name": change.candidate.entity_name,
    }
    if change.leveled_up:
        values["earned_at"] = now
        values["notified"] = False

    with session.begin_nested():   # SAVEPOINT
        result = session.execute(
            update(UserBadge)
            .where(
                UserBadge.id == change.badge_id,
                UserBadge.level == change.previous_level,
                UserBadge.metric_value == change.previous_metric,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
    return result.rowcount == 1


def _apply_change(
    session: Session, user_id: str, change: BadgeChange, now: datetime,
) -> BadgeChange | None:
    """Write *change*; returns what was written, or None if nothing was left to do."""
    for _ in range(_MAX_WRITE_ATTEMPTS):
        if change.kind is ChangeKind.INSERT:
            try:
                _insert(session, user_id, change, now)
                return change
            except IntegrityError:
                # Another writer created the badge first; upgrade theirs instead.
                logger.warning(
                    "Badge %s for user %s already inserted elsewhere; re-planning",
                    _change_label(change.candidate), user_id,
                )
        elif _compare_and_set(session, change, now):
            return change

        fresh = _find_badge(session, user_id, change.candidate)
        replanned = plan_change(change.candidate, fresh)
        if replanned is None:
            return None
        change = replanned

    raise ConcurrentUpdateError(
        f"badge {_change_label(change.candidate)} changed on every attempt"
    )


def _record(report: SyncReport, user_id: str, applied: BadgeChange) -> None:
    if applied.kind is ChangeKind.INSERT:
        report.inserted += 1
    else:
        report.updated += 1
    if applied.leveled_up:
        report.level_ups.append({
            "category": applied.candidate.category.value,
            "entity_id": applied.candidate.entity_id,
            "entity_name": applied.candidate.entity_name,
            "level": applied.level,
            "previous_level": applied.previous_level,
        })
        logger.info(
            "Badge level-up: user %s %s → level %d",
            user_id, _change_label(applied.candidate), applied.level,
        )


def apply_candidates(
    engine: Engine,
    user_id: str,
    candidates: Iterable[BadgeCandidate],
    *,
    now: datetime | None = None,
    report: SyncReport | None = None,
) -> SyncReport:
    """Reconcile *candidates* against the user's stored badges and write the changes.

    Each candidate is written independently; a failure is recorded in
    ``report.failed_writes`` and the remaining candidates still go through.
    Counts and level-ups are recorded only once the writes are committed.
    """
    now = now or datetime.now(UTC)
    report = report or SyncReport(user_id=user_id)
    candidates = list(candidates)

    with _user_lock(user_id), Session(engine) as session:
        try:
            existing = session.scalars(
                select(UserBadge).where(UserBadge.user_id == user_id)
            ).all()
        except SQLAlchemyError as exc:
            logger.exception("Could not read badges for user %s", user_id)
            report.error = str(exc)
            return report

        applied_changes: list[BadgeChange] = []
        for change in plan_badge_changes(candidates, existing):
            try:
                applied = _apply_change(session, user_id, change, now)
            except SQLAlchemyError as exc:
                label = _change_label(change.candidate)
                logger.exception("Badge write %s failed for user %s", label, user_id)
                report.failed_writes[label] = str(exc)
                continue
            if applied is not None:
                applied_changes.append(applied)

        try:
            session.commit()
        except SQLAlchemyError as exc:
            # Nothing from this pass was persisted; the sync is safe to repeat.
            logger.exception("Could not commit badge writes for user %s", user_id)
            session.rollback()
            report.error = str(exc)
            return report

    for applied in applied_changes:
        _record(report, user_id, applied)
    return report


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
def _log_summary(report: SyncReport) -> None:
    if report.partial:
        logger.warning(
            "Badge sync for user %s partial: %d write(s), failed categories=%s, "
            "failed writes=%s, error=%s",
            report.user_id, report.writes, sorted(report.failed_categories),
            sorted(report.failed_writes), report.error,
        )
    else:
        logger.info(
            "Badge sync for user %s: %d candidate(s), %d inserted, %d updated",
            report.user_id, report.candidates, report.inserted, report.updated,
        )


def sync_user_badges(engine: Engine, user_id: str, *, now: datetime | None = None) -> SyncReport:
    """Collect every category sequentially, then apply."""
    report = SyncReport(user_id=user_id)
    candidates = collect_candidates(engine, user_id, report)
    apply_candidates(engine, user_id, candidates, now=now, report=report)
    _log_summary(report)
    return report


async def sync_user_badges_async(
    engine: Engine, user_id: str, *, now: datetime | None = None,
) -> SyncReport:
    """Collect the nine categories concurrently, then apply on a worker thread."""
    report = SyncReport(user_id=user_id)
    candidates = await collect_candidates_async(engine, user_id, report)
    await run_db(apply_candidates, engine, user_id, candidates, now=now, report=report)
    _log_summary(report)
    return report
