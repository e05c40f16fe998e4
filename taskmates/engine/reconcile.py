"""
taskmates.engine.reconcile — Monotonic Badge Upgrade Planner
=============================================================

Compares a user's merged candidate list with the badges already stored
and decides, per candidate, whether to insert, update or leave alone.

Rules (per candidate):
  1. ``new_level = level_for_metric(metric)``; 0 → no badge, skip.
  2. No stored badge for (category, entity) → INSERT.
  3. Stored badge and (level would rise or metric grew) → UPDATE.
     ``earned_at`` / ``notified`` are only touched when the level rises.
  4. Anything else → no write.

The plan never lowers ``level`` or ``metric_value`` and never deletes.
This module is pure calculation — the sync service applies the plan.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from taskmates.engine.activity import BadgeCandidate
from taskmates.engine.levels import level_for_metric

logger = logging.getLogger(__name__)


class StoredBadge(Protocol):
    """What the planner needs from a persisted badge (a ``UserBadge`` row fits)."""

    id: str
    category: str
    entity_key: str
    level: int
    metric_value: int


class ChangeKind(enum.StrEnum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True, slots=True)
class BadgeChange:
    """One planned write.

    ``badge_id`` / ``previous_level`` / ``previous_metric`` are ``None`` for
    inserts.  ``leveled_up`` is True for every insert and for updates that
    raise the level.
    """

    kind: ChangeKind
    candidate: BadgeCandidate
    level: int
    leveled_up: bool
    badge_id: str | None = None
    previous_level: int | None = None
    previous_metric: int | None = None

    @property
    def metric_value(self) -> int:
        return max(self.candidate.metric_value, self.previous_metric or 0)


def collapse_candidates(candidates: Iterable[BadgeCandidate]) -> list[BadgeCandidate]:
    """Keep one candidate per (category, entity) — the highest metric wins."""
    best: dict[tuple[str, str], BadgeCandidate] = {}
    for c in candidates:
        current = best.get(c.key)
        if current is None or c.metric_value > current.metric_value:
            best[c.key] = c
    return list(best.values())


def plan_change(
    candidate: BadgeCandidate, existing: StoredBadge | None,
) -> BadgeChange | None:
    """Decide the write for a single candidate, or ``None`` for no-op."""
    new_level = level_for_metric(candidate.metric_value)
    if new_level == 0:
        return None

    if existing is None:
        return BadgeChange(
            kind=ChangeKind.INSERT,
            candidate=candidate,
            level=new_level,
            leveled_up=True,
        )

    leveled_up = new_level > existing.level
    if not leveled_up and candidate.metric_value <= existing.metric_value:
        return None

    return BadgeChange(
        kind=ChangeKind.UPDATE,
        candidate=candidate,
        level=max(new_level, existing.level),
        leveled_up=leveled_up,
        badge_id=existing.id,
        previous_level=existing.level,
        previous_metric=existing.metric_value,
    )


def plan_badge_changes(
    candidates: Iterable[BadgeCandidate],
    existing: Iterable[StoredBadge],
) -> list[BadgeChange]:
    """Plan every write needed to bring *existing* up to *candidates*.

    Parameters
    ----------
    candidates : Merged aggregator output for one user (any order).
    existing : That user's stored badges.

    Returns
    -------
    The planned changes; empty when nothing advanced.
    """
    stored = {(b.category, b.entity_key): b for b in existing}
    changes: list[BadgeChange] = []
    for candidate in collapse_candidates(candidates):
        change = plan_change(candidate, stored.get(candidate.key))
        if change is not None:
            changes.append(change)
    logger.debug("Planned %d badge change(s)", len(changes))
    return changes
