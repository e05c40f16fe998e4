"""
tests/test_badge_sync_service.py — Badge Sync Integration Tests
================================================================
Service-level tests for sync_user_badges() / sync_user_badges_async():
level-ups, idempotence, monotonic records, earned_at/notified discipline,
per-category and per-write fault isolation, and lost write races.

Uses SQLite via the shared conftest fixtures.  ``now`` is always passed
explicitly (naive, since SQLite drops the timezone).
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import patch

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from taskmates.database.models import BadgeCategory, UserBadge
from taskmates.engine.activity import BadgeCandidate, EntityRef
from taskmates.services import badge_sync_service as sync
from taskmates.services.activity_service import LOADERS
from taskmates.services.notification_service import acknowledge_badge

T1 = datetime(2026, 3, 1, 12, 0, 0)
T2 = datetime(2026, 3, 2, 12, 0, 0)
T3 = datetime(2026, 3, 3, 12, 0, 0)


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.run(coro)


# ===========================================================================
# Level-ups and the high-water mark
# ===========================================================================
class TestScenarios:
    def test_teammate_metric_grows_without_new_level(self, seed, db_engine):
        """Ten then eleven shared completions: one record, earned_at kept."""
        me, bob = seed.profile("Me"), seed.profile("Bob")
        seed.shared_tasks(me, bob, 10)

        report = sync.sync_user_badges(db_engine, me, now=T1)
        assert report.inserted >= 1
        badge = seed.badge(me, "teammates", bob)
        assert (badge.level, badge.metric_value, badge.earned_at) == (1, 10, T1)
        assert badge.entity_name == "Bob"

        seed.shared_tasks(me, bob, 1)
        sync.sync_user_badges(db_engine, me, now=T2)

        [teammate_badge] = [b for b in seed.badges(me) if b.category == "teammates"]
        assert teammate_badge.id == badge.id
        assert teammate_badge.metric_value == 11
        assert teammate_badge.level == 1
        assert teammate_badge.earned_at == T1

    def test_streak_reaching_next_level_refreshes_earned_at_and_notified(self, seed, db_engine):
        me = seed.profile()
        task = seed.task(me, status="open", repeat_type="daily", streak_count=50)

        sync.sync_user_badges(db_engine, me, now=T1)
        badge = seed.badge(me, "consistency")
        assert (badge.level, badge.metric_value) == (1, 50)
        assert acknowledge_badge(db_engine, badge.id)

        seed.update_task(task, streak_count=100)
        report = sync.sync_user_badges(db_engine, me, now=T2)

        badge = seed.badge(me, "consistency")
        assert (badge.level, badge.metric_value) == (2, 100)
        assert badge.earned_at == T2
        assert badge.notified is False
        assert report.level_ups == [{
            "category": "consistency",
            "entity_id": None,
            "entity_name": None,
            "level": 2,
            "previous_level": 1,
        }]

    def test_lost_follower_never_lowers_sociability(self, seed, db_engine):
        me = seed.profile()
        fans = [seed.profile() for _ in range(10)]
        for fan in fans:
            seed.follow(fan, me)
        sync.sync_user_badges(db_engine, me, now=T1)

        seed.unfollow(fans[0], me)
        report = sync.sync_user_badges(db_engine, me, now=T2)

        badge = seed.badge(me, "sociability")
        assert (badge.level, badge.metric_value) == (1, 10)
        assert report.writes == 0

    def test_below_threshold_creates_nothing(self, seed, db_engine):
        me, bob = seed.profile(), seed.profile()
        seed.shared_tasks(me, bob, 9)
        report = sync.sync_user_badges(db_engine, me, now=T1)
        assert seed.badges(me) == []
        assert report.writes == 0
        assert report.partial is False

    def test_both_sides_of_a_collaboration_earn_badges(self, seed, db_engine):
        me, bob = seed.profile("Me"), seed.profile("Bob")
        seed.shared_tasks(bob, me, 10)

        sync.sync_user_badges(db_engine, me, now=T1)
        sync.sync_user_badges(db_engine, bob, now=T1)

        assert seed.badge(me, "teammates", bob).metric_value == 10
        assert seed.badge(me, "collaboration").metric_value == 10
        assert seed.badge(bob, "teammates", me).metric_value == 10
        assert seed.badge(bob, "leadership") is None   # one helper per task


class TestIdempotence:
    def test_second_sync_writes_nothing(self, seed, db_engine):
        me, bob = seed.profile(), seed.profile()
        seed.shared_tasks(me, bob, 12)
        for _ in range(10):
            seed.follow(seed.profile(), me)

        first = sync.sync_user_badges(db_engine, me, now=T1)
        before = {(b.category, b.entity_key): (b.level, b.metric_value, b.earned_at) for b in seed.badges(me)}
        second = sync.sync_user_badges(db_engine, me, now=T2)
        after = {(b.category, b.entity_key): (b.level, b.metric_value, b.earned_at) for b in seed.badges(me)}

        assert first.writes == 2
        assert second.writes == 0
        assert second.level_ups == []
        assert before == after

    def test_metric_growth_keeps_acknowledgment(self, seed, db_engine):
        me = seed.profile()
        for _ in range(10):
            seed.follow(seed.profile(), me)
        sync.sync_user_badges(db_engine, me, now=T1)
        acknowledge_badge(db_engine, seed.badge(me, "sociability").id)

        seed.follow(seed.profile(), me)
        sync.sync_user_badges(db_engine, me, now=T2)

        badge = seed.badge(me, "sociability")
        assert badge.metric_value == 11
        assert badge.notified is True
        assert badge.earned_at == T1


# ===========================================================================
# Fault isolation
# ===========================================================================
class TestFaultIsolation:
    def test_failing_category_is_reported_and_others_proceed(self, seed, db_engine):
        me, bob = seed.profile(), seed.profile()
        seed.shared_tasks(me, bob, 10)

        def boom(session, user_id):
            raise RuntimeError("tags table unavailable")

        with patch.dict(LOADERS, {BadgeCategory.HABITS: boom}):
            report = sync.sync_user_badges(db_engine, me, now=T1)

        assert report.partial is True
        assert report.failed_categories == {"habits": "tags table unavailable"}
        assert seed.badge(me, "teammates", bob) is not None

    def test_failing_write_is_reported_and_others_proceed(self, seed, db_engine):
        me, bob = seed.profile(), seed.profile()
        seed.shared_tasks(me, bob, 10)
        for _ in range(10):
            seed.follow(seed.profile(), me)

        real_insert = sync._insert

        def flaky_insert(session, user_id, change, now):
            if change.candidate.category is BadgeCategory.TEAMMATES:
                raise OperationalError("INSERT INTO user_badges", {}, Exception("disk I/O error"))
            return real_insert(session, user_id, change, now)

        with patch.object(sync, "_insert", side_effect=flaky_insert):
            report = sync.sync_user_badges(db_engine, me, now=T1)

        assert list(report.failed_writes) == [f"teammates/{bob}"]
        assert report.partial is True
        assert seed.badge(me, "teammates", bob) is None
        assert seed.badge(me, "sociability") is not None

        # Safe to retry once the store recovers.
        retry = sync.sync_user_badges(db_engine, me, now=T2)
        assert retry.partial is False
        assert seed.badge(me, "teammates", bob).earned_at == T2

    def test_unreadable_badges_abort_the_apply_phase(self, db_engine):
        candidates = [BadgeCandidate(BadgeCategory.SOCIABILITY, 10)]
        with patch.object(Session, "scalars", side_effect=OperationalError("SELECT", {}, Exception("gone"))):
            report = sync.apply_candidates(db_engine, "nobody", candidates, now=T1)
        assert report.error is not None
        assert report.partial is True

    def test_failed_commit_is_reported_not_raised(self, seed, db_engine):
        me = seed.profile()
        for _ in range(10):
            seed.follow(seed.profile(), me)

        lost = OperationalError("COMMIT", {}, Exception("connection lost"))
        with patch.object(Session, "commit", side_effect=lost):
            report = sync.sync_user_badges(db_engine, me, now=T1)

        assert report.partial is True
        assert "connection lost" in report.error
        assert (report.inserted, report.updated, report.level_ups) == (0, 0, [])
        assert seed.badges(me) == []

        retry = sync.sync_user_badges(db_engine, me, now=T2)
        assert retry.partial is False
        assert seed.badge(me, "sociability").earned_at == T2


# ===========================================================================
# Concurrent writers
# ===========================================================================
def _racing(writer):
    """Wrap the planner so *writer* runs between planning and applying."""
    real_plan = sync.plan_badge_changes

    def plan(candidates, existing):
        changes = real_plan(candidates, existing)
        writer()
        return changes

    return patch.object(sync, "plan_badge_changes", side_effect=plan)


class TestWriteRaces:
    def test_insert_race_upgrades_the_winner_row(self, file_seed, file_engine):
        me = file_seed.profile()
        candidate = BadgeCandidate(BadgeCategory.SOCIABILITY, 150)

        def other_process_inserts():
            with Session(file_engine) as session:
                session.add(UserBadge(
                    user_id=me, category="sociability", level=1,
                    metric_value=40, earned_at=T1,
                ))
                session.commit()

        with _racing(other_process_inserts):
            report = sync.apply_candidates(file_engine, me, [candidate], now=T2)

        [badge] = file_seed.badges(me)
        assert (badge.level, badge.metric_value, badge.earned_at) == (2, 150, T2)
        assert report.updated == 1
        assert report.inserted == 0
        assert report.failed_writes == {}

    def test_update_never_overwrites_a_higher_concurrent_write(self, file_seed, file_engine):
        me, mate = file_seed.profile(), file_seed.profile()
        sync.apply_candidates(
            file_engine, me,
            [BadgeCandidate(BadgeCategory.TEAMMATES, 10, EntityRef(mate, "Mate"))], now=T1,
        )

        def other_process_raises_metric():
            with Session(file_engine) as session:
                session.execute(update(UserBadge).where(UserBadge.user_id == me).values(metric_value=20))
                session.commit()

        stale = [BadgeCandidate(BadgeCategory.TEAMMATES, 15, EntityRef(mate, "Mate"))]
        with _racing(other_process_raises_metric):
            report = sync.apply_candidates(file_engine, me, stale, now=T2)

        assert file_seed.badge(me, "teammates", mate).metric_value == 20
        assert report.writes == 0
        assert report.failed_writes == {}

    def test_update_reapplies_over_a_lower_concurrent_write(self, file_seed, file_engine):
        me = file_seed.profile()
        sync.apply_candidates(file_engine, me, [BadgeCandidate(BadgeCategory.SOCIABILITY, 10)], now=T1)

        def other_process_bumps_metric():
            with Session(file_engine) as session:
                session.execute(update(UserBadge).where(UserBadge.user_id == me).values(metric_value=12))
                session.commit()

        with _racing(other_process_bumps_metric):
            report = sync.apply_candidates(
                file_engine, me, [BadgeCandidate(BadgeCategory.SOCIABILITY, 15)], now=T3,
            )

        badge = file_seed.badge(me, "sociability")
        assert badge.metric_value == 15
        assert badge.earned_at == T1
        assert report.updated == 1


# ===========================================================================
# Async path
# ===========================================================================
class TestAsyncSync:
    def test_concurrent_collection_matches_sequential(self, file_seed, file_engine):
        me, bob = file_seed.profile("Me"), file_seed.profile("Bob")
        yoga = file_seed.tag("Yoga")
        for task_id in file_seed.shared_tasks(me, bob, 10, likes=12):
            file_seed.attach(task_id, yoga)

        report = run_async(sync.sync_user_badges_async(file_engine, me, now=T1))

        assert report.partial is False
        categories = {b.category for b in file_seed.badges(me)}
        assert categories == {"teammates", "habits", "positive_impact"}
        assert file_seed.badge(me, "positive_impact", yoga).metric_value == 12

        again = sync.sync_user_badges(file_engine, me, now=T2)
        assert again.writes == 0

    def test_async_failure_isolation(self, file_seed, file_engine):
        me = file_seed.profile()
        for _ in range(10):
            file_seed.follow(file_seed.profile(), me)

        def boom(session, user_id):
            raise ValueError("bad rating row")

        with patch.dict(LOADERS, {BadgeCategory.RELIABILITY: boom}):
            report = run_async(sync.sync_user_badges_async(file_engine, me, now=T1))

        assert report.failed_categories == {"reliability": "bad rating row"}
        assert file_seed.badge(me, "sociability").metric_value == 10

    def test_report_serializes(self, file_seed, file_engine):
        me = file_seed.profile()
        report = run_async(sync.sync_user_badges_async(file_engine, me, now=T1))
        data = report.to_dict()
        assert data["user_id"] == me
        assert data["partial"] is False
        assert data["level_ups"] == []
