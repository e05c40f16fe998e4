"""
tests/test_worker.py — Batch Worker Tests
==========================================
Drives ``taskmates.worker.main`` against a file-backed SQLite database
with ``create_db_engine`` patched to return it.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

from taskmates import worker
from taskmates.database.models import BadgeCategory
from taskmates.services.activity_service import LOADERS


def _boom(session, user_id):
    raise RuntimeError("ratings table locked")


def _popular(seed, name: str) -> str:
    user = seed.profile(name)
    for _ in range(10):
        seed.follow(seed.profile(), user)
    return user


class TestAllProfileIds:
    def test_oldest_profile_first(self, file_seed, file_engine):
        first, second = file_seed.profile(), file_seed.profile()
        assert worker.all_profile_ids(file_engine) == [first, second]

    def test_empty_database(self, file_engine):
        assert worker.all_profile_ids(file_engine) == []


class TestSyncUsers:
    def test_crash_is_recorded_and_batch_continues(self, file_seed, file_engine):
        ann, bob = _popular(file_seed, "Ann"), _popular(file_seed, "Bob")
        real = worker.sync_user_badges_async

        async def flaky(engine, user_id):
            if user_id == ann:
                raise RuntimeError("connection reset")
            return await real(engine, user_id)

        with patch.object(worker, "sync_user_badges_async", side_effect=flaky):
            reports = asyncio.run(worker.sync_users(file_engine, [ann, bob]))

        assert [r.user_id for r in reports] == [ann, bob]
        assert reports[0].error == "connection reset"
        assert reports[0].partial is True
        assert reports[1].partial is False
        assert file_seed.badge(bob, "sociability") is not None


class TestMain:
    def _run(self, engine, argv):
        with patch.object(worker, "create_db_engine", return_value=engine), \
             patch.object(worker, "load_dotenv"):
            return worker.main(argv)

    def test_syncs_everyone_by_default(self, file_seed, file_engine):
        ann, bob = _popular(file_seed, "Ann"), _popular(file_seed, "Bob")
        assert self._run(file_engine, []) == 0
        assert file_seed.badge(ann, "sociability").metric_value == 10
        assert file_seed.badge(bob, "sociability").metric_value == 10

    def test_syncs_only_selected_profiles(self, file_seed, file_engine):
        ann, bob = _popular(file_seed, "Ann"), _popular(file_seed, "Bob")
        assert self._run(file_engine, [bob]) == 0
        assert file_seed.badge(ann, "sociability") is None
        assert file_seed.badge(bob, "sociability") is not None

    def test_partial_sync_exits_non_zero(self, file_seed, file_engine):
        ann = _popular(file_seed, "Ann")
        with patch.dict(LOADERS, {BadgeCategory.RELIABILITY: _boom}):
            assert self._run(file_engine, [ann]) == 1
        # The healthy categories still landed.
        assert file_seed.badge(ann, "sociability") is not None
