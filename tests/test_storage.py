"""
Tests for the document store, pricing policy storage and sync history.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.db import PolicyOverrides, PricingPolicy, SyncRunLog, TriggerType
from app.processor import PolicyStore, SyncRunLogger
from app.processor.history import log_key


def make_run(finished_at, updated=0):
    return SyncRunLog(
        started_at=finished_at - timedelta(seconds=5),
        finished_at=finished_at,
        duration=5.0,
        trigger=TriggerType.SCHEDULER,
        updated=updated,
        policy=PricingPolicy(),
    )


class TestDocumentStore:
    async def test_put_get_overwrite(self, db):
        await db.put_document("k", {"a": 1})
        await db.put_document("k", {"a": 2})

        assert await db.get_document("k") == {"a": 2}
        assert await db.get_document("missing") is None

    async def test_append_creates_and_grows(self, db):
        assert await db.append_to_document("list", {"n": 1}) == 1
        assert await db.append_to_document("list", {"n": 2}) == 2

        assert await db.get_document("list") == [{"n": 1}, {"n": 2}]

    async def test_append_to_non_list(self, db):
        await db.put_document("obj", {"a": 1})

        with pytest.raises(ValueError):
            await db.append_to_document("obj", {"n": 1})


class TestPolicyStore:
    async def test_defaults_created_on_first_read(self, db):
        policy = await PolicyStore(db).get()

        assert policy.markup_multiplier == 2.0
        assert policy.min_price == 19.99
        assert policy.round_to == 0.95
        assert policy.version == 1
        assert await db.get_document("pricing_policy") is not None

    async def test_put_bumps_version(self, db):
        store = PolicyStore(db)
        await store.get()

        saved = await store.put(PricingPolicy(markup_multiplier=3.0, version=99))

        assert saved.version == 2
        assert saved.updated_at is not None
        assert (await store.get()).markup_multiplier == 3.0

    async def test_invalid_document_falls_back_to_defaults(self, db):
        await db.put_document("pricing_policy", {"markup_multiplier": 0.1})

        policy = await PolicyStore(db).get()

        assert policy.markup_multiplier == 2.0

    async def test_overrides_take_precedence(self, db):
        store = PolicyStore(db)
        await store.put(PricingPolicy(markup_multiplier=2.5, min_price=9.99))

        effective = await store.effective(PolicyOverrides(min_price=29.99))

        assert effective.markup_multiplier == 2.5
        assert effective.min_price == 29.99

    async def test_explicit_none_override_clears_value(self, db):
        effective = await PolicyStore(db).effective(PolicyOverrides(min_price=None))

        assert effective.min_price is None

    async def test_null_for_required_field_keeps_stored_value(self, db):
        store = PolicyStore(db)
        await store.put(PricingPolicy(markup_multiplier=2.5, show_compare_at=True, compare_at_markup=1.5))
        overrides = PolicyOverrides.model_validate(
            {"markup_multiplier": None, "show_compare_at": None, "compare_at_markup": None, "max_price": 99}
        )

        effective = await store.effective(overrides)

        assert effective.markup_multiplier == 2.5
        assert effective.show_compare_at is True
        assert effective.compare_at_markup == 1.5
        assert effective.max_price == 99

    def test_min_above_max_rejected(self):
        with pytest.raises(ValueError):
            PricingPolicy(min_price=50, max_price=20)


class TestSyncRunLogger:
    async def test_runs_grouped_by_day(self, db):
        run_logger = SyncRunLogger(db)
        day1 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
        day2 = datetime(2024, 3, 2, 23, 30, tzinfo=timezone.utc)

        assert await run_logger.append(make_run(day1, updated=1))
        assert await run_logger.append(make_run(day1 + timedelta(hours=1), updated=2))
        assert await run_logger.append(make_run(day2, updated=3))

        assert await run_logger.list_days() == ["2024-03-02", "2024-03-01"]
        runs = await run_logger.get_day(date(2024, 3, 1))
        assert [r.updated for r in runs] == [1, 2]
        assert (await run_logger.latest()).updated == 3

    async def test_day_uses_utc(self, db):
        run_logger = SyncRunLogger(db)
        local = timezone(timedelta(hours=2))

        await run_logger.append(make_run(datetime(2024, 3, 2, 1, 0, tzinfo=local)))

        assert await run_logger.list_days() == ["2024-03-01"]

    async def test_missing_day(self, db):
        assert await SyncRunLogger(db).get_day(date(2020, 1, 1)) is None

    async def test_write_failure_swallowed(self, db):
        finished = datetime(2024, 3, 1, tzinfo=timezone.utc)
        await db.put_document(log_key(finished.date()), {"not": "a list"})

        assert await SyncRunLogger(db).append(make_run(finished)) is False
