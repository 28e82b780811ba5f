import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from loadmatch.models import LoadSuggestion
from loadmatch.services.matching.context import ContextBuilder
from loadmatch.services.matching.errors import StoreError
from loadmatch.services.matching.persistence import SuggestionPersister, TripLockRegistry
from loadmatch.services.matching.scoring import ScoredCandidate, SuggestionType


def _scored(load_id="load-aurora", score=77.0, profit=1782.0):
    return ScoredCandidate(
        load_id=load_id,
        suggestion_type=SuggestionType.ON_ROUTE,
        distance_to_pickup_miles=12.0,
        load_miles=400.0,
        total_miles=412.0,
        revenue_estimate=2400.0,
        driver_cost_estimate=309.0,
        fuel_cost_estimate=309.0,
        profit_estimate=profit,
        profit_per_mile=round(profit / 412.0, 4),
        capacity_fit_percent=46.9,
        match_score=score,
        score_breakdown={"profit": 40.0, "distance": 27.6, "capacity": 9.38, "preference": 0.0},
    )


async def _rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(LoadSuggestion).order_by(LoadSuggestion.load_id))
        return list(result.scalars().all())


@pytest_asyncio.fixture
async def context(db, seeded, settings):
    return await ContextBuilder(db, settings).build(seeded.trip_id, seeded.owner_id)


class TestSuggestionPersister:
    async def test_inserts_pending_rows(self, db, context, settings, session_factory):
        written = await SuggestionPersister(db, settings).persist(context, [_scored(), _scored("load-cheyenne", 60.0)])
        assert written == 2

        rows = await _rows(session_factory)
        assert [r.load_id for r in rows] == ["load-aurora", "load-cheyenne"]
        aurora = rows[0]
        assert aurora.status == "pending"
        assert aurora.owner_id == "owner-1"
        assert aurora.company_id == "co-1"
        assert aurora.driver_id == "drv-1"
        assert aurora.suggestion_type == "on_route"
        assert aurora.score_breakdown["distance"] == pytest.approx(27.6)
        assert aurora.viewed_at is None and aurora.actioned_at is None
        assert aurora.expires_at - aurora.created_at == timedelta(hours=settings.matching_suggestion_ttl_hours)

    async def test_empty_batch_is_noop(self, db, context, settings, session_factory):
        assert await SuggestionPersister(db, settings).persist(context, []) == 0
        assert await _rows(session_factory) == []

    async def test_refresh_is_idempotent(self, db, context, settings, session_factory):
        persister = SuggestionPersister(db, settings)
        await persister.persist(context, [_scored()])
        first = await _rows(session_factory)
        await persister.persist(context, [_scored()])
        second = await _rows(session_factory)

        assert len(second) == 1
        assert second[0].id == first[0].id
        assert second[0].match_score == first[0].match_score

    async def test_rescore_keeps_human_status(self, db, context, settings, session_factory):
        persister = SuggestionPersister(db, settings)
        await persister.persist(context, [_scored()])

        async with session_factory() as session:
            row = (await session.execute(select(LoadSuggestion))).scalar_one()
            row.status = "dismissed"
            row.viewed_at = row.created_at
            row.actioned_at = row.created_at
            await session.commit()
            viewed_at, actioned_at = row.viewed_at, row.actioned_at

        await persister.persist(context, [_scored(score=91.0, profit=2500.0)])

        (row,) = await _rows(session_factory)
        assert row.status == "dismissed"
        assert row.viewed_at == viewed_at
        assert row.actioned_at == actioned_at
        assert row.match_score == 91.0
        assert row.profit_estimate == 2500.0

    async def test_failed_batch_rolls_back_everything(self, db, context, settings, session_factory):
        bad = _scored("load-does-not-matter")
        bad = ScoredCandidate(**{**bad.__dict__, "match_score": None})  # violates NOT NULL

        with pytest.raises(StoreError):
            await SuggestionPersister(db, settings).persist(context, [_scored(), bad])

        assert await _rows(session_factory) == []

    async def test_transient_failure_retries_whole_batch(self, db, context, settings, session_factory, monkeypatch):
        persister = SuggestionPersister(db, settings)
        original = persister._write_batch
        calls = []

        async def flaky(ctx, scored):
            calls.append(len(scored))
            if len(calls) == 1:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await original(ctx, scored)

        monkeypatch.setattr(persister, "_write_batch", flaky)
        assert await persister.persist(context, [_scored()]) == 1
        assert calls == [1, 1]
        assert len(await _rows(session_factory)) == 1


class TestTripLockRegistry:
    async def test_same_trip_shares_a_lock(self):
        registry = TripLockRegistry()
        first = registry.lock_for("trip-1")
        assert registry.lock_for("trip-1") is first
        assert registry.lock_for("trip-2") is not first

    async def test_same_trip_writes_are_serialized(self):
        registry = TripLockRegistry()
        order = []

        async def write(name):
            async with registry.lock_for("trip-1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(write("a"), write("b"))
        assert order == ["a-start", "a-end", "b-start", "b-end"]
