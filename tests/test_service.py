from datetime import timedelta

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from conftest import marketplace_load
from loadmatch.models import CompanyMatchingSettings, LoadSuggestion, Trip
from loadmatch.schemas.matching import MatchingSettingsUpdate
from loadmatch.services.event_dispatcher import EventType
from loadmatch.services.matching.candidates import CandidateFetcher
from loadmatch.services.matching.context import ContextBuilder
from loadmatch.services.matching.errors import (
    CompanyNotFoundError,
    InvalidActionError,
    NoDestinationError,
    StoreError,
    TripNotFoundError,
)
from loadmatch.services.matching.persistence import utcnow
from loadmatch.services.matching.service import LoadMatchingService


def _fail_first_calls(monkeypatch, owner, name, failures=1):
    """Make owner.name raise a dropped-connection error for its first calls."""
    calls = []
    original = getattr(owner, name)

    async def flaky(self, *args, **kwargs):
        calls.append(name)
        if len(calls) <= failures:
            raise OperationalError("SELECT", {}, Exception("connection reset by peer"))
        return await original(self, *args, **kwargs)

    monkeypatch.setattr(owner, name, flaky)
    return calls


@pytest.fixture
def service(db, settings, scoring_engine):
    return LoadMatchingService(db, settings, engine=scoring_engine)


class TestRefresh:
    async def test_denver_trip_gets_aurora_only(self, service, seeded, session_factory):
        response = await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        assert response.trip_id == "trip-1"
        assert response.count == 1
        (suggestion,) = response.suggestions
        assert suggestion.load_id == "load-aurora"
        assert suggestion.suggestion_type == "on_route"
        assert suggestion.match_score == pytest.approx(77.0)
        assert suggestion.profit_estimate == pytest.approx(1782.0)

        async with session_factory() as session:
            rows = (await session.execute(select(LoadSuggestion))).scalars().all()
        assert [row.load_id for row in rows] == ["load-aurora"]

    async def test_refresh_twice_is_idempotent(self, service, seeded, session_factory):
        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)
        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        async with session_factory() as session:
            rows = (await session.execute(select(LoadSuggestion))).scalars().all()
        assert len(rows) == 1

    async def test_human_status_survives_refresh(self, service, seeded, db, session_factory):
        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)
        (row,) = await service.list_suggestions(seeded.owner_id)
        dismissed = await service.action_suggestion(seeded.owner_id, row.id, "dismissed")
        actioned_at = dismissed.actioned_at

        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        async with session_factory() as session:
            stored = await session.get(LoadSuggestion, row.id)
        assert stored.status == "dismissed"
        assert stored.actioned_at == actioned_at

    async def test_results_capped(self, service, seeded, db, settings, scoring_engine):
        db.add_all([marketplace_load(f"load-extra-{i}", total_rate=2400 + i * 10) for i in range(5)])
        await db.commit()

        capped = LoadMatchingService(
            db, settings.model_copy(update={"matching_max_suggestions": 3}), engine=scoring_engine
        )
        response = await capped.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        assert response.count == 3
        scores = [(s.match_score, s.profit_per_mile) for s in response.suggestions]
        assert scores == sorted(scores, reverse=True)
        assert response.suggestions[0].load_id == "load-extra-4"

    async def test_company_preferences_apply(self, service, seeded, db):
        db.add(
            CompanyMatchingSettings(
                id="cms-1",
                owner_id=seeded.owner_id,
                company_id=seeded.company_id,
                max_deadhead_miles=200,
                min_match_score=0,
            )
        )
        await db.commit()

        response = await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)
        assert {s.load_id for s in response.suggestions} == {"load-aurora", "load-cheyenne"}

    async def test_emits_refreshed_event(self, service, seeded, clean_dispatcher):
        received = []
        clean_dispatcher.subscribe(EventType.SUGGESTIONS_REFRESHED, received.append)

        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        assert len(received) == 1
        assert received[0].data == {"trip_id": "trip-1", "count": 1, "load_ids": ["load-aurora"]}

    async def test_unknown_trip(self, service, seeded):
        with pytest.raises(TripNotFoundError):
            await service.refresh_suggestions(seeded.owner_id, "nope")

    async def test_trip_without_destination(self, service, seeded, db):
        db.add(Trip(id="trip-bare", owner_id=seeded.owner_id, status="planned"))
        await db.commit()
        with pytest.raises(NoDestinationError):
            await service.refresh_suggestions(seeded.owner_id, "trip-bare")


class TestListSuggestions:
    async def test_pending_hides_expired(self, service, seeded, db):
        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)
        assert len(await service.list_suggestions(seeded.owner_id)) == 1

        await db.execute(update(LoadSuggestion).values(expires_at=utcnow() - timedelta(minutes=1)))
        await db.commit()

        assert await service.list_suggestions(seeded.owner_id) == []
        assert len(await service.list_suggestions(seeded.owner_id, status="all")) == 1

    async def test_filters_by_status_and_trip(self, service, seeded):
        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)
        (row,) = await service.list_suggestions(seeded.owner_id, trip_id=seeded.trip_id)
        await service.action_suggestion(seeded.owner_id, row.id, "interested")

        assert await service.list_suggestions(seeded.owner_id) == []
        assert [r.id for r in await service.list_suggestions(seeded.owner_id, status="interested")] == [row.id]
        assert await service.list_suggestions(seeded.owner_id, trip_id="other-trip", status="all") == []

    async def test_owner_scoped(self, service, seeded):
        await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)
        assert await service.list_suggestions("someone-else", status="all") == []

    async def test_unknown_status_filter(self, service, seeded):
        with pytest.raises(InvalidActionError):
            await service.list_suggestions(seeded.owner_id, status="archived")


class TestPreferences:
    async def test_defaults_when_nothing_stored(self, service, seeded):
        response = await service.get_preferences(seeded.owner_id)
        assert response.company_id == "co-1"
        assert response.max_deadhead_miles == 150.0
        assert response.notification_preference == "push_and_dashboard"

    async def test_update_merges_and_clamps(self, service, seeded, session_factory):
        response = await service.update_preferences(
            seeded.owner_id,
            MatchingSettingsUpdate(
                max_deadhead_miles=220,
                preferred_return_states=["ut", "nm"],
                min_capacity_utilization=90,
                max_capacity_utilization=70,
                notification_preference="dashboard_only",
            ),
        )
        assert response.max_deadhead_miles == 220.0
        assert response.preferred_return_states == ["NM", "UT"]
        assert response.min_capacity_utilization == 70.0
        assert response.min_profit_per_mile == 1.0
        assert response.notification_preference == "dashboard_only"

        second = await service.update_preferences(seeded.owner_id, MatchingSettingsUpdate(min_match_score=65))
        assert second.max_deadhead_miles == 220.0
        assert second.min_match_score == 65.0
        assert second.notification_preference == "dashboard_only"

        async with session_factory() as session:
            rows = (await session.execute(select(CompanyMatchingSettings))).scalars().all()
        assert len(rows) == 1
        assert rows[0].preferred_return_states == ["NM", "UT"]

    async def test_update_without_company(self, service):
        with pytest.raises(CompanyNotFoundError):
            await service.update_preferences("owner-without-company", MatchingSettingsUpdate(min_match_score=10))


class TestTransientReads:
    async def test_trip_lookup_retried_once(self, service, seeded, monkeypatch):
        calls = _fail_first_calls(monkeypatch, ContextBuilder, "_trip")

        response = await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        assert len(calls) == 2
        assert [s.load_id for s in response.suggestions] == ["load-aurora"]

    async def test_candidate_fetch_retried_once(self, service, seeded, monkeypatch):
        calls = _fail_first_calls(monkeypatch, CandidateFetcher, "_select")

        response = await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        assert len(calls) == 2
        assert response.count == 1

    async def test_preferences_read_retried_once(self, service, seeded, monkeypatch):
        calls = _fail_first_calls(monkeypatch, LoadMatchingService, "_settings_row")

        preferences = await service.get_preferences(seeded.owner_id)

        assert len(calls) == 2
        assert preferences.company_id == seeded.company_id

    async def test_gives_up_after_one_retry(self, service, seeded, monkeypatch):
        calls = _fail_first_calls(monkeypatch, ContextBuilder, "_trip", failures=5)

        with pytest.raises(StoreError) as excinfo:
            await service.refresh_suggestions(seeded.owner_id, seeded.trip_id)

        assert excinfo.value.transient
        assert len(calls) == 2
