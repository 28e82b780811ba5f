from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.core.config import Settings, get_settings
from loadmatch.core.retry import read_with_retry
from loadmatch.models.company import Company
from loadmatch.models.matching import SUGGESTION_STATUSES, CompanyMatchingSettings, LoadSuggestion
from loadmatch.schemas.matching import (
    MatchingPreferences,
    MatchingSettingsResponse,
    MatchingSettingsUpdate,
    RefreshSuggestionsResponse,
    ScoredSuggestionResponse,
)
from loadmatch.services.event_dispatcher import EventType, emit_event
from loadmatch.services.matching.candidates import CandidateFetcher
from loadmatch.services.matching.context import ContextBuilder
from loadmatch.services.matching.errors import CompanyNotFoundError, InvalidActionError
from loadmatch.services.matching.lifecycle import SuggestionLifecycle
from loadmatch.services.matching.persistence import SuggestionPersister, result_rows, utcnow
from loadmatch.services.matching.scoring import ScoringEngine

logger = logging.getLogger(__name__)

LIST_STATUS_FILTERS = SUGGESTION_STATUSES + ("all",)


class LoadMatchingService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        engine: ScoringEngine | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.engine = engine or ScoringEngine.from_settings(self.settings)

    async def refresh_suggestions(self, owner_id: str, trip_id: str) -> RefreshSuggestionsResponse:
        """Rebuild, score and persist the suggestion set for one trip."""
        context = await ContextBuilder(self.db, self.settings).build(trip_id, owner_id)
        preferences = await self.matching_preferences(context.company_id)

        candidates = await CandidateFetcher(self.db, self.settings).fetch(context, preferences)
        scored = await self.engine.score_concurrently(
            candidates,
            context,
            preferences,
            max_workers=self.settings.matching_max_workers,
        )
        top = scored[: self.settings.matching_max_suggestions]

        await SuggestionPersister(self.db, self.settings).persist(context, top)

        logger.info(
            "suggestions_refreshed",
            extra={
                "trip_id": trip_id,
                "owner_id": owner_id,
                "candidates": len(candidates),
                "passed": len(scored),
                "kept": len(top),
            },
        )

        rows = result_rows(top)
        if rows:
            try:
                await emit_event(
                    EventType.SUGGESTIONS_REFRESHED,
                    {"trip_id": trip_id, "count": len(rows), "load_ids": [row["load_id"] for row in rows]},
                    company_id=context.company_id,
                    owner_id=owner_id,
                )
            except Exception:
                logger.exception("suggestions_refreshed_event_failed", extra={"trip_id": trip_id})

        return RefreshSuggestionsResponse(
            trip_id=trip_id,
            generated_at=utcnow(),
            count=len(rows),
            suggestions=[ScoredSuggestionResponse(**row) for row in rows],
        )

    async def list_suggestions(
        self,
        owner_id: str,
        trip_id: Optional[str] = None,
        status: str = "pending",
        limit: int = 100,
    ) -> List[LoadSuggestion]:
        status = (status or "pending").strip().lower()
        if status not in LIST_STATUS_FILTERS:
            raise InvalidActionError(
                f"Unknown status filter '{status}'. Expected one of: {', '.join(LIST_STATUS_FILTERS)}"
            )

        query = select(LoadSuggestion).where(LoadSuggestion.owner_id == owner_id)
        if trip_id:
            query = query.where(LoadSuggestion.trip_id == trip_id)
        if status != "all":
            query = query.where(LoadSuggestion.status == status)
        if status == "pending":
            # Stale pending rows stay in the table but are not offered
            query = query.where(or_(LoadSuggestion.expires_at.is_(None), LoadSuggestion.expires_at > utcnow()))

        query = query.order_by(
            LoadSuggestion.match_score.desc(),
            LoadSuggestion.profit_per_mile.desc(),
            LoadSuggestion.distance_to_pickup_miles.asc(),
            LoadSuggestion.load_id,
        ).limit(limit)

        result = await self._read(lambda: self.db.execute(query), "list suggestions")
        return list(result.scalars().all())

    async def action_suggestion(self, owner_id: str, suggestion_id: str, action: str) -> LoadSuggestion:
        return await SuggestionLifecycle(self.db, self.settings).apply(owner_id, suggestion_id, action)

    async def matching_preferences(self, company_id: Optional[str]) -> MatchingPreferences:
        """Preferences for a company with defaults filled in; defaults when none are stored."""
        if not company_id:
            return MatchingPreferences()
        row = await self._read(lambda: self._settings_row(company_id), "load matching settings")
        return MatchingPreferences.from_settings(row)

    async def get_preferences(self, owner_id: str) -> MatchingSettingsResponse:
        company_id = await self._read(lambda: self._company_id(owner_id), "load owner company")
        row = None
        if company_id:
            row = await self._read(lambda: self._settings_row(company_id), "load matching settings")
        return self._settings_response(
            company_id,
            MatchingPreferences.from_settings(row),
            row.notification_preference if row is not None else None,
        )

    async def update_preferences(self, owner_id: str, payload: MatchingSettingsUpdate) -> MatchingSettingsResponse:
        company_id = await self._read(lambda: self._company_id(owner_id), "load owner company")
        if company_id is None:
            raise CompanyNotFoundError(owner_id)

        row = await self._read(lambda: self._settings_row(company_id), "load matching settings")
        current = MatchingPreferences.from_settings(row)
        changes = payload.model_dump(exclude_unset=True)
        notification_preference = changes.pop("notification_preference", None)

        # Re-validate the merged values so stored rows are already clamped
        merged = MatchingPreferences(**{**current.model_dump(), **{k: v for k, v in changes.items() if v is not None}})

        if row is None:
            row = CompanyMatchingSettings(id=str(uuid.uuid4()), owner_id=owner_id, company_id=company_id)
            self.db.add(row)

        row.min_profit_per_mile = merged.min_profit_per_mile
        row.max_deadhead_miles = merged.max_deadhead_miles
        row.min_match_score = merged.min_match_score
        row.preferred_return_states = sorted(merged.preferred_return_states)
        row.excluded_states = sorted(merged.excluded_states)
        row.min_capacity_utilization_percent = merged.min_capacity_utilization
        row.max_capacity_utilization_percent = merged.max_capacity_utilization
        if notification_preference is not None:
            row.notification_preference = notification_preference
        elif row.notification_preference is None:
            row.notification_preference = "push_and_dashboard"

        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("matching_settings_updated", extra={"company_id": company_id, "fields": sorted(changes)})
        return self._settings_response(company_id, merged, row.notification_preference)

    async def _read(self, call, operation: str):
        return await read_with_retry(
            call,
            operation=operation,
            timeout=self.settings.matching_store_timeout_seconds,
            attempts=self.settings.matching_store_retry_attempts,
            base_delay=self.settings.matching_store_retry_delay_seconds,
            on_retry=self.db.rollback,
        )

    async def _company_id(self, owner_id: str) -> Optional[str]:
        result = await self.db.execute(
            select(Company.id).where(Company.owner_id == owner_id).order_by(Company.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    async def _settings_row(self, company_id: str) -> CompanyMatchingSettings | None:
        result = await self.db.execute(
            select(CompanyMatchingSettings).where(CompanyMatchingSettings.company_id == company_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _settings_response(
        company_id: Optional[str],
        preferences: MatchingPreferences,
        notification_preference: Optional[str],
    ) -> MatchingSettingsResponse:
        return MatchingSettingsResponse(
            company_id=company_id,
            min_profit_per_mile=preferences.min_profit_per_mile,
            max_deadhead_miles=preferences.max_deadhead_miles,
            min_match_score=preferences.min_match_score,
            preferred_return_states=sorted(preferences.preferred_return_states),
            excluded_states=sorted(preferences.excluded_states),
            min_capacity_utilization=preferences.min_capacity_utilization,
            max_capacity_utilization=preferences.max_capacity_utilization,
            notification_preference=notification_preference or "push_and_dashboard",
        )
