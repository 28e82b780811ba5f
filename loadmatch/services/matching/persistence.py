from __future__ import annotations

import asyncio
import logging
import uuid
import weakref
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.core.config import Settings, get_settings
from loadmatch.core.retry import retry_store_call, with_timeout
from loadmatch.models.matching import LoadSuggestion
from loadmatch.services.matching.context import MatchingContext
from loadmatch.services.matching.scoring import ScoredCandidate

logger = logging.getLogger(__name__)

# Columns a refresh may rewrite on an existing row. Status and the human
# interaction timestamps are deliberately absent.
SCORE_COLUMNS = (
    "suggestion_type",
    "distance_to_pickup_miles",
    "load_miles",
    "total_miles",
    "revenue_estimate",
    "driver_cost_estimate",
    "fuel_cost_estimate",
    "profit_estimate",
    "profit_per_mile",
    "capacity_fit_percent",
    "match_score",
    "score_breakdown",
    "expires_at",
    "updated_at",
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TripLockRegistry:
    """One asyncio.Lock per trip id; unused locks are garbage collected."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, trip_id: str) -> asyncio.Lock:
        lock = self._locks.get(trip_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[trip_id] = lock
        return lock


_trip_locks = TripLockRegistry()


class SuggestionPersister:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        locks: TripLockRegistry | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.locks = locks or _trip_locks

    async def persist(self, context: MatchingContext, scored: Sequence[ScoredCandidate]) -> int:
        """Upsert the batch for one trip atomically; returns rows written."""
        if not scored:
            return 0

        async with self.locks.lock_for(context.trip_id):
            written = await retry_store_call(
                lambda: self._write_batch(context, scored),
                operation="persist suggestions",
                attempts=self.settings.matching_store_retry_attempts,
                base_delay=self.settings.matching_store_retry_delay_seconds,
            )

        logger.info(
            "suggestions_persisted",
            extra={"trip_id": context.trip_id, "count": written},
        )
        return written

    async def _write_batch(self, context: MatchingContext, scored: Sequence[ScoredCandidate]) -> int:
        now = utcnow()
        expires_at = now + timedelta(hours=self.settings.matching_suggestion_ttl_hours)
        rows = [self._row(context, candidate, now, expires_at) for candidate in scored]
        try:
            for row in rows:
                await with_timeout(
                    self.db.execute(self._upsert(row)),
                    self.settings.matching_store_timeout_seconds,
                    "upsert suggestion",
                )
            await with_timeout(
                self.db.commit(),
                self.settings.matching_store_timeout_seconds,
                "commit suggestions",
            )
        except (Exception, asyncio.CancelledError):
            # Nothing from a partial batch may become visible
            await self.db.rollback()
            raise
        return len(rows)

    def _row(
        self,
        context: MatchingContext,
        candidate: ScoredCandidate,
        now: datetime,
        expires_at: datetime,
    ) -> Dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "owner_id": context.owner_id,
            "company_id": context.company_id,
            "trip_id": context.trip_id,
            "driver_id": context.driver_id,
            "load_id": candidate.load_id,
            "suggestion_type": candidate.suggestion_type.value,
            "distance_to_pickup_miles": candidate.distance_to_pickup_miles,
            "load_miles": candidate.load_miles,
            "total_miles": candidate.total_miles,
            "revenue_estimate": candidate.revenue_estimate,
            "driver_cost_estimate": candidate.driver_cost_estimate,
            "fuel_cost_estimate": candidate.fuel_cost_estimate,
            "profit_estimate": candidate.profit_estimate,
            "profit_per_mile": candidate.profit_per_mile,
            "capacity_fit_percent": candidate.capacity_fit_percent,
            "match_score": candidate.match_score,
            "score_breakdown": dict(candidate.score_breakdown),
            "status": "pending",
            "created_at": now,
            "updated_at": now,
            "expires_at": expires_at,
        }

    def _upsert(self, row: Dict[str, Any]):
        """INSERT ... ON CONFLICT (trip_id, load_id) DO UPDATE of score columns only."""
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise NotImplementedError(f"Conditional upsert not supported on {dialect}")

        statement = insert(LoadSuggestion).values(**row)
        return statement.on_conflict_do_update(
            index_elements=[LoadSuggestion.trip_id, LoadSuggestion.load_id],
            set_={column: statement.excluded[column] for column in SCORE_COLUMNS},
        )


def result_rows(scored: Sequence[ScoredCandidate]) -> List[Dict[str, Any]]:
    """External shape of a refresh result."""
    return [
        {
            "load_id": s.load_id,
            "suggestion_type": s.suggestion_type.value,
            "match_score": s.match_score,
            "profit_estimate": s.profit_estimate,
            "profit_per_mile": s.profit_per_mile,
            "distance_to_pickup_miles": s.distance_to_pickup_miles,
            "capacity_fit_percent": s.capacity_fit_percent,
        }
        for s in scored
    ]
