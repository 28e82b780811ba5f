from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.core.config import Settings, get_settings
from loadmatch.core.retry import read_with_retry
from loadmatch.models.load import Load
from loadmatch.models.matching import LoadSuggestion
from loadmatch.schemas.matching import MatchingPreferences
from loadmatch.services.matching.context import MatchingContext
from loadmatch.services.matching.geo import Location

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateLoad:
    """Read-only projection of a postable load."""

    id: str
    pickup_city: Optional[str] = None
    pickup_state: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_state: Optional[str] = None
    cubic_feet: Optional[float] = None
    total_rate: Optional[float] = None
    rate_per_cuft: Optional[float] = None
    balance_due: Optional[float] = None
    posting_type: Optional[str] = None
    pickup_date: Optional[date] = None
    company_id: Optional[str] = None

    @property
    def pickup(self) -> Location:
        return Location(self.pickup_city, self.pickup_state)

    @property
    def delivery(self) -> Location:
        return Location(self.delivery_city, self.delivery_state)

    @property
    def revenue(self) -> Optional[float]:
        """Total rate, else balance due, else cubic feet priced per cuft."""
        if self.total_rate:
            return self.total_rate
        if self.balance_due:
            return self.balance_due
        if self.cubic_feet and self.rate_per_cuft:
            return self.cubic_feet * self.rate_per_cuft
        return None

    @classmethod
    def from_model(cls, load: Load) -> "CandidateLoad":
        return cls(
            id=load.id,
            pickup_city=load.pickup_city,
            pickup_state=load.pickup_state,
            delivery_city=load.delivery_city,
            delivery_state=load.delivery_state,
            cubic_feet=_float(load.cubic_feet),
            total_rate=_float(load.total_rate),
            rate_per_cuft=_float(load.rate_per_cuft),
            balance_due=_float(load.balance_due),
            posting_type=load.posting_type,
            pickup_date=load.pickup_date,
            company_id=load.company_id,
        )


def _float(value) -> Optional[float]:
    return float(value) if value is not None else None


class CandidateFetcher:
    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def fetch(
        self,
        context: MatchingContext,
        preferences: MatchingPreferences,
        today: date | None = None,
    ) -> List[CandidateLoad]:
        query = self.build_query(context, preferences, today or date.today())
        loads = await read_with_retry(
            lambda: self._select(query),
            operation="fetch candidate loads",
            timeout=self.settings.matching_store_timeout_seconds,
            attempts=self.settings.matching_store_retry_attempts,
            base_delay=self.settings.matching_store_retry_delay_seconds,
            on_retry=self.db.rollback,
        )
        candidates = [CandidateLoad.from_model(load) for load in loads]
        logger.info(
            "matching_candidates_fetched",
            extra={"trip_id": context.trip_id, "count": len(candidates)},
        )
        return candidates

    async def _select(self, query) -> List[Load]:
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def build_query(self, context: MatchingContext, preferences: MatchingPreferences, today: date):
        claimed_for_trip = select(LoadSuggestion.load_id).where(
            LoadSuggestion.trip_id == context.trip_id,
            LoadSuggestion.status == "claimed",
        )

        query = select(Load).where(
            Load.posting_status == "posted",
            Load.is_marketplace_visible.is_(True),
            Load.assigned_carrier_id.is_(None),
            Load.owner_id != context.owner_id,
            or_(Load.pickup_date.is_(None), Load.pickup_date >= today),
            Load.id.notin_(claimed_for_trip),
        )

        if context.company_id:
            # Never suggest the owner's own posted loads
            query = query.where(or_(Load.company_id.is_(None), Load.company_id != context.company_id))

        if context.on_trip_load_ids:
            query = query.where(Load.id.notin_(sorted(context.on_trip_load_ids)))

        excluded = sorted(preferences.excluded_states)
        if excluded:
            query = query.where(
                and_(
                    or_(Load.pickup_state.is_(None), func.upper(func.trim(Load.pickup_state)).notin_(excluded)),
                    or_(Load.delivery_state.is_(None), func.upper(func.trim(Load.delivery_state)).notin_(excluded)),
                )
            )

        return query.order_by(Load.id).limit(self.settings.matching_candidate_limit)
