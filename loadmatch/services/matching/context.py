from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from loadmatch.core.config import Settings, get_settings
from loadmatch.core.retry import read_with_retry
from loadmatch.models.company import Company
from loadmatch.models.trip import Trip, TripLoad
from loadmatch.services.matching.errors import NoDestinationError, TripNotFoundError
from loadmatch.services.matching.geo import Location, normalize_state

logger = logging.getLogger(__name__)

CLOSED_LOAD_STATUSES = ("delivered", "cancelled")


@dataclass(frozen=True)
class MatchingContext:
    """Everything scoring needs to know about one trip; rebuilt on every refresh."""

    owner_id: str
    company_id: Optional[str]
    driver_id: Optional[str]
    trip_id: str
    delivery_destinations: Tuple[Location, ...]
    capacity_remaining_cuft: float
    driver_rate_per_mile: Optional[float] = None
    return_route_states: FrozenSet[str] = field(default_factory=frozenset)
    on_trip_load_ids: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not self.delivery_destinations:
            raise NoDestinationError(self.trip_id)
        if self.capacity_remaining_cuft < 0:
            object.__setattr__(self, "capacity_remaining_cuft", 0.0)

    @property
    def final_destination(self) -> Location:
        """Where the truck will be when the current loads are delivered."""
        return self.delivery_destinations[-1]


class ContextBuilder:
    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def build(self, trip_id: str, owner_id: str) -> MatchingContext:
        trip = await self._read(lambda: self._trip(trip_id, owner_id), "load trip")
        if trip is None:
            raise TripNotFoundError(trip_id)

        open_loads = [tl.load for tl in trip.trip_loads if tl.load is not None and tl.load.load_status not in CLOSED_LOAD_STATUSES]
        destinations = self._destinations(trip, open_loads)
        if not destinations:
            logger.info("matching_context_no_destination", extra={"trip_id": trip_id})
            raise NoDestinationError(trip_id)

        company_id = trip.company_id or await self._read(
            lambda: self._owner_company_id(owner_id), "load owner company"
        )

        return MatchingContext(
            owner_id=owner_id,
            company_id=company_id,
            driver_id=trip.driver_id,
            trip_id=trip.id,
            delivery_destinations=tuple(destinations),
            capacity_remaining_cuft=self._remaining_capacity(trip, open_loads),
            driver_rate_per_mile=trip.driver.rate_per_mile if trip.driver is not None else None,
            return_route_states=frozenset(
                normalize_state(state) for state in (trip.return_route_preference or []) if state
            ),
            on_trip_load_ids=frozenset(tl.load_id for tl in trip.trip_loads),
        )

    async def _read(self, call, operation: str):
        return await read_with_retry(
            call,
            operation=operation,
            timeout=self.settings.matching_store_timeout_seconds,
            attempts=self.settings.matching_store_retry_attempts,
            base_delay=self.settings.matching_store_retry_delay_seconds,
            on_retry=self.db.rollback,
        )

    async def _trip(self, trip_id: str, owner_id: str) -> Trip | None:
        result = await self.db.execute(
            select(Trip)
            .options(
                selectinload(Trip.trip_loads).selectinload(TripLoad.load),
                selectinload(Trip.driver),
                selectinload(Trip.trailer),
            )
            .where(Trip.id == trip_id, Trip.owner_id == owner_id)
        )
        return result.scalar_one_or_none()

    async def _owner_company_id(self, owner_id: str) -> Optional[str]:
        result = await self.db.execute(
            select(Company.id).where(Company.owner_id == owner_id).order_by(Company.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    def _destinations(self, trip: Trip, open_loads: list) -> List[Location]:
        destinations = [
            Location(load.delivery_city, load.delivery_state)
            for load in open_loads
            if load.delivery_city and load.delivery_state
        ]
        if destinations:
            return destinations
        # No undelivered loads with an address: fall back to the trip's own destination
        if trip.destination_city and trip.destination_state:
            return [Location(trip.destination_city, trip.destination_state)]
        return []

    def _remaining_capacity(self, trip: Trip, open_loads: list) -> float:
        if trip.remaining_capacity_cuft is not None:
            return max(0.0, float(trip.remaining_capacity_cuft))

        trailer_capacity = None
        if trip.trailer is not None and trip.trailer.cubic_capacity:
            trailer_capacity = float(trip.trailer.cubic_capacity)
        if trailer_capacity is None:
            trailer_capacity = self.settings.matching_default_trailer_capacity_cuft

        loaded = 0.0
        for load in open_loads:
            cuft = load.actual_cuft_loaded if load.actual_cuft_loaded is not None else load.cubic_feet
            loaded += float(cuft or 0)
        return max(0.0, trailer_capacity - loaded)
