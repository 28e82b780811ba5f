# tests/conftest.py
"""
Shared fixtures: an in-memory SQLite database and a seeded Denver trip.
"""

from __future__ import annotations

import os
from datetime import date, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator, Callable, Dict

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Settings are read on import, so the environment must be in place first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from loadmatch.core.config import Settings  # noqa: E402
from loadmatch.models import Company, Driver, Load, Trailer, Trip, TripLoad  # noqa: E402
from loadmatch.models.base import Base  # noqa: E402
from loadmatch.services.event_dispatcher import get_dispatcher  # noqa: E402
from loadmatch.services.matching import geo  # noqa: E402
from loadmatch.services.matching.scoring import ScoringEngine, ScoringPolicy  # noqa: E402

OWNER_ID = "owner-1"
SHIPPER_ID = "shipper-1"

# Road-style mileages for the worked examples; anything else is great-circle
ROAD_MILES: Dict[frozenset, float] = {
    frozenset({"denver", "aurora"}): 12.0,
    frozenset({"denver", "cheyenne"}): 180.0,
    frozenset({"aurora", "salt lake city"}): 400.0,
    frozenset({"cheyenne", "omaha"}): 500.0,
    frozenset({"denver", "colorado springs"}): 70.0,
    frozenset({"colorado springs", "dallas"}): 700.0,
    frozenset({"denver", "pueblo"}): 115.0,
    frozenset({"pueblo", "albuquerque"}): 330.0,
}


def table_distance(a: geo.Location, b: geo.Location) -> float:
    if not a.is_complete or not b.is_complete:
        return geo.UNKNOWN_DISTANCE_MILES
    if a.city_key == b.city_key and a.state_code == b.state_code:
        return 0.0
    miles = ROAD_MILES.get(frozenset({a.city_key, b.city_key}))
    if miles is not None:
        return miles
    return geo.distance(a, b)


# =============================================================================
# CONFIGURATION
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        matching_store_timeout_seconds=5.0,
        matching_store_retry_delay_seconds=0.0,
    )


@pytest.fixture
def scoring_engine(settings: Settings) -> ScoringEngine:
    return ScoringEngine(ScoringPolicy.from_settings(settings), distance_fn=table_distance)


@pytest.fixture(autouse=True)
def clean_dispatcher():
    dispatcher = get_dispatcher()
    dispatcher.clear()
    yield dispatcher
    dispatcher.clear()


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> Callable[[], AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# SEED DATA
# =============================================================================

def marketplace_load(load_id: str, **overrides) -> Load:
    """A posted, unassigned load from another carrier."""
    values = dict(
        id=load_id,
        owner_id=SHIPPER_ID,
        company_id=None,
        pickup_city="Aurora",
        pickup_state="CO",
        delivery_city="Salt Lake City",
        delivery_state="UT",
        cubic_feet=1500.0,
        total_rate=2400,
        posting_type="load",
        posting_status="posted",
        is_marketplace_visible=True,
        assigned_carrier_id=None,
        load_status="pending",
        pickup_date=date.today() + timedelta(days=3),
    )
    values.update(overrides)
    return Load(**values)


@pytest_asyncio.fixture
async def seeded(db: AsyncSession) -> SimpleNamespace:
    """Trip finishing in Denver with 3200 cuft free, plus two marketplace loads."""
    company = Company(id="co-1", owner_id=OWNER_ID, name="Front Range Moving")
    driver = Driver(id="drv-1", company_id="co-1", owner_id=OWNER_ID, first_name="Sam", last_name="Ortiz")
    trailer = Trailer(id="trl-1", company_id="co-1", unit_number="T-53", cubic_capacity=4200.0)
    trip = Trip(
        id="trip-1",
        owner_id=OWNER_ID,
        company_id="co-1",
        driver_id="drv-1",
        trailer_id="trl-1",
        status="active",
        origin_city="Kansas City",
        origin_state="MO",
        destination_city="Denver",
        destination_state="CO",
    )
    own_load = Load(
        id="own-1",
        owner_id=OWNER_ID,
        company_id="co-1",
        pickup_city="Kansas City",
        pickup_state="MO",
        delivery_city="Denver",
        delivery_state="CO",
        cubic_feet=1000.0,
        total_rate=3000,
        load_status="in_transit",
        is_marketplace_visible=False,
    )
    db.add_all([company, driver, trailer, trip, own_load])
    db.add(TripLoad(id="tl-1", trip_id="trip-1", load_id="own-1", sequence_index=0))
    db.add_all(
        [
            marketplace_load("load-aurora"),
            marketplace_load(
                "load-cheyenne",
                pickup_city="Cheyenne",
                pickup_state="WY",
                delivery_city="Omaha",
                delivery_state="NE",
            ),
        ]
    )
    await db.commit()
    return SimpleNamespace(owner_id=OWNER_ID, company_id="co-1", trip_id="trip-1", driver_id="drv-1")
