from __future__ import annotations

import logging
from typing import Callable, Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.core.config import get_settings
from loadmatch.core.db import AsyncSessionFactory
from loadmatch.models.trip import Trip
from loadmatch.services.matching.errors import ContextError, MatchingError
from loadmatch.services.matching.service import LoadMatchingService

logger = logging.getLogger(__name__)

ACTIVE_TRIP_STATUSES = ("planned", "active", "en_route")

matching_scheduler = AsyncIOScheduler()


async def run_matching_refresh_cycle(
    session_factory: Callable[[], AsyncSession] = AsyncSessionFactory,
) -> Dict[str, int]:
    """Refresh suggestions for every active trip, one session per trip."""
    async with session_factory() as session:
        result = await session.execute(
            select(Trip.id, Trip.owner_id).where(Trip.status.in_(ACTIVE_TRIP_STATUSES)).order_by(Trip.id)
        )
        trips = result.all()

    summary = {"trips": len(trips), "refreshed": 0, "skipped": 0, "failed": 0}
    for trip_id, owner_id in trips:
        async with session_factory() as session:
            try:
                response = await LoadMatchingService(session).refresh_suggestions(owner_id, trip_id)
                summary["refreshed"] += 1
                logger.debug("matching_refresh_trip", extra={"trip_id": trip_id, "count": response.count})
            except ContextError as exc:
                summary["skipped"] += 1
                logger.info("matching_refresh_skipped", extra={"trip_id": trip_id, "reason": exc.kind.value})
            except MatchingError as exc:
                summary["failed"] += 1
                logger.error("matching_refresh_failed", extra={"trip_id": trip_id, "error": str(exc)})
            except Exception as exc:
                summary["failed"] += 1
                logger.exception("Matching refresh failed", extra={"trip_id": trip_id, "error": str(exc)})

    logger.info("matching_refresh_cycle", extra=summary)
    return summary


def start_scheduler() -> None:
    settings = get_settings()
    if matching_scheduler.running or not settings.matching_refresh_enabled:
        return
    matching_scheduler.add_job(
        run_matching_refresh_cycle,
        "interval",
        minutes=settings.matching_refresh_interval_minutes,
        id="matching-refresh",
        max_instances=1,
        coalesce=True,
    )
    matching_scheduler.start()
    logger.info("Matching scheduler started", extra={"interval_minutes": settings.matching_refresh_interval_minutes})


def shutdown_scheduler() -> None:
    if matching_scheduler.running:
        matching_scheduler.shutdown(wait=False)
        logger.info("Matching scheduler stopped")
