from __future__ import annotations

import logging
from typing import Dict, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from loadmatch.core.config import Settings, get_settings
from loadmatch.core.retry import read_with_retry, retry_store_call, with_timeout
from loadmatch.models.matching import LoadSuggestion
from loadmatch.services.event_dispatcher import EventType, emit_in_background
from loadmatch.services.matching.errors import (
    InvalidActionError,
    InvalidTransitionError,
    SuggestionNotFoundError,
)
from loadmatch.services.matching.persistence import utcnow

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("interested", "dismissed", "claimed")
ACTIONS = ("viewed",) + TERMINAL_STATUSES

# Statuses each action may move a suggestion out of
ALLOWED_FROM: Dict[str, Tuple[str, ...]] = {
    "viewed": ("pending",),
    "interested": ("pending", "viewed"),
    "dismissed": ("pending", "viewed"),
    "claimed": ("pending", "viewed"),
}


def parse_action(action: str) -> str:
    token = (action or "").strip().lower()
    if token not in ACTIONS:
        raise InvalidActionError(f"Unknown action '{action}'. Expected one of: {', '.join(ACTIONS)}")
    return token


class SuggestionLifecycle:
    """Moves a suggestion through pending -> viewed -> interested|dismissed|claimed."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    async def apply(self, owner_id: str, suggestion_id: str, action: str) -> LoadSuggestion:
        action = parse_action(action)
        settings = self.settings
        now = utcnow()

        values = {
            "status": action,
            "viewed_at": func.coalesce(LoadSuggestion.viewed_at, now),
            "updated_at": now,
        }
        if action in TERMINAL_STATUSES:
            values["actioned_at"] = now

        statement = (
            update(LoadSuggestion)
            .where(
                LoadSuggestion.id == suggestion_id,
                LoadSuggestion.owner_id == owner_id,
                LoadSuggestion.status.in_(ALLOWED_FROM[action]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        transitioned = await retry_store_call(
            lambda: self._transition(statement),
            operation="update suggestion status",
            attempts=settings.matching_store_retry_attempts,
            base_delay=settings.matching_store_retry_delay_seconds,
        )

        suggestion = await read_with_retry(
            lambda: self._get(owner_id, suggestion_id),
            operation="load suggestion",
            timeout=settings.matching_store_timeout_seconds,
            attempts=settings.matching_store_retry_attempts,
            base_delay=settings.matching_store_retry_delay_seconds,
            on_retry=self.db.rollback,
        )
        if suggestion is None:
            raise SuggestionNotFoundError(suggestion_id)

        if not transitioned:
            # Same state, or a view of something already acted upon
            if suggestion.status == action or action == "viewed":
                logger.debug(
                    "suggestion_action_noop",
                    extra={"suggestion_id": suggestion_id, "status": suggestion.status, "action": action},
                )
                return suggestion
            raise InvalidTransitionError(suggestion.status, action)

        logger.info(
            "suggestion_actioned",
            extra={"suggestion_id": suggestion_id, "trip_id": suggestion.trip_id, "action": action},
        )
        self._emit(suggestion, action)
        return suggestion

    async def _transition(self, statement) -> bool:
        timeout = self.settings.matching_store_timeout_seconds
        try:
            result = await with_timeout(self.db.execute(statement), timeout, "update suggestion status")
            transitioned = result.rowcount == 1
            await with_timeout(self.db.commit(), timeout, "commit suggestion status")
        except Exception:
            await self.db.rollback()
            raise
        return transitioned

    async def _get(self, owner_id: str, suggestion_id: str) -> LoadSuggestion | None:
        result = await self.db.execute(
            select(LoadSuggestion)
            .where(LoadSuggestion.id == suggestion_id, LoadSuggestion.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _emit(self, suggestion: LoadSuggestion, action: str) -> None:
        # Handlers run after this request returns; the transition is already committed
        payload = {
            "suggestion_id": suggestion.id,
            "trip_id": suggestion.trip_id,
            "load_id": suggestion.load_id,
            "driver_id": suggestion.driver_id,
            "status": action,
            "match_score": suggestion.match_score,
            "profit_estimate": suggestion.profit_estimate,
        }
        events = [EventType.SUGGESTION_ACTIONED]
        if action == "claimed":
            events.append(EventType.SUGGESTION_CLAIMED)
        emit_in_background(events, payload, company_id=suggestion.company_id, owner_id=suggestion.owner_id)
