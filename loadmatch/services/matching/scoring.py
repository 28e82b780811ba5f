"""
Scoring and ranking of candidate loads for a trip.

Each candidate is scored independently and deterministically, so a batch can
be fanned out across worker threads and joined before anything is written.
Weights and the cost model come from settings; the only ordering guarantee is
match score desc, then profit per mile desc, then deadhead asc.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from loadmatch.core.config import Settings, get_settings
from loadmatch.schemas.matching import MatchingPreferences
from loadmatch.services.matching import geo
from loadmatch.services.matching.candidates import CandidateLoad
from loadmatch.services.matching.context import MatchingContext

logger = logging.getLogger(__name__)

DistanceFn = Callable[[geo.Location, geo.Location], float]


class SuggestionType(str, Enum):
    RETURN_LANE = "return_lane"
    ON_ROUTE = "on_route"
    CAPACITY_FILL = "capacity_fill"


class RejectReason(str, Enum):
    EXCLUDED_STATE = "excluded_state"
    MALFORMED = "malformed"
    DEADHEAD = "deadhead"
    CAPACITY = "capacity"
    PROFIT = "profit"
    SCORE = "score"


class MalformedCandidate(ValueError):
    pass


@dataclass(frozen=True)
class ScoringPolicy:
    weight_profit: float = 40.0
    weight_distance: float = 30.0
    weight_capacity: float = 20.0
    weight_preference: float = 10.0
    profit_per_mile_ceiling: float = 3.0
    on_route_threshold_miles: float = 50.0
    fuel_cost_per_mile: float = 0.75
    driver_cost_per_mile: float = 0.75

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringPolicy":
        return cls(
            weight_profit=settings.matching_weight_profit,
            weight_distance=settings.matching_weight_distance,
            weight_capacity=settings.matching_weight_capacity,
            weight_preference=settings.matching_weight_preference,
            profit_per_mile_ceiling=settings.matching_profit_per_mile_ceiling,
            on_route_threshold_miles=settings.matching_on_route_threshold_miles,
            fuel_cost_per_mile=settings.matching_fuel_cost_per_mile,
            driver_cost_per_mile=settings.matching_driver_cost_per_mile,
        )


@dataclass(frozen=True)
class ScoredCandidate:
    load_id: str
    suggestion_type: SuggestionType
    distance_to_pickup_miles: float
    load_miles: float
    total_miles: float
    revenue_estimate: float
    driver_cost_estimate: float
    fuel_cost_estimate: float
    profit_estimate: float
    profit_per_mile: float
    capacity_fit_percent: float
    match_score: float
    score_breakdown: Dict[str, float] = field(default_factory=dict)

    def sort_key(self):
        return (-self.match_score, -self.profit_per_mile, self.distance_to_pickup_miles, self.load_id)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def capacity_fit_percent(cubic_feet: float, remaining_cuft: float) -> float:
    if remaining_cuft <= 0:
        return 0.0
    return min(100.0, max(0.0, cubic_feet) / remaining_cuft * 100)


class ScoringEngine:
    def __init__(
        self,
        policy: ScoringPolicy | None = None,
        distance_fn: DistanceFn = geo.distance,
    ) -> None:
        self.policy = policy or ScoringPolicy()
        self.distance_fn = distance_fn

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ScoringEngine":
        return cls(ScoringPolicy.from_settings(settings or get_settings()))

    def score(
        self,
        candidate: CandidateLoad,
        context: MatchingContext,
        preferences: MatchingPreferences,
    ) -> Optional[ScoredCandidate]:
        """Score one candidate; None when it is filtered out or malformed."""
        try:
            return self._score(candidate, context, preferences)
        except (MalformedCandidate, TypeError, ArithmeticError) as exc:
            logger.warning(
                "candidate_skipped",
                extra={
                    "trip_id": context.trip_id,
                    "load_id": candidate.id,
                    "reason": RejectReason.MALFORMED.value,
                    "error": str(exc),
                },
            )
            return None

    def _score(
        self,
        candidate: CandidateLoad,
        context: MatchingContext,
        preferences: MatchingPreferences,
    ) -> Optional[ScoredCandidate]:
        policy = self.policy
        excluded = preferences.excluded_states
        for state in (candidate.pickup.state_code, candidate.delivery.state_code):
            if state and state in excluded:
                return self._reject(candidate, context, RejectReason.EXCLUDED_STATE, state)
        revenue = self._validate(candidate)

        deadhead = round(self.distance_fn(context.final_destination, candidate.pickup), 1)
        if deadhead > preferences.max_deadhead_miles:
            return self._reject(candidate, context, RejectReason.DEADHEAD, deadhead)

        cubic_feet = candidate.cubic_feet or 0.0
        if cubic_feet > context.capacity_remaining_cuft:
            return self._reject(candidate, context, RejectReason.CAPACITY, cubic_feet)
        fit = round(capacity_fit_percent(cubic_feet, context.capacity_remaining_cuft), 1)
        if fit < preferences.min_capacity_utilization or fit > preferences.max_capacity_utilization:
            return self._reject(candidate, context, RejectReason.CAPACITY, fit)

        load_miles = round(self.distance_fn(candidate.pickup, candidate.delivery), 1)
        total_miles = round(deadhead + load_miles, 1)
        driver_rate = context.driver_rate_per_mile
        if driver_rate is None:
            driver_rate = policy.driver_cost_per_mile
        fuel_cost = round(policy.fuel_cost_per_mile * total_miles, 2)
        driver_cost = round(driver_rate * total_miles, 2)
        profit = round(revenue - fuel_cost - driver_cost, 2)

        profit_per_mile = round(profit / max(1.0, total_miles), 4)
        if profit_per_mile < preferences.min_profit_per_mile:
            return self._reject(candidate, context, RejectReason.PROFIT, profit_per_mile)

        delivery_state = candidate.delivery.state_code
        preferred = delivery_state in preferences.preferred_return_states or delivery_state in context.return_route_states

        breakdown = self._breakdown(deadhead, profit_per_mile, fit, preferred, preferences)
        match_score = round(_clamp(sum(breakdown.values()), 0.0, 100.0), 1)
        if match_score < preferences.min_match_score:
            return self._reject(candidate, context, RejectReason.SCORE, match_score)

        return ScoredCandidate(
            load_id=candidate.id,
            suggestion_type=self._suggestion_type(deadhead, preferred),
            distance_to_pickup_miles=deadhead,
            load_miles=load_miles,
            total_miles=total_miles,
            revenue_estimate=round(revenue, 2),
            driver_cost_estimate=driver_cost,
            fuel_cost_estimate=fuel_cost,
            profit_estimate=profit,
            profit_per_mile=profit_per_mile,
            capacity_fit_percent=fit,
            match_score=match_score,
            score_breakdown=breakdown,
        )

    def _validate(self, candidate: CandidateLoad) -> float:
        if not candidate.pickup.is_complete:
            raise MalformedCandidate("pickup city/state missing")
        if not candidate.delivery.is_complete:
            raise MalformedCandidate("delivery city/state missing")
        if candidate.cubic_feet is not None and candidate.cubic_feet < 0:
            raise MalformedCandidate("negative cubic feet")
        revenue = candidate.revenue
        if revenue is None or revenue <= 0:
            raise MalformedCandidate("no rate to estimate revenue")
        return float(revenue)

    def _breakdown(
        self,
        deadhead: float,
        profit_per_mile: float,
        fit: float,
        preferred: bool,
        preferences: MatchingPreferences,
    ) -> Dict[str, float]:
        policy = self.policy
        if policy.profit_per_mile_ceiling > 0:
            profit_norm = _clamp(profit_per_mile / policy.profit_per_mile_ceiling)
        else:
            profit_norm = 1.0 if profit_per_mile > 0 else 0.0
        if preferences.max_deadhead_miles > 0:
            distance_norm = _clamp(1 - deadhead / preferences.max_deadhead_miles)
        else:
            distance_norm = 1.0
        capacity_norm = _clamp(1 - abs(100 - fit) / 100)

        return {
            "profit": round(policy.weight_profit * profit_norm, 2),
            "distance": round(policy.weight_distance * distance_norm, 2),
            "capacity": round(policy.weight_capacity * capacity_norm, 2),
            "preference": round(policy.weight_preference if preferred else 0.0, 2),
        }

    def _suggestion_type(self, deadhead: float, preferred: bool) -> SuggestionType:
        if preferred:
            return SuggestionType.RETURN_LANE
        if deadhead <= self.policy.on_route_threshold_miles:
            return SuggestionType.ON_ROUTE
        return SuggestionType.CAPACITY_FILL

    def _reject(self, candidate: CandidateLoad, context: MatchingContext, reason: RejectReason, value) -> None:
        logger.debug(
            "candidate_rejected",
            extra={"trip_id": context.trip_id, "load_id": candidate.id, "reason": reason.value, "value": value},
        )
        return None

    @staticmethod
    def rank(scored: Iterable[Optional[ScoredCandidate]]) -> List[ScoredCandidate]:
        return sorted((s for s in scored if s is not None), key=ScoredCandidate.sort_key)

    def score_all(
        self,
        candidates: Sequence[CandidateLoad],
        context: MatchingContext,
        preferences: MatchingPreferences,
    ) -> List[ScoredCandidate]:
        return self.rank(self.score(candidate, context, preferences) for candidate in candidates)

    async def score_concurrently(
        self,
        candidates: Sequence[CandidateLoad],
        context: MatchingContext,
        preferences: MatchingPreferences,
        max_workers: int = 8,
    ) -> List[ScoredCandidate]:
        """Fan scoring out over a thread pool sized to the batch, then rank.

        Cancelling the awaiting task drops every candidate not yet started.
        """
        if not candidates:
            return []

        workers = max(1, min(len(candidates), max_workers))
        loop = asyncio.get_running_loop()
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="load-scoring")
        try:
            futures = [
                loop.run_in_executor(executor, self.score, candidate, context, preferences)
                for candidate in candidates
            ]
            results = await asyncio.gather(*futures)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return self.rank(results)
