from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from loadmatch.services.matching.geo import normalize_state

SuggestionAction = Literal["viewed", "interested", "dismissed", "claimed"]
NotificationPreference = Literal["dashboard_only", "push_and_dashboard", "email_digest", "disabled"]


def _state_codes(value: Any) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = value.split(",")
    codes = (normalize_state(code) for code in value if code)
    return frozenset(code for code in codes if code)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class MatchingPreferences(BaseModel):
    """Company matching preferences with defaults applied at construction.

    Out-of-range values are clamped rather than rejected so a bad settings row
    never breaks a refresh.
    """

    model_config = ConfigDict(frozen=True)

    min_profit_per_mile: float = 1.0
    max_deadhead_miles: float = 150.0
    min_match_score: float = 50.0
    preferred_return_states: FrozenSet[str] = Field(default_factory=frozenset)
    excluded_states: FrozenSet[str] = Field(default_factory=frozenset)
    min_capacity_utilization: float = 30.0
    max_capacity_utilization: float = 100.0

    @field_validator("preferred_return_states", "excluded_states", mode="before")
    @classmethod
    def _normalize_states(cls, value: Any) -> FrozenSet[str]:
        return _state_codes(value)

    @field_validator(
        "min_profit_per_mile",
        "max_deadhead_miles",
        "min_match_score",
        "min_capacity_utilization",
        "max_capacity_utilization",
        mode="before",
    )
    @classmethod
    def _numeric(cls, value: Any, info) -> Any:
        # Null columns fall back to the field default
        if value is None:
            return cls.model_fields[info.field_name].default
        return float(value)

    @model_validator(mode="before")
    @classmethod
    def _clamp_ranges(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("min_profit_per_mile", "max_deadhead_miles"):
            if data.get(key) is not None:
                data[key] = max(0.0, float(data[key]))
        for key in ("min_match_score", "min_capacity_utilization", "max_capacity_utilization"):
            if data.get(key) is not None:
                data[key] = _clamp(float(data[key]), 0.0, 100.0)

        low = data.get("min_capacity_utilization")
        high = data.get("max_capacity_utilization")
        low = cls.model_fields["min_capacity_utilization"].default if low is None else low
        high = cls.model_fields["max_capacity_utilization"].default if high is None else high
        if low > high:
            data["min_capacity_utilization"] = high
        return data

    @classmethod
    def from_settings(cls, row: Any) -> "MatchingPreferences":
        """Build from a CompanyMatchingSettings row (or None for defaults)."""
        if row is None:
            return cls()
        return cls(
            min_profit_per_mile=row.min_profit_per_mile,
            max_deadhead_miles=row.max_deadhead_miles,
            min_match_score=row.min_match_score,
            preferred_return_states=row.preferred_return_states,
            excluded_states=row.excluded_states,
            min_capacity_utilization=row.min_capacity_utilization_percent,
            max_capacity_utilization=row.max_capacity_utilization_percent,
        )


class MatchingSettingsResponse(BaseModel):
    company_id: Optional[str] = None
    min_profit_per_mile: float
    max_deadhead_miles: float
    min_match_score: float
    preferred_return_states: List[str]
    excluded_states: List[str]
    min_capacity_utilization: float
    max_capacity_utilization: float
    notification_preference: NotificationPreference = "push_and_dashboard"


class MatchingSettingsUpdate(BaseModel):
    min_profit_per_mile: Optional[float] = None
    max_deadhead_miles: Optional[float] = None
    min_match_score: Optional[float] = None
    preferred_return_states: Optional[List[str]] = None
    excluded_states: Optional[List[str]] = None
    min_capacity_utilization: Optional[float] = None
    max_capacity_utilization: Optional[float] = None
    notification_preference: Optional[NotificationPreference] = None


class ScoredSuggestionResponse(BaseModel):
    load_id: str
    suggestion_type: str
    match_score: float = Field(ge=0, le=100)
    profit_estimate: float
    profit_per_mile: float
    distance_to_pickup_miles: float = Field(ge=0)
    capacity_fit_percent: float = Field(ge=0, le=100)


class RefreshSuggestionsResponse(BaseModel):
    trip_id: str
    generated_at: datetime
    count: int
    suggestions: List[ScoredSuggestionResponse]


class SuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    trip_id: str
    load_id: str
    driver_id: Optional[str] = None
    company_id: Optional[str] = None
    suggestion_type: str
    status: str
    match_score: float
    profit_estimate: float
    profit_per_mile: float
    distance_to_pickup_miles: float
    capacity_fit_percent: float
    load_miles: Optional[float] = None
    total_miles: Optional[float] = None
    revenue_estimate: Optional[float] = None
    driver_cost_estimate: Optional[float] = None
    fuel_cost_estimate: Optional[float] = None
    score_breakdown: Optional[Dict[str, float]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    actioned_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class SuggestionActionRequest(BaseModel):
    # Validated by the lifecycle so unknown tokens map to InvalidAction
    action: str
