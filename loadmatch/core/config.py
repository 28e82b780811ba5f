from functools import lru_cache
import os
from typing import List, Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    debug: bool = False
    project_name: str = "Load Matching API"
    environment: str = "development"
    log_level: str = "INFO"

    # Raw CORS origins string - read from env
    cors_origins_raw: Optional[str] = Field(
        default=None,
        alias="CORS_ORIGINS"
    )

    @computed_field
    @property
    def backend_cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from environment variable (comma-separated string)."""
        raw = self.cors_origins_raw
        if not raw:
            raw = os.environ.get("CORS_ORIGINS") or os.environ.get("BACKEND_CORS_ORIGINS") or ""

        if not raw or not raw.strip():
            return []

        origins = []
        for origin in raw.split(","):
            origin = origin.strip()
            if origin:
                # Normalize protocol to lowercase (Https -> https, Http -> http)
                if origin.lower().startswith("https://"):
                    origin = "https://" + origin[8:]
                elif origin.lower().startswith("http://"):
                    origin = "http://" + origin[7:]
                origins.append(origin)
        return origins

    database_url: str  # Required - no default, must be set in .env

    # Operating cost model (linear, $/mile over deadhead + loaded miles)
    # Driver pay falls back to the default rate when the driver has none on file.
    matching_fuel_cost_per_mile: float = 0.75
    matching_driver_cost_per_mile: float = 0.75

    # Scoring policy - weights are points out of 100
    matching_weight_profit: float = 40.0
    matching_weight_distance: float = 30.0
    matching_weight_capacity: float = 20.0
    matching_weight_preference: float = 10.0
    matching_profit_per_mile_ceiling: float = 3.0  # $/mile that earns the full profit score
    matching_on_route_threshold_miles: float = 50.0

    # Engine limits
    matching_max_suggestions: int = 20
    matching_candidate_limit: int = 500
    matching_max_workers: int = 8
    matching_suggestion_ttl_hours: int = 24
    matching_default_trailer_capacity_cuft: float = 4200.0

    # Data store calls
    matching_store_timeout_seconds: float = 10.0
    matching_store_retry_attempts: int = 1
    matching_store_retry_delay_seconds: float = 0.2

    # Batch refresh of active trips (off by default)
    matching_refresh_enabled: bool = False
    matching_refresh_interval_minutes: int = 30

    # Claimed-suggestion notifications
    slack_webhook_url: Optional[str] = None

    @property
    def matching_cost_per_mile(self) -> float:
        """Total default operating cost per mile (fuel + driver pay)."""
        return self.matching_fuel_cost_per_mile + self.matching_driver_cost_per_mile


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
