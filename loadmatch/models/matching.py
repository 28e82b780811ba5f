from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from loadmatch.models.base import Base

SUGGESTION_STATUSES = ("pending", "viewed", "interested", "dismissed", "claimed")
NOTIFICATION_PREFERENCES = ("dashboard_only", "push_and_dashboard", "email_digest", "disabled")


class CompanyMatchingSettings(Base):
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    company_id = Column(String, ForeignKey("company.id"), nullable=False, unique=True)

    min_profit_per_mile = Column(Float, nullable=True)
    max_deadhead_miles = Column(Float, nullable=True)
    min_match_score = Column(Float, nullable=True)
    preferred_return_states = Column(JSON, nullable=True)
    excluded_states = Column(JSON, nullable=True)
    min_capacity_utilization_percent = Column(Float, nullable=True)
    max_capacity_utilization_percent = Column(Float, nullable=True)

    notification_preference = Column(String, nullable=False, default="push_and_dashboard")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="matching_settings")


class LoadSuggestion(Base):
    __table_args__ = (
        UniqueConstraint("trip_id", "load_id", name="uq_load_suggestion_trip_id_load_id"),
        CheckConstraint(
            "status IN ('pending', 'viewed', 'interested', 'dismissed', 'claimed')",
            name="ck_load_suggestion_status",
        ),
        Index("ix_load_suggestion_owner_status", "owner_id", "status"),
    )

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    company_id = Column(String, ForeignKey("company.id"), nullable=True, index=True)
    trip_id = Column(String, ForeignKey("trip.id"), nullable=False, index=True)
    driver_id = Column(String, ForeignKey("driver.id"), nullable=True, index=True)
    load_id = Column(String, ForeignKey("freight_load.id"), nullable=False, index=True)

    suggestion_type = Column(String, nullable=False)

    # Metrics at the time of the last refresh
    distance_to_pickup_miles = Column(Float, nullable=False)
    load_miles = Column(Float, nullable=True)
    total_miles = Column(Float, nullable=True)
    revenue_estimate = Column(Float, nullable=True)
    driver_cost_estimate = Column(Float, nullable=True)
    fuel_cost_estimate = Column(Float, nullable=True)
    profit_estimate = Column(Float, nullable=False)
    profit_per_mile = Column(Float, nullable=False)
    capacity_fit_percent = Column(Float, nullable=False)
    match_score = Column(Float, nullable=False, index=True)
    score_breakdown = Column(JSON, nullable=True)

    status = Column(String, nullable=False, default="pending")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    viewed_at = Column(DateTime, nullable=True)
    actioned_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
