from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Numeric, String, func

from loadmatch.models.base import Base


class Load(Base):
    __tablename__ = "freight_load"

    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    company_id = Column(String, ForeignKey("company.id"), nullable=True, index=True)
    load_number = Column(String, nullable=True)

    pickup_city = Column(String, nullable=True)
    pickup_state = Column(String, nullable=True, index=True)
    pickup_postal_code = Column(String, nullable=True)
    delivery_city = Column(String, nullable=True)
    delivery_state = Column(String, nullable=True, index=True)
    delivery_postal_code = Column(String, nullable=True)

    # Size and revenue
    cubic_feet = Column(Float, nullable=True)
    actual_cuft_loaded = Column(Float, nullable=True)
    total_rate = Column(Numeric(12, 2), nullable=True)
    rate_per_cuft = Column(Numeric(10, 4), nullable=True)
    balance_due = Column(Numeric(12, 2), nullable=True)

    # Marketplace posting
    posting_type = Column(String, nullable=True)  # pickup, load
    posting_status = Column(String, nullable=True, index=True)  # draft, posted, closed
    is_marketplace_visible = Column(Boolean, nullable=False, default=True)
    assigned_carrier_id = Column(String, nullable=True, index=True)

    load_status = Column(String, nullable=False, default="pending")  # pending, in_transit, delivered, cancelled
    pickup_date = Column(Date, nullable=True)
    delivery_date = Column(Date, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
