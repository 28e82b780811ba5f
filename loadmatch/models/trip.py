from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from loadmatch.models.base import Base


class Trip(Base):
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    company_id = Column(String, ForeignKey("company.id"), nullable=True, index=True)
    driver_id = Column(String, ForeignKey("driver.id"), nullable=True, index=True)
    trailer_id = Column(String, ForeignKey("trailer.id"), nullable=True)

    trip_number = Column(String, nullable=True)
    status = Column(String, nullable=False, default="planned")  # planned, active, en_route, completed, cancelled

    origin_city = Column(String, nullable=True)
    origin_state = Column(String, nullable=True)
    origin_postal_code = Column(String, nullable=True)
    destination_city = Column(String, nullable=True)
    destination_state = Column(String, nullable=True)
    destination_postal_code = Column(String, nullable=True)

    # Explicit override; when null remaining capacity is derived from trailer and loads
    remaining_capacity_cuft = Column(Float, nullable=True)
    return_route_preference = Column(JSON, nullable=True)  # list of state codes

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    driver = relationship("Driver")
    trailer = relationship("Trailer")
    trip_loads = relationship(
        "TripLoad", back_populates="trip", cascade="all, delete-orphan", order_by="TripLoad.sequence_index"
    )


class TripLoad(Base):
    __table_args__ = (UniqueConstraint("trip_id", "load_id", name="uq_trip_load_trip_id_load_id"),)

    id = Column(String, primary_key=True)
    trip_id = Column(String, ForeignKey("trip.id"), nullable=False, index=True)
    load_id = Column(String, ForeignKey("freight_load.id"), nullable=False, index=True)
    sequence_index = Column(Integer, nullable=False, default=0)

    trip = relationship("Trip", back_populates="trip_loads")
    load = relationship("Load")
