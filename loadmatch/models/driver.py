from sqlalchemy import Column, DateTime, Float, ForeignKey, String, func
from sqlalchemy.orm import relationship

from loadmatch.models.base import Base


class Driver(Base):
    id = Column(String, primary_key=True)
    company_id = Column(String, ForeignKey("company.id"), nullable=True, index=True)
    owner_id = Column(String, nullable=False, index=True)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)

    # Pay configuration used by profit estimation (per_mile only is modelled)
    pay_mode = Column(String, nullable=False, default="per_mile")
    rate_per_mile = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="drivers")


class Trailer(Base):
    id = Column(String, primary_key=True)
    company_id = Column(String, ForeignKey("company.id"), nullable=True, index=True)
    unit_number = Column(String, nullable=True)
    cubic_capacity = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
