from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import relationship

from loadmatch.models.base import Base


class Company(Base):
    id = Column(String, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    drivers = relationship("Driver", back_populates="company", cascade="all, delete-orphan")
    matching_settings = relationship(
        "CompanyMatchingSettings", back_populates="company", uselist=False, cascade="all, delete-orphan"
    )
