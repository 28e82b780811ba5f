"""SQLAlchemy models for the load matching service."""

from loadmatch.models.company import Company  # noqa: F401
from loadmatch.models.driver import Driver, Trailer  # noqa: F401
from loadmatch.models.load import Load  # noqa: F401
from loadmatch.models.trip import Trip, TripLoad  # noqa: F401
from loadmatch.models.matching import CompanyMatchingSettings, LoadSuggestion  # noqa: F401
