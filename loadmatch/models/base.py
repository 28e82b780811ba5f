import re

from sqlalchemy.orm import DeclarativeBase, declared_attr

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class Base(DeclarativeBase):
    """Base class that derives snake_case table names (TripLoad -> trip_load)."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore[misc]
        return _CAMEL_BOUNDARY.sub("_", cls.__name__).lower()
