from __future__ import annotations

from enum import Enum


class MatchingError(Exception):
    """Base class for load matching failures surfaced to callers."""


class ContextErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    NO_DESTINATION = "no_destination"


class ContextError(MatchingError):
    """The trip could not be turned into a matching context."""

    def __init__(self, kind: ContextErrorKind, trip_id: str, message: str | None = None) -> None:
        self.kind = kind
        self.trip_id = trip_id
        super().__init__(message or f"Trip {trip_id}: {kind.value}")


class TripNotFoundError(ContextError):
    def __init__(self, trip_id: str) -> None:
        super().__init__(ContextErrorKind.NOT_FOUND, trip_id, f"Trip {trip_id} not found")


class NoDestinationError(ContextError):
    def __init__(self, trip_id: str) -> None:
        super().__init__(
            ContextErrorKind.NO_DESTINATION,
            trip_id,
            f"Trip {trip_id} has no delivery destination to match against",
        )


class SuggestionNotFoundError(MatchingError):
    def __init__(self, suggestion_id: str) -> None:
        self.suggestion_id = suggestion_id
        super().__init__(f"Suggestion {suggestion_id} not found")


class InvalidActionError(MatchingError):
    """An action or filter token outside the accepted set."""


class InvalidTransitionError(InvalidActionError):
    """A valid action that the suggestion's current status does not allow."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move suggestion from '{current}' to '{requested}'")


class StoreError(MatchingError):
    """Data store I/O failure. ``transient`` failures are safe to retry."""

    def __init__(self, message: str, transient: bool = False) -> None:
        self.transient = transient
        super().__init__(message)


class CompanyNotFoundError(MatchingError):
    def __init__(self, owner_id: str) -> None:
        self.owner_id = owner_id
        super().__init__(f"No company found for owner {owner_id}")
