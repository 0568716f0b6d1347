"""Exception types raised by the seating engine."""
from __future__ import annotations


class SeatingError(Exception):
    """Base class for all engine errors."""


class InvalidConstraintsError(SeatingError, ValueError):
    """Constraint record is malformed."""


class UnknownEventError(SeatingError, ValueError):
    def __init__(self, event_id: str) -> None:
        super().__init__(f"Unknown event: {event_id}")
        self.event_id = event_id


class UnknownGuestError(SeatingError, ValueError):
    def __init__(self, guest_id: str) -> None:
        super().__init__(f"Guest not found: {guest_id}")
        self.guest_id = guest_id


class UnknownTableError(SeatingError, ValueError):
    def __init__(self, table_id: str) -> None:
        super().__init__(f"Table not found: {table_id}")
        self.table_id = table_id


class CapacityExceededError(SeatingError, ValueError):
    """A manual assignment would overflow the target table."""


class DataAccessError(SeatingError):
    """Reading from or writing to a directory failed."""


class SynchronizationError(DataAccessError):
    """A write failed part way through applying an arrangement."""

    def __init__(self, message: str, attempted: int, synchronized: int) -> None:
        super().__init__(message)
        self.attempted = attempted
        self.synchronized = synchronized


class ArrangementInProgressError(SeatingError, RuntimeError):
    def __init__(self, event_id: str) -> None:
        super().__init__(f"arrangement already in progress for event {event_id}")
        self.event_id = event_id


class ArrangementTimeoutError(SeatingError, RuntimeError):
    """The run exceeded its time budget before writing anything."""
