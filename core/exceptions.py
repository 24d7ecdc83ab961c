"""Application-wide exception classes."""

from __future__ import annotations

from typing import Optional


class ApplicationError(Exception):
    """Base exception for all application errors."""
    pass


class ConfigurationError(ApplicationError):
    """Raised when configuration is invalid."""
    pass


class DatabaseError(ApplicationError):
    """Base exception for database-related errors."""
    pass


class ConnectionPoolError(DatabaseError):
    """Raised when database connection pool has issues."""
    pass


class StorageError(DatabaseError):
    """Raised when the underlying storage engine fails."""
    pass


class BookingError(ApplicationError):
    """Base exception for booking domain errors."""
    pass


class NotAvailableError(BookingError):
    """Raised when the item has no free units on the requested date."""
    pass


class PastDateError(BookingError):
    """Raised when the requested date is in the past."""
    pass


class DateTooFarError(BookingError):
    """Raised when the requested date exceeds the booking horizon."""
    pass


class ConcurrentModificationError(BookingError):
    """Raised when a booking was modified by someone else."""
    pass


class NotFoundError(BookingError):
    """Raised when a booking, item or user does not exist."""
    pass


class InvalidTransitionError(BookingError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Transition {current} -> {target} is not allowed")
        self.current = current
        self.target = target


class ValidationError(ApplicationError):
    """Raised when data validation fails."""
    pass


class CapacityConflictError(ValidationError):
    """Raised when an item capacity decrease conflicts with bookings."""

    def __init__(self, item_id: int, booked: int, requested: int) -> None:
        super().__init__(
            f"Item {item_id} has {booked} active bookings on one day, "
            f"cannot reduce quantity to {requested}"
        )
        self.item_id = item_id
        self.booked = booked
        self.requested = requested


class TransportError(ApplicationError):
    """Raised when the chat transport fails to deliver a message."""
    pass


class RemoteSinkError(ApplicationError):
    """Raised when the spreadsheet mirror rejects an operation."""

    def __init__(self, message: str, booking_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.booking_id = booking_id
