"""
Domain exceptions for the booking core.

Seat inventory and booking lifecycle errors propagate unchanged to the
caller. Each error carries a ``details`` dict with enough information for
the caller to retry, e.g. which seats were taken.
"""

from typing import Any, Dict, Iterable, Optional


class BookingError(Exception):
    """Base class for all booking core errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class NotFound(BookingError):
    """A train, booking or seat does not exist."""


class TrainNotFound(NotFound):
    def __init__(self, train_id: str):
        super().__init__(f"Train not found: {train_id}", {"train_id": train_id})
        self.train_id = train_id


class BookingNotFound(NotFound):
    def __init__(self, booking_id: str):
        super().__init__(f"Booking not found: {booking_id}", {"booking_id": booking_id})
        self.booking_id = booking_id


class SeatNotFound(NotFound):
    def __init__(self, train_id: str, seat_numbers: Iterable[str]):
        self.seat_numbers = sorted(seat_numbers)
        super().__init__(
            f"Unknown seats on train {train_id}: {', '.join(self.seat_numbers)}",
            {"train_id": train_id, "seat_numbers": self.seat_numbers},
        )


class SeatUnavailable(BookingError):
    """One or more requested seats are already held. The caller must re-select."""

    def __init__(self, seat_numbers: Iterable[str], message: Optional[str] = None, **details: Any):
        self.seat_numbers = sorted(seat_numbers)
        super().__init__(
            message or f"Seats not available: {', '.join(self.seat_numbers)}",
            {"seat_numbers": self.seat_numbers, **details},
        )


class NotEnoughSeats(SeatUnavailable):
    """Not enough free seats to satisfy the request; raised before any hold is taken."""


class SyncConflict(SeatUnavailable):
    """An offline booking replay found its seats taken in the meantime."""


class InvalidPassenger(BookingError):
    """A passenger's seat is unknown, in the wrong class, or repeated."""


class InvalidStateTransition(BookingError):
    def __init__(self, current: Any, target: Any):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        super().__init__(
            f"Cannot move booking from {current_value} to {target_value}",
            {"current": current_value, "target": target_value},
        )
        self.current = current
        self.target = target


class Unauthorized(BookingError):
    """The caller is neither the booking owner nor an admin."""
