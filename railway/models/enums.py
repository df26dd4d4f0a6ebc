"""
Enums for the railway booking application.

This module contains all enumeration types used throughout the application
for consistent data validation and type safety.
"""

from enum import Enum


class TrainClass(str, Enum):
    """Travel classes a train can offer."""
    FIRST_CLASS = "First Class"
    SECOND_CLASS = "Second Class"
    THIRD_CLASS = "Third Class"
    SLEEPER = "Sleeper"


class SeatType(str, Enum):
    """Seat position within a coach."""
    WINDOW = "Window"
    AISLE = "Aisle"
    MIDDLE = "Middle"


class TrainType(str, Enum):
    """Service category of a train."""
    EXPRESS = "Express"
    SUPERFAST = "Superfast"
    LOCAL = "Local"
    METRO = "Metro"


class TrainStatus(str, Enum):
    """Operational status; trains are soft-deleted through Inactive."""
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    DELAYED = "Delayed"
    CANCELLED = "Cancelled"


class BookingStatus(str, Enum):
    """Booking lifecycle states."""
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


class PaymentStatus(str, Enum):
    """Payment states recorded on a booking."""
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class PaymentMethod(str, Enum):
    """Accepted payment methods."""
    CREDIT_CARD = "Credit Card"
    DEBIT_CARD = "Debit Card"
    UPI = "UPI"
    NET_BANKING = "Net Banking"
    CASH = "Cash"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class OfflineSyncStatus(str, Enum):
    """Whether an offline-created booking reached the server."""
    PENDING = "Pending"
    SYNCED = "Synced"
    FAILED = "Failed"


class SyncOperationType(str, Enum):
    """Mutations that can be queued while disconnected."""
    CREATE_BOOKING = "CreateBooking"
    UPDATE_BOOKING = "UpdateBooking"
    DELETE_BOOKING = "DeleteBooking"
    UPDATE_USER_PREFERENCES = "UpdateUserPreferences"


class SyncStatus(str, Enum):
    """Queue entry states."""
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"


class ConnectivityMode(str, Enum):
    """Explicit connectivity passed into booking operations."""
    ONLINE = "online"
    OFFLINE = "offline"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
