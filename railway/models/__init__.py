"""
Railway booking Pydantic models package.

This package contains all Pydantic v2 models used throughout the booking
core for data validation, serialization, and type safety.
"""

# Enums
from .enums import (
    TrainClass,
    SeatType,
    TrainType,
    TrainStatus,
    BookingStatus,
    PaymentStatus,
    PaymentMethod,
    Gender,
    OfflineSyncStatus,
    SyncOperationType,
    SyncStatus,
    ConnectivityMode,
    UserRole,
)

# Train and seat inventory models
from .train import (
    SeatModel,
    StationModel,
    ScheduleStopModel,
    TrainModel,
)

# Booking models
from .booking import (
    PassengerModel,
    PaymentModel,
    BookingModel,
    CallerContext,
)

# Offline sync models
from .sync import (
    SyncOperationModel,
    SyncReportModel,
)

__all__ = [
    # Enums
    "TrainClass",
    "SeatType",
    "TrainType",
    "TrainStatus",
    "BookingStatus",
    "PaymentStatus",
    "PaymentMethod",
    "Gender",
    "OfflineSyncStatus",
    "SyncOperationType",
    "SyncStatus",
    "ConnectivityMode",
    "UserRole",

    # Train models
    "SeatModel",
    "StationModel",
    "ScheduleStopModel",
    "TrainModel",

    # Booking models
    "PassengerModel",
    "PaymentModel",
    "BookingModel",
    "CallerContext",

    # Sync models
    "SyncOperationModel",
    "SyncReportModel",
]
