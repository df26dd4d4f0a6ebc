"""
Booking, passenger and payment models for the railway booking application.

This module contains the booking document and the value objects it embeds,
with validation matching the booking lifecycle rules.
"""

import uuid
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict

from .enums import (
    TrainClass,
    Gender,
    PaymentMethod,
    PaymentStatus,
    BookingStatus,
    OfflineSyncStatus,
    UserRole,
)
from .train import StationModel


class PassengerModel(BaseModel):
    """Passenger travelling on a booking, with the seat they asked for."""
    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., min_length=1, max_length=100, description="Passenger name")
    age: int = Field(..., ge=0, le=150, description="Passenger age")
    gender: Gender = Field(..., description="Passenger gender")
    seat_number: str = Field(..., min_length=1, description="Requested seat number")
    seat_class: TrainClass = Field(..., description="Class of the requested seat")


class PaymentModel(BaseModel):
    """Payment record embedded in a booking."""
    model_config = ConfigDict(from_attributes=True)

    amount: float = Field(..., ge=0, description="Amount charged")
    method: PaymentMethod = Field(..., description="Payment method")
    status: PaymentStatus = Field(default=PaymentStatus.PENDING, description="Payment status")
    transaction_id: Optional[str] = Field(None, description="Gateway transaction id")
    payment_date: Optional[datetime] = Field(None, description="When the payment completed")


class BookingModel(BaseModel):
    """
    Train booking with passengers, fare and lifecycle state.

    ``booking_id`` is generated by the client so that a booking created while
    offline keeps the same identity when it is replayed against the server.
    ``total_fare`` is fixed at creation; cancellation only adds
    ``refund_amount``.
    """
    model_config = ConfigDict(from_attributes=True)

    booking_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Booking identifier")
    user_id: str = Field(..., description="Owning user")
    train_id: str = Field(..., description="Booked train")
    journey_date: datetime = Field(..., description="Date of travel")
    passengers: List[PassengerModel] = Field(..., min_length=1, description="Passengers and their seats")
    source: Optional[StationModel] = None
    destination: Optional[StationModel] = None
    total_fare: float = Field(..., ge=0, description="Fare for all passengers")
    payment: PaymentModel
    status: BookingStatus = Field(default=BookingStatus.PENDING, description="Lifecycle state")
    booking_reference: Optional[str] = Field(None, description="Human-facing reference, e.g. TR25070042")
    is_offline_booking: bool = Field(default=False, description="Created while disconnected")
    offline_sync_status: OfflineSyncStatus = Field(default=OfflineSyncStatus.PENDING)
    cancellation_reason: Optional[str] = None
    cancellation_date: Optional[datetime] = None
    refund_amount: Optional[float] = Field(None, ge=0)
    special_requests: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    last_updated: datetime = Field(default_factory=datetime.now)

    @property
    def seat_numbers(self) -> List[str]:
        return [passenger.seat_number for passenger in self.passengers]

    @property
    def holds_seats(self) -> bool:
        """Pending and Confirmed bookings keep their seats unavailable."""
        return self.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class CallerContext(BaseModel):
    """Verified identity supplied by the authentication collaborator."""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
