"""
Booking lifecycle rules as pure functions.

Each ``plan_*`` function takes entity values and returns the new booking
together with the list of side effects the caller must carry out (reserve
or release seats, persist, cache locally, enqueue for sync). Nothing here
touches a store, which keeps fares, refunds and state transitions testable
in isolation. ``BookingService`` executes the effects.

State machine::

    Pending -> Confirmed -> Completed
    Pending | Confirmed -> Cancelled
"""

import math
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..errors import (
    TrainNotFound,
    InvalidPassenger,
    NotEnoughSeats,
    SeatUnavailable,
    InvalidStateTransition,
    Unauthorized,
)
from ..models.booking import BookingModel, PassengerModel, PaymentModel, CallerContext
from ..models.enums import (
    BookingStatus,
    ConnectivityMode,
    OfflineSyncStatus,
    PaymentMethod,
    PaymentStatus,
    SyncOperationType,
    TrainStatus,
)
from ..models.train import TrainModel

DEFAULT_DISTANCE_RATE = 0.5

# (days until journey strictly greater than, refund fraction), checked in order
REFUND_TIERS: Tuple[Tuple[int, float], ...] = (
    (7, 0.75),
    (3, 0.50),
    (1, 0.25),
)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.COMPLETED, BookingStatus.CANCELLED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

UNBOOKABLE_TRAIN_STATUSES = {TrainStatus.INACTIVE, TrainStatus.CANCELLED}


# Effects

@dataclass(frozen=True)
class ReserveSeats:
    train_id: str
    seat_numbers: Tuple[str, ...]


@dataclass(frozen=True)
class ReleaseSeats:
    train_id: str
    seat_numbers: Tuple[str, ...]


@dataclass(frozen=True)
class PersistBooking:
    booking: BookingModel


@dataclass(frozen=True)
class CacheLocally:
    booking: BookingModel


@dataclass(frozen=True)
class UpdateLocalSeats:
    """Mirror a seat change into the locally cached train snapshot."""
    train_id: str
    seat_numbers: Tuple[str, ...]
    is_available: bool


@dataclass(frozen=True)
class EnqueueOperation:
    type: SyncOperationType
    payload: Dict[str, Any]


@dataclass(frozen=True)
class NotifyPayment:
    booking: BookingModel


Effect = Union[ReserveSeats, ReleaseSeats, PersistBooking, CacheLocally,
               UpdateLocalSeats, EnqueueOperation, NotifyPayment]


@dataclass
class BookingPlan:
    """A new booking value plus the effects needed to commit it."""
    booking: BookingModel
    effects: List[Effect] = field(default_factory=list)

    def effects_of(self, effect_type) -> List[Effect]:
        return [effect for effect in self.effects if isinstance(effect, effect_type)]


# Fares, refunds, references

def calculate_fare(
    train: TrainModel,
    passengers: Sequence[PassengerModel],
    distance: Optional[float] = None,
    distance_rate: float = DEFAULT_DISTANCE_RATE,
) -> float:
    """
    Total fare: for every passenger, the base fare of their class plus
    ``distance_rate`` per unit of distance travelled.

    A class with no configured fare contributes only the distance component.
    """
    if distance is None:
        distance = train.total_distance
    total = 0.0
    for passenger in passengers:
        total += train.fare.get(passenger.seat_class, 0.0) + distance * distance_rate
    return round(total, 2)


def days_until_journey(journey_date: datetime, now: datetime) -> int:
    """Whole days left before the journey, rounded down."""
    if journey_date.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=journey_date.tzinfo)
    elif journey_date.tzinfo is None and now.tzinfo is not None:
        now = now.replace(tzinfo=None)
    return math.floor((journey_date - now).total_seconds() / 86400)


def refund_fraction(days: int) -> float:
    for threshold, fraction in REFUND_TIERS:
        if days > threshold:
            return fraction
    return 0.0


def calculate_refund(total_fare: float, journey_date: datetime, now: datetime) -> float:
    """
    Refund for a cancellation made at ``now``.

    More than 7 days before the journey: 75%; more than 3: 50%;
    more than 1: 25%; otherwise nothing.
    """
    return round(total_fare * refund_fraction(days_until_journey(journey_date, now)), 2)


def generate_booking_reference(now: datetime, prefix: str = "TR", rng: Optional[random.Random] = None) -> str:
    """Prefix, 2-digit year, 2-digit month and a 4-digit random suffix, e.g. TR25070042."""
    rng = rng or random
    return f"{prefix}{now:%y}{now:%m}{rng.randrange(10000):04d}"


# Validation

def check_transition(current: BookingStatus, target: BookingStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(current, target)


def authorize(booking: BookingModel, caller: CallerContext) -> None:
    """Only the booking owner or an admin may change a booking."""
    if caller.is_admin or caller.user_id == booking.user_id:
        return
    raise Unauthorized(
        f"User {caller.user_id} may not modify booking {booking.booking_id}",
        {"booking_id": booking.booking_id, "user_id": caller.user_id},
    )


def validate_passengers(train: TrainModel, passengers: Sequence[PassengerModel]) -> None:
    """
    Check that the requested seats can be booked on this train.

    Raises:
        TrainNotFound: If the train is inactive or cancelled
        InvalidPassenger: Empty list, repeated seat, unknown seat, class mismatch
            or a class the train does not offer
        NotEnoughSeats: Fewer free seats in a class than passengers asking for it
        SeatUnavailable: A requested seat is already held
    """
    if train.status in UNBOOKABLE_TRAIN_STATUSES:
        raise TrainNotFound(train.train_id)

    if not passengers:
        raise InvalidPassenger("A booking needs at least one passenger")

    seat_counts = Counter(passenger.seat_number for passenger in passengers)
    repeated = sorted(number for number, count in seat_counts.items() if count > 1)
    if repeated:
        raise InvalidPassenger(
            f"Seats requested more than once: {', '.join(repeated)}",
            {"seat_numbers": repeated},
        )

    taken = set()
    for passenger in passengers:
        seat = train.seat(passenger.seat_number)
        if seat is None:
            raise InvalidPassenger(
                f"Seat {passenger.seat_number} does not exist on train {train.number}",
                {"seat_number": passenger.seat_number, "passenger": passenger.name},
            )
        if train.classes and passenger.seat_class not in train.classes:
            raise InvalidPassenger(
                f"Train {train.number} does not offer {passenger.seat_class.value}",
                {"seat_class": passenger.seat_class.value, "passenger": passenger.name},
            )
        if seat.train_class != passenger.seat_class:
            raise InvalidPassenger(
                f"Seat {seat.number} is {seat.train_class.value}, not {passenger.seat_class.value}",
                {"seat_number": seat.number, "passenger": passenger.name},
            )
        if not seat.is_available:
            taken.add(seat.number)

    for train_class, needed in Counter(p.seat_class for p in passengers).items():
        free = len(train.available_seats(train_class))
        if free < needed:
            raise NotEnoughSeats(
                [p.seat_number for p in passengers if p.seat_class == train_class],
                message=f"Only {free} {train_class.value} seats left, {needed} requested",
                train_id=train.train_id,
                available=free,
            )

    if taken:
        raise SeatUnavailable(taken, train_id=train.train_id)


# Plans

def _booking_update_payload(booking: BookingModel, **extra: Any) -> Dict[str, Any]:
    payload = {
        "booking_id": booking.booking_id,
        "user_id": booking.user_id,
        "status": booking.status.value,
    }
    payload.update(extra)
    return payload


def plan_booking(
    train: TrainModel,
    user_id: str,
    journey_date: datetime,
    passengers: Sequence[PassengerModel],
    payment_method: PaymentMethod,
    reference: str,
    now: datetime,
    mode: ConnectivityMode = ConnectivityMode.ONLINE,
    distance: Optional[float] = None,
    distance_rate: float = DEFAULT_DISTANCE_RATE,
    booking_id: Optional[str] = None,
    special_requests: Optional[str] = None,
) -> BookingPlan:
    """Validate and price a new booking and decide how to commit it."""
    validate_passengers(train, passengers)
    total_fare = calculate_fare(train, passengers, distance, distance_rate)
    offline = mode == ConnectivityMode.OFFLINE

    fields: Dict[str, Any] = dict(
        user_id=user_id,
        train_id=train.train_id,
        journey_date=journey_date,
        passengers=list(passengers),
        source=train.source,
        destination=train.destination,
        total_fare=total_fare,
        payment=PaymentModel(amount=total_fare, method=payment_method),
        status=BookingStatus.PENDING,
        booking_reference=reference,
        is_offline_booking=offline,
        offline_sync_status=OfflineSyncStatus.PENDING if offline else OfflineSyncStatus.SYNCED,
        special_requests=special_requests,
        created_at=now,
        last_updated=now,
    )
    if booking_id:
        fields["booking_id"] = booking_id
    booking = BookingModel(**fields)
    seats = tuple(booking.seat_numbers)

    if offline:
        effects: List[Effect] = [
            CacheLocally(booking),
            UpdateLocalSeats(train.train_id, seats, is_available=False),
            EnqueueOperation(SyncOperationType.CREATE_BOOKING, booking.model_dump(mode="json")),
        ]
    else:
        effects = [ReserveSeats(train.train_id, seats), PersistBooking(booking)]
    return BookingPlan(booking, effects)


def plan_cancellation(
    booking: BookingModel,
    reason: Optional[str],
    now: datetime,
    mode: ConnectivityMode = ConnectivityMode.ONLINE,
) -> BookingPlan:
    """Cancel a Pending or Confirmed booking, compute the refund and free its seats."""
    check_transition(booking.status, BookingStatus.CANCELLED)

    refund = calculate_refund(booking.total_fare, booking.journey_date, now)
    payment = booking.payment
    if payment.status == PaymentStatus.COMPLETED and refund > 0:
        payment = payment.model_copy(update={"status": PaymentStatus.REFUNDED})

    cancelled = booking.model_copy(update={
        "status": BookingStatus.CANCELLED,
        "cancellation_reason": reason,
        "cancellation_date": now,
        "refund_amount": refund,
        "payment": payment,
        "last_updated": now,
    })
    seats = tuple(booking.seat_numbers)

    if mode == ConnectivityMode.OFFLINE:
        effects: List[Effect] = [
            CacheLocally(cancelled),
            UpdateLocalSeats(booking.train_id, seats, is_available=True),
            EnqueueOperation(
                SyncOperationType.UPDATE_BOOKING,
                _booking_update_payload(
                    cancelled,
                    reason=reason,
                    cancellation_date=now.isoformat(),
                    refund_amount=refund,
                ),
            ),
        ]
    else:
        effects = [ReleaseSeats(booking.train_id, seats), PersistBooking(cancelled)]
    return BookingPlan(cancelled, effects)


def plan_payment(
    booking: BookingModel,
    payment_data: Dict[str, Any],
    now: datetime,
    mode: ConnectivityMode = ConnectivityMode.ONLINE,
) -> BookingPlan:
    """Record a completed payment and confirm the booking. Seats are untouched."""
    check_transition(booking.status, BookingStatus.CONFIRMED)

    payment = PaymentModel.model_validate({
        **booking.payment.model_dump(),
        **payment_data,
        "status": PaymentStatus.COMPLETED,
        "payment_date": now,
    })
    confirmed = booking.model_copy(update={
        "payment": payment,
        "status": BookingStatus.CONFIRMED,
        "last_updated": now,
    })

    if mode == ConnectivityMode.OFFLINE:
        effects: List[Effect] = [
            CacheLocally(confirmed),
            EnqueueOperation(
                SyncOperationType.UPDATE_BOOKING,
                _booking_update_payload(confirmed, payment=payment.model_dump(mode="json")),
            ),
        ]
    else:
        effects = [PersistBooking(confirmed), NotifyPayment(confirmed)]
    return BookingPlan(confirmed, effects)


def plan_status_update(
    booking: BookingModel,
    status: BookingStatus,
    now: datetime,
    mode: ConnectivityMode = ConnectivityMode.ONLINE,
    reason: Optional[str] = None,
) -> BookingPlan:
    """
    Administrative status change.

    A move to Cancelled goes through the cancellation plan so that the
    seats are released and the refund recorded. A completed journey no
    longer holds its seats either.
    """
    if status == BookingStatus.CANCELLED:
        return plan_cancellation(booking, reason or "Cancelled by administrator", now, mode)

    check_transition(booking.status, status)
    updated = booking.model_copy(update={"status": status, "last_updated": now})
    seats = tuple(booking.seat_numbers)
    frees_seats = booking.holds_seats and not updated.holds_seats

    if mode == ConnectivityMode.OFFLINE:
        effects: List[Effect] = [CacheLocally(updated)]
        if frees_seats:
            effects.append(UpdateLocalSeats(booking.train_id, seats, is_available=True))
        effects.append(EnqueueOperation(SyncOperationType.UPDATE_BOOKING, _booking_update_payload(updated)))
    else:
        effects = [PersistBooking(updated)]
        if frees_seats:
            effects.insert(0, ReleaseSeats(booking.train_id, seats))
    return BookingPlan(updated, effects)
