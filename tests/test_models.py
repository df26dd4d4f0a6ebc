"""
Test suite for the Pydantic models.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from railway.errors import SeatUnavailable, NotEnoughSeats, SyncConflict, InvalidStateTransition
from railway.models import (
    BookingModel,
    BookingStatus,
    CallerContext,
    PaymentMethod,
    PaymentModel,
    SyncOperationModel,
    SyncOperationType,
    SyncReportModel,
    TrainClass,
    TrainModel,
    UserRole,
)

from conftest import FIXED_NOW, make_passenger, make_train


class TestTrainModel:

    def test_total_distance_is_last_stop(self):
        assert make_train().total_distance == 215

    def test_total_distance_without_schedule(self):
        assert make_train().model_copy(update={"schedule": []}).total_distance == 0.0

    def test_seat_lookup(self):
        train = make_train()

        assert train.seat("B03").train_class == TrainClass.SECOND_CLASS
        assert train.seat("Z1") is None
        assert len(train.seats_in_class(TrainClass.FIRST_CLASS)) == 4

    def test_fare_keys_survive_json(self):
        train = make_train()

        restored = TrainModel.model_validate_json(train.model_dump_json())

        assert restored.fare[TrainClass.FIRST_CLASS] == 150.0


class TestBookingModel:

    def _booking(self, **overrides):
        fields = dict(
            user_id="u1",
            train_id="T1",
            journey_date=FIXED_NOW + timedelta(days=3),
            passengers=[make_passenger("Asha", "A01"), make_passenger("Ravi", "A02")],
            total_fare=515.0,
            payment=PaymentModel(amount=515.0, method=PaymentMethod.UPI),
        )
        fields.update(overrides)
        return BookingModel(**fields)

    def test_defaults(self):
        booking = self._booking()

        assert booking.status == BookingStatus.PENDING
        assert len(booking.booking_id) == 32
        assert booking.seat_numbers == ["A01", "A02"]
        assert booking.holds_seats

    def test_requires_a_passenger(self):
        with pytest.raises(ValidationError):
            self._booking(passengers=[])

    def test_negative_fare_rejected(self):
        with pytest.raises(ValidationError):
            self._booking(total_fare=-1)

    @pytest.mark.parametrize("status, holds", [
        (BookingStatus.PENDING, True),
        (BookingStatus.CONFIRMED, True),
        (BookingStatus.CANCELLED, False),
        (BookingStatus.COMPLETED, False),
    ])
    def test_holds_seats(self, status, holds):
        assert self._booking(status=status).holds_seats is holds

    def test_caller_context(self):
        assert CallerContext(user_id="ops", role=UserRole.ADMIN).is_admin
        assert not CallerContext(user_id="u1").is_admin


class TestSyncModels:

    def test_operation_id_must_be_positive(self):
        with pytest.raises(ValidationError):
            SyncOperationModel(id=0, type=SyncOperationType.CREATE_BOOKING)

    def test_report_total(self):
        report = SyncReportModel(succeeded=3, failed=1, skipped=2)
        assert report.total == 4


class TestErrors:

    def test_seat_errors_share_a_base(self):
        assert issubclass(NotEnoughSeats, SeatUnavailable)
        assert issubclass(SyncConflict, SeatUnavailable)

    def test_seat_unavailable_details(self):
        error = SeatUnavailable({"A02", "A01"}, train_id="T1")

        assert error.seat_numbers == ["A01", "A02"]
        assert error.to_dict() == {
            "error": "SeatUnavailable",
            "message": "Seats not available: A01, A02",
            "details": {"seat_numbers": ["A01", "A02"], "train_id": "T1"},
        }

    def test_invalid_transition_message(self):
        error = InvalidStateTransition(BookingStatus.CANCELLED, BookingStatus.CONFIRMED)
        assert error.message == "Cannot move booking from Cancelled to Confirmed"
