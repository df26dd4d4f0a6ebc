"""
Tests for the offline operation queue and the local train/booking cache.
"""

from datetime import timedelta

from railway.models.enums import OfflineSyncStatus, SyncOperationType, SyncStatus, PaymentMethod
from railway.services.booking_lifecycle import plan_booking
from railway.services.seat_inventory import apply_seat_status

from conftest import FIXED_NOW, make_passenger, make_train


def _booking(user_id="u1", seat="A01", days=10):
    return plan_booking(
        make_train(),
        user_id=user_id,
        journey_date=FIXED_NOW + timedelta(days=days),
        passengers=[make_passenger("Asha", seat)],
        payment_method=PaymentMethod.UPI,
        reference="TR25070001",
        now=FIXED_NOW,
    ).booking


class TestOfflineOperationQueue:

    def test_enqueue_assigns_increasing_ids(self, operation_queue):
        first = operation_queue.enqueue(SyncOperationType.CREATE_BOOKING, {"booking_id": "b1"})
        second = operation_queue.enqueue(SyncOperationType.UPDATE_BOOKING, {"booking_id": "b1"})

        assert second > first
        pending = operation_queue.pending()
        assert [op.id for op in pending] == [first, second]
        assert pending[0].type == SyncOperationType.CREATE_BOOKING
        assert pending[0].status == SyncStatus.PENDING
        assert pending[0].payload == {"booking_id": "b1"}

    def test_dequeue_completed(self, operation_queue):
        operation_id = operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {"booking_id": "b1"})

        assert operation_queue.dequeue_completed(operation_id) is True
        assert operation_queue.dequeue_completed(operation_id) is False
        assert operation_queue.get(operation_id) is None

    def test_mark_failed_moves_out_of_pending(self, operation_queue):
        operation_id = operation_queue.enqueue(SyncOperationType.CREATE_BOOKING, {"booking_id": "b1"})

        operation_queue.mark_failed(operation_id, "SyncConflict: A01")

        assert operation_queue.pending() == []
        [failed] = operation_queue.failed()
        assert failed.id == operation_id
        assert failed.error == "SyncConflict: A01"
        assert operation_queue.count(SyncStatus.FAILED) == 1

    def test_retry_keeps_position_and_replaces_payload(self, operation_queue):
        first = operation_queue.enqueue(SyncOperationType.CREATE_BOOKING, {"seat": "A01"})
        second = operation_queue.enqueue(SyncOperationType.UPDATE_BOOKING, {"status": "Cancelled"})
        operation_queue.mark_failed(first, "conflict")

        assert operation_queue.retry(first, {"seat": "A03"}) is True

        pending = operation_queue.pending()
        assert [op.id for op in pending] == [first, second]
        assert pending[0].payload == {"seat": "A03"}
        assert pending[0].error is None

    def test_retry_and_discard_only_apply_to_failed(self, operation_queue):
        operation_id = operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {"booking_id": "b1"})

        assert operation_queue.retry(operation_id) is False
        assert operation_queue.discard(operation_id) is False

        operation_queue.mark_failed(operation_id, "boom")
        assert operation_queue.discard(operation_id) is True
        assert operation_queue.count() == 0

    def test_clear(self, operation_queue):
        operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {})
        operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {})

        assert operation_queue.clear() == 2
        assert operation_queue.count() == 0


class TestLocalStore:

    def test_train_snapshot(self, local_store):
        train, _ = apply_seat_status(make_train(), ["A02"], is_available=False)

        local_store.save_train(train)
        cached = local_store.get_train("T1")

        assert cached == train
        assert local_store.get_train("T9") is None

    def test_booking_copy(self, local_store):
        booking = _booking()

        local_store.save_booking(booking)

        assert local_store.get_booking(booking.booking_id) == booking

    def test_user_bookings_sorted_by_journey(self, local_store):
        later = _booking(days=20)
        sooner = _booking(days=3, seat="A02")
        other_user = _booking(user_id="u2", seat="A03")
        for booking in (later, sooner, other_user):
            local_store.save_booking(booking)

        bookings = local_store.get_user_bookings("u1")

        assert [b.booking_id for b in bookings] == [sooner.booking_id, later.booking_id]

    def test_mark_sync_status(self, local_store):
        booking = _booking()
        local_store.save_booking(booking)

        updated = local_store.mark_booking_sync_status(booking.booking_id, OfflineSyncStatus.FAILED)

        assert updated.offline_sync_status == OfflineSyncStatus.FAILED
        assert local_store.get_booking(booking.booking_id).offline_sync_status == OfflineSyncStatus.FAILED
        assert local_store.mark_booking_sync_status("missing", OfflineSyncStatus.SYNCED) is None

    def test_discard_and_clear(self, local_store):
        booking = _booking()
        local_store.save_booking(booking)
        local_store.save_train(make_train())

        assert local_store.discard_booking(booking.booking_id) is True
        assert local_store.discard_booking(booking.booking_id) is False

        local_store.clear()
        assert local_store.get_train("T1") is None
