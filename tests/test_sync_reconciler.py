"""
Tests for replaying the offline operation queue against the server.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from railway.models.booking import CallerContext
from railway.models.enums import (
    BookingStatus,
    ConnectivityMode,
    OfflineSyncStatus,
    PaymentMethod,
    PaymentStatus,
    SyncOperationType,
    SyncStatus,
)
from railway.services.sync_reconciler import SyncReconciler, SyncScheduler
from railway.store.config import ValkeyConnectionError

from conftest import FIXED_NOW, make_passenger

JOURNEY = FIXED_NOW + timedelta(days=10)
OFFLINE = ConnectivityMode.OFFLINE


@pytest.fixture
def reconciler(booking_service, operation_queue, local_store):
    return SyncReconciler(booking_service, operation_queue, local_store)


async def _book(service, user_id="u1", seats=("A01",), mode=OFFLINE):
    passengers = [make_passenger(f"Passenger {seat}", seat) for seat in seats]
    return await service.create_booking(
        user_id, "T1", JOURNEY, passengers, PaymentMethod.CASH, mode=mode
    )


class TestSyncAll:

    @pytest.mark.asyncio
    async def test_create_booking_replay(self, reconciler, booking_service, document_store, local_store,
                                         operation_queue, stored_train):
        booking = await _book(booking_service, seats=("A01", "A02"))

        report = await reconciler.sync_all()

        assert report.succeeded == 1
        assert report.failed == 0
        assert operation_queue.count() == 0
        server_booking = await document_store.get_booking(booking.booking_id)
        assert server_booking.status == BookingStatus.PENDING
        assert server_booking.is_offline_booking
        assert server_booking.offline_sync_status == OfflineSyncStatus.SYNCED
        train = await document_store.get_train("T1")
        assert not train.seat("A01").is_available and not train.seat("A02").is_available
        assert local_store.get_booking(booking.booking_id).offline_sync_status == OfflineSyncStatus.SYNCED

    @pytest.mark.asyncio
    async def test_create_then_cancel_in_order(self, reconciler, booking_service, document_store, stored_train):
        booking = await _book(booking_service, seats=("A01",))
        await booking_service.cancel_booking(booking.booking_id, "sick", CallerContext(user_id="u1"), OFFLINE)

        report = await reconciler.sync_all()

        assert report.succeeded == 2
        server_booking = await document_store.get_booking(booking.booking_id)
        assert server_booking.status == BookingStatus.CANCELLED
        assert server_booking.cancellation_reason == "sick"
        train = await document_store.get_train("T1")
        assert train.seat("A01").is_available

    @pytest.mark.asyncio
    async def test_offline_cancel_keeps_refund_from_cancellation_time(self, reconciler, booking_service,
                                                                      document_store, stored_train):
        booking = await _book(booking_service, seats=("A01",), mode=ConnectivityMode.ONLINE)
        offline_cancel = await booking_service.cancel_booking(
            booking.booking_id, "sick", CallerContext(user_id="u1"), OFFLINE
        )
        # Six days pass before the device reconnects, crossing a refund tier
        booking_service.clock = lambda: FIXED_NOW + timedelta(days=6)

        report = await reconciler.sync_all()

        assert report.succeeded == 1
        server_booking = await document_store.get_booking(booking.booking_id)
        assert server_booking.status == BookingStatus.CANCELLED
        assert server_booking.cancellation_date == FIXED_NOW
        assert server_booking.refund_amount == offline_cancel.refund_amount == round(257.5 * 0.75, 2)
        train = await document_store.get_train("T1")
        assert train.seat("A01").is_available

    @pytest.mark.asyncio
    async def test_duplicate_create_is_applied_once(self, reconciler, booking_service, document_store,
                                                    operation_queue, stored_train):
        booking = await _book(booking_service, seats=("A01",))
        [operation] = operation_queue.pending()
        operation_queue.enqueue(SyncOperationType.CREATE_BOOKING, operation.payload)

        report = await reconciler.sync_all()

        assert report.succeeded == 2
        assert report.skipped == 1
        assert report.failed == 0
        bookings = await document_store.get_train_bookings("T1")
        assert [b.booking_id for b in bookings] == [booking.booking_id]
        train = await document_store.get_train("T1")
        assert train.version == 1

    @pytest.mark.asyncio
    async def test_seat_conflict_marks_operation_failed(self, reconciler, booking_service, document_store,
                                                        local_store, operation_queue, stored_train):
        offline_booking = await _book(booking_service, seats=("A01",))
        await _book(booking_service, user_id="u2", seats=("A01",), mode=ConnectivityMode.ONLINE)

        report = await reconciler.sync_all()

        assert report.failed == 1
        assert report.succeeded == 0
        [failed] = reconciler.needs_attention()
        assert failed.status == SyncStatus.FAILED
        assert failed.error.startswith("SyncConflict")
        assert report.failed_operation_ids == [failed.id]
        assert await document_store.get_booking(offline_booking.booking_id) is None
        local = local_store.get_booking(offline_booking.booking_id)
        assert local.offline_sync_status == OfflineSyncStatus.FAILED

        second = await reconciler.sync_all()
        assert second.total == 0
        assert operation_queue.count(SyncStatus.FAILED) == 1

    @pytest.mark.asyncio
    async def test_failure_does_not_block_later_operations(self, reconciler, booking_service, document_store,
                                                           stored_train):
        conflicting = await _book(booking_service, seats=("A01",))
        independent = await _book(booking_service, seats=("A03",))
        await _book(booking_service, user_id="u2", seats=("A01",), mode=ConnectivityMode.ONLINE)

        report = await reconciler.sync_all()

        assert report.failed == 1
        assert report.succeeded == 1
        assert await document_store.get_booking(conflicting.booking_id) is None
        assert await document_store.get_booking(independent.booking_id) is not None

    @pytest.mark.asyncio
    async def test_retry_with_new_seats(self, reconciler, booking_service, document_store, operation_queue,
                                        stored_train):
        await _book(booking_service, seats=("A01",))
        await _book(booking_service, user_id="u2", seats=("A01",), mode=ConnectivityMode.ONLINE)
        await reconciler.sync_all()
        [failed] = reconciler.needs_attention()

        payload = dict(failed.payload)
        payload["passengers"] = [make_passenger("Passenger A03", "A03").model_dump(mode="json")]
        assert operation_queue.retry(failed.id, payload)
        report = await reconciler.sync_all()

        assert report.succeeded == 1
        server_booking = await document_store.get_booking(payload["booking_id"])
        assert server_booking.seat_numbers == ["A03"]

    @pytest.mark.asyncio
    async def test_offline_payment_replay(self, reconciler, booking_service, document_store, stored_train):
        booking = await _book(booking_service, mode=ConnectivityMode.ONLINE)
        await booking_service.process_payment(booking.booking_id, {"transaction_id": "cash-7"}, OFFLINE)

        report = await reconciler.sync_all()

        assert report.succeeded == 1
        server_booking = await document_store.get_booking(booking.booking_id)
        assert server_booking.status == BookingStatus.CONFIRMED
        assert server_booking.payment.status == PaymentStatus.COMPLETED
        assert server_booking.payment.transaction_id == "cash-7"

    @pytest.mark.asyncio
    async def test_update_already_applied(self, reconciler, booking_service, operation_queue, stored_train):
        booking = await _book(booking_service, mode=ConnectivityMode.ONLINE)
        await booking_service.cancel_booking(booking.booking_id, None, CallerContext(user_id="u1"))
        operation_queue.enqueue(
            SyncOperationType.UPDATE_BOOKING,
            {"booking_id": booking.booking_id, "user_id": "u1", "status": "Cancelled"},
        )

        report = await reconciler.sync_all()

        assert report.succeeded == 1
        assert report.skipped == 1

    @pytest.mark.asyncio
    async def test_delete_replay(self, reconciler, booking_service, document_store, stored_train):
        booking = await _book(booking_service, mode=ConnectivityMode.ONLINE)
        assert await booking_service.delete_booking(booking.booking_id, OFFLINE)

        first = await reconciler.sync_all()

        assert first.succeeded == 1 and first.skipped == 0
        assert await document_store.get_booking(booking.booking_id) is None
        train = await document_store.get_train("T1")
        assert train.seat("A01").is_available

    @pytest.mark.asyncio
    async def test_delete_of_missing_booking_counts_as_applied(self, reconciler, operation_queue):
        operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {"booking_id": "gone"})

        report = await reconciler.sync_all()

        assert report.succeeded == 1
        assert report.skipped == 1

    @pytest.mark.asyncio
    async def test_user_preferences_replay(self, reconciler, booking_service, document_store):
        await booking_service.update_user_preferences("u1", {"class": "Sleeper"}, OFFLINE)

        await reconciler.sync_all()

        assert await document_store.get_user_preferences("u1") == {"class": "Sleeper"}

    @pytest.mark.asyncio
    async def test_connection_loss_leaves_operations_pending(self, reconciler, booking_service, operation_queue,
                                                             stored_train):
        await _book(booking_service, seats=("A01",))
        await _book(booking_service, seats=("A02",))
        booking_service.apply_remote_create = AsyncMock(side_effect=ValkeyConnectionError("unreachable"))

        report = await reconciler.sync_all()

        assert report.total == 0
        assert operation_queue.count(SyncStatus.PENDING) == 2
        assert reconciler.needs_attention() == []


class TestSyncScheduler:

    @pytest.mark.asyncio
    async def test_run_once_skips_when_offline(self, reconciler, operation_queue):
        operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {"booking_id": "gone"})
        scheduler = SyncScheduler(reconciler, interval_seconds=60, connectivity_probe=lambda: False)

        assert await scheduler.run_once() is None
        assert operation_queue.count() == 1

    @pytest.mark.asyncio
    async def test_run_once_with_async_probe(self, reconciler, operation_queue):
        operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {"booking_id": "gone"})
        probe = AsyncMock(return_value=True)
        scheduler = SyncScheduler(reconciler, interval_seconds=60, connectivity_probe=probe)

        report = await scheduler.run_once()

        assert report.succeeded == 1
        assert scheduler.last_report is report

    @pytest.mark.asyncio
    async def test_overlapping_passes_are_skipped(self, reconciler):
        release = asyncio.Event()

        async def slow_sync():
            await release.wait()
            return await SyncReconciler.sync_all(reconciler)

        reconciler.sync_all = slow_sync
        scheduler = SyncScheduler(reconciler, interval_seconds=60)

        first = asyncio.create_task(scheduler.run_once())
        await asyncio.sleep(0)
        assert await scheduler.run_once() is None
        release.set()
        assert (await first) is not None

    @pytest.mark.asyncio
    async def test_start_trigger_stop(self, reconciler, operation_queue):
        scheduler = SyncScheduler(reconciler, interval_seconds=60)
        scheduler.start()
        await asyncio.sleep(0.05)
        assert scheduler.is_running
        assert scheduler.last_report is not None

        operation_queue.enqueue(SyncOperationType.DELETE_BOOKING, {"booking_id": "gone"})
        scheduler.trigger()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert not scheduler.is_running
        assert operation_queue.count() == 0
