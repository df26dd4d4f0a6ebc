"""
Offline sync reconciler.

Replays queued offline operations against the server in FIFO order. Each
operation is applied, found to be already applied, or marked Failed with
its error and left for the user; a failure never stops the pass. Failed
operations are not retried automatically.

Losing the server connection in the middle of a pass stops it without
marking anything Failed, so the remaining operations are replayed on the
next pass.
"""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..database.local_store import LocalStore
from ..errors import BookingError, SeatUnavailable
from ..models.booking import BookingModel, CallerContext
from ..models.enums import BookingStatus, OfflineSyncStatus, SyncOperationType
from ..models.sync import SyncOperationModel, SyncReportModel
from ..store.config import ValkeyConnectionError, ValkeyTimeoutError
from .booking_service import BookingService
from .offline_queue import OfflineOperationQueue

logger = logging.getLogger(__name__)

ConnectivityProbe = Callable[[], Union[bool, Awaitable[bool]]]

# Payment fields an offline payment replay may carry over
REPLAYED_PAYMENT_FIELDS = ("method", "transaction_id", "amount")


class SyncReconciler:
    """Replays the offline operation queue through the booking service."""

    def __init__(
        self,
        booking_service: BookingService,
        operation_queue: OfflineOperationQueue,
        local_store: LocalStore,
    ):
        self.booking_service = booking_service
        self.operation_queue = operation_queue
        self.local_store = local_store

    async def sync_all(self) -> SyncReportModel:
        """
        Replay every Pending operation once, oldest first.

        Returns:
            SyncReportModel: Counts of applied, already-applied and failed operations
        """
        report = SyncReportModel(started_at=datetime.now())
        operations = self.operation_queue.pending()
        logger.info(f"Sync pass started with {len(operations)} pending operations")

        for operation in operations:
            try:
                already_applied = await self._dispatch(operation)
            except (ValkeyConnectionError, ValkeyTimeoutError) as e:
                logger.warning(f"Sync pass interrupted at operation {operation.id}: {e}")
                break
            except Exception as e:
                self._record_failure(operation, e)
                report.failed += 1
                report.failed_operation_ids.append(operation.id)
                continue

            self.operation_queue.dequeue_completed(operation.id)
            report.succeeded += 1
            if already_applied:
                report.skipped += 1

        report.finished_at = datetime.now()
        logger.info(
            f"Sync pass finished: {report.succeeded} succeeded "
            f"({report.skipped} already applied), {report.failed} failed"
        )
        return report

    def needs_attention(self) -> List[SyncOperationModel]:
        """Failed operations waiting for the user to retry or discard them."""
        return self.operation_queue.failed()

    def _record_failure(self, operation: SyncOperationModel, error: Exception) -> None:
        if isinstance(error, BookingError):
            message = f"{type(error).__name__}: {error.message}"
            logger.warning(f"Operation {operation.id} ({operation.type.value}) failed: {message}")
        else:
            message = f"{type(error).__name__}: {error}"
            logger.error(f"Unexpected error replaying operation {operation.id}: {message}", exc_info=True)

        self.operation_queue.mark_failed(operation.id, message)

        if operation.type == SyncOperationType.CREATE_BOOKING:
            booking_id = operation.payload.get("booking_id")
            if booking_id:
                self.local_store.mark_booking_sync_status(booking_id, OfflineSyncStatus.FAILED)
            if isinstance(error, SeatUnavailable):
                logger.warning(f"Offline booking {booking_id} conflicts on seats {error.seat_numbers}")

    async def _dispatch(self, operation: SyncOperationModel) -> bool:
        """Apply one operation. Returns True if the server already reflected it."""
        handlers = {
            SyncOperationType.CREATE_BOOKING: self._create_booking,
            SyncOperationType.UPDATE_BOOKING: self._update_booking,
            SyncOperationType.DELETE_BOOKING: self._delete_booking,
            SyncOperationType.UPDATE_USER_PREFERENCES: self._update_user_preferences,
        }
        logger.debug(f"Replaying operation {operation.id} ({operation.type.value})")
        return await handlers[operation.type](operation.payload)

    async def _create_booking(self, payload: Dict[str, Any]) -> bool:
        booking = BookingModel.model_validate(payload)
        _, already_applied = await self.booking_service.apply_remote_create(booking)
        self.local_store.mark_booking_sync_status(booking.booking_id, OfflineSyncStatus.SYNCED)
        return already_applied

    async def _update_booking(self, payload: Dict[str, Any]) -> bool:
        booking_id = payload["booking_id"]
        target = BookingStatus(payload["status"])
        current = await self.booking_service.get_booking(booking_id)
        if current.status == target:
            return True

        if target == BookingStatus.CANCELLED:
            cancelled_at = payload.get("cancellation_date")
            cancelled = await self.booking_service.cancel_booking(
                booking_id,
                payload.get("reason"),
                CallerContext(user_id=current.user_id),
                at=datetime.fromisoformat(cancelled_at) if cancelled_at else None,
            )
            offline_refund = payload.get("refund_amount")
            if offline_refund is not None and offline_refund != cancelled.refund_amount:
                logger.warning(
                    f"Booking {booking_id} refund on server {cancelled.refund_amount} "
                    f"differs from offline refund {offline_refund}"
                )
        elif target == BookingStatus.CONFIRMED and payload.get("payment"):
            payment = payload["payment"]
            payment_data = {key: payment[key] for key in REPLAYED_PAYMENT_FIELDS if payment.get(key) is not None}
            await self.booking_service.process_payment(booking_id, payment_data)
        else:
            await self.booking_service.update_booking_status(booking_id, target)
        return False

    async def _delete_booking(self, payload: Dict[str, Any]) -> bool:
        deleted = await self.booking_service.delete_booking(payload["booking_id"])
        return not deleted

    async def _update_user_preferences(self, payload: Dict[str, Any]) -> bool:
        await self.booking_service.update_user_preferences(payload["user_id"], payload.get("preferences", {}))
        return False


class SyncScheduler:
    """
    Runs ``sync_all`` periodically while online, and on demand.

    Only one pass runs at a time; a trigger that arrives during a pass
    starts another pass right after it.
    """

    def __init__(
        self,
        reconciler: SyncReconciler,
        interval_seconds: float = 300,
        connectivity_probe: Optional[ConnectivityProbe] = None,
    ):
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.connectivity_probe = connectivity_probe
        self.last_report: Optional[SyncReportModel] = None

        self._lock = asyncio.Lock()
        self._wakeup = asyncio.Event()
        self._stopping = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _is_online(self) -> bool:
        if self.connectivity_probe is None:
            return True
        result = self.connectivity_probe()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def run_once(self) -> Optional[SyncReportModel]:
        """
        Run one pass unless offline or another pass is in progress.

        Returns:
            The pass report, or None if nothing ran
        """
        if self._lock.locked():
            logger.debug("Sync pass already running; skipping")
            return None

        async with self._lock:
            if not await self._is_online():
                logger.debug("Offline; sync pass skipped")
                return None
            self.last_report = await self.reconciler.sync_all()
            return self.last_report

    def trigger(self) -> None:
        """Request a pass now, e.g. when connectivity returns."""
        self._wakeup.set()

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Sync pass failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

    def start(self) -> None:
        if self.is_running:
            return
        self._stopping = False
        self._task = asyncio.create_task(self._run())
        logger.info(f"Sync scheduler started (interval {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping = True
        self._wakeup.set()
        await self._task
        self._task = None
        logger.info("Sync scheduler stopped")
