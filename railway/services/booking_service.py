"""
Booking service.

Executes the plans produced by ``booking_lifecycle`` against the
authoritative document store (online) or the local offline store (offline).
Connectivity is always passed in explicitly as a ``ConnectivityMode``.

Online mutations of an existing booking run under a per-booking lock.
Seat changes happen before the booking write: a reserve for a new booking,
a release for a cancellation. A failed write is undone by reversing them.
If the process dies in between, ``repair_inventory`` rebuilds the train's seat
flags from the bookings that still hold seats.
"""

import inspect
import logging
import random
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..database.local_store import LocalStore
from ..errors import BookingError, BookingNotFound, TrainNotFound, SeatUnavailable, SyncConflict
from ..models.booking import BookingModel, PassengerModel, CallerContext
from ..models.enums import (
    BookingStatus,
    ConnectivityMode,
    OfflineSyncStatus,
    PaymentMethod,
    SyncOperationType,
    TrainClass,
)
from ..models.train import SeatModel, TrainModel
from ..store.documents import DocumentStore
from ..store.keys import KeyPrefix, key_builder
from ..utils.config import RailwayConfig
from .booking_lifecycle import (
    BookingPlan,
    CacheLocally,
    EnqueueOperation,
    NotifyPayment,
    PersistBooking,
    ReleaseSeats,
    ReserveSeats,
    UpdateLocalSeats,
    authorize,
    generate_booking_reference,
    plan_booking,
    plan_cancellation,
    plan_payment,
    plan_status_update,
)
from .offline_queue import OfflineOperationQueue
from .seat_inventory import SeatInventory, apply_seat_status

logger = logging.getLogger(__name__)

PaymentNotifier = Callable[[BookingModel], Union[Awaitable[None], None]]

MAX_REFERENCE_ATTEMPTS = 20


class BookingService:
    """
    Booking lifecycle orchestration.

    Args:
        document_store: Authoritative store for trains and bookings
        seat_inventory: Atomic seat reservation on the authoritative store
        local_store: Offline cache of trains and bookings
        operation_queue: Queue of mutations made while offline
        config: Application configuration (fare rate, reference prefix, lock timing)
        payment_notifier: Optional callable told about completed payments
    """

    def __init__(
        self,
        document_store: DocumentStore,
        seat_inventory: SeatInventory,
        local_store: LocalStore,
        operation_queue: OfflineOperationQueue,
        config: RailwayConfig,
        payment_notifier: Optional[PaymentNotifier] = None,
        clock: Optional[Callable[[], datetime]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = document_store
        self.seat_inventory = seat_inventory
        self.local_store = local_store
        self.operation_queue = operation_queue
        self.config = config
        self.payment_notifier = payment_notifier
        self.clock = clock or datetime.now
        self.rng = rng or random.Random()

    # Loading

    async def _load_train(self, train_id: str, mode: ConnectivityMode) -> TrainModel:
        if mode == ConnectivityMode.OFFLINE:
            train = self.local_store.get_train(train_id)
        else:
            train = await self.store.get_train(train_id)
        if train is None:
            raise TrainNotFound(train_id)
        return train

    async def _load_booking(self, booking_id: str, mode: ConnectivityMode) -> BookingModel:
        if mode == ConnectivityMode.OFFLINE:
            booking = self.local_store.get_booking(booking_id)
        else:
            booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    @asynccontextmanager
    async def _booking_lock(self, booking_id: str):
        lock_manager = self.seat_inventory.lock_manager
        async with lock_manager.lock_context(
            key_builder.build_key(KeyPrefix.BOOKING, booking_id),
            ttl_seconds=self.config.inventory_lock_ttl_seconds,
            timeout_seconds=self.config.inventory_lock_timeout_seconds,
        ) as lock:
            if not lock:
                raise BookingError(
                    f"Booking {booking_id} is being modified by another operation",
                    {"booking_id": booking_id},
                )
            yield lock

    # Effects

    async def _claim_reference(self, booking: BookingModel) -> BookingModel:
        """Make sure the booking's reference is unique, re-rolling it on collision."""
        reference = booking.booking_reference
        for _ in range(MAX_REFERENCE_ATTEMPTS):
            if await self.store.claim_booking_reference(reference, booking.booking_id):
                if reference != booking.booking_reference:
                    logger.info(f"Booking {booking.booking_id} reference changed to {reference} after collision")
                    booking = booking.model_copy(update={"booking_reference": reference})
                return booking
            reference = generate_booking_reference(self.clock(), self.config.booking_reference_prefix, self.rng)
        raise BookingError(
            f"Could not allocate a unique booking reference for {booking.booking_id}",
            {"booking_id": booking.booking_id},
        )

    async def _persist(self, booking: BookingModel) -> BookingModel:
        if booking.booking_reference:
            booking = await self._claim_reference(booking)
        await self.store.put_booking(booking)
        self.local_store.save_booking(booking)
        return booking

    def _update_local_seats(self, effect: UpdateLocalSeats) -> None:
        train = self.local_store.get_train(effect.train_id)
        if train is None:
            return
        updated, changed = apply_seat_status(train, effect.seat_numbers, effect.is_available)
        if changed:
            self.local_store.save_train(updated)

    async def _notify_payment(self, booking: BookingModel) -> None:
        if self.payment_notifier is None:
            return
        try:
            result = self.payment_notifier(booking)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Payment notification for booking {booking.booking_id} failed: {e}")

    async def _compensate(self, reserved: List[ReserveSeats], released: List[ReleaseSeats]) -> None:
        """
        Undo the seat changes of a plan that failed part way.

        Failures here are logged and do not stop the remaining steps; seats
        that could not be restored are left for ``repair_inventory``.
        """
        for effect in reserved:
            logger.warning(f"Rolling back seat hold {list(effect.seat_numbers)} on train {effect.train_id}")
            try:
                train = await self.seat_inventory.release(effect.train_id, effect.seat_numbers)
                self.local_store.save_train(train)
            except Exception as e:
                logger.error(
                    f"Could not roll back seat hold {list(effect.seat_numbers)} on train {effect.train_id}: {e}. "
                    f"Run repair_inventory for this train."
                )
        for effect in released:
            logger.warning(f"Restoring seat hold {list(effect.seat_numbers)} on train {effect.train_id}")
            try:
                train = await self.seat_inventory.reserve(effect.train_id, effect.seat_numbers)
                self.local_store.save_train(train)
            except Exception as e:
                logger.error(
                    f"Could not restore seat hold {list(effect.seat_numbers)} on train {effect.train_id}: {e}. "
                    f"Run repair_inventory for this train."
                )

    async def _execute(self, plan: BookingPlan) -> BookingModel:
        """
        Carry out a plan's effects in order.

        If an effect fails, seats reserved by this plan are released and
        seats it released are reserved again before the error is re-raised.
        """
        booking = plan.booking
        reserved: List[ReserveSeats] = []
        released: List[ReleaseSeats] = []
        try:
            for effect in plan.effects:
                if isinstance(effect, ReserveSeats):
                    train = await self.seat_inventory.reserve(effect.train_id, effect.seat_numbers)
                    reserved.append(effect)
                    self.local_store.save_train(train)
                elif isinstance(effect, PersistBooking):
                    booking = await self._persist(booking)
                elif isinstance(effect, ReleaseSeats):
                    train = await self.seat_inventory.release(effect.train_id, effect.seat_numbers)
                    released.append(effect)
                    self.local_store.save_train(train)
                elif isinstance(effect, CacheLocally):
                    self.local_store.save_booking(booking)
                elif isinstance(effect, UpdateLocalSeats):
                    self._update_local_seats(effect)
                elif isinstance(effect, EnqueueOperation):
                    self.operation_queue.enqueue(effect.type, effect.payload)
                elif isinstance(effect, NotifyPayment):
                    await self._notify_payment(booking)
        except Exception:
            await self._compensate(reserved, released)
            raise
        return booking

    # Lifecycle operations

    async def create_booking(
        self,
        user_id: str,
        train_id: str,
        journey_date: datetime,
        passengers: Sequence[PassengerModel],
        payment_method: PaymentMethod,
        mode: ConnectivityMode = ConnectivityMode.ONLINE,
        distance: Optional[float] = None,
        booking_id: Optional[str] = None,
        special_requests: Optional[str] = None,
    ) -> BookingModel:
        """
        Create a Pending booking and hold its seats.

        Online, the seats are reserved atomically on the server before the
        booking is written. Offline, the booking is validated against the
        cached train snapshot, kept locally and queued for sync.

        Raises:
            TrainNotFound: If the train is unknown (or not cached, offline)
            InvalidPassenger: If a passenger's seat or class is not valid
            NotEnoughSeats: If a class has fewer free seats than requested
            SeatUnavailable: If a requested seat is already held
        """
        mode = ConnectivityMode(mode)
        now = self.clock()
        train = await self._load_train(train_id, mode)

        plan = plan_booking(
            train,
            user_id=user_id,
            journey_date=journey_date,
            passengers=passengers,
            payment_method=payment_method,
            reference=generate_booking_reference(now, self.config.booking_reference_prefix, self.rng),
            now=now,
            mode=mode,
            distance=distance,
            distance_rate=self.config.distance_rate,
            booking_id=booking_id,
            special_requests=special_requests,
        )
        booking = await self._execute(plan)

        logger.info(
            f"Created {mode.value} booking {booking.booking_id} ({booking.booking_reference}) "
            f"for user {user_id} on train {train_id}: seats {booking.seat_numbers}, fare {booking.total_fare}"
        )
        return booking

    async def _mutate(
        self,
        booking_id: str,
        mode: ConnectivityMode,
        planner: Callable[[BookingModel], BookingPlan],
    ) -> BookingModel:
        mode = ConnectivityMode(mode)
        if mode == ConnectivityMode.OFFLINE:
            booking = await self._load_booking(booking_id, mode)
            return await self._execute(planner(booking))

        async with self._booking_lock(booking_id):
            booking = await self._load_booking(booking_id, mode)
            return await self._execute(planner(booking))

    async def cancel_booking(
        self,
        booking_id: str,
        reason: Optional[str],
        caller: CallerContext,
        mode: ConnectivityMode = ConnectivityMode.ONLINE,
        at: Optional[datetime] = None,
    ) -> BookingModel:
        """
        Cancel a booking, record the refund and release its seats.

        Args:
            at: Cancellation time, when the cancellation happened earlier
                (offline) and is being replayed; defaults to now

        Raises:
            BookingNotFound: If the booking does not exist
            Unauthorized: If the caller is neither the owner nor an admin
            InvalidStateTransition: If the booking is already Cancelled or Completed
            NotEnoughSeats: If the seats could not be released; the booking is left unchanged
        """
        def planner(booking: BookingModel) -> BookingPlan:
            authorize(booking, caller)
            return plan_cancellation(booking, reason, at or self.clock(), mode)

        booking = await self._mutate(booking_id, mode, planner)
        logger.info(
            f"Cancelled booking {booking_id} by {caller.user_id}: refund {booking.refund_amount}, "
            f"released seats {booking.seat_numbers}"
        )
        return booking

    async def process_payment(
        self,
        booking_id: str,
        payment_data: Dict[str, Any],
        mode: ConnectivityMode = ConnectivityMode.ONLINE,
    ) -> BookingModel:
        """
        Record a completed payment and confirm the booking.

        The payment notifier is called after the booking is stored; its
        failures are logged and do not undo the confirmation.
        """
        booking = await self._mutate(
            booking_id, mode, lambda b: plan_payment(b, payment_data, self.clock(), mode)
        )
        logger.info(f"Payment completed for booking {booking_id}, status {booking.status.value}")
        return booking

    async def update_booking_status(
        self,
        booking_id: str,
        status: BookingStatus,
        mode: ConnectivityMode = ConnectivityMode.ONLINE,
        reason: Optional[str] = None,
    ) -> BookingModel:
        """Administrative status change; a move to Cancelled also releases seats."""
        status = BookingStatus(status)
        booking = await self._mutate(
            booking_id, mode, lambda b: plan_status_update(b, status, self.clock(), mode, reason)
        )
        logger.info(f"Booking {booking_id} status updated to {status.value}")
        return booking

    async def delete_booking(self, booking_id: str, mode: ConnectivityMode = ConnectivityMode.ONLINE) -> bool:
        """
        Remove a booking document, releasing its seats if it still held them.

        Offline, the local copy is dropped and the deletion queued for sync.

        Returns:
            bool: False if the booking did not exist
        """
        if ConnectivityMode(mode) == ConnectivityMode.OFFLINE:
            booking = self.local_store.get_booking(booking_id)
            if booking is None:
                return False
            if booking.holds_seats:
                self._update_local_seats(UpdateLocalSeats(booking.train_id, tuple(booking.seat_numbers), True))
            self.local_store.discard_booking(booking_id)
            self.operation_queue.enqueue(
                SyncOperationType.DELETE_BOOKING,
                {"booking_id": booking_id, "user_id": booking.user_id},
            )
            logger.info(f"Deleted booking {booking_id} locally; deletion queued for sync")
            return True

        async with self._booking_lock(booking_id):
            booking = await self.store.get_booking(booking_id)
            if booking is None:
                self.local_store.discard_booking(booking_id)
                return False

            released = []
            if booking.holds_seats:
                released.append(ReleaseSeats(booking.train_id, tuple(booking.seat_numbers)))
                train = await self.seat_inventory.release(booking.train_id, booking.seat_numbers)
                self.local_store.save_train(train)
            try:
                await self.store.delete_booking(booking)
            except Exception:
                await self._compensate([], released)
                raise
            self.local_store.discard_booking(booking_id)

        logger.info(f"Deleted booking {booking_id}")
        return True

    # Sync entry points

    async def apply_remote_create(self, booking: BookingModel) -> Tuple[BookingModel, bool]:
        """
        Replay a booking created offline against the server.

        The booking id is the deduplication key: if the server already has
        the booking, nothing is changed.

        Returns:
            Tuple[BookingModel, bool]: (server booking, True if it was already applied)

        Raises:
            TrainNotFound: If the train no longer exists
            SyncConflict: If any of the booking's seats were taken in the meantime
        """
        async with self._booking_lock(booking.booking_id):
            existing = await self.store.get_booking(booking.booking_id)
            if existing is not None:
                logger.info(f"Booking {booking.booking_id} already on server; replay skipped")
                return existing, True

            try:
                train = await self.seat_inventory.reserve(booking.train_id, booking.seat_numbers)
            except SeatUnavailable as e:
                raise SyncConflict(
                    e.seat_numbers,
                    message=f"Seats taken while offline: {', '.join(e.seat_numbers)}",
                    train_id=booking.train_id,
                    booking_id=booking.booking_id,
                ) from e
            self.local_store.save_train(train)

            synced = booking.model_copy(update={
                "offline_sync_status": OfflineSyncStatus.SYNCED,
                "last_updated": self.clock(),
            })
            try:
                synced = await self._persist(synced)
            except Exception:
                logger.warning(f"Replay of booking {booking.booking_id} failed after reserving seats; releasing")
                await self._compensate([ReserveSeats(booking.train_id, tuple(booking.seat_numbers))], [])
                raise

        logger.info(f"Synced offline booking {synced.booking_id} ({synced.booking_reference})")
        return synced, False

    async def update_user_preferences(
        self,
        user_id: str,
        preferences: Dict[str, Any],
        mode: ConnectivityMode = ConnectivityMode.ONLINE,
    ) -> Dict[str, Any]:
        if ConnectivityMode(mode) == ConnectivityMode.OFFLINE:
            self.operation_queue.enqueue(
                SyncOperationType.UPDATE_USER_PREFERENCES,
                {"user_id": user_id, "preferences": preferences},
            )
            logger.info(f"Queued preference update for user {user_id}")
            return preferences

        await self.store.put_user_preferences(user_id, preferences)
        logger.info(f"Updated preferences for user {user_id}")
        return preferences

    async def repair_inventory(self, train_id: str) -> TrainModel:
        """Rebuild a train's seat flags from the bookings that still hold seats."""
        bookings = await self.store.get_train_bookings(train_id)
        held = {number for booking in bookings if booking.holds_seats for number in booking.seat_numbers}
        train = await self.seat_inventory.rebuild(train_id, held)
        self.local_store.save_train(train)
        return train

    # Queries

    async def get_booking(self, booking_id: str, mode: ConnectivityMode = ConnectivityMode.ONLINE) -> BookingModel:
        return await self._load_booking(booking_id, ConnectivityMode(mode))

    async def get_user_bookings(
        self, user_id: str, mode: ConnectivityMode = ConnectivityMode.ONLINE
    ) -> List[BookingModel]:
        """A user's bookings ordered by journey date."""
        if ConnectivityMode(mode) == ConnectivityMode.OFFLINE:
            return self.local_store.get_user_bookings(user_id)
        bookings = await self.store.get_user_bookings(user_id)
        return sorted(bookings, key=lambda b: b.journey_date)

    async def available_seats(
        self,
        train_id: str,
        train_class: TrainClass,
        mode: ConnectivityMode = ConnectivityMode.ONLINE,
    ) -> List[SeatModel]:
        if ConnectivityMode(mode) == ConnectivityMode.OFFLINE:
            train = await self._load_train(train_id, ConnectivityMode.OFFLINE)
            return train.available_seats(train_class)
        return await self.seat_inventory.available_seats(train_id, train_class)

    async def booking_statistics(self) -> Dict[str, Any]:
        """Booking counts and fare totals per status."""
        bookings = await self.store.get_all_bookings()
        by_status = {
            status.value: {"count": 0, "total_fare": 0.0}
            for status in BookingStatus
        }
        refunds = 0.0
        for booking in bookings:
            entry = by_status[booking.status.value]
            entry["count"] += 1
            entry["total_fare"] = round(entry["total_fare"] + booking.total_fare, 2)
            refunds += booking.refund_amount or 0.0

        revenue = sum(
            entry["total_fare"]
            for status, entry in by_status.items()
            if status != BookingStatus.CANCELLED.value
        )
        return {
            "total_bookings": len(bookings),
            "total_revenue": round(revenue, 2),
            "total_refunds": round(refunds, 2),
            "by_status": by_status,
        }
