"""
Seat inventory with atomic batch reservation.

Every reserve/release runs as one load-check-write critical section under a
per-train distributed lock:
- reserve is all-or-nothing across the requested seats
- release is idempotent
- concurrent reservations for overlapping seats on the same train have
  exactly one winner; the loser gets SeatUnavailable

The decision logic lives in the pure helpers ``seat_conflicts`` and
``apply_seat_status`` so it can be exercised without a store.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import Dict, Any, Iterable, List, Optional, Set, Tuple

from ..errors import TrainNotFound, SeatNotFound, SeatUnavailable, NotEnoughSeats
from ..models.enums import TrainClass
from ..models.train import SeatModel, TrainModel
from ..store.documents import DocumentStore
from ..store.keys import KeyPrefix, key_builder
from .lock_manager import DistributedLockManager

logger = logging.getLogger(__name__)


def seat_conflicts(train: TrainModel, seat_numbers: Iterable[str]) -> Tuple[Set[str], Set[str]]:
    """
    Split requested seats into those the train does not have and those already held.

    Returns:
        Tuple[Set[str], Set[str]]: (unknown seat numbers, unavailable seat numbers)
    """
    seats = {seat.number: seat for seat in train.seats}
    unknown = set()
    taken = set()
    for number in seat_numbers:
        seat = seats.get(number)
        if seat is None:
            unknown.add(number)
        elif not seat.is_available:
            taken.add(number)
    return unknown, taken


def apply_seat_status(
    train: TrainModel,
    seat_numbers: Iterable[str],
    is_available: bool,
    now: Optional[datetime] = None,
) -> Tuple[TrainModel, List[str]]:
    """
    Return a copy of the train with the given seats set to ``is_available``.

    Unknown seats and seats already in the target state are left alone.

    Returns:
        Tuple[TrainModel, List[str]]: (updated train, seat numbers that changed)
    """
    wanted = set(seat_numbers)
    changed = []
    seats = []
    for seat in train.seats:
        if seat.number in wanted and seat.is_available != is_available:
            seats.append(seat.model_copy(update={"is_available": is_available}))
            changed.append(seat.number)
        else:
            seats.append(seat)

    if not changed:
        return train, changed

    updated = train.model_copy(update={
        "seats": seats,
        "version": train.version + 1,
        "last_updated": now or datetime.now(),
    })
    return updated, changed


class SeatInventory:
    """
    Per-train seat availability backed by the document store.

    Locks are held only for the reserve/release critical section, never
    across booking persistence.
    """

    def __init__(
        self,
        store: DocumentStore,
        lock_manager: DistributedLockManager,
        lock_ttl_seconds: int = 30,
        lock_timeout_seconds: float = 5.0,
    ):
        self.store = store
        self.lock_manager = lock_manager
        self.lock_ttl_seconds = lock_ttl_seconds
        self.lock_timeout_seconds = lock_timeout_seconds

    def _lock_resource(self, train_id: str) -> str:
        return key_builder.build_key(KeyPrefix.TRAIN_INVENTORY, train_id)

    async def _load_train(self, train_id: str) -> TrainModel:
        train = await self.store.get_train(train_id)
        if train is None:
            raise TrainNotFound(train_id)
        return train

    async def available_seats(self, train_id: str, train_class: TrainClass) -> List[SeatModel]:
        """
        Seats of a class that are currently free, in inventory order.

        Raises:
            TrainNotFound: If the train does not exist
        """
        train = await self._load_train(train_id)
        return train.available_seats(train_class)

    async def reserve(self, train_id: str, seat_numbers: Iterable[str]) -> TrainModel:
        """
        Mark every requested seat unavailable, or none of them.

        Raises:
            TrainNotFound: If the train does not exist
            SeatNotFound: If any seat number is not on the train
            SeatUnavailable: If any requested seat is already held
            NotEnoughSeats: If the train's inventory lock could not be taken in time
        """
        requested = set(seat_numbers)

        async with self.lock_manager.lock_context(
            self._lock_resource(train_id),
            ttl_seconds=self.lock_ttl_seconds,
            timeout_seconds=self.lock_timeout_seconds,
        ) as lock:
            if not lock:
                logger.warning(f"Inventory lock for train {train_id} not acquired; rejecting reservation")
                raise NotEnoughSeats(
                    requested,
                    message=f"Could not reserve seats on train {train_id}: inventory busy",
                    train_id=train_id,
                )

            train = await self._load_train(train_id)
            unknown, taken = seat_conflicts(train, requested)
            if unknown:
                raise SeatNotFound(train_id, unknown)
            if taken:
                logger.info(f"Reservation on train {train_id} rejected, seats taken: {sorted(taken)}")
                raise SeatUnavailable(taken, train_id=train_id)

            updated, changed = apply_seat_status(train, requested, is_available=False)
            await self.store.put_train(updated)

        logger.info(f"Reserved seats {sorted(changed)} on train {train_id} (version {updated.version})")
        return updated

    async def release(self, train_id: str, seat_numbers: Iterable[str]) -> TrainModel:
        """
        Mark seats available again. Already-free and unknown seats are ignored.

        Raises:
            TrainNotFound: If the train does not exist
            NotEnoughSeats: If the train's inventory lock could not be taken in time
        """
        requested = set(seat_numbers)

        async with self.lock_manager.lock_context(
            self._lock_resource(train_id),
            ttl_seconds=self.lock_ttl_seconds,
            timeout_seconds=self.lock_timeout_seconds,
        ) as lock:
            if not lock:
                raise NotEnoughSeats(
                    requested,
                    message=f"Could not release seats on train {train_id}: inventory busy",
                    train_id=train_id,
                )

            train = await self._load_train(train_id)
            updated, changed = apply_seat_status(train, requested, is_available=True)
            if changed:
                await self.store.put_train(updated)

        if changed:
            logger.info(f"Released seats {sorted(changed)} on train {train_id} (version {updated.version})")
        else:
            logger.debug(f"Release on train {train_id} was a no-op for {sorted(requested)}")
        return updated

    async def rebuild(self, train_id: str, held_seat_numbers: Iterable[str]) -> TrainModel:
        """
        Set every seat's availability from the set of seats held by live bookings.

        Used to repair the inventory after a crash between a booking write and
        the matching seat write.
        """
        held = set(held_seat_numbers)

        async with self.lock_manager.lock_context(
            self._lock_resource(train_id),
            ttl_seconds=self.lock_ttl_seconds,
            timeout_seconds=self.lock_timeout_seconds,
        ) as lock:
            if not lock:
                raise NotEnoughSeats(held, message=f"Inventory busy on train {train_id}", train_id=train_id)

            train = await self._load_train(train_id)
            free = {seat.number for seat in train.seats} - held
            updated, now_held = apply_seat_status(train, held, is_available=False)
            updated, now_free = apply_seat_status(updated, free, is_available=True)
            if now_held or now_free:
                await self.store.put_train(updated)
                logger.warning(
                    f"Rebuilt inventory for train {train_id}: "
                    f"held {sorted(now_held)}, freed {sorted(now_free)}"
                )

        return updated

    async def statistics(self, train_id: str) -> Dict[str, Any]:
        """Seat counts for a train, overall and per class."""
        train = await self._load_train(train_id)
        total = Counter(seat.train_class.value for seat in train.seats)
        available = Counter(seat.train_class.value for seat in train.seats if seat.is_available)
        by_class = {
            train_class: {
                "total": total[train_class],
                "available": available[train_class],
                "occupied": total[train_class] - available[train_class],
            }
            for train_class in total
        }
        total_seats = len(train.seats)
        available_seats = sum(available.values())
        return {
            "train_id": train_id,
            "total_seats": total_seats,
            "available_seats": available_seats,
            "occupied_seats": total_seats - available_seats,
            "utilization_percentage": round((total_seats - available_seats) / total_seats * 100, 2) if total_seats else 0,
            "by_class": by_class,
            "version": train.version,
        }
