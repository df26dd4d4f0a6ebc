"""
Local cache of trains and bookings for offline operation.

While disconnected, bookings are validated against the last train snapshot
the client saw and written here instead of the server. Once a booking has
been synced the server copy is authoritative and the local one can be
refreshed or discarded.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .config import DatabaseConfig
from .models import CachedTrain, CachedBooking
from ..models.booking import BookingModel
from ..models.train import TrainModel
from ..models.enums import OfflineSyncStatus

logger = logging.getLogger(__name__)


class LocalStore:
    """Train and booking snapshots kept in the SQLite offline store."""

    def __init__(self, database_config: DatabaseConfig):
        self.db = database_config
        self.db.initialize()

    # Trains

    def save_train(self, train: TrainModel) -> None:
        with self.db.get_session_context() as session:
            session.merge(CachedTrain(
                train_id=train.train_id,
                number=train.number,
                document=train.model_dump_json(),
                updated_at=datetime.now(),
            ))
        logger.debug(f"Cached train {train.train_id} locally")

    def get_train(self, train_id: str) -> Optional[TrainModel]:
        with self.db.get_session_context() as session:
            row = session.get(CachedTrain, train_id)
            if row is None:
                return None
            return TrainModel.model_validate_json(row.document)

    # Bookings

    def save_booking(self, booking: BookingModel) -> None:
        with self.db.get_session_context() as session:
            session.merge(CachedBooking(
                booking_id=booking.booking_id,
                user_id=booking.user_id,
                train_id=booking.train_id,
                status=booking.status.value,
                offline_sync_status=booking.offline_sync_status.value,
                document=booking.model_dump_json(),
                updated_at=datetime.now(),
            ))
        logger.debug(f"Cached booking {booking.booking_id} locally ({booking.status.value})")

    def get_booking(self, booking_id: str) -> Optional[BookingModel]:
        with self.db.get_session_context() as session:
            row = session.get(CachedBooking, booking_id)
            if row is None:
                return None
            return BookingModel.model_validate_json(row.document)

    def get_user_bookings(self, user_id: str) -> List[BookingModel]:
        with self.db.get_session_context() as session:
            rows = session.query(CachedBooking).filter(CachedBooking.user_id == user_id).all()
            bookings = [BookingModel.model_validate_json(row.document) for row in rows]
        return sorted(bookings, key=lambda b: b.journey_date)

    def mark_booking_sync_status(self, booking_id: str, status: OfflineSyncStatus) -> Optional[BookingModel]:
        """Record the sync outcome of a locally cached booking, if present."""
        booking = self.get_booking(booking_id)
        if booking is None:
            return None
        updated = booking.model_copy(update={
            "offline_sync_status": status,
            "last_updated": datetime.now(),
        })
        self.save_booking(updated)
        return updated

    def discard_booking(self, booking_id: str) -> bool:
        with self.db.get_session_context() as session:
            row = session.get(CachedBooking, booking_id)
            if row is None:
                return False
            session.delete(row)
        return True

    def clear(self) -> None:
        """Remove every cached train and booking."""
        with self.db.get_session_context() as session:
            session.query(CachedBooking).delete()
            session.query(CachedTrain).delete()
        logger.info("Cleared local train and booking cache")
