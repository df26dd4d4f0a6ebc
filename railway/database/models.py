"""
SQLAlchemy models for the local offline store.

The offline store keeps snapshots of trains and bookings the client has seen
and the queue of mutations recorded while disconnected:
- CachedTrain: last known train document, used to validate offline bookings
- CachedBooking: local copy of a booking, authoritative until synced
- SyncOperationRecord: queued offline mutation; the autoincrement id is the replay order
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, Text, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CachedTrain(Base):
    """Train document snapshot stored as JSON."""
    __tablename__ = 'cached_train'

    train_id = Column(String(64), primary_key=True)
    number = Column(String(16), nullable=False, index=True)
    document = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self):
        return f"<CachedTrain(id='{self.train_id}', number='{self.number}')>"


class CachedBooking(Base):
    """Local booking copy stored as JSON with a few query columns."""
    __tablename__ = 'cached_booking'

    booking_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    train_id = Column(String(64), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    offline_sync_status = Column(String(16), nullable=False)
    document = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    def __repr__(self):
        return (f"<CachedBooking(id='{self.booking_id}', status='{self.status}', "
                f"sync='{self.offline_sync_status}')>")


class SyncOperationRecord(Base):
    """Offline mutation waiting to be replayed against the server."""
    __tablename__ = 'sync_operation'

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(32), nullable=False)
    payload = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)
    status = Column(String(16), nullable=False, default="Pending")
    error = Column(Text, nullable=True)

    def __repr__(self):
        return f"<SyncOperationRecord(id={self.id}, type='{self.type}', status='{self.status}')>"


Index('idx_sync_operation_status_id', SyncOperationRecord.status, SyncOperationRecord.id)


def create_all_tables(engine):
    """Create all offline store tables using the provided engine."""
    Base.metadata.create_all(bind=engine)


def drop_all_tables(engine):
    """Drop all offline store tables using the provided engine."""
    Base.metadata.drop_all(bind=engine)
