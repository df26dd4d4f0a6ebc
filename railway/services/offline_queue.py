"""
Offline operation queue.

Mutations made while disconnected are appended to the ``sync_operation``
table of the local SQLite store and replayed later by the sync reconciler.
The autoincrement id defines replay order. Failed operations stay in the
table with their error until the user retries or discards them.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..database.config import DatabaseConfig
from ..database.models import SyncOperationRecord
from ..models.enums import SyncOperationType, SyncStatus
from ..models.sync import SyncOperationModel

logger = logging.getLogger(__name__)


def _to_model(record: SyncOperationRecord) -> SyncOperationModel:
    return SyncOperationModel(
        id=record.id,
        type=SyncOperationType(record.type),
        payload=json.loads(record.payload),
        timestamp=record.timestamp,
        status=SyncStatus(record.status),
        error=record.error,
    )


class OfflineOperationQueue:
    """Durable FIFO of offline mutations backed by SQLAlchemy."""

    def __init__(self, database_config: DatabaseConfig):
        self.db = database_config
        self.db.initialize()

    def enqueue(self, operation_type: SyncOperationType, payload: Dict[str, Any]) -> int:
        """
        Append an operation with status Pending.

        Returns:
            int: The operation id, which is also its position in replay order
        """
        with self.db.get_session_context() as session:
            record = SyncOperationRecord(
                type=SyncOperationType(operation_type).value,
                payload=json.dumps(payload, default=str),
                timestamp=datetime.now(),
                status=SyncStatus.PENDING.value,
            )
            session.add(record)
            session.flush()
            operation_id = record.id

        logger.info(f"Queued offline operation {operation_id} ({SyncOperationType(operation_type).value})")
        return operation_id

    def _by_status(self, status: SyncStatus) -> List[SyncOperationModel]:
        with self.db.get_session_context() as session:
            records = (
                session.query(SyncOperationRecord)
                .filter(SyncOperationRecord.status == status.value)
                .order_by(SyncOperationRecord.id)
                .all()
            )
            return [_to_model(record) for record in records]

    def pending(self) -> List[SyncOperationModel]:
        """Pending operations in replay order."""
        return self._by_status(SyncStatus.PENDING)

    def failed(self) -> List[SyncOperationModel]:
        """Operations that need the user's attention."""
        return self._by_status(SyncStatus.FAILED)

    def get(self, operation_id: int) -> Optional[SyncOperationModel]:
        with self.db.get_session_context() as session:
            record = session.get(SyncOperationRecord, operation_id)
            return _to_model(record) if record else None

    def count(self, status: Optional[SyncStatus] = None) -> int:
        with self.db.get_session_context() as session:
            query = session.query(SyncOperationRecord)
            if status is not None:
                query = query.filter(SyncOperationRecord.status == SyncStatus(status).value)
            return query.count()

    def dequeue_completed(self, operation_id: int) -> bool:
        """Remove an operation that has been applied on the server."""
        with self.db.get_session_context() as session:
            record = session.get(SyncOperationRecord, operation_id)
            if record is None:
                return False
            session.delete(record)

        logger.debug(f"Dequeued completed operation {operation_id}")
        return True

    def mark_failed(self, operation_id: int, error: str) -> bool:
        """Keep the operation for review; it is not picked up by later sync passes."""
        with self.db.get_session_context() as session:
            record = session.get(SyncOperationRecord, operation_id)
            if record is None:
                return False
            record.status = SyncStatus.FAILED.value
            record.error = error

        logger.warning(f"Offline operation {operation_id} failed: {error}")
        return True

    def retry(self, operation_id: int, payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Put a Failed operation back in the queue, e.g. after the user re-picked seats.

        The operation keeps its id and therefore its original place in replay order.
        """
        with self.db.get_session_context() as session:
            record = session.get(SyncOperationRecord, operation_id)
            if record is None or record.status != SyncStatus.FAILED.value:
                return False
            record.status = SyncStatus.PENDING.value
            record.error = None
            if payload is not None:
                record.payload = json.dumps(payload, default=str)

        logger.info(f"Offline operation {operation_id} re-queued")
        return True

    def discard(self, operation_id: int) -> bool:
        """Drop a Failed operation the user chose not to resolve."""
        with self.db.get_session_context() as session:
            record = session.get(SyncOperationRecord, operation_id)
            if record is None or record.status != SyncStatus.FAILED.value:
                return False
            session.delete(record)

        logger.info(f"Offline operation {operation_id} discarded")
        return True

    def clear(self) -> int:
        with self.db.get_session_context() as session:
            removed = session.query(SyncOperationRecord).delete()
        logger.info(f"Cleared {removed} offline operations")
        return removed
