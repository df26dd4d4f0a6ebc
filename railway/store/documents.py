"""
Document store backed by Valkey.

Trains, bookings and user preferences are stored as JSON documents keyed by
id. Bookings are additionally indexed by train and by user in Valkey sets so
that the inventory repair pass and the per-user listing do not need to scan
the keyspace.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Set, Type, TypeVar

from pydantic import BaseModel
from valkey.exceptions import ConnectionError, TimeoutError

from .client import ValkeyClient
from .config import ValkeyConnectionError, ValkeyTimeoutError
from .keys import KeyPrefix, key_builder
from ..models.train import TrainModel
from ..models.booking import BookingModel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class DocumentStore:
    """
    Persistence collaborator for the authoritative (server) copy of the data.

    Every call goes through ``ensure_connection()`` first so that a dropped
    connection is re-established before the command is sent. Connection and
    timeout failures surface as ``ValkeyConnectionError``/``ValkeyTimeoutError``.
    """

    def __init__(self, client: ValkeyClient):
        self.client = client

    async def _valkey(self):
        await self.client.ensure_connection()
        return self.client.client

    async def _get_document(self, key: str, model_cls: Type[ModelT]) -> Optional[ModelT]:
        valkey_client = await self._valkey()
        try:
            raw = valkey_client.get(key)
        except ConnectionError as e:
            raise ValkeyConnectionError(f"GET {key} failed: {e}") from e
        except TimeoutError as e:
            raise ValkeyTimeoutError(f"GET {key} timed out: {e}") from e

        if raw is None:
            return None
        return model_cls.model_validate_json(raw)

    async def _put_document(self, key: str, document: BaseModel) -> None:
        valkey_client = await self._valkey()
        try:
            valkey_client.set(key, document.model_dump_json())
        except ConnectionError as e:
            raise ValkeyConnectionError(f"SET {key} failed: {e}") from e
        except TimeoutError as e:
            raise ValkeyTimeoutError(f"SET {key} timed out: {e}") from e

    # Trains

    async def get_train(self, train_id: str) -> Optional[TrainModel]:
        return await self._get_document(key_builder.build_key(KeyPrefix.TRAIN, train_id), TrainModel)

    async def put_train(self, train: TrainModel) -> None:
        await self._put_document(key_builder.build_key(KeyPrefix.TRAIN, train.train_id), train)
        logger.debug(f"Stored train {train.train_id} (version {train.version})")

    # Bookings

    async def get_booking(self, booking_id: str) -> Optional[BookingModel]:
        return await self._get_document(key_builder.build_key(KeyPrefix.BOOKING, booking_id), BookingModel)

    async def put_booking(self, booking: BookingModel) -> None:
        """Store a booking document and keep its train/user indexes current."""
        await self._put_document(key_builder.build_key(KeyPrefix.BOOKING, booking.booking_id), booking)

        valkey_client = await self._valkey()
        valkey_client.sadd(key_builder.build_key(KeyPrefix.BOOKINGS_BY_TRAIN, booking.train_id), booking.booking_id)
        valkey_client.sadd(key_builder.build_key(KeyPrefix.BOOKINGS_BY_USER, booking.user_id), booking.booking_id)
        valkey_client.sadd(KeyPrefix.ALL_BOOKINGS.value, booking.booking_id)

    async def delete_booking(self, booking: BookingModel) -> None:
        valkey_client = await self._valkey()
        valkey_client.delete(key_builder.build_key(KeyPrefix.BOOKING, booking.booking_id))
        valkey_client.srem(key_builder.build_key(KeyPrefix.BOOKINGS_BY_TRAIN, booking.train_id), booking.booking_id)
        valkey_client.srem(key_builder.build_key(KeyPrefix.BOOKINGS_BY_USER, booking.user_id), booking.booking_id)
        valkey_client.srem(KeyPrefix.ALL_BOOKINGS.value, booking.booking_id)
        if booking.booking_reference:
            valkey_client.delete(key_builder.build_key(KeyPrefix.BOOKING_REFERENCE, booking.booking_reference))

    async def _members(self, key: str) -> Set[str]:
        valkey_client = await self._valkey()
        return set(valkey_client.smembers(key) or set())

    async def _bookings_from_ids(self, booking_ids: Set[str]) -> List[BookingModel]:
        bookings = []
        for booking_id in sorted(booking_ids):
            booking = await self.get_booking(booking_id)
            if booking is not None:
                bookings.append(booking)
        return bookings

    async def get_train_bookings(self, train_id: str) -> List[BookingModel]:
        ids = await self._members(key_builder.build_key(KeyPrefix.BOOKINGS_BY_TRAIN, train_id))
        return await self._bookings_from_ids(ids)

    async def get_user_bookings(self, user_id: str) -> List[BookingModel]:
        ids = await self._members(key_builder.build_key(KeyPrefix.BOOKINGS_BY_USER, user_id))
        return await self._bookings_from_ids(ids)

    async def get_all_bookings(self) -> List[BookingModel]:
        ids = await self._members(KeyPrefix.ALL_BOOKINGS.value)
        return await self._bookings_from_ids(ids)

    async def claim_booking_reference(self, reference: str, booking_id: str) -> bool:
        """
        Atomically claim a booking reference.

        Returns:
            bool: True if the reference was free (or already ours), False on collision
        """
        valkey_client = await self._valkey()
        key = key_builder.build_key(KeyPrefix.BOOKING_REFERENCE, reference)
        if valkey_client.set(key, booking_id, nx=True):
            return True
        return valkey_client.get(key) == booking_id

    async def release_booking_reference(self, reference: str) -> None:
        valkey_client = await self._valkey()
        valkey_client.delete(key_builder.build_key(KeyPrefix.BOOKING_REFERENCE, reference))

    # User preferences

    async def get_user_preferences(self, user_id: str) -> Dict[str, Any]:
        valkey_client = await self._valkey()
        raw = valkey_client.get(key_builder.build_key(KeyPrefix.USER_PREFS, user_id))
        return json.loads(raw) if raw else {}

    async def put_user_preferences(self, user_id: str, preferences: Dict[str, Any]) -> None:
        valkey_client = await self._valkey()
        valkey_client.set(
            key_builder.build_key(KeyPrefix.USER_PREFS, user_id),
            json.dumps(preferences, sort_keys=True, default=str),
        )
