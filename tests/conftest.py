"""
Shared fixtures for the booking core tests.

The authoritative store runs on an in-process mock of the Valkey commands
the store and lock manager use; the offline store is in-memory SQLite.
"""

import asyncio
import random
from datetime import datetime

import pytest
import pytest_asyncio

from railway.database.config import DatabaseConfig
from railway.database.local_store import LocalStore
from railway.models.booking import PassengerModel
from railway.models.enums import Gender, SeatType, TrainClass
from railway.models.train import SeatModel, StationModel, ScheduleStopModel, TrainModel
from railway.services.booking_service import BookingService
from railway.services.lock_manager import DistributedLockManager
from railway.services.offline_queue import OfflineOperationQueue
from railway.services.seat_inventory import SeatInventory
from railway.store.documents import DocumentStore
from railway.utils.config import RailwayConfig

FIXED_NOW = datetime(2025, 7, 1, 12, 0, 0)


class MockValkeyClient:
    """Mock Valkey client for testing."""

    def __init__(self):
        self.data = {}
        self.sets = {}
        self.client = self
        self.commands = []

    async def ensure_connection(self):
        """Yield to the event loop like a real round trip would."""
        await asyncio.sleep(0)

    async def is_reachable(self):
        return True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    def ping(self):
        return True

    def get(self, key):
        """Mock GET operation."""
        self.commands.append(("get", key))
        return self.data.get(key)

    def set(self, key, value, nx=False, ex=None):
        """Mock SET operation."""
        self.commands.append(("set", key))
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True

    def delete(self, *keys):
        """Mock DEL operation."""
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    def sadd(self, key, *members):
        members_set = self.sets.setdefault(key, set())
        added = len(set(members) - members_set)
        members_set.update(members)
        return added

    def srem(self, key, *members):
        members_set = self.sets.get(key, set())
        removed = len(members_set & set(members))
        members_set.difference_update(members)
        return removed

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def eval(self, script, num_keys, *args):
        """Mock EVAL operation for the lock release script."""
        if "get" in script and "del" in script:
            key, expected_value = args[0], args[1]
            if self.data.get(key) == expected_value:
                self.data.pop(key, None)
                return 1
            return 0
        return 0


class SequenceRng:
    """Random source returning preset values, for deterministic booking references."""

    def __init__(self, values):
        self.values = list(values)

    def randrange(self, stop):
        return self.values.pop(0) % stop


def make_passenger(name, seat_number, seat_class=TrainClass.FIRST_CLASS, age=30):
    return PassengerModel(
        name=name,
        age=age,
        gender=Gender.OTHER,
        seat_number=seat_number,
        seat_class=seat_class,
    )


def make_train(train_id="T1"):
    """Train with four First Class seats (A01-A04) and four Second Class seats (B01-B04)."""
    source = StationModel(name="New Delhi", code="NDLS")
    destination = StationModel(name="Jaipur", code="JP")
    seat_types = [SeatType.WINDOW, SeatType.AISLE, SeatType.AISLE, SeatType.WINDOW]
    seats = [
        SeatModel(number=f"A0{i}", train_class=TrainClass.FIRST_CLASS, seat_type=seat_types[i - 1])
        for i in range(1, 5)
    ] + [
        SeatModel(number=f"B0{i}", train_class=TrainClass.SECOND_CLASS, seat_type=seat_types[i - 1])
        for i in range(1, 5)
    ]
    return TrainModel(
        train_id=train_id,
        number="12015",
        name="Ajmer Shatabdi",
        source=source,
        destination=destination,
        schedule=[
            ScheduleStopModel(station=source, arrival_time="06:00", departure_time="06:10", distance=0),
            ScheduleStopModel(
                station=StationModel(name="Gurgaon", code="GGN"),
                arrival_time="06:40", departure_time="06:42", distance=32,
            ),
            ScheduleStopModel(station=destination, arrival_time="10:40", departure_time="10:40", distance=215),
        ],
        classes=[TrainClass.FIRST_CLASS, TrainClass.SECOND_CLASS],
        fare={TrainClass.FIRST_CLASS: 150.0, TrainClass.SECOND_CLASS: 80.0},
        seats=seats,
        last_updated=FIXED_NOW,
    )


@pytest.fixture
def mock_valkey():
    return MockValkeyClient()


@pytest.fixture
def document_store(mock_valkey):
    return DocumentStore(mock_valkey)


@pytest.fixture
def lock_manager(mock_valkey):
    return DistributedLockManager(mock_valkey)


@pytest.fixture
def seat_inventory(document_store, lock_manager):
    return SeatInventory(document_store, lock_manager, lock_ttl_seconds=10, lock_timeout_seconds=1.0)


@pytest.fixture
def database_config():
    config = DatabaseConfig(database_url="sqlite:///:memory:")
    yield config
    config.close()


@pytest.fixture
def local_store(database_config):
    return LocalStore(database_config)


@pytest.fixture
def operation_queue(database_config):
    return OfflineOperationQueue(database_config)


@pytest.fixture
def railway_config():
    return RailwayConfig(
        local_database_url="sqlite:///:memory:",
        inventory_lock_timeout_seconds=1.0,
        inventory_lock_ttl_seconds=10,
    )


@pytest.fixture
def booking_service(document_store, seat_inventory, local_store, operation_queue, railway_config):
    return BookingService(
        document_store=document_store,
        seat_inventory=seat_inventory,
        local_store=local_store,
        operation_queue=operation_queue,
        config=railway_config,
        clock=lambda: FIXED_NOW,
        rng=random.Random(7),
    )


@pytest.fixture
def train():
    return make_train()


@pytest_asyncio.fixture
async def stored_train(document_store, local_store, train):
    """The sample train on the server and in the local cache."""
    await document_store.put_train(train)
    local_store.save_train(train)
    return train
