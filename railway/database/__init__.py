"""
Local offline store package.

This package provides the SQLAlchemy models and SQLite configuration for
the client-side cache of trains and bookings and for the offline
operation queue.
"""

from .models import (
    Base,
    CachedTrain,
    CachedBooking,
    SyncOperationRecord,
    create_all_tables,
    drop_all_tables,
)

from .config import (
    DatabaseConfig,
    get_database_config,
)

from .local_store import LocalStore

__all__ = [
    # Models
    'Base',
    'CachedTrain',
    'CachedBooking',
    'SyncOperationRecord',
    'create_all_tables',
    'drop_all_tables',

    # Configuration
    'DatabaseConfig',
    'get_database_config',

    # Store
    'LocalStore',
]
