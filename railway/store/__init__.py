"""
Authoritative document store for the railway booking core.

This package contains the Valkey client configuration, key naming
conventions, and the document store used for trains, bookings and
user preferences.
"""

from .config import ValkeyConfig, ValkeyConnectionError, ValkeyTimeoutError
from .client import ValkeyClient
from .keys import KeyPrefix, KeyBuilder, key_builder
from .documents import DocumentStore

__all__ = [
    # Configuration
    "ValkeyConfig",
    "ValkeyConnectionError",
    "ValkeyTimeoutError",

    # Client
    "ValkeyClient",

    # Keys
    "KeyPrefix",
    "KeyBuilder",
    "key_builder",

    # Documents
    "DocumentStore",
]
