"""
Key naming conventions for the Valkey document store.

All documents, secondary indexes and locks are namespaced by a prefix so
that the store can share a Valkey database with other applications.
"""

from typing import Any, Union
from enum import Enum


class KeyPrefix(str, Enum):
    """Standard key prefixes for the data kept in Valkey."""

    # Documents
    TRAIN = "train:doc"
    BOOKING = "booking:doc"
    USER_PREFS = "user:prefs"

    # Secondary indexes (Valkey sets)
    BOOKINGS_BY_TRAIN = "booking:train"
    BOOKINGS_BY_USER = "booking:user"
    ALL_BOOKINGS = "booking:all"

    # Booking reference uniqueness claims
    BOOKING_REFERENCE = "booking:ref"

    # Distributed locks
    LOCK = "lock"
    TRAIN_INVENTORY = "train:inventory"


class KeyBuilder:
    """
    Builder for consistent store keys.

    Example:
        build_key(KeyPrefix.TRAIN, "12951")
        # Returns: "train:doc:12951"
    """

    @staticmethod
    def build_key(prefix: Union[KeyPrefix, str], *parts: Any, **params: Any) -> str:
        """
        Build a key from a prefix, positional parts and keyword parameters.

        None parts are skipped; keyword parameters are sorted so that the
        same parameters always produce the same key.
        """
        prefix_str = prefix.value if isinstance(prefix, KeyPrefix) else str(prefix)
        key_parts = [prefix_str]

        for part in parts:
            if part is not None:
                key_parts.append(str(part))

        for key, value in sorted(params.items()):
            if value is not None:
                key_parts.append(f"{key}={value}")

        return ":".join(key_parts)

    @staticmethod
    def build_pattern(prefix: Union[KeyPrefix, str], *parts: str) -> str:
        """Build a SCAN pattern, e.g. ``build_pattern(KeyPrefix.TRAIN, "*")``."""
        prefix_str = prefix.value if isinstance(prefix, KeyPrefix) else str(prefix)
        return ":".join([prefix_str, *parts])


key_builder = KeyBuilder()
