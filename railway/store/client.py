"""
Connection to the authoritative Valkey store.

``DocumentStore`` and ``DistributedLockManager`` call ``ensure_connection()``
before every command and then use the ``client`` property. The sync
scheduler uses ``is_reachable()`` to decide whether the device is online.
"""

import asyncio
import logging
import time
from typing import Optional

import valkey
from valkey.connection import ConnectionPool
from valkey.exceptions import ConnectionError, TimeoutError

from .config import ValkeyConfig, ValkeyConnectionError

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0


class ValkeyClient:
    """Pooled Valkey connection with reconnect and backoff."""

    def __init__(self, config: Optional[ValkeyConfig] = None):
        self.config = config or ValkeyConfig()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[valkey.Valkey] = None
        self._last_ping = 0.0

    def _ping(self) -> None:
        try:
            if not self._client.ping():
                raise ValkeyConnectionError("PING returned no reply")
        except (ConnectionError, TimeoutError, OSError) as e:
            raise ValkeyConnectionError(f"PING to {self.config} failed: {e}") from e
        self._last_ping = time.monotonic()

    async def connect(self) -> None:
        """
        Open the pool and ping the server, backing off between attempts.

        Raises:
            ValkeyConnectionError: If every attempt failed
        """
        for attempt in range(1, self.config.connect_attempts + 1):
            self._pool = ConnectionPool(**self.config.to_pool_kwargs())
            self._client = valkey.Valkey(connection_pool=self._pool)
            try:
                self._ping()
                logger.info(f"Connected to {self.config}")
                return
            except ValkeyConnectionError as e:
                self._drop()
                if attempt == self.config.connect_attempts:
                    logger.error(f"Giving up on {self.config} after {attempt} attempts")
                    raise
                delay = min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS)
                logger.warning(f"Connection attempt {attempt} failed ({e}); retrying in {delay}s")
                await asyncio.sleep(delay)

    def _drop(self) -> None:
        if self._pool is not None:
            self._pool.disconnect()
        self._pool = None
        self._client = None

    async def disconnect(self) -> None:
        self._drop()
        logger.info(f"Disconnected from {self.config}")

    async def ensure_connection(self) -> None:
        """
        Reconnect if there is no connection or the last ping has gone stale.

        Raises:
            ValkeyConnectionError: If the server cannot be reached
        """
        if self._client is not None:
            if time.monotonic() - self._last_ping < self.config.liveness_interval:
                return
            try:
                self._ping()
                return
            except ValkeyConnectionError as e:
                logger.warning(f"Lost connection, reconnecting: {e}")
                self._drop()
        await self.connect()

    async def is_reachable(self) -> bool:
        """Connectivity probe: True if the store answers, without raising."""
        try:
            await self.ensure_connection()
            return True
        except ValkeyConnectionError:
            return False

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> valkey.Valkey:
        if self._client is None:
            raise ValkeyConnectionError("Not connected. Call connect() first.")
        return self._client

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
