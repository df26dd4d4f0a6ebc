"""
Distributed lock manager for seat inventory serialization.

This module implements distributed locking using Valkey SET with NX and EX
options. The seat inventory takes one lock per train around its
load-check-write critical section, so reservations for the same train are
linearizable while different trains proceed in parallel.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from contextlib import asynccontextmanager

from valkey.exceptions import ConnectionError, TimeoutError

from ..store.client import ValkeyClient
from ..store.keys import KeyPrefix, key_builder

logger = logging.getLogger(__name__)

# Deletes the key only if it still holds our token.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


@dataclass
class LockInfo:
    """Information about a held distributed lock."""
    lock_key: str
    lock_value: str
    acquired_at: datetime
    expires_at: datetime
    ttl_seconds: int
    owner_id: str

    @property
    def is_expired(self) -> bool:
        return datetime.now() > self.expires_at

    @property
    def remaining_ttl_seconds(self) -> float:
        remaining = (self.expires_at - datetime.now()).total_seconds()
        return max(0.0, remaining)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lock_key": self.lock_key,
            "lock_value": self.lock_value,
            "acquired_at": self.acquired_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "ttl_seconds": self.ttl_seconds,
            "owner_id": self.owner_id,
            "is_expired": self.is_expired,
            "remaining_ttl_seconds": self.remaining_ttl_seconds
        }


@dataclass
class LockContentionStats:
    """Counters for lock acquisition outcomes."""
    acquired: int = 0
    timed_out: int = 0
    contended: int = 0
    total_wait_time_ms: float = 0.0
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def avg_wait_time_ms(self) -> float:
        attempts = self.acquired + self.timed_out
        return self.total_wait_time_ms / attempts if attempts else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "acquired": self.acquired,
            "timed_out": self.timed_out,
            "contended": self.contended,
            "avg_wait_time_ms": self.avg_wait_time_ms,
            "started_at": self.started_at.isoformat(),
        }


class DistributedLockManager:
    """
    Distributed lock manager using Valkey SET with NX and EX options.

    Features:
    - Atomic lock acquisition with TTL
    - Owner-checked release through a Lua compare-and-delete
    - Deadlock prevention with automatic expiration
    - Contention statistics
    """

    def __init__(self, client: ValkeyClient):
        """
        Initialize distributed lock manager.

        Args:
            client: ValkeyClient used for lock commands
        """
        self.client = client
        self.instance_id = str(uuid.uuid4())[:8]
        self.active_locks: Dict[str, LockInfo] = {}
        self.stats = LockContentionStats()

        self.default_lock_ttl = 30
        self.max_lock_ttl = 300
        self.lock_retry_delay = 0.01

        logger.info(f"DistributedLockManager initialized with instance ID: {self.instance_id}")

    async def acquire_lock(
        self,
        resource_key: str,
        ttl_seconds: Optional[int] = None,
        timeout_seconds: float = 5.0,
        retry_delay: Optional[float] = None
    ) -> Optional[LockInfo]:
        """
        Acquire a distributed lock for the given resource.

        Args:
            resource_key: Resource identifier to lock
            ttl_seconds: Lock TTL in seconds (default: 30)
            timeout_seconds: Maximum time to wait for lock acquisition
            retry_delay: Delay between retry attempts

        Returns:
            LockInfo if lock acquired, None on timeout
        """
        ttl = min(ttl_seconds or self.default_lock_ttl, self.max_lock_ttl)
        retry_delay = retry_delay or self.lock_retry_delay

        lock_key = key_builder.build_key(KeyPrefix.LOCK, resource_key)
        lock_value = f"{self.instance_id}:{uuid.uuid4()}"

        start_time = time.time()
        deadline = start_time + timeout_seconds
        attempts = 0

        while True:
            attempts += 1
            try:
                await self.client.ensure_connection()
                result = self.client.client.set(lock_key, lock_value, nx=True, ex=ttl)
            except (ConnectionError, TimeoutError) as e:
                logger.warning(f"Error acquiring lock {lock_key}: {e}")
                result = None

            if result:
                acquired_at = datetime.now()
                lock_info = LockInfo(
                    lock_key=lock_key,
                    lock_value=lock_value,
                    acquired_at=acquired_at,
                    expires_at=acquired_at + timedelta(seconds=ttl),
                    ttl_seconds=ttl,
                    owner_id=self.instance_id
                )
                self.active_locks[lock_key] = lock_info

                wait_time_ms = (time.time() - start_time) * 1000
                self.stats.acquired += 1
                self.stats.total_wait_time_ms += wait_time_ms
                if attempts > 1:
                    self.stats.contended += 1
                logger.debug(f"Lock acquired: {lock_key} (attempts: {attempts}, wait: {wait_time_ms:.1f}ms)")
                return lock_info

            if time.time() + retry_delay > deadline:
                break
            await asyncio.sleep(retry_delay)

        wait_time_ms = (time.time() - start_time) * 1000
        self.stats.timed_out += 1
        self.stats.total_wait_time_ms += wait_time_ms
        logger.warning(f"Failed to acquire lock: {lock_key} (attempts: {attempts}, wait: {wait_time_ms:.1f}ms)")
        return None

    async def release_lock(self, lock_info: LockInfo) -> bool:
        """
        Release a distributed lock if this instance still owns it.

        Returns:
            True if lock was released, False otherwise
        """
        self.active_locks.pop(lock_info.lock_key, None)

        try:
            await self.client.ensure_connection()
            result = self.client.client.eval(
                RELEASE_SCRIPT,
                1,
                lock_info.lock_key,
                lock_info.lock_value
            )
        except (ConnectionError, TimeoutError) as e:
            # The lock expires on its own after ttl_seconds.
            logger.error(f"Error releasing lock {lock_info.lock_key}: {e}")
            return False

        success = bool(result)
        if success:
            logger.debug(f"Lock released: {lock_info.lock_key}")
        else:
            logger.warning(f"Lock release failed (not owner or expired): {lock_info.lock_key}")
        return success

    @asynccontextmanager
    async def lock_context(
        self,
        resource_key: str,
        ttl_seconds: Optional[int] = None,
        timeout_seconds: float = 5.0
    ):
        """
        Context manager for automatic lock acquisition and release.

        Usage:
            async with lock_manager.lock_context("resource_key") as lock:
                if lock:
                    # Lock acquired, perform protected operation
                    pass
                else:
                    # Lock not acquired, handle appropriately
                    pass
        """
        lock_info = await self.acquire_lock(resource_key, ttl_seconds, timeout_seconds)

        try:
            yield lock_info
        finally:
            if lock_info:
                await self.release_lock(lock_info)
