"""Per-group single-flight guard for crew score recalculation.

Two recalculations of the same group must not interleave their writes.
With Redis available the guard is a distributed lock shared by API
processes and workers; without it, an in-process asyncio lock.

The Redis lock expires after ``lock_ttl`` seconds so a crashed holder
cannot wedge a group forever. While the guarded block runs, the lock is
re-armed every third of its TTL, so a long run keeps it for as long as
it takes.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

logger = logging.getLogger(__name__)

_local_locks: dict[str, asyncio.Lock] = {}
# Holders plus waiters per group; the lock is dropped when this reaches zero
_local_users: dict[str, int] = {}


class RecalculationBusyError(RuntimeError):
    """Raised when the group lock could not be acquired in time."""


def lock_key(group_id: uuid.UUID) -> str:
    return f"crew:recalc:{group_id}"


@asynccontextmanager
async def _local_guard(group_id: uuid.UUID, wait_timeout: float) -> AsyncIterator[None]:
    key = str(group_id)
    lock = _local_locks.setdefault(key, asyncio.Lock())
    _local_users[key] = _local_users.get(key, 0) + 1
    try:
        try:
            await asyncio.wait_for(lock.acquire(), timeout=wait_timeout)
        except asyncio.TimeoutError as exc:
            raise RecalculationBusyError(f"Recalculation already running for group {group_id}") from exc
        try:
            yield
        finally:
            lock.release()
    finally:
        _local_users[key] -= 1
        if not _local_users[key]:
            del _local_users[key]
            _local_locks.pop(key, None)


async def _keep_alive(redis_lock: Lock, interval: float, group_id: uuid.UUID) -> None:
    """Reset the lock's TTL until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await redis_lock.reacquire()
        except LockError:
            logger.error("Lost the recalculation lock for group %s while running", group_id)
            return


@asynccontextmanager
async def _redis_guard(
    group_id: uuid.UUID,
    redis: aioredis.Redis,
    wait_timeout: float,
    lock_ttl: float,
) -> AsyncIterator[None]:
    redis_lock = redis.lock(lock_key(group_id), timeout=lock_ttl, blocking_timeout=wait_timeout)
    if not await redis_lock.acquire():
        raise RecalculationBusyError(f"Recalculation already running for group {group_id}")

    keeper = asyncio.create_task(
        _keep_alive(redis_lock, lock_ttl / 3, group_id), name=f"crew-recalc-lock:{group_id}",
    )
    try:
        yield
    finally:
        keeper.cancel()
        await asyncio.gather(keeper, return_exceptions=True)
        try:
            await redis_lock.release()
        except LockError:
            logger.warning("Recalculation lock for group %s expired before release", group_id)


@asynccontextmanager
async def recalculation_guard(
    group_id: uuid.UUID,
    redis: aioredis.Redis | None = None,
    wait_timeout: float = 60,
    lock_ttl: float = 60,
) -> AsyncIterator[None]:
    """Hold the recalculation lock for ``group_id`` while the block runs.

    ``wait_timeout`` bounds how long to wait for a run already in
    progress; ``lock_ttl`` is the Redis lock's expiry between renewals.
    """
    if redis is None:
        async with _local_guard(group_id, wait_timeout):
            yield
        return

    async with _redis_guard(group_id, redis, wait_timeout, lock_ttl):
        yield
