"""Recalculation guard tests: local and Redis-backed single flight."""

from __future__ import annotations

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import LockError, LockNotOwnedError

from crew.crew_score import guard
from crew.crew_score.guard import RecalculationBusyError, lock_key, recalculation_guard


class _ExpiringLockServer:
    """One Redis key that honours lock TTLs on the event loop clock."""

    def __init__(self) -> None:
        self.owner: object | None = None
        self.expires_at = 0.0

    def lock(self, name: str, timeout: float, blocking_timeout: float) -> _ExpiringLock:
        return _ExpiringLock(self, timeout, blocking_timeout)


class _ExpiringLock:
    def __init__(self, server: _ExpiringLockServer, timeout: float, blocking_timeout: float) -> None:
        self.server = server
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    def _owned(self, now: float) -> bool:
        return self.server.owner is self and now < self.server.expires_at

    async def acquire(self) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.blocking_timeout
        while True:
            now = loop.time()
            if self.server.owner is None or now >= self.server.expires_at:
                self.server.owner = self
                self.server.expires_at = now + self.timeout
                return True
            if now >= deadline:
                return False
            await asyncio.sleep(0.01)

    async def reacquire(self) -> bool:
        now = asyncio.get_running_loop().time()
        if not self._owned(now):
            raise LockNotOwnedError("lock expired")
        self.server.expires_at = now + self.timeout
        return True

    async def release(self) -> None:
        if not self._owned(asyncio.get_running_loop().time()):
            raise LockNotOwnedError("lock expired")
        self.server.owner = None


def _redis_with_lock(acquired: bool = True) -> tuple[MagicMock, MagicMock]:
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=acquired)
    lock.release = AsyncMock()
    redis = MagicMock()
    redis.lock.return_value = lock
    return redis, lock


class TestLocalGuard:
    """Guard without Redis: an in-process lock per group."""

    @pytest.mark.asyncio
    async def test_second_run_on_same_group_is_busy(self):
        group_id = uuid.uuid4()
        async with recalculation_guard(group_id, wait_timeout=0.05):
            with pytest.raises(RecalculationBusyError):
                async with recalculation_guard(group_id, wait_timeout=0.05):
                    pass

    @pytest.mark.asyncio
    async def test_released_after_block(self):
        group_id = uuid.uuid4()
        async with recalculation_guard(group_id, wait_timeout=0.05):
            pass
        async with recalculation_guard(group_id, wait_timeout=0.05):
            pass

    @pytest.mark.asyncio
    async def test_released_after_error(self):
        group_id = uuid.uuid4()
        with pytest.raises(ValueError):
            async with recalculation_guard(group_id, wait_timeout=0.05):
                raise ValueError("boom")
        async with recalculation_guard(group_id, wait_timeout=0.05):
            pass

    @pytest.mark.asyncio
    async def test_groups_do_not_block_each_other(self):
        async with recalculation_guard(uuid.uuid4(), wait_timeout=0.05):
            async with recalculation_guard(uuid.uuid4(), wait_timeout=0.05):
                pass


class TestRedisGuard:
    """Guard backed by a Redis lock."""

    @pytest.mark.asyncio
    async def test_acquires_and_releases(self):
        group_id = uuid.uuid4()
        redis, lock = _redis_with_lock()

        async with recalculation_guard(group_id, redis=redis, wait_timeout=5, lock_ttl=30):
            lock.release.assert_not_awaited()

        redis.lock.assert_called_once_with(lock_key(group_id), timeout=30, blocking_timeout=5)
        lock.acquire.assert_awaited_once()
        lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_busy_when_not_acquired(self):
        redis, lock = _redis_with_lock(acquired=False)
        with pytest.raises(RecalculationBusyError):
            async with recalculation_guard(uuid.uuid4(), redis=redis, wait_timeout=1):
                pass
        lock.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_lock_on_release_is_tolerated(self):
        redis, lock = _redis_with_lock()
        lock.release.side_effect = LockError("not owned")
        async with recalculation_guard(uuid.uuid4(), redis=redis, wait_timeout=1):
            pass

    def test_lock_key(self):
        group_id = uuid.UUID(int=1)
        assert lock_key(group_id) == f"crew:recalc:{group_id}"


class TestLongRuns:
    """A run that outlasts the lock TTL keeps the group to itself."""

    @pytest.mark.asyncio
    async def test_lock_renewed_while_run_in_progress(self):
        group_id = uuid.uuid4()
        server = _ExpiringLockServer()
        events: list[str] = []

        async def long_run() -> None:
            async with recalculation_guard(group_id, redis=server, wait_timeout=0.05, lock_ttl=0.2):
                events.append("enter long")
                await asyncio.sleep(0.6)
                events.append("exit long")

        async def late_run() -> None:
            await asyncio.sleep(0.35)
            with pytest.raises(RecalculationBusyError):
                async with recalculation_guard(group_id, redis=server, wait_timeout=0.05, lock_ttl=0.2):
                    events.append("enter late")

        await asyncio.gather(long_run(), late_run())

        assert events == ["enter long", "exit long"]
        assert server.owner is None

    @pytest.mark.asyncio
    async def test_next_run_gets_lock_after_long_run(self):
        group_id = uuid.uuid4()
        server = _ExpiringLockServer()

        async with recalculation_guard(group_id, redis=server, wait_timeout=0.05, lock_ttl=0.1):
            await asyncio.sleep(0.3)
        async with recalculation_guard(group_id, redis=server, wait_timeout=0.05, lock_ttl=0.1):
            assert server.owner is not None


class TestLocalLockCleanup:
    """In-process locks are dropped once no run holds or awaits them."""

    @pytest.mark.asyncio
    async def test_lock_dropped_after_release(self):
        group_id = uuid.uuid4()
        async with recalculation_guard(group_id, wait_timeout=0.05):
            assert str(group_id) in guard._local_locks
        assert str(group_id) not in guard._local_locks
        assert str(group_id) not in guard._local_users

    @pytest.mark.asyncio
    async def test_lock_kept_while_another_run_waits(self):
        group_id = uuid.uuid4()
        first_in = asyncio.Event()
        release_first = asyncio.Event()
        entered: list[str] = []

        async def first() -> None:
            async with recalculation_guard(group_id, wait_timeout=1):
                entered.append("first")
                first_in.set()
                await release_first.wait()

        async def second() -> None:
            await first_in.wait()
            async with recalculation_guard(group_id, wait_timeout=1):
                entered.append("second")

        first_task = asyncio.create_task(first())
        second_task = asyncio.create_task(second())
        await first_in.wait()
        await asyncio.sleep(0.01)
        release_first.set()
        await asyncio.gather(first_task, second_task)

        assert entered == ["first", "second"]
        assert str(group_id) not in guard._local_locks

    @pytest.mark.asyncio
    async def test_lock_dropped_after_busy_timeout(self):
        group_id = uuid.uuid4()
        async with recalculation_guard(group_id, wait_timeout=0.05):
            with pytest.raises(RecalculationBusyError):
                async with recalculation_guard(group_id, wait_timeout=0.05):
                    pass
        assert str(group_id) not in guard._local_locks
