"""实体锁与冲突重试单元测试"""

import asyncio

import pytest
from bytefixers.core.exceptions import VersionConflictError
from bytefixers.core.services import EntityLocks, retry_on_conflict
from structlog.testing import capture_logs


class TestEntityLocks:
    async def test_same_key_same_lock(self):
        locks = EntityLocks()
        assert await locks.get("task", "t1") is await locks.get("task", "t1")
        assert await locks.get("task", "t1") is not await locks.get("subtask", "t1")

    async def test_discard_idle_lock(self):
        locks = EntityLocks()
        await locks.get("task", "t1")
        await locks.discard("task", "t1")
        assert len(locks) == 0

    async def test_discard_keeps_held_lock(self):
        locks = EntityLocks()
        lock = await locks.get("task", "t1")
        async with lock:
            await locks.discard("task", "t1")
            assert len(locks) == 1

    async def test_serializes_same_entity(self):
        """同一实体的临界区不交错"""
        locks = EntityLocks()
        trace: list[str] = []

        async def worker(name: str) -> None:
            async with await locks.get("task", "t1"):
                trace.append(f"{name}-start")
                await asyncio.sleep(0)
                trace.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))
        assert trace == ["a-start", "a-end", "b-start", "b-end"]


class TestRetryOnConflict:
    async def test_succeeds_after_conflict(self):
        attempts = {"count": 0}

        async def attempt() -> str:
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise VersionConflictError("Task", "t1", attempts["count"])
            return "saved"

        with capture_logs() as logs:
            assert await retry_on_conflict("update_task", attempt, max_attempts=3) == "saved"
        retries = [e for e in logs if e["event"] == "save_conflict_retry"]
        assert [e["attempt"] for e in retries] == [1, 2]

    async def test_exhausted(self):
        async def attempt() -> None:
            raise VersionConflictError("Task", "t1", 1)

        with capture_logs() as logs, pytest.raises(VersionConflictError):
            await retry_on_conflict("update_task", attempt, max_attempts=2)
        assert logs[-1]["event"] == "save_conflict_exhausted"
        assert logs[-1]["log_level"] == "error"

    async def test_other_errors_not_retried(self):
        attempts = {"count": 0}

        async def attempt() -> None:
            attempts["count"] += 1
            raise KeyError("boom")

        with pytest.raises(KeyError):
            await retry_on_conflict("update_task", attempt)
        assert attempts["count"] == 1
