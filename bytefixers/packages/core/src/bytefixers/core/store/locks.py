"""实体级锁表 -- 随 StoreGroup 共享

服务实例可以按请求创建，锁必须挂在共享连接所在的 StoreGroup 上，
同一实体的 read-modify-write 才能跨实例串行化。
"""

import asyncio


class EntityLocks:
    """按 (kind, entity_id) 懒创建的锁表"""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._guard = asyncio.Lock()

    async def get(self, kind: str, entity_id: str) -> asyncio.Lock:
        """获取实体级锁"""
        key = (kind, entity_id)
        async with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    async def discard(self, kind: str, entity_id: str) -> None:
        """实体删除后回收空闲锁"""
        key = (kind, entity_id)
        async with self._guard:
            lock = self._locks.get(key)
            if lock is not None and not lock.locked():
                self._locks.pop(key, None)

    def __len__(self) -> int:
        return len(self._locks)
