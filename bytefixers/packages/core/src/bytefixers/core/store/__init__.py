"""bytefixers Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import aiosqlite

from .calendar_store import SqliteCalendarEventStore
from .document_store import SqliteDocumentStore
from .locks import EntityLocks
from .project_store import SqliteProjectStore
from .protocols import EntityQuery, EntityStore
from .sqlite_init import init_db
from .task_store import SqliteSubtaskStore, SqliteTaskStore
from .transaction import run_in_transaction

T = TypeVar("T")


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.task_store = SqliteTaskStore(conn)
        self.subtask_store = SqliteSubtaskStore(conn)
        self.project_store = SqliteProjectStore(conn)
        self.calendar_store = SqliteCalendarEventStore(conn)
        # 共享连接上的事务不能交错，写入阶段全局串行
        self.write_lock = asyncio.Lock()
        # 同一实体的锁在所有服务实例间共享
        self.entity_locks = EntityLocks()

    async def transaction(self, work: Callable[[], Awaitable[T]]) -> T:
        """在写锁保护下执行一次事务（失败回滚）"""
        async with self.write_lock:
            return await run_in_transaction(self.conn, work)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "EntityLocks",
    "EntityQuery",
    "EntityStore",
    "SqliteDocumentStore",
    "SqliteTaskStore",
    "SqliteSubtaskStore",
    "SqliteProjectStore",
    "SqliteCalendarEventStore",
    "init_db",
    "run_in_transaction",
]
