"""事务封装 -- 多个 store 写入在同一 SQLite 事务内原子提交

store 的写方法不自动提交；服务层把一次逻辑操作的全部写入
包进 run_in_transaction，失败时整体回滚。
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiosqlite

T = TypeVar("T")


async def run_in_transaction(
    conn: aiosqlite.Connection,
    work: Callable[[], Awaitable[T]],
) -> T:
    """在同一事务内执行 work 并提交

    Args:
        conn: 数据库连接（所有 store 共享同一连接以保证事务性）
        work: 执行写入的协程函数

    Returns:
        work 的返回值

    Raises:
        Exception: work 或提交失败时回滚并原样抛出
    """
    try:
        result = await work()
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    return result
