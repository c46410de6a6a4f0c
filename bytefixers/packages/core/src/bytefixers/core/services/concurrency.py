"""并发控制 -- 实体级锁与保存冲突重试

同一实体的 read-modify-write 在进程内由 StoreGroup 上共享的 EntityLocks 串行化；
跨进程的并发写入由 store 的 version CAS 检出，冲突后重新加载并重试。
加锁顺序固定为 subtask -> task -> project，避免死锁。
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from ..config import SAVE_CONFLICT_MAX_RETRIES
from ..exceptions import VersionConflictError
from ..store.locks import EntityLocks

log = structlog.get_logger()

T = TypeVar("T")


__all__ = ["EntityLocks", "retry_on_conflict"]


async def retry_on_conflict(
    operation: str,
    attempt_fn: Callable[[], Awaitable[T]],
    max_attempts: int | None = None,
) -> T:
    """执行一次 read-modify-write，遇到 VersionConflictError 时重试

    attempt_fn 每次调用都必须重新加载实体。

    Raises:
        VersionConflictError: 重试次数用尽
    """
    attempts = max_attempts if max_attempts is not None else SAVE_CONFLICT_MAX_RETRIES
    for attempt in range(1, max(attempts, 1) + 1):
        try:
            return await attempt_fn()
        except VersionConflictError as e:
            if attempt < attempts:
                log.warning(
                    "save_conflict_retry",
                    operation=operation,
                    kind=e.kind,
                    entity_id=e.entity_id,
                    attempt=attempt,
                )
                continue
            log.error(
                "save_conflict_exhausted",
                operation=operation,
                kind=e.kind,
                entity_id=e.entity_id,
                attempts=attempt,
            )
            raise

    raise RuntimeError(f"{operation} failed after retries")
