"""Core 异常体系

调用方（路由层）按异常类型映射为各自的传输层响应。
PropagationFailure 由服务层记录日志后吞掉，其余异常均向上抛出。
"""


class TrackerError(Exception):
    """Core 包基础异常"""

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试或忽略恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class NotFoundError(TrackerError):
    """实体（或合成日历 ID 指向的实体）不存在"""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind} not found: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id


class InvalidOperationError(TrackerError):
    """结构上不允许的操作，例如直接删除任务截止日期"""


class EmptyChangeSetError(TrackerError):
    """变更集为空时禁止写入审计条目

    内部保护，调用方应在无变更时跳过写入，而不是捕获此异常。
    """

    def __init__(self) -> None:
        super().__init__("change set is empty, refusing to build audit entry")


class PropagationFailure(TrackerError):
    """子任务审计条目未能镜像到父任务

    对主变更不致命：子任务的更新仍然成功。
    """

    def __init__(self, subtask_id: str, parent_task_id: str, reason: str) -> None:
        super().__init__(
            f"failed to mirror subtask {subtask_id} activity to task "
            f"{parent_task_id}: {reason}",
            recoverable=True,
        )
        self.subtask_id = subtask_id
        self.parent_task_id = parent_task_id


class VersionConflictError(TrackerError):
    """乐观并发冲突：保存时实体 version 已被其他写入推进

    服务层会重新加载并重试，超过重试次数后才向上抛出。
    """

    def __init__(self, kind: str, entity_id: str, expected_version: int) -> None:
        super().__init__(
            f"{kind} {entity_id} was modified concurrently "
            f"(expected version {expected_version})",
            recoverable=True,
        )
        self.kind = kind
        self.entity_id = entity_id
        self.expected_version = expected_version
