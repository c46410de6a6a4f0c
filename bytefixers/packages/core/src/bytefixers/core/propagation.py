"""Cross-Entity Propagator -- 子任务审计条目镜像到父任务

显式传播步骤，由服务层在子任务保存之后调用，而不是隐藏在子任务的保存路径里。
镜像条目 action 以子任务标题为前缀，details 与原条目相同。
"""

from collections.abc import Sequence

from .audit import append_activity, build_parent_mirror_entry
from .exceptions import PropagationFailure
from .models.audit import AuditEntry
from .models.task import Subtask, Task


def mirror_subtask_entries(
    parent: Task | None,
    subtask: Subtask,
    entries: Sequence[AuditEntry],
) -> Task:
    """返回追加了镜像条目的父任务副本

    Args:
        parent: 已加载的父任务（None 表示父任务不存在）
        subtask: 产生审计条目的子任务
        entries: 子任务本次变更写入的条目

    Raises:
        PropagationFailure: 父任务不存在或已不再包含该子任务
    """
    subtask_id = subtask.id or ""
    if parent is None:
        raise PropagationFailure(subtask_id, subtask.parent_task_id, "parent task not found")
    if subtask_id not in parent.subtask_ids:
        raise PropagationFailure(
            subtask_id,
            subtask.parent_task_id,
            "subtask is not listed on parent task",
        )
    mirrored = [build_parent_mirror_entry(entry, subtask.title) for entry in entries]
    return append_activity(parent, mirrored)
