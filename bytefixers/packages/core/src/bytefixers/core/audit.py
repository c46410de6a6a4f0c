"""Audit Log Builder -- 将变更描述转换为审计条目

两条路径：
- 通用更新：一次变更合并为一条 AuditEntry，action 为逗号拼接的摘要，
  details 包含每个变更字段的 before/after
- 动作型变更（分配、增删子任务、附件、团队关联）：固定 action 标签，每次恰好一条
"""

import copy
from collections.abc import Callable, Sequence
from typing import TypeVar

from pydantic import BaseModel

from .exceptions import EmptyChangeSetError
from .models.audit import AuditEntry, FieldChange
from .models.enums import AuditAction
from .models.payloads import FieldChangesPayload, SubtaskChangesPayload
from .models.task import Subtask, WorkItem

Renderer = Callable[[FieldChange], str]

T = TypeVar("T", bound=WorkItem)


def render_task_change(change: FieldChange) -> str:
    """Task 风格标签，例如 "Status Changed" / "Assignee Removed" """
    if change.field == "assignee_id" and change.new is None:
        return "Assignee Removed"
    return f"{change.label} Changed"


def render_subtask_change(change: FieldChange) -> str:
    """Subtask 风格短句，例如 "Status changed from TO DO to DONE" """
    cleared = change.new is None
    match change.field:
        case "status" | "priority":
            return (
                f"{change.label} changed from "
                f"{change.old_display} to {change.new_display}"
            )
        case "assignee_id":
            return "Assignee removed" if cleared else "Assignee updated"
        case "reporter_id":
            return "Reporter changed"
        case "due_date":
            return "Due date removed" if cleared else "Due date updated"
        case "title":
            return f'Title updated from "{change.old_display}" to "{change.new_display}"'
        case "description":
            return "Description updated"
    return f"{change.label} changed"


def render_summary(changes: Sequence[FieldChange], renderer: Renderer) -> str:
    """逗号拼接的人类可读摘要"""
    return ", ".join(renderer(change) for change in changes)


def build_entries(
    changes: Sequence[FieldChange],
    actor_id: str | None,
    renderer: Renderer = render_task_change,
    subtask: Subtask | None = None,
) -> list[AuditEntry]:
    """通用更新路径：合并为一条审计条目

    Args:
        changes: Diff Engine 输出
        actor_id: 操作者
        renderer: 单个变更的文案渲染函数
        subtask: 变更主体为子任务时传入，details 附带 subtask_id/subtask_title

    Returns:
        仅含一条 AuditEntry 的列表

    Raises:
        EmptyChangeSetError: changes 为空
    """
    if not changes:
        raise EmptyChangeSetError()

    pairs = {change.field: change.as_pair() for change in changes}
    if subtask is not None:
        payload: FieldChangesPayload = SubtaskChangesPayload(
            subtask_id=subtask.id or "",
            subtask_title=subtask.title,
            changes=pairs,
        )
    else:
        payload = FieldChangesPayload(changes=pairs)

    return [
        AuditEntry(
            actor_id=actor_id,
            action=render_summary(changes, renderer),
            details=payload.model_dump(mode="json"),
        )
    ]


def build_action_entry(
    action: AuditAction,
    actor_id: str | None,
    payload: BaseModel,
) -> AuditEntry:
    """动作型变更：固定标签，恰好一条"""
    return AuditEntry(
        actor_id=actor_id,
        action=action.value,
        details=payload.model_dump(mode="json"),
    )


def build_parent_mirror_entry(entry: AuditEntry, subtask_title: str) -> AuditEntry:
    """父任务镜像条目：action 以子任务标题为前缀，details 与原条目相同"""
    return AuditEntry(
        actor_id=entry.actor_id,
        action=f'Subtask "{subtask_title}": {entry.action}',
        details=copy.deepcopy(entry.details),
        timestamp=entry.timestamp,
    )


def append_activity(item: T, entries: Sequence[AuditEntry]) -> T:
    """追加审计条目，返回新实例（原实例不变）"""
    if not entries:
        return item
    return item.model_copy(update={"activity_log": [*item.activity_log, *entries]})
