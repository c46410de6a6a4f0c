"""Status / Completion 规则

工作流状态之间没有流转限制，唯一的派生规则是 completed_at：
- 非 DONE -> DONE：completed_at = now
- DONE -> 非 DONE：completed_at 清空
- 重复提交相同状态：不变（不刷新时间戳）

不变量：completed_at 非空当且仅当 status == DONE。
"""

from datetime import datetime

from .models.enums import TaskStatus


def derive_completed_at(
    current_status: TaskStatus,
    completed_at: datetime | None,
    proposed_status: TaskStatus | None,
    now: datetime,
) -> datetime | None:
    """根据状态流转计算新的 completed_at

    Args:
        current_status: 当前状态
        completed_at: 当前 completed_at
        proposed_status: 提议状态，None 表示本次不修改状态
        now: 当前时间

    Returns:
        流转后的 completed_at
    """
    if proposed_status is None or proposed_status == current_status:
        return completed_at
    if proposed_status == TaskStatus.DONE:
        return now
    return None


def initial_completed_at(status: TaskStatus, now: datetime) -> datetime | None:
    """创建实体时的 completed_at"""
    return now if status == TaskStatus.DONE else None
