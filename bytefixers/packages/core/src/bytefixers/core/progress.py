"""Progress Aggregator -- 由任务状态重算项目完成百分比

progress = round(100 * DONE 数 / 任务总数)，无任务时为 0。
四舍五入采用 half-up（12.5 -> 13），整数运算避免浮点误差。
"""

from collections.abc import Iterable, Sequence

from .models.enums import TaskStatus
from .models.project import Project
from .models.task import Task


def compute_progress(statuses: Iterable[TaskStatus]) -> int:
    """计算完成百分比"""
    total = 0
    done = 0
    for status in statuses:
        total += 1
        if status == TaskStatus.DONE:
            done += 1
    if total == 0:
        return 0
    # round-half-up(100 * done / total)
    return (200 * done + total) // (2 * total)


def recompute(project: Project, tasks: Sequence[Task]) -> Project:
    """返回 progress 已重算的 Project 副本（纯函数，幂等）"""
    progress = compute_progress(task.status for task in tasks)
    if progress == project.progress:
        return project
    return project.model_copy(update={"progress": progress})


def count_by_status(tasks: Iterable[Task]) -> dict[TaskStatus, int]:
    """按状态计数，所有状态都会出现（无任务的状态为 0）"""
    counts = {status: 0 for status in TaskStatus}
    for task in tasks:
        counts[task.status] += 1
    return counts
