"""Task / Subtask 数据模型

Project 持有 task_ids 列表，Task 不持有指回 Project 的引用。
Subtask 生命周期嵌套在父 Task 内：删除 Task 级联删除其全部 Subtask。
completed_at 为派生字段，仅由 status_rules 维护。
"""

from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints

from ..config import DESCRIPTION_MAX_LENGTH
from .audit import AuditEntry
from .base import Document, UtcDatetime, new_id, utc_now
from .enums import Priority, TaskStatus

Title = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class Attachment(BaseModel):
    """附件元数据（文件内容由外部存储负责）"""

    attachment_id: str = Field(default_factory=new_id, description="附件 ID")
    file_name: str = Field(description="原始文件名")
    file_type: str = Field(default="application/octet-stream", description="MIME 类型")
    file_size: int = Field(default=0, ge=0, description="文件大小（字节）")
    uploaded_by: str | None = Field(default=None, description="上传者 ID")
    uploaded_at: UtcDatetime = Field(default_factory=utc_now, description="上传时间")


class WorkItem(Document):
    """Task 与 Subtask 的公共字段"""

    title: Title = Field(description="标题")
    description: str | None = Field(
        default=None,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="描述",
    )
    status: TaskStatus = Field(default=TaskStatus.BACKLOG, description="工作流状态")
    priority: Priority = Field(default=Priority.MEDIUM, description="优先级")
    assignee_id: str | None = Field(default=None, description="负责人 ID")
    due_date: UtcDatetime | None = Field(default=None, description="截止日期")
    completed_at: UtcDatetime | None = Field(default=None, description="完成时间（派生）")
    activity_log: list[AuditEntry] = Field(
        default_factory=list,
        description="审计日志，append-only",
    )

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.DONE


class Task(WorkItem):
    """Task 数据模型"""

    reporter_id: str = Field(description="报告人 ID")
    subtask_ids: list[str] = Field(default_factory=list, description="子任务 ID（有序）")
    team_id: str | None = Field(default=None, description="关联团队 ID")
    attachments: list[Attachment] = Field(default_factory=list, description="附件")


class Subtask(WorkItem):
    """Subtask 数据模型 -- 必须挂在父 Task 下"""

    parent_task_id: str = Field(description="父 Task ID")
    reporter_id: str | None = Field(default=None, description="报告人 ID")
    created_by: str | None = Field(default=None, description="创建者 ID")
