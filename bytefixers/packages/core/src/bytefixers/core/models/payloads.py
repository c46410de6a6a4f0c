"""审计条目 details 的结构化 payload

所有 payload 通过 model_dump(mode="json") 写入 AuditEntry.details。
"""

from typing import Any

from pydantic import BaseModel, Field


class FieldChangesPayload(BaseModel):
    """通用更新 payload：字段 -> {from, to}"""

    changes: dict[str, dict[str, Any]] = Field(default_factory=dict)


class SubtaskChangesPayload(FieldChangesPayload):
    """子任务更新 payload（子任务与父任务镜像条目共用）"""

    subtask_id: str
    subtask_title: str


class TaskCreatedPayload(BaseModel):
    """Task Created"""

    title: str


class SubtaskAddedPayload(BaseModel):
    """Added Subtask"""

    subtask_id: str
    subtask_title: str


class SubtaskDeletedPayload(BaseModel):
    """Deleted Subtask"""

    subtask_id: str
    subtask_title: str


class AssignedPayload(BaseModel):
    """Assigned Task"""

    assigned_to: str | None
    previous: str | None = None


class TeamLinkPayload(BaseModel):
    """Team Assigned / Team Removed"""

    team: str | None = Field(description="团队 ID，解除关联时为 None")
    previous: str | None = None


class AttachmentUploadedPayload(BaseModel):
    """File Uploaded"""

    attachment_id: str
    file_name: str
    file_type: str
    file_size: int


class AttachmentDeletedPayload(BaseModel):
    """File Deleted"""

    attachment_id: str
    file_name: str
    file_type: str
