"""Project 数据模型

progress 为派生字段，只能由 progress.recompute 写入，不允许手工编辑。
"""

from pydantic import BaseModel, Field, field_validator

from ..config import DESCRIPTION_MAX_LENGTH
from .base import Document
from .enums import ProjectStatus, TaskStatus
from .task import Title


class Project(Document):
    """Project 数据模型"""

    name: Title = Field(description="项目名称")
    description: str | None = Field(
        default=None,
        max_length=DESCRIPTION_MAX_LENGTH,
        description="项目描述",
    )
    team_id: str | None = Field(default=None, description="所属团队 ID")
    created_by: str = Field(description="创建者 ID")
    member_ids: list[str] = Field(default_factory=list, description="成员 ID（集合语义）")
    task_ids: list[str] = Field(default_factory=list, description="任务 ID（有序）")
    progress: int = Field(default=0, ge=0, le=100, description="完成百分比（派生）")
    status: ProjectStatus = Field(default=ProjectStatus.PLANNING, description="项目状态")

    @field_validator("member_ids")
    @classmethod
    def _dedupe_members(cls, value: list[str]) -> list[str]:
        # 保持首次出现顺序
        return list(dict.fromkeys(value))


class ProjectTaskCounts(BaseModel):
    """项目任务按状态计数（所有状态都会出现）"""

    project_id: str
    total: int = Field(ge=0)
    by_status: dict[TaskStatus, int] = Field(default_factory=dict)
