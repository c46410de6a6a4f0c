"""Store Protocol 接口定义

四个存储协作者（Task / Subtask / Project / CalendarEvent）共用同一窄接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from typing import Protocol, TypeVar

from pydantic import BaseModel, Field

from ..models.calendar import CalendarEvent, DateRange
from ..models.project import Project
from ..models.task import Subtask, Task

T = TypeVar("T")


class EntityQuery(BaseModel):
    """查询过滤条件，未设置的条件不参与过滤"""

    ids: list[str] | None = Field(default=None, description="ID 集合，结果按此顺序返回")
    parent_id: str | None = Field(default=None, description="父实体 ID")
    parent_ids: list[str] | None = Field(default=None, description="父实体 ID 集合")
    has_date: bool = Field(default=False, description="仅返回日期字段非空的实体")
    date_range: DateRange | None = Field(default=None, description="日期区间")
    contains_task_id: str | None = Field(
        default=None,
        description="仅返回 task_ids 包含该任务的实体",
    )


class EntityStore(Protocol[T]):
    """实体存储接口

    get 不存在时返回 None；delete 返回是否实际删除。
    save 为 upsert：首次保存分配 ID，之后按 version 做 compare-and-swap。
    """

    async def get(self, entity_id: str) -> T | None:
        """根据 ID 查询实体"""
        ...

    async def query(self, query: EntityQuery) -> list[T]:
        """按条件查询实体列表"""
        ...

    async def save(self, entity: T) -> T:
        """保存实体，返回带新 version（及新分配 ID）的副本"""
        ...

    async def delete(self, entity_id: str) -> bool:
        """删除实体"""
        ...


TaskStore = EntityStore[Task]
SubtaskStore = EntityStore[Subtask]
ProjectStore = EntityStore[Project]
CalendarEventStore = EntityStore[CalendarEvent]
