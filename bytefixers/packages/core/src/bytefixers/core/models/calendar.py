"""日历模型 -- 原生事件、统一视图条目与日历 ID 标签联合

统一日历 ID 空间：
- 原生 CalendarEvent：直接使用其 ULID
- Task 截止日期投影："task-" + task_id
- Subtask 截止日期投影："subtask-" + subtask_id

前缀判断只允许出现在 parse_calendar_id 中，其他代码一律通过 ref 类型分派。
"""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .base import Document, UtcDatetime
from .enums import (
    CalendarEventStatus,
    CalendarEventType,
    CalendarSource,
    Priority,
    RecurrenceFrequency,
)
from .task import Title

TASK_DUE_PREFIX = "task-"
SUBTASK_DUE_PREFIX = "subtask-"


class RecurrencePattern(BaseModel):
    """重复规则"""

    frequency: RecurrenceFrequency
    interval: int = Field(default=1, ge=1)
    end_date: UtcDatetime | None = None


class CalendarEvent(Document):
    """原生日历事件 -- 独立存储，不由任务派生"""

    title: Title = Field(description="事件标题")
    description: str | None = Field(default=None, description="事件描述")
    start_date: UtcDatetime = Field(description="开始时间")
    end_date: UtcDatetime = Field(description="结束时间")
    project_id: str = Field(description="所属项目 ID")
    task_id: str | None = Field(default=None, description="关联任务 ID")
    created_by: str = Field(description="创建者 ID")
    participant_ids: list[str] = Field(default_factory=list, description="参与者 ID")
    event_type: CalendarEventType = Field(default=CalendarEventType.MEETING)
    status: CalendarEventStatus = Field(default=CalendarEventStatus.SCHEDULED)
    priority: Priority = Field(default=Priority.MEDIUM)
    is_recurring: bool = Field(default=False)
    recurrence: RecurrencePattern | None = Field(default=None)

    @model_validator(mode="after")
    def _check_range(self) -> "CalendarEvent":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be earlier than start_date")
        return self


class CalendarItem(BaseModel):
    """统一日历视图条目

    原生事件与截止日期投影共用此结构；投影不落库，
    start_date == end_date == 截止日期（单一时间点）。
    """

    id: str = Field(description="统一日历 ID")
    source: CalendarSource = Field(description="条目来源")
    title: str
    description: str | None = None
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    event_type: CalendarEventType = CalendarEventType.TASK_DUE
    status: CalendarEventStatus = CalendarEventStatus.SCHEDULED
    priority: Priority = Priority.MEDIUM
    project_id: str | None = None
    task_id: str | None = None
    created_by: str | None = None
    participant_ids: list[str] = Field(default_factory=list)


class DateRange(BaseModel):
    """日期区间过滤：start_date >= start 且 end_date <= end"""

    start: UtcDatetime
    end: UtcDatetime

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("range end must not be earlier than range start")
        return self


class NativeEventRef(BaseModel):
    """指向原生 CalendarEvent"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["event"] = "event"
    event_id: str

    @property
    def item_id(self) -> str:
        return self.event_id

    @property
    def is_synthetic(self) -> bool:
        return False


class TaskDueRef(BaseModel):
    """指向 Task 截止日期投影"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["task"] = "task"
    task_id: str

    @property
    def item_id(self) -> str:
        return f"{TASK_DUE_PREFIX}{self.task_id}"

    @property
    def is_synthetic(self) -> bool:
        return True


class SubtaskDueRef(BaseModel):
    """指向 Subtask 截止日期投影"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["subtask"] = "subtask"
    subtask_id: str

    @property
    def item_id(self) -> str:
        return f"{SUBTASK_DUE_PREFIX}{self.subtask_id}"

    @property
    def is_synthetic(self) -> bool:
        return True


CalendarRef = Annotated[
    NativeEventRef | TaskDueRef | SubtaskDueRef,
    Field(discriminator="kind"),
]


def parse_calendar_id(raw: str) -> NativeEventRef | TaskDueRef | SubtaskDueRef:
    """解析统一日历 ID

    仅剥离首个前缀，剩余部分原样保留（可包含 "-"），
    因此对任意字符串 parse_calendar_id(raw).item_id == raw。
    """
    if raw.startswith(SUBTASK_DUE_PREFIX):
        return SubtaskDueRef(subtask_id=raw[len(SUBTASK_DUE_PREFIX):])
    if raw.startswith(TASK_DUE_PREFIX):
        return TaskDueRef(task_id=raw[len(TASK_DUE_PREFIX):])
    return NativeEventRef(event_id=raw)
