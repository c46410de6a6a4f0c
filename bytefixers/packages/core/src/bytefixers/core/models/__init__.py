"""bytefixers Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .audit import AuditEntry, FieldChange
from .base import Document, new_id, to_utc, utc_now
from .calendar import (
    SUBTASK_DUE_PREFIX,
    TASK_DUE_PREFIX,
    CalendarEvent,
    CalendarItem,
    CalendarRef,
    DateRange,
    NativeEventRef,
    RecurrencePattern,
    SubtaskDueRef,
    TaskDueRef,
    parse_calendar_id,
)
from .enums import (
    AuditAction,
    CalendarEventStatus,
    CalendarEventType,
    CalendarSource,
    EntityKind,
    FieldMode,
    Priority,
    ProjectStatus,
    RecurrenceFrequency,
    TaskStatus,
)
from .payloads import (
    AssignedPayload,
    AttachmentDeletedPayload,
    AttachmentUploadedPayload,
    FieldChangesPayload,
    SubtaskAddedPayload,
    SubtaskChangesPayload,
    SubtaskDeletedPayload,
    TaskCreatedPayload,
    TeamLinkPayload,
)
from .project import Project, ProjectTaskCounts
from .task import Attachment, Subtask, Task, WorkItem

__all__ = [
    # 枚举
    "AuditAction",
    "TaskStatus",
    "Priority",
    "ProjectStatus",
    "CalendarEventType",
    "CalendarEventStatus",
    "RecurrenceFrequency",
    "EntityKind",
    "CalendarSource",
    "FieldMode",
    # 基础
    "Document",
    "new_id",
    "to_utc",
    "utc_now",
    # 审计
    "AuditEntry",
    "FieldChange",
    # 实体
    "Task",
    "Subtask",
    "WorkItem",
    "Attachment",
    "Project",
    "ProjectTaskCounts",
    # 日历
    "CalendarEvent",
    "CalendarItem",
    "DateRange",
    "RecurrencePattern",
    "NativeEventRef",
    "TaskDueRef",
    "SubtaskDueRef",
    "CalendarRef",
    "TASK_DUE_PREFIX",
    "SUBTASK_DUE_PREFIX",
    "parse_calendar_id",
    # Payloads
    "FieldChangesPayload",
    "SubtaskChangesPayload",
    "TaskCreatedPayload",
    "SubtaskAddedPayload",
    "SubtaskDeletedPayload",
    "AssignedPayload",
    "TeamLinkPayload",
    "AttachmentUploadedPayload",
    "AttachmentDeletedPayload",
]
