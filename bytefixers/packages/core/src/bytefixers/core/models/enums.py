"""枚举定义

包含 TaskStatus 工作流状态、Priority、ProjectStatus、日历事件相关枚举，
以及实体类型、日历来源、字段比较模式等内部枚举。
"""

from enum import Enum, StrEnum


def _lookup_loose(cls: type[Enum], value: object) -> Enum | None:
    """宽松匹配：忽略大小写、空格和下划线

    "TODO" / "to do" / "TO_DO" 都能匹配到 TaskStatus.TODO。
    """
    if not isinstance(value, str):
        return None
    normalized = value.strip().upper().replace(" ", "").replace("_", "")
    for member in cls:
        if member.name.replace("_", "") == normalized:
            return member
        if str(member.value).upper().replace(" ", "").replace("_", "") == normalized:
            return member
    return None


class TaskStatus(StrEnum):
    """Task / Subtask 工作流状态

    任意状态之间均可流转；唯一的派生规则是 completed_at（见 status_rules）。
    """

    BACKLOG = "BACKLOG"
    TODO = "TO DO"
    IN_PROGRESS = "IN PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"

    @classmethod
    def _missing_(cls, value: object) -> "TaskStatus | None":
        return _lookup_loose(cls, value)


class Priority(StrEnum):
    """优先级"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @classmethod
    def _missing_(cls, value: object) -> "Priority | None":
        return _lookup_loose(cls, value)


class ProjectStatus(StrEnum):
    """项目工作流标签（独立维护，不由任务派生）"""

    PLANNING = "Planning"
    ACTIVE = "Active"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    ARCHIVED = "Archived"

    @classmethod
    def _missing_(cls, value: object) -> "ProjectStatus | None":
        return _lookup_loose(cls, value)


class CalendarEventType(StrEnum):
    """日历事件类型"""

    TASK_DUE = "TASK_DUE"
    MILESTONE = "MILESTONE"
    MEETING = "MEETING"
    REMINDER = "REMINDER"


class CalendarEventStatus(StrEnum):
    """日历事件状态"""

    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RecurrenceFrequency(StrEnum):
    """重复事件频率"""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class EntityKind(StrEnum):
    """可通过 apply_update 修改的实体类型"""

    TASK = "task"
    SUBTASK = "subtask"


class CalendarSource(StrEnum):
    """统一日历视图中条目的来源"""

    EVENT = "event"
    TASK = "task"
    SUBTASK = "subtask"


class FieldMode(StrEnum):
    """Diff 字段比较模式"""

    # 直接比较
    SCALAR = "scalar"
    # 按字符串形式比较，缺失与存在之间视为变更
    REFERENCE = "reference"
    # 归一化为时间点后比较
    DATE = "date"
    # 完整比较，展示时截断
    TEXT = "text"


class AuditAction(StrEnum):
    """动作型变更的固定审计标签（每次变更恰好一条）"""

    TASK_CREATED = "Task Created"
    ASSIGNED = "Assigned Task"
    SUBTASK_ADDED = "Added Subtask"
    SUBTASK_DELETED = "Deleted Subtask"
    FILE_UPLOADED = "File Uploaded"
    FILE_DELETED = "File Deleted"
    TEAM_ASSIGNED = "Team Assigned"
    TEAM_REMOVED = "Team Removed"
