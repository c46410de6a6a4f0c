"""Diff Engine -- 比较实体原值与提议值，输出有序变更描述

纯函数，无副作用：
- 只比较 tracked_fields 中声明的字段，未知字段忽略
- proposed 未包含的字段视为"未修改"（部分更新语义）
- 输出顺序遵循 tracked_fields 的声明顺序，而不是 proposed 的键顺序
- 无法归一化的值（非法枚举、非日期等）与不可为空字段的 None 被跳过
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

from .config import TEXT_PREVIEW_LENGTH
from .models.audit import FieldChange
from .models.base import to_utc
from .models.enums import FieldMode, Priority, TaskStatus

# 无法归一化时的哨兵值
_INVALID = object()


def _clean_str(value: Any) -> str:
    return str(value).strip()


@dataclass(frozen=True)
class FieldSpec:
    """可比较字段声明

    Attributes:
        name: 实体字段名
        label: 展示用字段名
        mode: 比较模式
        nullable: 是否允许清空；不可为空字段收到 None 时跳过
        coerce: SCALAR 模式下的归一化函数（例如枚举构造）
    """

    name: str
    label: str
    mode: FieldMode
    nullable: bool = True
    coerce: Callable[[Any], Any] | None = None


TASK_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("title", "Title", FieldMode.SCALAR, nullable=False, coerce=_clean_str),
    FieldSpec("description", "Description", FieldMode.TEXT),
    FieldSpec("status", "Status", FieldMode.SCALAR, nullable=False, coerce=TaskStatus),
    FieldSpec("priority", "Priority", FieldMode.SCALAR, nullable=False, coerce=Priority),
    FieldSpec("due_date", "Due Date", FieldMode.DATE),
    FieldSpec("reporter_id", "Reporter", FieldMode.REFERENCE, nullable=False),
    FieldSpec("assignee_id", "Assignee", FieldMode.REFERENCE),
)

SUBTASK_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("status", "Status", FieldMode.SCALAR, nullable=False, coerce=TaskStatus),
    FieldSpec("assignee_id", "Assignee", FieldMode.REFERENCE),
    FieldSpec("priority", "Priority", FieldMode.SCALAR, nullable=False, coerce=Priority),
    FieldSpec("reporter_id", "Reporter", FieldMode.REFERENCE, nullable=False),
    FieldSpec("due_date", "Due Date", FieldMode.DATE),
    FieldSpec("title", "Title", FieldMode.SCALAR, nullable=False, coerce=_clean_str),
    FieldSpec("description", "Description", FieldMode.TEXT),
)


def normalize_instant(value: Any) -> datetime:
    """归一化为 UTC 时间点

    接受 datetime、date 与 ISO 8601 字符串（含 "Z" 后缀）。

    Raises:
        TypeError: 不支持的类型
        ValueError: 字符串无法解析
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        return to_utc(datetime.fromisoformat(value.strip()))
    raise TypeError(f"unsupported date value: {value!r}")


def text_preview(value: str | None, limit: int = TEXT_PREVIEW_LENGTH) -> str:
    """长文本展示截断：超出 limit 截断并追加省略号"""
    if not value:
        return "None"
    if len(value) > limit:
        return value[:limit] + "..."
    return value


def _normalize(spec: FieldSpec, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        # 空字符串等同于清空
        return None
    try:
        if spec.mode == FieldMode.SCALAR:
            return spec.coerce(value) if spec.coerce else value
        if spec.mode == FieldMode.REFERENCE:
            return str(value)
        if spec.mode == FieldMode.DATE:
            return normalize_instant(value)
        return str(value)
    except (TypeError, ValueError):
        return _INVALID


def _display(spec: FieldSpec, value: Any) -> Any:
    if spec.mode == FieldMode.TEXT:
        return text_preview(value)
    if value is None:
        return None
    if spec.mode == FieldMode.DATE:
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str | int | float | bool):
        return value
    return str(value)


def unknown_fields(
    proposed: Mapping[str, Any],
    tracked_fields: Sequence[FieldSpec],
) -> list[str]:
    """返回 proposed 中未被声明的字段名（有序）"""
    known = {spec.name for spec in tracked_fields}
    return sorted(key for key in proposed if key not in known)


def diff(
    old: Mapping[str, Any],
    proposed: Mapping[str, Any],
    tracked_fields: Sequence[FieldSpec],
) -> list[FieldChange]:
    """比较两组字段值

    Args:
        old: 实体当前字段值
        proposed: 提议的新值（部分更新）
        tracked_fields: 可比较字段声明，决定比较模式与输出顺序

    Returns:
        FieldChange 列表；无实际变更时为空列表
    """
    changes: list[FieldChange] = []
    for spec in tracked_fields:
        if spec.name not in proposed:
            continue

        new_value = _normalize(spec, proposed[spec.name])
        if new_value is _INVALID:
            continue
        if new_value is None and not spec.nullable:
            continue

        old_value = _normalize(spec, old.get(spec.name))
        if old_value is _INVALID:
            old_value = None

        if old_value == new_value:
            continue

        changes.append(
            FieldChange(
                field=spec.name,
                label=spec.label,
                mode=spec.mode,
                old=old_value,
                new=new_value,
                old_display=_display(spec, old_value),
                new_display=_display(spec, new_value),
            )
        )
    return changes
