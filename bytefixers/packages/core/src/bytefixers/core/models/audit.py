"""审计模型 -- 变更描述与审计条目

activity_log 是 append-only 序列：插入顺序即时间顺序，不提供删除操作。
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import UtcDatetime, new_id, utc_now
from .enums import FieldMode


class FieldChange(BaseModel):
    """单个字段的变更描述（Diff Engine 输出）

    old / new 为归一化后的值，可直接写回实体；
    old_display / new_display 为可 JSON 序列化的展示值（文本已截断）。
    """

    model_config = ConfigDict(frozen=True)

    field: str
    label: str
    mode: FieldMode
    old: Any = None
    new: Any = None
    old_display: Any = None
    new_display: Any = None

    def as_pair(self) -> dict[str, Any]:
        """结构化 before/after 对"""
        return {"from": self.old_display, "to": self.new_display}


class AuditEntry(BaseModel):
    """审计条目 -- activity_log 中的一条记录"""

    entry_id: str = Field(default_factory=new_id, description="条目 ID，ULID 格式")
    actor_id: str | None = Field(default=None, description="操作者用户 ID")
    action: str = Field(description="动作摘要")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="结构化 payload（可 JSON 序列化）",
    )
    timestamp: UtcDatetime = Field(default_factory=utc_now, description="时间戳")
