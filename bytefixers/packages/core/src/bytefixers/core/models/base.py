"""公共基础类型 -- 文档基类、UTC 时间与 ID 生成

所有实体以文档形式存储，version 用于保存时的乐观并发校验。
ID 使用 ULID，字母表不含 "-"，与合成日历 ID 的前缀空间天然不相交。
"""

from datetime import UTC, datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, Field
from ulid import ULID


def new_id() -> str:
    """生成新的 ULID 字符串"""
    return str(ULID())


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_utc(value: datetime | None) -> datetime | None:
    """归一化为 UTC；naive datetime 视为 UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(to_utc)]


class Document(BaseModel):
    """存储文档基类

    id 为 None 表示尚未保存，首次保存时由 store 分配。
    version 为 0 表示尚未保存，每次成功保存递增 1。
    """

    id: str | None = Field(default=None, description="唯一标识，ULID 格式")
    version: int = Field(default=0, ge=0, description="乐观并发版本号")
    created_at: UtcDatetime = Field(default_factory=utc_now, description="创建时间")
    updated_at: UtcDatetime = Field(default_factory=utc_now, description="更新时间")
