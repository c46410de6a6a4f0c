"""文档存储 SQLite 通用实现

每种实体一张表，实体整体以 JSON 存入 body 列，
parent_id / start_key / end_key 为从实体字段抽取的可索引列。

save 语义：
- version == 0：插入（ID 为空时分配 ULID），version 置 1
- version > 0：UPDATE ... WHERE id = ? AND version = ?，未命中即并发冲突

注意：所有写方法不自动提交事务，需由调用方管理事务。
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any, ClassVar, Generic, TypeVar

import aiosqlite
from pydantic import BaseModel

from ..exceptions import VersionConflictError
from ..models.base import Document, new_id, to_utc
from .protocols import EntityQuery

D = TypeVar("D", bound=Document)


def date_key(value: datetime | None) -> str | None:
    """定长 UTC 日期键，字典序即时间序"""
    if value is None:
        return None
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class SqliteDocumentStore(Generic[D]):
    """EntityStore 的 SQLite 文档表实现

    子类声明表名、模型以及需要抽取为索引列的字段。
    """

    table: ClassVar[str]
    model: ClassVar[type[BaseModel]]
    kind: ClassVar[str]
    # 父 ID 字段（parent_id 过滤）
    parent_field: ClassVar[str | None] = None
    # 起止日期字段（has_date / date_range 过滤）
    start_field: ClassVar[str | None] = None
    end_field: ClassVar[str | None] = None
    # ID 列表字段（contains_task_id 过滤）
    list_field: ClassVar[str | None] = None
    order_by: ClassVar[str] = "rowid ASC"

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get(self, entity_id: str) -> D | None:
        """根据 ID 查询实体"""
        cursor = await self._conn.execute(
            f"SELECT body, version FROM {self.table} WHERE id = ?",
            (entity_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entity(row)

    async def query(self, query: EntityQuery) -> list[D]:
        """按条件查询；指定 ids 时按 ids 顺序返回"""
        clauses: list[str] = []
        params: list[Any] = []

        if query.ids is not None:
            if not query.ids:
                return []
            clauses.append(f"id IN ({_placeholders(query.ids)})")
            params.extend(query.ids)

        if query.parent_id is not None or query.parent_ids is not None:
            self._require(self.parent_field, "parent")
            if query.parent_id is not None:
                clauses.append("parent_id = ?")
                params.append(query.parent_id)
            if query.parent_ids is not None:
                if not query.parent_ids:
                    return []
                clauses.append(f"parent_id IN ({_placeholders(query.parent_ids)})")
                params.extend(query.parent_ids)

        if query.has_date or query.date_range is not None:
            self._require(self.start_field, "date")
            clauses.append("start_key IS NOT NULL")
            if query.date_range is not None:
                clauses.append("start_key >= ? AND end_key <= ?")
                params.extend(
                    [date_key(query.date_range.start), date_key(query.date_range.end)]
                )

        if query.contains_task_id is not None:
            self._require(self.list_field, "task membership")
            clauses.append(
                f"EXISTS (SELECT 1 FROM json_each({self.table}.body, "
                f"'$.{self.list_field}') WHERE json_each.value = ?)"
            )
            params.append(query.contains_task_id)

        sql = f"SELECT body, version FROM {self.table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f" ORDER BY {self.order_by}"

        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        entities = [self._row_to_entity(row) for row in rows]

        if query.ids:
            position = {entity_id: index for index, entity_id in enumerate(query.ids)}
            entities.sort(key=lambda entity: position[entity.id])
        return entities

    async def save(self, entity: D) -> D:
        """保存实体（upsert + version CAS）

        Raises:
            VersionConflictError: 实体已被其他写入修改（或已被删除）
        """
        if entity.version == 0:
            stored = entity.model_copy(
                update={"id": entity.id or new_id(), "version": 1}
            )
            await self._conn.execute(
                f"""
                INSERT INTO {self.table} (id, parent_id, start_key, end_key, version, body)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (stored.id, *self._index_columns(stored), 1, stored.model_dump_json()),
            )
            return stored

        stored = entity.model_copy(update={"version": entity.version + 1})
        cursor = await self._conn.execute(
            f"""
            UPDATE {self.table}
            SET parent_id = ?, start_key = ?, end_key = ?, version = ?, body = ?
            WHERE id = ? AND version = ?
            """,
            (
                *self._index_columns(stored),
                stored.version,
                stored.model_dump_json(),
                entity.id,
                entity.version,
            ),
        )
        if cursor.rowcount == 0:
            raise VersionConflictError(self.kind, entity.id or "", entity.version)
        return stored

    async def delete(self, entity_id: str) -> bool:
        """删除实体，返回是否实际删除"""
        cursor = await self._conn.execute(
            f"DELETE FROM {self.table} WHERE id = ?",
            (entity_id,),
        )
        return cursor.rowcount > 0

    def _index_columns(self, entity: D) -> tuple[str | None, str | None, str | None]:
        parent_id = getattr(entity, self.parent_field) if self.parent_field else None
        start = getattr(entity, self.start_field) if self.start_field else None
        end = getattr(entity, self.end_field) if self.end_field else start
        return parent_id, date_key(start), date_key(end)

    def _require(self, field: str | None, filter_name: str) -> None:
        if field is None:
            raise ValueError(f"{self.kind} store does not support {filter_name} filtering")

    def _row_to_entity(self, row: aiosqlite.Row) -> D:
        """将数据库行转换为实体模型（version 以列值为准）"""
        entity = self.model.model_validate_json(row[0])
        return entity.model_copy(update={"version": row[1]})
