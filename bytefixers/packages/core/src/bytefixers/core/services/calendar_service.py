"""CalendarService -- 统一日历视图

把原生 CalendarEvent 与 Task / Subtask 截止日期投影合并为同一个可寻址空间：
- 读取：原生事件 + 任务投影 + 子任务投影，按来源分组拼接
- 创建：只创建原生事件
- 更新：合成 ID 只允许改日期，经 TrackingService.apply_update 写回 due_date
- 删除：合成 ID 一律拒绝

所有 ID 分派都通过 parse_calendar_id 返回的 ref 类型进行。
"""

import asyncio
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from ..exceptions import InvalidOperationError, NotFoundError
from ..models import (
    CalendarEvent,
    CalendarEventStatus,
    CalendarEventType,
    CalendarItem,
    CalendarSource,
    DateRange,
    EntityKind,
    NativeEventRef,
    Subtask,
    SubtaskDueRef,
    Task,
    TaskDueRef,
    TaskStatus,
    new_id,
    parse_calendar_id,
    utc_now,
)
from ..store import EntityQuery, StoreGroup
from .concurrency import retry_on_conflict
from .tracking_service import TrackingService

log = structlog.get_logger()

# 合成条目可写回的日期字段（按优先级）
SYNTHETIC_DATE_FIELDS: tuple[str, ...] = ("start_date", "due_date")

# 原生事件不可经更新修改的字段
_EVENT_MANAGED_FIELDS = frozenset({"version", "created_at", "updated_at"})


def _projection_status(status: TaskStatus) -> CalendarEventStatus:
    if status == TaskStatus.DONE:
        return CalendarEventStatus.COMPLETED
    return CalendarEventStatus.SCHEDULED


def event_item(event: CalendarEvent) -> CalendarItem:
    """原生事件 -> 日历条目"""
    return CalendarItem(
        id=NativeEventRef(event_id=event.id or "").item_id,
        source=CalendarSource.EVENT,
        title=event.title,
        description=event.description,
        start_date=event.start_date,
        end_date=event.end_date,
        event_type=event.event_type,
        status=event.status,
        priority=event.priority,
        project_id=event.project_id,
        task_id=event.task_id,
        created_by=event.created_by,
        participant_ids=list(event.participant_ids),
    )


def task_item(task: Task, project_id: str | None) -> CalendarItem:
    """任务截止日期投影（单一时间点）"""
    return CalendarItem(
        id=TaskDueRef(task_id=task.id or "").item_id,
        source=CalendarSource.TASK,
        title=task.title,
        description=task.description,
        start_date=task.due_date,
        end_date=task.due_date,
        event_type=CalendarEventType.TASK_DUE,
        status=_projection_status(task.status),
        priority=task.priority,
        project_id=project_id,
        task_id=task.id,
        created_by=task.reporter_id,
        participant_ids=[task.assignee_id] if task.assignee_id else [],
    )


def subtask_item(
    subtask: Subtask,
    parent: Task | None,
    project_id: str | None,
) -> CalendarItem:
    """子任务截止日期投影，标题为 "父任务 > 子任务" """
    title = f"{parent.title} > {subtask.title}" if parent is not None else subtask.title
    return CalendarItem(
        id=SubtaskDueRef(subtask_id=subtask.id or "").item_id,
        source=CalendarSource.SUBTASK,
        title=title,
        description=subtask.description,
        start_date=subtask.due_date,
        end_date=subtask.due_date,
        event_type=CalendarEventType.TASK_DUE,
        status=_projection_status(subtask.status),
        priority=subtask.priority,
        project_id=project_id,
        task_id=subtask.parent_task_id,
        created_by=subtask.reporter_id,
        participant_ids=[subtask.assignee_id] if subtask.assignee_id else [],
    )


class CalendarService:
    """统一日历服务"""

    def __init__(self, store_group: StoreGroup, tracking: TrackingService) -> None:
        self._stores = store_group
        self._tracking = tracking
        self._locks = store_group.entity_locks

    async def list_calendar(
        self,
        project_id: str,
        date_range: DateRange | None = None,
    ) -> list[CalendarItem]:
        """项目日历：原生事件在前，其后任务投影，最后子任务投影

        三路查询并发执行，任一失败则整体失败。
        日期区间只过滤原生事件，截止日期投影总是全部返回。
        """
        project = await self._tracking.get_project(project_id)
        events, tasks, subtasks = await asyncio.gather(
            self._stores.calendar_store.query(
                EntityQuery(parent_id=project_id, date_range=date_range)
            ),
            self._stores.task_store.query(EntityQuery(ids=project.task_ids)),
            self._stores.subtask_store.query(
                EntityQuery(parent_ids=project.task_ids, has_date=True)
            ),
        )

        parents = {task.id: task for task in tasks}
        task_order = {task_id: index for index, task_id in enumerate(project.task_ids)}

        def subtask_position(subtask: Subtask) -> tuple[int, int]:
            parent = parents.get(subtask.parent_task_id)
            siblings = parent.subtask_ids if parent is not None else []
            index = siblings.index(subtask.id) if subtask.id in siblings else len(siblings)
            return task_order.get(subtask.parent_task_id, len(task_order)), index

        items = [event_item(event) for event in events]
        items.extend(task_item(task, project_id) for task in tasks if task.due_date is not None)
        items.extend(
            subtask_item(subtask, parents.get(subtask.parent_task_id), project_id)
            for subtask in sorted(subtasks, key=subtask_position)
        )

        log.debug(
            "calendar_listed",
            project_id=project_id,
            event_count=len(events),
            item_count=len(items),
        )
        return items

    async def get_calendar_item(self, item_id: str) -> CalendarItem:
        """读取单个日历条目

        Raises:
            NotFoundError: 原生事件或合成 ID 指向的任务/子任务不存在
        """
        match parse_calendar_id(item_id):
            case TaskDueRef(task_id=task_id):
                task = await self._load_task(task_id, item_id)
                project = await self._tracking.find_task_project(task_id)
                return task_item(task, project.id if project else None)
            case SubtaskDueRef(subtask_id=subtask_id):
                subtask = await self._load_subtask(subtask_id, item_id)
                parent = await self._stores.task_store.get(subtask.parent_task_id)
                project = await self._tracking.find_task_project(subtask.parent_task_id)
                return subtask_item(subtask, parent, project.id if project else None)
            case NativeEventRef(event_id=event_id):
                return event_item(await self._load_event(event_id))
        raise NotFoundError("calendar item", item_id)

    async def create_calendar_event(
        self,
        fields: Mapping[str, Any],
        actor_id: str | None = None,
    ) -> CalendarItem:
        """创建原生日历事件（合成条目不能直接创建）

        Raises:
            InvalidOperationError: 显式指定 id 或字段非法
            NotFoundError: 所属项目不存在
        """
        if "id" in fields:
            raise InvalidOperationError("calendar event id is assigned on save")
        data = {key: value for key, value in fields.items() if key not in _EVENT_MANAGED_FIELDS}
        if actor_id is not None:
            data.setdefault("created_by", actor_id)
        now = utc_now()
        try:
            event = CalendarEvent.model_validate(
                {**data, "id": new_id(), "created_at": now, "updated_at": now}
            )
        except ValidationError as e:
            raise InvalidOperationError(f"invalid calendar event: {e}") from e

        await self._tracking.get_project(event.project_id)
        saved = await self._stores.transaction(
            lambda: self._stores.calendar_store.save(event)
        )
        log.info(
            "calendar_event_created",
            event_id=saved.id,
            project_id=saved.project_id,
            created_by=saved.created_by,
        )
        return event_item(saved)

    async def update_calendar_item(
        self,
        item_id: str,
        fields: Mapping[str, Any],
        actor_id: str | None = None,
    ) -> CalendarItem:
        """更新日历条目

        合成条目只接受 start_date / due_date，写回底层实体的 due_date，
        其他字段忽略；原生事件做普通字段更新。
        """
        ref = parse_calendar_id(item_id)
        match ref:
            case TaskDueRef(task_id=task_id):
                await self._reschedule(EntityKind.TASK, task_id, item_id, fields, actor_id)
            case SubtaskDueRef(subtask_id=subtask_id):
                await self._reschedule(
                    EntityKind.SUBTASK, subtask_id, item_id, fields, actor_id
                )
            case NativeEventRef(event_id=event_id):
                return event_item(await self._update_event(event_id, fields))
        return await self.get_calendar_item(item_id)

    async def delete_calendar_item(self, item_id: str) -> None:
        """删除原生日历事件

        Raises:
            InvalidOperationError: 合成条目（截止日期属于任务本身）
            NotFoundError: 原生事件不存在
        """
        ref = parse_calendar_id(item_id)
        if ref.is_synthetic:
            raise InvalidOperationError("cannot delete task/subtask due dates directly")

        lock = await self._locks.get("calendar_event", item_id)
        async with lock:
            deleted = await self._stores.transaction(
                lambda: self._stores.calendar_store.delete(item_id)
            )
        if not deleted:
            raise NotFoundError("calendar event", item_id)
        await self._locks.discard("calendar_event", item_id)
        log.info("calendar_event_deleted", event_id=item_id)

    async def _reschedule(
        self,
        kind: EntityKind,
        entity_id: str,
        item_id: str,
        fields: Mapping[str, Any],
        actor_id: str | None,
    ) -> None:
        if not entity_id:
            raise NotFoundError("calendar item", item_id)
        date_field = next((name for name in SYNTHETIC_DATE_FIELDS if name in fields), None)
        ignored = sorted(set(fields) - set(SYNTHETIC_DATE_FIELDS))
        if ignored:
            log.debug("calendar_fields_ignored", item_id=item_id, fields=ignored)
        if date_field is None:
            return
        await self._tracking.apply_update(
            kind,
            entity_id,
            {"due_date": fields[date_field]},
            actor_id,
        )

    async def _update_event(
        self,
        event_id: str,
        fields: Mapping[str, Any],
    ) -> CalendarEvent:
        if "id" in fields and fields["id"] != event_id:
            raise InvalidOperationError("calendar event id cannot be changed")
        known = set(CalendarEvent.model_fields) - _EVENT_MANAGED_FIELDS - {"id"}
        updates = {key: value for key, value in fields.items() if key in known}
        if "project_id" in updates:
            await self._tracking.get_project(updates["project_id"])

        lock = await self._locks.get("calendar_event", event_id)
        async with lock:

            async def attempt() -> CalendarEvent:
                event = await self._load_event(event_id)
                try:
                    updated = CalendarEvent.model_validate({**event.model_dump(), **updates})
                except ValidationError as e:
                    raise InvalidOperationError(f"invalid calendar event: {e}") from e
                if updated == event:
                    return event
                updated = updated.model_copy(update={"updated_at": utc_now()})
                return await self._stores.transaction(
                    lambda: self._stores.calendar_store.save(updated)
                )

            saved = await retry_on_conflict("update_calendar_event", attempt)

        log.info("calendar_event_updated", event_id=event_id, fields=sorted(updates))
        return saved

    async def _load_event(self, event_id: str) -> CalendarEvent:
        event = await self._stores.calendar_store.get(event_id)
        if event is None:
            raise NotFoundError("calendar event", event_id)
        return event

    async def _load_task(self, task_id: str, item_id: str) -> Task:
        task = await self._stores.task_store.get(task_id) if task_id else None
        if task is None:
            raise NotFoundError("calendar item", item_id)
        return task

    async def _load_subtask(self, subtask_id: str, item_id: str) -> Subtask:
        subtask = await self._stores.subtask_store.get(subtask_id) if subtask_id else None
        if subtask is None:
            raise NotFoundError("calendar item", item_id)
        return subtask
