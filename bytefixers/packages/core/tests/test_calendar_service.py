"""CalendarService 单元测试

测试内容：
1. 合并视图的分组顺序与投影字段
2. 单条读取：合成 ID / 原生 ID / 不存在
3. 创建、更新、删除的分派规则
"""

from datetime import UTC, datetime, timedelta

import pytest
from bytefixers.core.exceptions import InvalidOperationError, NotFoundError
from bytefixers.core.models import (
    CalendarEventStatus,
    CalendarEventType,
    CalendarSource,
    DateRange,
    Project,
    Task,
)
from bytefixers.core.services import CalendarService, TrackingService
from bytefixers.core.store import StoreGroup

DUE = datetime(2025, 3, 10, 17, 0, tzinfo=UTC)


def _event_fields(project_id: str, title: str, start: datetime, **extra) -> dict:
    return {
        "title": title,
        "start_date": start,
        "end_date": start + timedelta(hours=1),
        "project_id": project_id,
        "created_by": "u-1",
        **extra,
    }


class TestListCalendar:
    """合并视图"""

    async def test_group_order(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        project: Project,
    ):
        late = await calendar.create_calendar_event(_event_fields(project.id, "Retro", DUE))
        early = await calendar.create_calendar_event(
            _event_fields(project.id, "Kickoff", DUE - timedelta(days=5))
        )
        a = await tracking.create_task(project.id, {"title": "A", "due_date": DUE}, "u-1")
        b = await tracking.create_task(project.id, {"title": "B"}, "u-1")
        c = await tracking.create_task(project.id, {"title": "C", "due_date": DUE}, "u-1")
        a1 = await tracking.add_subtask(a.id, {"title": "a1", "due_date": DUE}, "u-1")
        c1 = await tracking.add_subtask(c.id, {"title": "c1", "due_date": DUE}, "u-1")
        b1 = await tracking.add_subtask(b.id, {"title": "b1", "due_date": DUE}, "u-1")
        a2 = await tracking.add_subtask(a.id, {"title": "a2", "due_date": DUE}, "u-1")
        await tracking.add_subtask(a.id, {"title": "a3"}, "u-1")

        items = await calendar.list_calendar(project.id)

        assert [item.id for item in items] == [
            early.id,
            late.id,
            f"task-{a.id}",
            f"task-{c.id}",
            f"subtask-{a1.id}",
            f"subtask-{a2.id}",
            f"subtask-{b1.id}",
            f"subtask-{c1.id}",
        ]
        assert [item.source for item in items[2:4]] == [CalendarSource.TASK] * 2
        assert items[4].title == "A > a1"
        assert items[6].title == "B > b1"

    async def test_projection_fields(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        project: Project,
    ):
        task = await tracking.create_task(
            project.id,
            {"title": "Ship", "due_date": DUE, "status": "DONE", "assignee_id": "u-7"},
            "u-1",
        )
        [item] = await calendar.list_calendar(project.id)
        assert item.start_date == item.end_date == DUE
        assert item.status == CalendarEventStatus.COMPLETED
        assert item.event_type == CalendarEventType.TASK_DUE
        assert item.project_id == project.id
        assert item.task_id == task.id
        assert item.participant_ids == ["u-7"]

    async def test_range_filters_native_events_only(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        project: Project,
    ):
        await calendar.create_calendar_event(_event_fields(project.id, "Inside", DUE))
        await calendar.create_calendar_event(
            _event_fields(project.id, "Outside", DUE + timedelta(days=30))
        )
        far = await tracking.create_task(
            project.id, {"title": "Far", "due_date": DUE + timedelta(days=60)}, "u-1"
        )

        window = DateRange(start=DUE - timedelta(days=1), end=DUE + timedelta(days=1))
        items = await calendar.list_calendar(project.id, window)
        assert [item.title for item in items] == ["Inside", "Far"]
        assert items[1].id == f"task-{far.id}"

    async def test_other_projects_excluded(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        project: Project,
    ):
        other = await tracking.create_project("Gemini", created_by="u-1")
        await calendar.create_calendar_event(_event_fields(other.id, "Elsewhere", DUE))
        await tracking.create_task(other.id, {"title": "Elsewhere", "due_date": DUE}, "u-1")
        assert await calendar.list_calendar(project.id) == []

    async def test_missing_project(self, calendar: CalendarService):
        with pytest.raises(NotFoundError):
            await calendar.list_calendar("missing")

    async def test_fetch_failure_aborts_read(
        self,
        calendar: CalendarService,
        store_group: StoreGroup,
        project: Project,
        task: Task,
        monkeypatch: pytest.MonkeyPatch,
    ):
        async def broken_query(query):
            raise RuntimeError("subtask store unavailable")

        monkeypatch.setattr(store_group.subtask_store, "query", broken_query)
        with pytest.raises(RuntimeError, match="subtask store unavailable"):
            await calendar.list_calendar(project.id)


class TestGetCalendarItem:
    """单条读取"""

    async def test_task_projection(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        project: Project,
        task: Task,
    ):
        await tracking.apply_update("task", task.id, {"due_date": DUE}, "u-1")
        item = await calendar.get_calendar_item(f"task-{task.id}")
        assert item.source == CalendarSource.TASK
        assert item.start_date == DUE
        assert item.project_id == project.id
        assert item.status == CalendarEventStatus.SCHEDULED

    async def test_subtask_projection(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        project: Project,
        task: Task,
    ):
        subtask = await tracking.add_subtask(task.id, {"title": "Notes", "due_date": DUE}, "u-1")
        item = await calendar.get_calendar_item(f"subtask-{subtask.id}")
        assert item.source == CalendarSource.SUBTASK
        assert item.title == f"{task.title} > Notes"
        assert item.task_id == task.id
        assert item.project_id == project.id

    async def test_subtask_projection_creator_is_reporter(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        project: Project,
        task: Task,
    ):
        subtask = await tracking.add_subtask(
            task.id, {"title": "Notes", "due_date": DUE, "reporter_id": "u-rep"}, "u-1"
        )
        assert subtask.created_by == "u-1"
        item = await calendar.get_calendar_item(f"subtask-{subtask.id}")
        assert item.created_by == "u-rep"
        [listed] = [i for i in await calendar.list_calendar(project.id) if i.id == item.id]
        assert listed.created_by == "u-rep"

    @pytest.mark.parametrize("item_id", ["task-missing", "subtask-missing", "task-", "subtask-"])
    async def test_missing_synthetic_target(self, calendar: CalendarService, item_id: str):
        with pytest.raises(NotFoundError):
            await calendar.get_calendar_item(item_id)

    async def test_missing_native_event(self, calendar: CalendarService):
        with pytest.raises(NotFoundError):
            await calendar.get_calendar_item("01JNOTANEVENT0000000000000")


class TestCreateCalendarEvent:
    """创建原生事件"""

    async def test_create_native(self, calendar: CalendarService, project: Project):
        item = await calendar.create_calendar_event(
            _event_fields(project.id, "Kickoff", DUE, participant_ids=["u-2"]),
        )
        assert item.source == CalendarSource.EVENT
        assert "-" not in item.id
        assert (await calendar.get_calendar_item(item.id)).participant_ids == ["u-2"]

    async def test_explicit_id_rejected(self, calendar: CalendarService, project: Project):
        with pytest.raises(InvalidOperationError):
            await calendar.create_calendar_event(
                {"id": "task-123", **_event_fields(project.id, "Sneaky", DUE)}
            )

    async def test_invalid_range_rejected(self, calendar: CalendarService, project: Project):
        fields = _event_fields(project.id, "Backwards", DUE)
        fields["end_date"] = DUE - timedelta(hours=2)
        with pytest.raises(InvalidOperationError):
            await calendar.create_calendar_event(fields)

    async def test_missing_project(self, calendar: CalendarService):
        with pytest.raises(NotFoundError):
            await calendar.create_calendar_event(_event_fields("missing", "Lost", DUE))

    async def test_actor_becomes_creator(self, calendar: CalendarService, project: Project):
        fields = _event_fields(project.id, "Standup", DUE)
        fields.pop("created_by")
        item = await calendar.create_calendar_event(fields, actor_id="u-9")
        assert item.created_by == "u-9"


class TestUpdateCalendarItem:
    """更新分派"""

    async def test_native_update(self, calendar: CalendarService, project: Project):
        created = await calendar.create_calendar_event(_event_fields(project.id, "Kickoff", DUE))
        updated = await calendar.update_calendar_item(
            created.id,
            {"title": "Kickoff v2", "status": "CANCELLED", "unknown": 1},
        )
        assert updated.title == "Kickoff v2"
        assert updated.status == CalendarEventStatus.CANCELLED
        assert (await calendar.get_calendar_item(created.id)).title == "Kickoff v2"

    async def test_native_identity_is_immutable(
        self, calendar: CalendarService, project: Project
    ):
        created = await calendar.create_calendar_event(_event_fields(project.id, "Kickoff", DUE))
        with pytest.raises(InvalidOperationError):
            await calendar.update_calendar_item(created.id, {"id": "other"})

    async def test_native_invalid_update(self, calendar: CalendarService, project: Project):
        created = await calendar.create_calendar_event(_event_fields(project.id, "Kickoff", DUE))
        with pytest.raises(InvalidOperationError):
            await calendar.update_calendar_item(
                created.id, {"end_date": DUE - timedelta(days=1)}
            )

    async def test_native_missing(self, calendar: CalendarService):
        with pytest.raises(NotFoundError):
            await calendar.update_calendar_item("01JNOTANEVENT0000000000000", {"title": "x"})

    async def test_native_move_requires_existing_project(
        self, tracking: TrackingService, calendar: CalendarService, project: Project
    ):
        created = await calendar.create_calendar_event(_event_fields(project.id, "Kickoff", DUE))
        with pytest.raises(NotFoundError):
            await calendar.update_calendar_item(created.id, {"project_id": "missing"})
        assert (await calendar.get_calendar_item(created.id)).project_id == project.id

        other = await tracking.create_project("Gemini", created_by="u-1")
        moved = await calendar.update_calendar_item(created.id, {"project_id": other.id})
        assert moved.project_id == other.id

    async def test_synthetic_only_date_honoured(
        self,
        tracking: TrackingService,
        calendar: CalendarService,
        task: Task,
    ):
        new_due = DUE + timedelta(days=2)
        item = await calendar.update_calendar_item(
            f"task-{task.id}",
            {"start_date": new_due, "title": "Renamed"},
            actor_id="u-5",
        )
        assert item.start_date == new_due
        assert item.title == task.title

        stored = await tracking.get_task(task.id)
        assert stored.due_date == new_due
        assert stored.title == task.title
        assert stored.activity_log[-1].action == "Due Date Changed"
        assert stored.activity_log[-1].actor_id == "u-5"

    async def test_synthetic_due_date_alias(
        self, tracking: TrackingService, calendar: CalendarService, task: Task
    ):
        await calendar.update_calendar_item(f"task-{task.id}", {"due_date": "2025-04-01T00:00:00Z"})
        stored = await tracking.get_task(task.id)
        assert stored.due_date == datetime(2025, 4, 1, tzinfo=UTC)

    async def test_synthetic_without_date_is_noop(
        self, tracking: TrackingService, calendar: CalendarService, task: Task
    ):
        await calendar.update_calendar_item(f"task-{task.id}", {"title": "Renamed"})
        assert (await tracking.get_task(task.id)).version == task.version

    async def test_subtask_reschedule_propagates(
        self, tracking: TrackingService, calendar: CalendarService, task: Task
    ):
        subtask = await tracking.add_subtask(task.id, {"title": "Notes", "due_date": DUE}, "u-1")
        await calendar.update_calendar_item(
            f"subtask-{subtask.id}", {"start_date": DUE + timedelta(days=1)}, "u-2"
        )
        stored = await tracking.get_subtask(subtask.id)
        assert stored.due_date == DUE + timedelta(days=1)
        assert stored.activity_log[-1].action == "Due date updated"
        parent = await tracking.get_task(task.id)
        assert parent.activity_log[-1].action == 'Subtask "Notes": Due date updated'

    async def test_synthetic_missing(self, calendar: CalendarService):
        with pytest.raises(NotFoundError):
            await calendar.update_calendar_item("task-missing", {"start_date": DUE})
        with pytest.raises(NotFoundError):
            await calendar.update_calendar_item("subtask-", {"start_date": DUE})


class TestDeleteCalendarItem:
    """删除保护"""

    async def test_synthetic_delete_rejected(
        self, tracking: TrackingService, calendar: CalendarService, task: Task
    ):
        subtask = await tracking.add_subtask(task.id, {"title": "Notes"}, "u-1")
        for item_id in (f"task-{task.id}", f"subtask-{subtask.id}", "task-", "subtask-missing"):
            with pytest.raises(InvalidOperationError):
                await calendar.delete_calendar_item(item_id)
        assert (await tracking.get_task(task.id)).id == task.id

    async def test_native_delete(self, calendar: CalendarService, project: Project):
        created = await calendar.create_calendar_event(_event_fields(project.id, "Kickoff", DUE))
        await calendar.delete_calendar_item(created.id)
        with pytest.raises(NotFoundError):
            await calendar.get_calendar_item(created.id)
        with pytest.raises(NotFoundError):
            await calendar.delete_calendar_item(created.id)
