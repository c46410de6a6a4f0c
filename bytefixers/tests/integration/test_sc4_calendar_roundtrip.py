"""端到端：合成日历 ID 往返与删除保护

1. getCalendarItem("task-"+T).start_date == 任务 due_date；
   经日历改期后再次读取得到新日期，底层任务的 due_date 同步变化
2. 合成 ID 删除被拒绝；原生事件删除后读取 NotFound
"""

from datetime import UTC, datetime, timedelta

import pytest
from bytefixers.core.exceptions import InvalidOperationError, NotFoundError
from bytefixers.core.services import CalendarService, TrackingService

D1 = datetime(2025, 9, 1, 12, 0, tzinfo=UTC)
D2 = datetime(2025, 9, 15, 8, 30, tzinfo=UTC)


class TestSyntheticRoundTrip:
    async def test_task_due_date_round_trip(
        self, tracking: TrackingService, calendar: CalendarService
    ):
        project = await tracking.create_project("P", created_by="u-admin")
        task = await tracking.create_task(project.id, {"title": "T", "due_date": D1}, "u-admin")
        item_id = f"task-{task.id}"

        assert (await calendar.get_calendar_item(item_id)).start_date == D1

        await calendar.update_calendar_item(item_id, {"start_date": D2})
        assert (await calendar.get_calendar_item(item_id)).start_date == D2
        assert (await tracking.get_task(task.id)).due_date == D2

    async def test_subtask_due_date_round_trip(
        self, tracking: TrackingService, calendar: CalendarService
    ):
        project = await tracking.create_project("P", created_by="u-admin")
        task = await tracking.create_task(project.id, {"title": "T"}, "u-admin")
        subtask = await tracking.add_subtask(task.id, {"title": "S", "due_date": D1}, "u-admin")
        item_id = f"subtask-{subtask.id}"

        assert (await calendar.get_calendar_item(item_id)).end_date == D1
        await calendar.update_calendar_item(item_id, {"start_date": D2.isoformat()})
        item = await calendar.get_calendar_item(item_id)
        assert item.start_date == item.end_date == D2
        assert (await tracking.get_subtask(subtask.id)).due_date == D2

    async def test_listing_reflects_reschedule(
        self, tracking: TrackingService, calendar: CalendarService
    ):
        project = await tracking.create_project("P", created_by="u-admin")
        task = await tracking.create_task(project.id, {"title": "T", "due_date": D1}, "u-admin")
        await calendar.update_calendar_item(f"task-{task.id}", {"start_date": D2})
        [item] = await calendar.list_calendar(project.id)
        assert item.start_date == D2


class TestDeleteGuard:
    async def test_synthetic_and_native_delete(
        self, tracking: TrackingService, calendar: CalendarService
    ):
        project = await tracking.create_project("P", created_by="u-admin")
        task = await tracking.create_task(project.id, {"title": "T", "due_date": D1}, "u-admin")
        subtask = await tracking.add_subtask(task.id, {"title": "S", "due_date": D1}, "u-admin")

        with pytest.raises(InvalidOperationError):
            await calendar.delete_calendar_item(f"task-{task.id}")
        with pytest.raises(InvalidOperationError):
            await calendar.delete_calendar_item(f"subtask-{subtask.id}")
        assert (await tracking.get_task(task.id)).due_date == D1

        event = await calendar.create_calendar_event(
            {
                "title": "Review",
                "start_date": D1,
                "end_date": D1 + timedelta(hours=1),
                "project_id": project.id,
                "created_by": "u-admin",
            }
        )
        await calendar.delete_calendar_item(event.id)
        with pytest.raises(NotFoundError):
            await calendar.get_calendar_item(event.id)
