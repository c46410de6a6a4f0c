"""端到端：子任务变更镜像到父任务日志

场景：任务 A 的子任务 S 由 U2 将优先级从 LOW 改为 HIGH。
S 获得一条条目；A 的日志随后多出一条引用 S 标题、before/after 相同的条目。
"""

from bytefixers.core.models import EntityKind, Priority
from bytefixers.core.services import TrackingService


class TestSubtaskPropagation:
    async def test_priority_change_mirrored(self, tracking: TrackingService):
        project = await tracking.create_project("P", created_by="u-admin")
        task_a = await tracking.create_task(project.id, {"title": "A"}, "u-admin")
        subtask_s = await tracking.add_subtask(task_a.id, {"title": "S"}, "u-admin")
        assert subtask_s.priority == Priority.LOW
        parent_before = await tracking.get_task(task_a.id)

        updated = await tracking.apply_update(
            EntityKind.SUBTASK, subtask_s.id, {"priority": "HIGH"}, "U2"
        )
        assert len(updated.activity_log) == 1
        own = updated.activity_log[0]

        parent = await tracking.get_task(task_a.id)
        new_parent_entries = parent.activity_log[len(parent_before.activity_log):]
        assert len(new_parent_entries) == 1
        mirror = new_parent_entries[0]
        assert "S" in mirror.action
        assert mirror.action.startswith('Subtask "S":')
        assert mirror.actor_id == "U2"
        assert mirror.details["changes"]["priority"] == {"from": "LOW", "to": "HIGH"}
        assert mirror.details == own.details
        assert own.timestamp <= mirror.timestamp

    async def test_parent_log_interleaves_in_order(self, tracking: TrackingService):
        """父任务日志同时包含自身变更与子任务镜像，按发生顺序排列"""
        project = await tracking.create_project("P", created_by="u-admin")
        task_a = await tracking.create_task(project.id, {"title": "A"}, "u-admin")
        sub_1 = await tracking.add_subtask(task_a.id, {"title": "S1"}, "u-admin")
        sub_2 = await tracking.add_subtask(task_a.id, {"title": "S2"}, "u-admin")

        await tracking.apply_update("subtask", sub_1.id, {"status": "DONE"}, "u-1")
        await tracking.apply_update("task", task_a.id, {"priority": "HIGH"}, "u-1")
        await tracking.apply_update("subtask", sub_2.id, {"assignee_id": "u-3"}, "u-1")

        actions = [e.action for e in (await tracking.get_task(task_a.id)).activity_log]
        assert actions == [
            "Task Created",
            "Added Subtask",
            "Added Subtask",
            'Subtask "S1": Status changed from TO DO to DONE',
            "Priority Changed",
            'Subtask "S2": Assignee updated',
        ]
