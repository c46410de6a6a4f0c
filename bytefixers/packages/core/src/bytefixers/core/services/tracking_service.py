"""TrackingService -- Task / Subtask / Project 变更编排

一次变更的控制流：
1. 在实体锁内加载实体
2. Diff Engine 比较原值与提议值（未知字段忽略）
3. Status/Completion 规则派生 completed_at
4. Audit Log Builder 生成审计条目，无实际变更时不写入
5. version CAS 保存，冲突时重新加载并重试
6. 子任务条目镜像到父任务；任务集合或任务状态变化后重算项目进度
"""

from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from ..audit import (
    append_activity,
    build_action_entry,
    build_entries,
    render_subtask_change,
    render_task_change,
)
from ..diff import SUBTASK_FIELDS, TASK_FIELDS, diff, unknown_fields
from ..exceptions import (
    InvalidOperationError,
    NotFoundError,
    PropagationFailure,
)
from ..models import (
    AssignedPayload,
    Attachment,
    AttachmentDeletedPayload,
    AttachmentUploadedPayload,
    AuditAction,
    AuditEntry,
    EntityKind,
    Priority,
    Project,
    ProjectStatus,
    ProjectTaskCounts,
    Subtask,
    SubtaskAddedPayload,
    SubtaskDeletedPayload,
    Task,
    TaskCreatedPayload,
    TaskStatus,
    TeamLinkPayload,
    new_id,
    utc_now,
)
from ..progress import count_by_status, recompute
from ..propagation import mirror_subtask_entries
from ..status_rules import derive_completed_at, initial_completed_at
from ..store import EntityQuery, StoreGroup
from .concurrency import retry_on_conflict

log = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

# 由服务维护，创建时调用方传入也会被忽略
_SERVER_MANAGED_FIELDS = frozenset(
    {
        "version",
        "created_at",
        "updated_at",
        "completed_at",
        "activity_log",
        "subtask_ids",
        "attachments",
        "parent_task_id",
    }
)

# mutate 回调返回 (字段更新, 审计条目)，None 表示无变更
TaskMutation = Callable[[Task], tuple[dict[str, Any], list[AuditEntry]] | None]


def _normalize_ref(value: Any) -> str | None:
    """引用字段归一化：None / 空白字符串视为清空"""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _creation_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    if "id" in fields:
        raise InvalidOperationError("id is assigned on save and cannot be supplied")
    return {key: value for key, value in fields.items() if key not in _SERVER_MANAGED_FIELDS}


def _validate(model: type[M], data: Mapping[str, Any]) -> M:
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        raise InvalidOperationError(f"invalid {model.__name__} fields: {e}") from e


def _rebuild(model: type[M], base: M, updates: Mapping[str, Any]) -> M:
    """合并更新后重新校验，返回新实例"""
    return _validate(model, {**base.model_dump(), **updates})


class TrackingService:
    """Task / Subtask / Project 变更服务"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group
        self._locks = store_group.entity_locks

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def get_task(self, task_id: str) -> Task:
        task = await self._stores.task_store.get(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    async def get_subtask(self, subtask_id: str) -> Subtask:
        subtask = await self._stores.subtask_store.get(subtask_id)
        if subtask is None:
            raise NotFoundError("subtask", subtask_id)
        return subtask

    async def get_project(self, project_id: str) -> Project:
        project = await self._stores.project_store.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    async def list_project_tasks(self, project_id: str) -> list[Task]:
        """项目任务（按 task_ids 顺序）"""
        project = await self.get_project(project_id)
        return await self._stores.task_store.query(EntityQuery(ids=project.task_ids))

    async def list_subtasks(self, task_id: str) -> list[Subtask]:
        """任务的子任务（按 subtask_ids 顺序）"""
        task = await self.get_task(task_id)
        return await self._stores.subtask_store.query(EntityQuery(ids=task.subtask_ids))

    async def find_task_project(self, task_id: str) -> Project | None:
        """查找包含该任务的项目"""
        projects = await self._stores.project_store.query(
            EntityQuery(contains_task_id=task_id)
        )
        return projects[0] if projects else None

    async def project_status_counts(self, project_id: str) -> ProjectTaskCounts:
        """项目任务按状态计数"""
        tasks = await self.list_project_tasks(project_id)
        return ProjectTaskCounts(
            project_id=project_id,
            total=len(tasks),
            by_status=count_by_status(tasks),
        )

    # ------------------------------------------------------------------
    # Project
    # ------------------------------------------------------------------

    async def create_project(
        self,
        name: str,
        created_by: str,
        *,
        description: str | None = None,
        team_id: str | None = None,
        member_ids: list[str] | None = None,
        status: ProjectStatus | str = ProjectStatus.PLANNING,
    ) -> Project:
        """创建项目，创建者总是成员"""
        now = utc_now()
        project = _validate(
            Project,
            {
                "id": new_id(),
                "name": name,
                "description": description,
                "team_id": team_id,
                "created_by": created_by,
                "member_ids": [created_by, *(member_ids or [])],
                "status": status,
                "created_at": now,
                "updated_at": now,
            },
        )
        saved = await self._stores.transaction(
            lambda: self._stores.project_store.save(project)
        )
        log.info("project_created", project_id=saved.id, created_by=created_by)
        return saved

    async def recompute_project_progress(self, project_id: str) -> Project:
        """按当前任务集合重算项目进度（幂等，无变化时不写入）"""
        lock = await self._locks.get("project", project_id)
        async with lock:

            async def attempt() -> Project:
                project = await self.get_project(project_id)
                tasks = await self._stores.task_store.query(
                    EntityQuery(ids=project.task_ids)
                )
                updated = recompute(project, tasks)
                if updated is project:
                    return project
                updated = updated.model_copy(update={"updated_at": utc_now()})
                return await self._stores.transaction(
                    lambda: self._stores.project_store.save(updated)
                )

            project = await retry_on_conflict("recompute_project_progress", attempt)

        log.debug(
            "project_progress_recomputed",
            project_id=project_id,
            progress=project.progress,
        )
        return project

    # ------------------------------------------------------------------
    # Task
    # ------------------------------------------------------------------

    async def create_task(
        self,
        project_id: str,
        fields: Mapping[str, Any],
        actor_id: str | None,
    ) -> Task:
        """创建任务并挂到项目下

        写入 "Task Created" 条目，同一事务内更新项目 task_ids 与进度。

        Raises:
            NotFoundError: 项目不存在
            InvalidOperationError: 字段非法或显式指定了 id
        """
        data = _creation_fields(fields)
        if not data.get("reporter_id"):
            data["reporter_id"] = actor_id

        lock = await self._locks.get("project", project_id)
        async with lock:

            async def attempt() -> Task:
                project = await self.get_project(project_id)
                now = utc_now()
                task = _validate(
                    Task,
                    {**data, "id": new_id(), "created_at": now, "updated_at": now},
                )
                task = task.model_copy(
                    update={"completed_at": initial_completed_at(task.status, now)}
                )
                entry = build_action_entry(
                    AuditAction.TASK_CREATED,
                    actor_id,
                    TaskCreatedPayload(title=task.title),
                )
                task = append_activity(task, [entry])

                siblings = await self._stores.task_store.query(
                    EntityQuery(ids=project.task_ids)
                )
                updated_project = recompute(
                    project.model_copy(
                        update={
                            "task_ids": [*project.task_ids, task.id],
                            "updated_at": now,
                        }
                    ),
                    [*siblings, task],
                )

                async def work() -> Task:
                    saved = await self._stores.task_store.save(task)
                    await self._stores.project_store.save(updated_project)
                    return saved

                return await self._stores.transaction(work)

            created = await retry_on_conflict("create_task", attempt)

        log.info(
            "task_created",
            task_id=created.id,
            project_id=project_id,
            actor_id=actor_id,
        )
        return created

    async def apply_update(
        self,
        kind: EntityKind | str,
        entity_id: str,
        proposed_fields: Mapping[str, Any],
        actor_id: str | None,
    ) -> Task | Subtask:
        """通用更新入口（部分更新语义）

        无实际变更时不写入、不产生审计条目，直接返回当前实体。

        Raises:
            NotFoundError: 实体不存在
            InvalidOperationError: 不支持的实体类型或更新后字段非法
        """
        try:
            kind = EntityKind(kind)
        except ValueError as e:
            raise InvalidOperationError(f"unsupported entity kind: {kind}") from e

        if kind == EntityKind.TASK:
            return await self._update_task(entity_id, proposed_fields, actor_id)
        return await self._update_subtask(entity_id, proposed_fields, actor_id)

    async def assign_task(
        self,
        task_id: str,
        assignee_id: str | None,
        actor_id: str | None,
    ) -> Task:
        """分配负责人，写入 "Assigned Task" 条目"""
        new_assignee = _normalize_ref(assignee_id)

        def mutate(task: Task) -> tuple[dict[str, Any], list[AuditEntry]] | None:
            if task.assignee_id == new_assignee:
                return None
            entry = build_action_entry(
                AuditAction.ASSIGNED,
                actor_id,
                AssignedPayload(assigned_to=new_assignee, previous=task.assignee_id),
            )
            return {"assignee_id": new_assignee}, [entry]

        task = await self._mutate_task(task_id, "assign_task", mutate)
        log.info("task_assigned", task_id=task_id, assignee_id=new_assignee, actor_id=actor_id)
        return task

    async def link_team(
        self,
        task_id: str,
        team_id: str | None,
        actor_id: str | None,
    ) -> Task:
        """关联 / 解除关联团队"""

        def mutate(task: Task) -> tuple[dict[str, Any], list[AuditEntry]] | None:
            entry = self._team_link_entry(task, team_id, actor_id)
            if entry is None:
                return None
            return {"team_id": _normalize_ref(team_id)}, [entry]

        return await self._mutate_task(task_id, "link_team", mutate)

    async def add_attachment(
        self,
        task_id: str,
        attachment: Attachment | Mapping[str, Any],
        actor_id: str | None,
    ) -> Task:
        """登记附件元数据，写入 "File Uploaded" 条目"""
        if not isinstance(attachment, Attachment):
            attachment = _validate(Attachment, attachment)
        if attachment.uploaded_by is None:
            attachment = attachment.model_copy(update={"uploaded_by": actor_id})

        def mutate(task: Task) -> tuple[dict[str, Any], list[AuditEntry]] | None:
            if any(a.attachment_id == attachment.attachment_id for a in task.attachments):
                return None
            entry = build_action_entry(
                AuditAction.FILE_UPLOADED,
                actor_id,
                AttachmentUploadedPayload(
                    attachment_id=attachment.attachment_id,
                    file_name=attachment.file_name,
                    file_type=attachment.file_type,
                    file_size=attachment.file_size,
                ),
            )
            return {"attachments": [*task.attachments, attachment]}, [entry]

        return await self._mutate_task(task_id, "add_attachment", mutate)

    async def remove_attachment(
        self,
        task_id: str,
        attachment_id: str,
        actor_id: str | None,
    ) -> Task:
        """移除附件元数据，写入 "File Deleted" 条目

        Raises:
            NotFoundError: 附件不存在
        """

        def mutate(task: Task) -> tuple[dict[str, Any], list[AuditEntry]] | None:
            target = next(
                (a for a in task.attachments if a.attachment_id == attachment_id),
                None,
            )
            if target is None:
                raise NotFoundError("attachment", attachment_id)
            entry = build_action_entry(
                AuditAction.FILE_DELETED,
                actor_id,
                AttachmentDeletedPayload(
                    attachment_id=target.attachment_id,
                    file_name=target.file_name,
                    file_type=target.file_type,
                ),
            )
            remaining = [a for a in task.attachments if a.attachment_id != attachment_id]
            return {"attachments": remaining}, [entry]

        return await self._mutate_task(task_id, "remove_attachment", mutate)

    async def delete_task(self, task_id: str, actor_id: str | None = None) -> None:
        """删除任务：级联删除子任务，从项目中摘除并重算进度"""
        lock = await self._locks.get("task", task_id)
        async with lock:
            await self.get_task(task_id)
            subtasks = await self._stores.subtask_store.query(
                EntityQuery(parent_id=task_id)
            )

            async def work() -> None:
                for subtask in subtasks:
                    await self._stores.subtask_store.delete(subtask.id or "")
                await self._stores.task_store.delete(task_id)

            await self._stores.transaction(work)

        await self._locks.discard("task", task_id)
        for subtask in subtasks:
            await self._locks.discard("subtask", subtask.id or "")

        await self._detach_from_projects(task_id)
        log.info(
            "task_deleted",
            task_id=task_id,
            subtask_count=len(subtasks),
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Subtask
    # ------------------------------------------------------------------

    async def add_subtask(
        self,
        task_id: str,
        fields: Mapping[str, Any],
        actor_id: str | None,
    ) -> Subtask:
        """在任务下创建子任务，父任务写入 "Added Subtask" 条目

        子任务默认状态 TO DO、优先级 LOW。
        """
        data = _creation_fields(fields)

        lock = await self._locks.get("task", task_id)
        async with lock:

            async def attempt() -> Subtask:
                parent = await self.get_task(task_id)
                now = utc_now()
                subtask = _validate(
                    Subtask,
                    {
                        "status": TaskStatus.TODO,
                        "priority": Priority.LOW,
                        "reporter_id": actor_id,
                        "created_by": actor_id,
                        **data,
                        "id": new_id(),
                        "parent_task_id": task_id,
                        "created_at": now,
                        "updated_at": now,
                    },
                )
                subtask = subtask.model_copy(
                    update={"completed_at": initial_completed_at(subtask.status, now)}
                )
                entry = build_action_entry(
                    AuditAction.SUBTASK_ADDED,
                    actor_id,
                    SubtaskAddedPayload(
                        subtask_id=subtask.id or "",
                        subtask_title=subtask.title,
                    ),
                )
                updated_parent = append_activity(
                    parent.model_copy(
                        update={
                            "subtask_ids": [*parent.subtask_ids, subtask.id],
                            "updated_at": now,
                        }
                    ),
                    [entry],
                )

                async def work() -> Subtask:
                    saved = await self._stores.subtask_store.save(subtask)
                    await self._stores.task_store.save(updated_parent)
                    return saved

                return await self._stores.transaction(work)

            created = await retry_on_conflict("add_subtask", attempt)

        log.info(
            "subtask_created",
            subtask_id=created.id,
            task_id=task_id,
            actor_id=actor_id,
        )
        return created

    async def delete_subtask(self, subtask_id: str, actor_id: str | None) -> None:
        """删除子任务，父任务写入 "Deleted Subtask" 条目"""
        subtask_lock = await self._locks.get("subtask", subtask_id)
        async with subtask_lock:
            subtask = await self.get_subtask(subtask_id)
            parent_lock = await self._locks.get("task", subtask.parent_task_id)
            async with parent_lock:

                async def attempt() -> Task | None:
                    parent = await self._stores.task_store.get(subtask.parent_task_id)
                    updated_parent: Task | None = None
                    if parent is not None:
                        entry = build_action_entry(
                            AuditAction.SUBTASK_DELETED,
                            actor_id,
                            SubtaskDeletedPayload(
                                subtask_id=subtask_id,
                                subtask_title=subtask.title,
                            ),
                        )
                        updated_parent = append_activity(
                            parent.model_copy(
                                update={
                                    "subtask_ids": [
                                        sid for sid in parent.subtask_ids if sid != subtask_id
                                    ],
                                    "updated_at": utc_now(),
                                }
                            ),
                            [entry],
                        )

                    async def work() -> None:
                        await self._stores.subtask_store.delete(subtask_id)
                        if updated_parent is not None:
                            await self._stores.task_store.save(updated_parent)

                    await self._stores.transaction(work)
                    return parent

                parent = await retry_on_conflict("delete_subtask", attempt)

        await self._locks.discard("subtask", subtask_id)
        if parent is None:
            log.warning(
                "subtask_parent_missing",
                subtask_id=subtask_id,
                parent_task_id=subtask.parent_task_id,
            )
        log.info("subtask_deleted", subtask_id=subtask_id, actor_id=actor_id)

    # ------------------------------------------------------------------
    # 内部实现
    # ------------------------------------------------------------------

    async def _update_task(
        self,
        task_id: str,
        proposed: Mapping[str, Any],
        actor_id: str | None,
    ) -> Task:
        ignored = [name for name in unknown_fields(proposed, TASK_FIELDS) if name != "team_id"]
        if ignored:
            log.debug("update_fields_ignored", kind="task", entity_id=task_id, fields=ignored)

        changed: list[str] = []

        def mutate(task: Task) -> tuple[dict[str, Any], list[AuditEntry]] | None:
            changes = diff(task.model_dump(), proposed, TASK_FIELDS)
            updates: dict[str, Any] = {change.field: change.new for change in changes}
            entries = build_entries(changes, actor_id, render_task_change) if changes else []
            if "team_id" in proposed:
                team_entry = self._team_link_entry(task, proposed["team_id"], actor_id)
                if team_entry is not None:
                    updates["team_id"] = _normalize_ref(proposed["team_id"])
                    entries.append(team_entry)
            changed[:] = list(updates)
            if not entries:
                return None
            updates["completed_at"] = derive_completed_at(
                task.status,
                task.completed_at,
                updates.get("status"),
                utc_now(),
            )
            return updates, entries

        task = await self._mutate_task(task_id, "update_task", mutate)

        if changed:
            log.info("task_updated", task_id=task_id, fields=changed, actor_id=actor_id)
        if "status" in changed:
            await self._recompute_for_task(task_id)
        return task

    async def _update_subtask(
        self,
        subtask_id: str,
        proposed: Mapping[str, Any],
        actor_id: str | None,
    ) -> Subtask:
        ignored = unknown_fields(proposed, SUBTASK_FIELDS)
        if ignored:
            log.debug(
                "update_fields_ignored",
                kind="subtask",
                entity_id=subtask_id,
                fields=ignored,
            )

        lock = await self._locks.get("subtask", subtask_id)
        async with lock:

            async def attempt() -> tuple[Subtask, list[AuditEntry]]:
                subtask = await self.get_subtask(subtask_id)
                changes = diff(subtask.model_dump(), proposed, SUBTASK_FIELDS)
                if not changes:
                    return subtask, []

                now = utc_now()
                updates: dict[str, Any] = {change.field: change.new for change in changes}
                updates["completed_at"] = derive_completed_at(
                    subtask.status,
                    subtask.completed_at,
                    updates.get("status"),
                    now,
                )
                updates["updated_at"] = now
                updated = _rebuild(Subtask, subtask, updates)
                entries = build_entries(
                    changes,
                    actor_id,
                    render_subtask_change,
                    subtask=updated,
                )
                updated = append_activity(updated, entries)
                saved = await self._stores.transaction(
                    lambda: self._stores.subtask_store.save(updated)
                )
                return saved, entries

            subtask, entries = await retry_on_conflict("update_subtask", attempt)

            if entries:
                log.info(
                    "subtask_updated",
                    subtask_id=subtask_id,
                    action=entries[0].action,
                    actor_id=actor_id,
                )
                await self._propagate(subtask, entries)

        return subtask

    async def _propagate(self, subtask: Subtask, entries: list[AuditEntry]) -> None:
        """镜像到父任务；失败只记录日志，不影响子任务更新"""
        try:
            await self._mirror_to_parent(subtask, entries)
        except PropagationFailure as e:
            log.warning(
                "subtask_propagation_failed",
                subtask_id=e.subtask_id,
                parent_task_id=e.parent_task_id,
                error=str(e),
            )

    async def _mirror_to_parent(self, subtask: Subtask, entries: list[AuditEntry]) -> None:
        parent_id = subtask.parent_task_id
        lock = await self._locks.get("task", parent_id)
        async with lock:

            async def attempt() -> Task:
                parent = await self._stores.task_store.get(parent_id)
                mirrored = mirror_subtask_entries(parent, subtask, entries)
                mirrored = mirrored.model_copy(update={"updated_at": utc_now()})
                return await self._stores.transaction(
                    lambda: self._stores.task_store.save(mirrored)
                )

            try:
                await retry_on_conflict("propagate_subtask_entry", attempt)
            except PropagationFailure:
                raise
            except Exception as e:
                # 子任务已提交，父任务加载或保存失败不回传给调用方
                raise PropagationFailure(subtask.id or "", parent_id, str(e)) from e

    async def _mutate_task(
        self,
        task_id: str,
        operation: str,
        mutate: TaskMutation,
    ) -> Task:
        """任务 read-modify-write 模板：加锁、加载、变更、CAS 保存"""
        lock = await self._locks.get("task", task_id)
        async with lock:

            async def attempt() -> Task:
                task = await self.get_task(task_id)
                result = mutate(task)
                if result is None:
                    return task
                updates, entries = result
                updated = _rebuild(Task, task, {**updates, "updated_at": utc_now()})
                updated = append_activity(updated, entries)
                return await self._stores.transaction(
                    lambda: self._stores.task_store.save(updated)
                )

            return await retry_on_conflict(operation, attempt)

    @staticmethod
    def _team_link_entry(
        task: Task,
        team_id: Any,
        actor_id: str | None,
    ) -> AuditEntry | None:
        new_team = _normalize_ref(team_id)
        if new_team == task.team_id:
            return None
        action = AuditAction.TEAM_ASSIGNED if new_team else AuditAction.TEAM_REMOVED
        return build_action_entry(
            action,
            actor_id,
            TeamLinkPayload(team=new_team, previous=task.team_id),
        )

    async def _recompute_for_task(self, task_id: str) -> None:
        projects = await self._stores.project_store.query(
            EntityQuery(contains_task_id=task_id)
        )
        if not projects:
            log.debug("task_without_project", task_id=task_id)
        for project in projects:
            await self.recompute_project_progress(project.id or "")

    async def _detach_from_projects(self, task_id: str) -> None:
        projects = await self._stores.project_store.query(
            EntityQuery(contains_task_id=task_id)
        )
        for project in projects:
            project_id = project.id or ""
            lock = await self._locks.get("project", project_id)
            async with lock:

                async def attempt(project_id: str = project_id) -> Project:
                    current = await self.get_project(project_id)
                    remaining = [tid for tid in current.task_ids if tid != task_id]
                    tasks = await self._stores.task_store.query(EntityQuery(ids=remaining))
                    updated = recompute(
                        current.model_copy(
                            update={"task_ids": remaining, "updated_at": utc_now()}
                        ),
                        tasks,
                    )
                    return await self._stores.transaction(
                        lambda: self._stores.project_store.save(updated)
                    )

                detached = await retry_on_conflict("detach_task", attempt)
            log.info(
                "task_detached_from_project",
                task_id=task_id,
                project_id=project_id,
                progress=detached.progress,
            )
