"""TaskStore / SubtaskStore SQLite 实现

due_date 抽取为日期键，用于日历投影查询；
Subtask 以 parent_task_id 作为父 ID 列。
"""

from ..models.task import Subtask, Task
from .document_store import SqliteDocumentStore


class SqliteTaskStore(SqliteDocumentStore[Task]):
    """TaskStore 的 SQLite 实现"""

    table = "tasks"
    model = Task
    kind = "Task"
    start_field = "due_date"


class SqliteSubtaskStore(SqliteDocumentStore[Subtask]):
    """SubtaskStore 的 SQLite 实现"""

    table = "subtasks"
    model = Subtask
    kind = "Subtask"
    parent_field = "parent_task_id"
    start_field = "due_date"
