"""ProjectStore SQLite 实现

通过 json_each(task_ids) 支持"包含某任务的项目"反查，
Task 本身不持有指回 Project 的引用。
"""

from ..models.project import Project
from .document_store import SqliteDocumentStore


class SqliteProjectStore(SqliteDocumentStore[Project]):
    """ProjectStore 的 SQLite 实现"""

    table = "projects"
    model = Project
    kind = "Project"
    list_field = "task_ids"
