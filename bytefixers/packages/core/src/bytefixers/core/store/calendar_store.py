"""CalendarEventStore SQLite 实现

按 project_id 作为父 ID 过滤，结果按 start_date 升序。
"""

from ..models.calendar import CalendarEvent
from .document_store import SqliteDocumentStore


class SqliteCalendarEventStore(SqliteDocumentStore[CalendarEvent]):
    """CalendarEventStore 的 SQLite 实现"""

    table = "calendar_events"
    model = CalendarEvent
    kind = "CalendarEvent"
    parent_field = "project_id"
    start_field = "start_date"
    end_field = "end_date"
    order_by = "start_key ASC, rowid ASC"
