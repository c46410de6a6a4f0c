"""bytefixers Core Services -- 变更编排与统一日历"""

from .calendar_service import CalendarService
from .concurrency import EntityLocks, retry_on_conflict
from .tracking_service import TrackingService

__all__ = [
    "CalendarService",
    "EntityLocks",
    "TrackingService",
    "retry_on_conflict",
]
