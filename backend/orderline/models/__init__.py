from orderline.models.task import Task, TaskStatus, RepeatType
from orderline.models.notification import NotificationPreference, TaskSnapshot
from orderline.models.storage_entry import StorageEntry

__all__ = [
    "Task",
    "TaskStatus",
    "RepeatType",
    "NotificationPreference",
    "TaskSnapshot",
    "StorageEntry",
]
