from orderline.schemas.task import CamelModel, TaskCreate, TaskOverview
from orderline.schemas.data import BackupRead, RestoreRequest, HealthRead, DataResult
from orderline.schemas.notification import (
    PreferencesUpdate,
    PreferencesRead,
    TaskSnapshotCreate,
    TaskSnapshotRead,
)

__all__ = [
    "CamelModel",
    "TaskCreate",
    "TaskOverview",
    "BackupRead",
    "RestoreRequest",
    "HealthRead",
    "DataResult",
    "PreferencesUpdate",
    "PreferencesRead",
    "TaskSnapshotCreate",
    "TaskSnapshotRead",
]
