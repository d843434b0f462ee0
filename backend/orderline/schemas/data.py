from datetime import datetime

from orderline.models.task import Task
from orderline.schemas.task import CamelModel


class BackupRead(CamelModel):
    """One entry of the backup ring."""
    timestamp: str
    date: datetime | None
    task_count: int


class RestoreRequest(CamelModel):
    timestamp: str | None = None  # Most recent backup when omitted


class HealthRead(CamelModel):
    healthy: bool
    issues: list[str]
    recommendations: list[str]


class DataResult(CamelModel):
    """Outcome of an import, restore or recovery."""
    task_count: int
    tasks: list[Task]
    durable: bool
