from datetime import date
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orderline.models.task import RepeatType, Task


class CamelModel(BaseModel):
    """API schemas use the same camelCase keys as the stored task data."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskCreate(CamelModel):
    """Schema for creating a new task."""
    title: str = Field(min_length=1)
    repeat_type: RepeatType = RepeatType.NONE
    scheduled_date: date | None = None  # Defaults to today if not provided


class TaskOverview(CamelModel):
    """What the home screen shows: the visible windows plus counters."""
    device_id: str
    active: list[Task]
    hold: list[Task]
    backlog: list[Task]
    completed_today: list[Task]
    queued_count: int  # active tasks beyond the visible window
    durable: bool  # False when the last write could not be persisted
