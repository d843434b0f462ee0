import uuid
from datetime import datetime
from sqlmodel import SQLModel, Field

from orderline.models.task import utcnow


class NotificationPreference(SQLModel, table=True):
    """
    Reminder preferences for one device.

    Key fields:
    - frequency_minutes: minimum gap between two reminders
    - bedtime_start / bedtime_end: "HH:MM" quiet window, may cross midnight
    - push_subscription: opaque JSON handed to the reminder sender
    """

    __tablename__ = "notification_preferences"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    device_id: str = Field(index=True, unique=True)
    enabled: bool = Field(default=False)
    frequency_minutes: int = Field(default=60, ge=1)  # 30, 60, 120 in the UI
    bedtime_start: str = Field(default="22:00")
    bedtime_end: str = Field(default="07:00")
    timezone: str = Field(default="UTC")  # IANA name
    last_notified_at: datetime | None = Field(default=None)
    push_subscription: str | None = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TaskSnapshot(SQLModel, table=True):
    """Latest active/hold counts reported for a device."""

    __tablename__ = "task_snapshots"

    device_id: str = Field(primary_key=True)
    active_count: int = Field(default=0, ge=0)
    hold_count: int = Field(default=0, ge=0)
    last_change: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
