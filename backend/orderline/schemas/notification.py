import json
import uuid
from datetime import datetime
from typing import Any
from pydantic import Field, field_validator

from orderline.schemas.task import CamelModel

TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


class PreferencesUpdate(CamelModel):
    """
    Schema for creating or updating notification preferences.

    Omitted fields keep their stored value (or the default on creation).
    """
    enabled: bool | None = None
    frequency_minutes: int | None = Field(default=None, ge=1)
    bedtime_start: str | None = Field(default=None, pattern=TIME_PATTERN)
    bedtime_end: str | None = Field(default=None, pattern=TIME_PATTERN)
    timezone: str | None = None
    push_subscription: Any = None  # PushSubscription JSON, object or string

    @field_validator("push_subscription")
    @classmethod
    def _serialize_subscription(cls, value: Any) -> str | None:
        if value is None or isinstance(value, str):
            return value
        return json.dumps(value)


class PreferencesRead(CamelModel):
    id: uuid.UUID
    device_id: str
    enabled: bool
    frequency_minutes: int
    bedtime_start: str
    bedtime_end: str
    timezone: str
    last_notified_at: datetime | None
    push_subscription: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskSnapshotCreate(CamelModel):
    device_id: str = Field(min_length=1)
    active_count: int = Field(default=0, ge=0)
    hold_count: int = Field(default=0, ge=0)
    last_change: datetime | None = None


class TaskSnapshotRead(CamelModel):
    device_id: str
    active_count: int
    hold_count: int
    last_change: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
