from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class TaskStatus(str, Enum):
    ACTIVE = "active"
    HOLD = "hold"
    BACKLOG = "backlog"
    COMPLETED = "completed"


class RepeatType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


TASK_STATUSES = tuple(s.value for s in TaskStatus)
REPEAT_TYPES = tuple(r.value for r in RepeatType)


class Task(BaseModel):
    """
    A single task as persisted inside the versioned envelope.

    Stored and served with camelCase keys (scheduledDate, repeatType, ...).

    Key fields:
    - status: only changed through the lifecycle transitions
    - order: epoch milliseconds; lowest order within a status is the top task
    - scheduled_date: date only, governs backlog -> active promotion
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str
    title: str
    status: TaskStatus
    repeat_type: RepeatType = RepeatType.NONE
    scheduled_date: date | None = None
    created_at: datetime
    completed_at: datetime | None = None
    held_at: datetime | None = None
    order: float

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("created_at", "completed_at", "held_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # Legacy data may carry naive timestamps
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_storage(self) -> dict:
        """Serialize to the JSON shape used on disk."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_today() -> date:
    return datetime.now().astimezone().date()


def order_key(now: datetime) -> float:
    """Time-based ordering key in epoch milliseconds."""
    return float(int(now.timestamp() * 1000))


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2026-10-18T09:30:00.125Z."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 string; None for anything unparseable."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
