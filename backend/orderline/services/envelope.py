"""
Versioned envelope: the on-storage wrapper around the task list.

    {
        "version": "1.0.0",
        "createdAt": "2026-10-18T09:30:00.125Z",
        "lastModified": "2026-10-18T09:31:12.004Z",
        "tasks": [...],
        "metadata": {"totalTasksCreated": 4, "totalTasksCompleted": 1}
    }

createdAt is written once and carried over on every rewrite.
"""

import json
from datetime import datetime
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orderline.models.task import Task, TaskStatus, format_timestamp, utcnow

CURRENT_DATA_VERSION = "1.0.0"
LEGACY_DATA_VERSION = "0.0.0"

# Storage keys
TASKS_KEY = "tasks-data"
DATA_VERSION_KEY = "data-version"
DEVICE_ID_KEY = "device-id"
BACKUP_KEY_PREFIX = "backup-"


class EnvelopeMetadata(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_tasks_created: Optional[int] = None
    total_tasks_completed: Optional[int] = None
    user_preferences: Optional[dict[str, Any]] = None


class VersionedEnvelope(BaseModel):
    """Task list plus schema version and bookkeeping timestamps."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str = CURRENT_DATA_VERSION
    created_at: str
    last_modified: str
    tasks: list[Task] = Field(default_factory=list)
    metadata: Optional[EnvelopeMetadata] = None

    def to_json(self) -> str:
        return json.dumps(self.to_storage())

    def to_storage(self) -> dict:
        data = {
            "version": self.version,
            "createdAt": self.created_at,
            "lastModified": self.last_modified,
            "tasks": [task.to_storage() for task in self.tasks],
        }
        if self.metadata is not None:
            data["metadata"] = self.metadata.model_dump(by_alias=True, exclude_none=True)
        return data


def parse_stored_envelope(raw: Optional[str]) -> Optional[dict]:
    """
    Return the stored envelope as a plain mapping.

    None when nothing is stored, the text is not JSON, or the payload is a
    legacy bare list (which has no envelope fields to carry over).
    """
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    if isinstance(parsed, dict) and parsed.get("version"):
        return parsed
    return None


def _count(value: Any) -> Optional[int]:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def build_metadata(
    previous: Optional[dict],
    previous_tasks: Optional[Sequence[Task]],
    tasks: Sequence[Task],
) -> EnvelopeMetadata:
    """
    Roll the running counters forward.

    Newly seen ids count as created; tasks that turned completed since the
    previous write count as completed. Without history the counters are
    seeded from the current list.
    """
    meta = (previous or {}).get("metadata") or {}
    if not isinstance(meta, dict):
        meta = {}

    created = _count(meta.get("totalTasksCreated"))
    completed = _count(meta.get("totalTasksCompleted"))

    if previous_tasks is None or created is None:
        created = len(tasks)
    else:
        known = {t.id for t in previous_tasks}
        created += sum(1 for t in tasks if t.id not in known)

    if previous_tasks is None or completed is None:
        completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)
    else:
        done_before = {t.id for t in previous_tasks if t.status == TaskStatus.COMPLETED}
        completed += sum(
            1 for t in tasks
            if t.status == TaskStatus.COMPLETED and t.id not in done_before
        )

    preferences = meta.get("userPreferences")
    return EnvelopeMetadata(
        total_tasks_created=created,
        total_tasks_completed=completed,
        user_preferences=preferences if isinstance(preferences, dict) else None,
    )


def wrap_with_version(
    tasks: Sequence[Task],
    previous: Optional[dict] = None,
    previous_tasks: Optional[Sequence[Task]] = None,
    now: Optional[datetime] = None,
) -> VersionedEnvelope:
    """Wrap tasks for storage, keeping the previous envelope's createdAt."""
    stamp = format_timestamp(now or utcnow())
    created_at = (previous or {}).get("createdAt")
    if not isinstance(created_at, str) or not created_at:
        created_at = stamp

    return VersionedEnvelope(
        version=CURRENT_DATA_VERSION,
        created_at=created_at,
        last_modified=stamp,
        tasks=list(tasks),
        metadata=build_metadata(previous, previous_tasks, tasks),
    )
