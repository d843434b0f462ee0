"""
Migration engine: upgrades any stored payload to the current task schema.

Accepted inputs, tried in order:
1. a versioned envelope (mapping with "version" and "tasks")
2. a bare list of tasks (pre-versioning data, treated as version 0.0.0)
3. anything else, which migrates to an empty list

Steps are applied in the order of MIGRATION_STEPS. A schema change is added
as a new step at the end; existing steps never change, so data written by
any older release replays through the same chain.

migrate() never raises. Invalid entries are dropped and failures are
logged, always leaving the caller with a usable list.
"""

import random
import string
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from orderline.logging_config import get_logger
from orderline.models.task import (
    REPEAT_TYPES,
    TASK_STATUSES,
    Task,
    format_timestamp,
    local_today,
    order_key,
    parse_timestamp,
    utcnow,
)
from orderline.services.envelope import LEGACY_DATA_VERSION

logger = get_logger(__name__)


@dataclass(frozen=True)
class MigrationContext:
    """Clock values shared by every step of one migration run."""
    now: datetime
    today: date


@dataclass(frozen=True)
class MigrationStep:
    name: str
    applies: Callable[[str], bool]
    transform: Callable[[dict, MigrationContext], dict]


def _legacy_id(ctx: MigrationContext) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"task_{int(ctx.now.timestamp() * 1000)}_{suffix}"


def backfill_legacy_fields(task: dict, ctx: MigrationContext) -> dict:
    """Pre-versioning data may lack any of the required fields."""
    return {
        **task,
        "id": task.get("id") or _legacy_id(ctx),
        "title": task.get("title") or "Untitled Task",
        "status": task.get("status") or "active",
        "repeatType": task.get("repeatType") or "none",
        "createdAt": task.get("createdAt") or format_timestamp(ctx.now),
        "order": task.get("order") or order_key(ctx.now),
    }


def backfill_scheduled_date(task: dict, ctx: MigrationContext) -> dict:
    """
    Calendar view needs a scheduled date on every task.

    Completed tasks use their completion date; everything else is assumed
    to be for today.
    """
    if task.get("scheduledDate"):
        return task
    if task.get("status") == "completed":
        completed_at = parse_timestamp(task.get("completedAt"))
        if completed_at is not None:
            return {**task, "scheduledDate": completed_at.date().isoformat()}
    return {**task, "scheduledDate": ctx.today.isoformat()}


def backfill_bookkeeping(task: dict, ctx: MigrationContext) -> dict:
    """
    createdAt and order are required by the model but not by the structural
    check, so any version may arrive without them.
    """
    updates = {}
    if not task.get("createdAt"):
        updates["createdAt"] = format_timestamp(ctx.now)
    if task.get("order") is None:
        updates["order"] = order_key(ctx.now)
    return {**task, **updates} if updates else task


MIGRATION_STEPS: list[MigrationStep] = [
    MigrationStep(
        name="backfill_legacy_fields",
        applies=lambda version: version == LEGACY_DATA_VERSION,
        transform=backfill_legacy_fields,
    ),
    MigrationStep(
        name="backfill_scheduled_date",
        applies=lambda version: True,
        transform=backfill_scheduled_date,
    ),
    MigrationStep(
        name="backfill_bookkeeping",
        applies=lambda version: True,
        transform=backfill_bookkeeping,
    ),
]


def is_valid_task_shape(task: Any) -> bool:
    """Structural check on a raw task mapping."""
    return (
        isinstance(task, dict)
        and isinstance(task.get("id"), str)
        and isinstance(task.get("title"), str)
        and task.get("status") in TASK_STATUSES
        and task.get("repeatType") in REPEAT_TYPES
    )


def unwrap(raw: Any) -> Optional[tuple[list, str]]:
    """
    Classify a deserialized payload.

    Returns (tasks, declared_version), or None when the payload is neither
    an envelope nor a bare list.
    """
    if isinstance(raw, dict) and raw.get("version") and raw.get("tasks"):
        tasks = raw["tasks"]
        if isinstance(tasks, list):
            return tasks, str(raw["version"])
        return None
    if isinstance(raw, list):
        return raw, LEGACY_DATA_VERSION
    return None


def migrate_tasks(
    tasks: list,
    version: str,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> list[Task]:
    """Run the step chain over raw task mappings declared at `version`."""
    ctx = MigrationContext(now=now or utcnow(), today=today or local_today())
    try:
        entries = [dict(t) for t in tasks if isinstance(t, dict)]
        for step in MIGRATION_STEPS:
            if step.applies(version):
                entries = [step.transform(entry, ctx) for entry in entries]

        migrated = []
        for entry in entries:
            if not is_valid_task_shape(entry):
                continue
            try:
                migrated.append(Task.model_validate(entry))
            except PydanticValidationError as e:
                logger.debug(f"Dropping task {entry.get('id')!r}: {e.error_count()} invalid fields")

        dropped = len(tasks) - len(migrated)
        if dropped:
            logger.warning(f"Migration from {version} dropped {dropped} invalid tasks")
        return migrated
    except Exception as e:
        logger.error(f"Data migration failed from version {version}: {e}")
        return []


def migrate(
    raw: Any,
    *,
    now: Optional[datetime] = None,
    today: Optional[date] = None,
) -> list[Task]:
    """Upgrade a deserialized payload of any vintage to a valid task list."""
    unwrapped = unwrap(raw)
    if unwrapped is None:
        return []
    tasks, version = unwrapped
    return migrate_tasks(tasks, version, now=now, today=today)
