"""
Integrity checks and emergency recovery for stored task data.

Recovery tiers, each tried only when the previous one yields nothing usable:
1. the most recent backup whose tasks pass validate()
2. the corrupt primary data, repaired field by field
3. an empty task list

Nothing in this module raises to its callers; problems are logged and
reported through IntegrityReport / HealthReport.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from orderline.logging_config import get_logger
from orderline.models.task import (
    REPEAT_TYPES,
    TASK_STATUSES,
    Task,
    order_key,
    parse_timestamp,
    utcnow,
)
from orderline.services.backup import BackupManager
from orderline.services.envelope import LEGACY_DATA_VERSION, TASKS_KEY
from orderline.services.migration import migrate_tasks
from orderline.services.storage import StoragePort

logger = get_logger(__name__)


@dataclass
class IntegrityReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class HealthReport:
    healthy: bool
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def _as_mapping(task: Any) -> Any:
    return task.to_storage() if isinstance(task, Task) else task


def _is_date(value: Any) -> bool:
    return parse_timestamp(value) is not None


def validate(tasks: Any) -> IntegrityReport:
    """
    Structural check of a task list. Collects one message per violation.

    Accepts Task models or raw mappings; never mutates its input.
    """
    if not isinstance(tasks, list):
        return IntegrityReport(is_valid=False, errors=["Tasks data is not an array"])

    errors = []
    for index, task in enumerate(tasks):
        task = _as_mapping(task)
        if not isinstance(task, dict):
            errors.append(f"Task {index}: Not an object")
            continue

        task_id = task.get("id")
        if not task_id or not isinstance(task_id, str):
            errors.append(f"Task {index}: Missing or invalid ID")

        title = task.get("title")
        if not isinstance(title, str) or not title.strip():
            errors.append(f"Task {index}: Missing or invalid title")

        status = task.get("status")
        if status not in TASK_STATUSES:
            errors.append(f'Task {index}: Invalid status "{status}"')

        repeat_type = task.get("repeatType")
        if repeat_type not in REPEAT_TYPES:
            errors.append(f'Task {index}: Invalid repeat type "{repeat_type}"')

        if task.get("scheduledDate") and not _is_date(task.get("scheduledDate")):
            errors.append(f"Task {index}: Invalid scheduled date")

        if task.get("createdAt") and not _is_date(task.get("createdAt")):
            errors.append(f"Task {index}: Invalid created date")

        for name, label in (("completedAt", "completed"), ("heldAt", "held")):
            if task.get(name) and not _is_date(task.get(name)):
                errors.append(f"Task {index}: Invalid {label} date")

    return IntegrityReport(is_valid=not errors, errors=errors)


def repair(tasks: Any, now: Optional[datetime] = None) -> list[Task]:
    """
    Salvage whatever can be salvaged from a damaged task list.

    More permissive than migration: bad fields get safe defaults
    (synthetic ids and titles included) instead of dropping the task.
    """
    if not isinstance(tasks, list):
        return []
    now = now or utcnow()
    stamp_ms = int(now.timestamp() * 1000)

    repaired = []
    for index, task in enumerate(tasks):
        if not isinstance(task, dict):
            continue

        task_id = task.get("id")
        title = task.get("title")
        status = task.get("status")
        repeat_type = task.get("repeatType")
        order = task.get("order")
        scheduled = parse_timestamp(task.get("scheduledDate"))
        created = parse_timestamp(task.get("createdAt"))

        if not isinstance(title, str) or not title:
            title = "Untitled Task"
        if not title.strip():
            continue

        repaired.append(Task(
            id=task_id if isinstance(task_id, str) and task_id else f"repaired_task_{stamp_ms}_{index}",
            title=title,
            status=status if status in TASK_STATUSES else "active",
            repeat_type=repeat_type if repeat_type in REPEAT_TYPES else "none",
            scheduled_date=scheduled.date() if scheduled else None,
            created_at=created or now,
            completed_at=parse_timestamp(task.get("completedAt")),
            held_at=parse_timestamp(task.get("heldAt")),
            order=order if isinstance(order, (int, float)) and not isinstance(order, bool)
            else order_key(now) + index,
        ))
    return repaired


def extract_tasks(parsed: Any) -> Any:
    """The task list inside a parsed payload (bare list or envelope)."""
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        return parsed.get("tasks") or []
    return None


class IntegrityChecker:
    """Corruption detection, recovery and diagnostics over one storage."""

    def __init__(self, storage: StoragePort, backups: BackupManager):
        self.storage = storage
        self.backups = backups

    def detect_corruption(self) -> bool:
        """
        True when stored task data exists but cannot be trusted.

        Missing data is not corruption (fresh install).
        """
        raw = self.storage.get_item(TASKS_KEY)
        if raw is None:
            return False
        try:
            parsed = json.loads(raw)
        except ValueError:
            return True
        tasks = extract_tasks(parsed)
        if tasks is None:
            return True
        return not validate(tasks).is_valid

    def emergency_recovery(self) -> list[Task]:
        logger.warning("Emergency data recovery initiated")
        try:
            for timestamp, raw in self.backups.iter_backups():
                if not raw:
                    continue
                try:
                    data = json.loads(raw)
                except ValueError:
                    continue
                tasks = extract_tasks(data)
                if tasks is None or not validate(tasks).is_valid:
                    continue
                logger.info(f"Data recovered from backup: {timestamp}")
                version = data.get("version") if isinstance(data, dict) else None
                recovered = migrate_tasks(tasks, str(version) if version else LEGACY_DATA_VERSION)
                if len(recovered) < len(tasks):
                    # validate() is looser than the model; keep every task
                    return repair(tasks)
                return recovered

            corrupt = self.storage.get_item(TASKS_KEY)
            if corrupt:
                try:
                    parsed = json.loads(corrupt)
                except ValueError:
                    parsed = None
                repaired = repair(extract_tasks(parsed))
                if repaired:
                    logger.info(f"Data partially recovered through repair ({len(repaired)} tasks)")
                    return repaired

            logger.warning("No recoverable data found")
            return []
        except Exception as e:
            logger.error(f"Emergency recovery failed: {e}")
            return []

    def health_check(self) -> HealthReport:
        """Read-only diagnostic of the stored data and backup ring."""
        issues: list[str] = []
        recommendations: list[str] = []
        try:
            raw = self.storage.get_item(TASKS_KEY)
            if raw is None:
                issues.append("No task data found")
                recommendations.append("This is normal for new installations")
                return HealthReport(healthy=True, issues=issues, recommendations=recommendations)

            try:
                parsed = json.loads(raw)
            except ValueError:
                issues.append("Data format corruption detected")
                recommendations.append("Emergency recovery will be attempted automatically")
                return HealthReport(healthy=False, issues=issues, recommendations=recommendations)

            tasks = extract_tasks(parsed)
            report = validate(tasks if tasks is not None else parsed)
            if not report.is_valid:
                issues.extend(report.errors)
                recommendations.append("Data repair may be needed")

            backup_count = len(self.backups.backup_keys())
            if backup_count == 0:
                issues.append("No automatic backups found")
                recommendations.append("Backups will be created automatically as you use the app")
            elif backup_count < 3:
                plural = "" if backup_count == 1 else "s"
                recommendations.append(
                    f"{backup_count} backup{plural} available - more will be created over time"
                )

            return HealthReport(healthy=report.is_valid, issues=issues, recommendations=recommendations)
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            issues.append("Health check failed")
            recommendations.append("Please contact support if issues persist")
            return HealthReport(healthy=False, issues=issues, recommendations=recommendations)
