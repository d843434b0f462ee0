"""
Backup manager: rolling snapshots of the task list.

Each snapshot is a full envelope stored under backup-<ISO8601 timestamp>.
Timestamps sort lexicographically in time order, so the newest backups are
simply the largest keys. Backups are never overwritten; only pruned.
"""

import copy
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional, Sequence, Union

from orderline.logging_config import get_logger
from orderline.models.task import Task, format_timestamp, parse_timestamp, utcnow
from orderline.services.envelope import BACKUP_KEY_PREFIX, CURRENT_DATA_VERSION
from orderline.services.migration import migrate
from orderline.services.storage import StoragePort

logger = get_logger(__name__)

DEFAULT_BACKUP_LIMIT = 10


@dataclass(frozen=True)
class BackupInfo:
    timestamp: str
    date: Optional[datetime]
    task_count: int


class BackupManager:
    """Owns the backup-* keys of one storage."""

    def __init__(self, storage: StoragePort, limit: int = DEFAULT_BACKUP_LIMIT):
        self.storage = storage
        self.limit = limit

    def backup_keys(self) -> list[str]:
        """Backup keys, most recent first."""
        return sorted(
            (key for key in self.storage.keys() if key.startswith(BACKUP_KEY_PREFIX)),
            reverse=True,
        )

    def _free_timestamp(self, now: datetime) -> str:
        # Two snapshots in the same millisecond must not share a key
        existing = set(self.storage.keys())
        moment = now
        timestamp = format_timestamp(moment)
        while f"{BACKUP_KEY_PREFIX}{timestamp}" in existing:
            moment += timedelta(milliseconds=1)
            timestamp = format_timestamp(moment)
        return timestamp

    def snapshot(
        self,
        tasks: Sequence[Union[Task, dict]],
        now: Optional[datetime] = None,
        version: str = CURRENT_DATA_VERSION,
    ) -> str:
        """
        Store a copy of tasks as a new backup, then prune old ones.

        Raw mappings are stored untouched under the given schema version, so
        a backup keeps entries that the current model would not accept.
        Returns the backup timestamp. Storage errors propagate; the caller
        decides whether the primary write still goes ahead.
        """
        timestamp = self._free_timestamp(now or utcnow())
        payload = {
            "version": version,
            "createdAt": timestamp,
            "lastModified": timestamp,
            "tasks": copy.deepcopy([
                task.to_storage() if isinstance(task, Task) else task for task in tasks
            ]),
        }
        self.storage.set_item(f"{BACKUP_KEY_PREFIX}{timestamp}", json.dumps(payload))
        logger.debug(f"Backup created: {timestamp} ({len(tasks)} tasks)")
        self.prune()
        return timestamp

    def prune(self) -> int:
        """Delete everything but the newest `limit` backups."""
        stale = self.backup_keys()[self.limit:]
        for key in stale:
            self.storage.remove_item(key)
        if stale:
            logger.debug(f"Pruned {len(stale)} old backups")
        return len(stale)

    def iter_backups(self) -> Iterator[tuple[str, Optional[str]]]:
        """(timestamp, raw text) pairs, most recent first."""
        for key in self.backup_keys():
            yield key[len(BACKUP_KEY_PREFIX):], self.storage.get_item(key)

    def list_backups(self) -> list[BackupInfo]:
        backups = []
        for timestamp, raw in self.iter_backups():
            task_count = 0
            if raw:
                try:
                    data = json.loads(raw)
                    task_count = len(data.get("tasks") or [])
                except (ValueError, AttributeError, TypeError):
                    pass
            backups.append(BackupInfo(
                timestamp=timestamp,
                date=parse_timestamp(timestamp),
                task_count=task_count,
            ))
        return backups

    def restore(self, timestamp: Optional[str] = None) -> list[Task]:
        """
        Tasks from the named backup, or from the most recent one.

        An unknown timestamp falls back to the most recent backup. Returns an
        empty list when there is nothing to restore.
        """
        raw = None
        if timestamp:
            raw = self.storage.get_item(f"{BACKUP_KEY_PREFIX}{timestamp}")
            if raw is None:
                logger.warning(f"Backup {timestamp} not found, using most recent")
        if raw is None:
            keys = self.backup_keys()
            if not keys:
                return []
            raw = self.storage.get_item(keys[0])
        if not raw:
            return []

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Failed to restore from backup: {e}")
            return []
        return migrate(data)
