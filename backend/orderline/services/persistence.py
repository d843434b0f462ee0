"""
Persistence facade: the only reader and writer of a profile's task data.

    load():  read -> (recover if unreadable | migrate) -> activate scheduled
    save():  snapshot previous state -> wrap with version -> write -> marker

Write failures never escape save(): they are logged, the in-memory list
stays authoritative for the session and `durable` turns False until the
next successful write.
"""

import json
import random
import string
from datetime import date, datetime
from typing import Any, Callable, NamedTuple, Optional, Sequence

from orderline.exceptions import ImportFormatError, StorageCorruptionError, StorageWriteError
from orderline.logging_config import get_logger
from orderline.models.task import Task, local_today, utcnow
from orderline.services import lifecycle
from orderline.services.backup import DEFAULT_BACKUP_LIMIT, BackupInfo, BackupManager
from orderline.services.envelope import (
    CURRENT_DATA_VERSION,
    DATA_VERSION_KEY,
    DEVICE_ID_KEY,
    LEGACY_DATA_VERSION,
    TASKS_KEY,
    parse_stored_envelope,
    wrap_with_version,
)
from orderline.services.integrity import HealthReport, IntegrityChecker, extract_tasks
from orderline.services.migration import migrate
from orderline.services.storage import StoragePort
from orderline.services.sync import SyncBridge, SyncCallback

logger = get_logger(__name__)


class TaskCounts(NamedTuple):
    active_count: int
    hold_count: int


def _is_readable(parsed: Any) -> bool:
    """A bare list, or a mapping whose tasks (if any) form a list."""
    if isinstance(parsed, list):
        return True
    if isinstance(parsed, dict):
        return isinstance(parsed.get("tasks", []), list)
    return False


class TaskStore:
    """
    Versioned, backed-up task persistence over a StoragePort.

    One TaskStore is one storage context (the equivalent of a browser tab).
    """

    def __init__(
        self,
        storage: StoragePort,
        *,
        backup_limit: int = DEFAULT_BACKUP_LIMIT,
        clock: Callable[[], datetime] = utcnow,
        today: Callable[[], date] = local_today,
    ):
        self.storage = storage
        self.backups = BackupManager(storage, backup_limit)
        self.integrity = IntegrityChecker(storage, self.backups)
        self.sync = SyncBridge(storage, TASKS_KEY)
        self._clock = clock
        self._today = today
        self._tasks: list[Task] = []
        self.durable = True

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    # ---- reading ----

    def _read_primary(self) -> tuple[Optional[list[Task]], Optional[dict], Optional[list], str]:
        """
        Currently stored state: migrated tasks, envelope, raw task entries and
        their schema version. The first three are None if missing or unreadable.
        """
        raw = self.storage.get_item(TASKS_KEY)
        if raw is None:
            return None, None, None, CURRENT_DATA_VERSION
        try:
            parsed = json.loads(raw)
        except ValueError:
            return None, None, None, CURRENT_DATA_VERSION
        if not _is_readable(parsed):
            return None, None, None, CURRENT_DATA_VERSION

        envelope = parse_stored_envelope(raw)
        version = str(envelope["version"]) if envelope else LEGACY_DATA_VERSION
        migrated = migrate(parsed, now=self._clock(), today=self._today())
        return migrated, envelope, extract_tasks(parsed), version

    def load(self) -> list[Task]:
        """Read, upgrade and activate the stored task list."""
        raw = self.storage.get_item(TASKS_KEY)
        if raw is None:
            self._tasks = []
            return self.tasks

        parsed = None
        error = None
        try:
            parsed = json.loads(raw)
            if not _is_readable(parsed):
                error = StorageCorruptionError(TASKS_KEY, "unexpected payload shape")
            elif parse_stored_envelope(raw) and self.integrity.detect_corruption():
                # Bare lists are legacy data that migration backfills
                error = StorageCorruptionError(TASKS_KEY, "tasks fail validation")
        except ValueError as e:
            error = StorageCorruptionError(TASKS_KEY, f"invalid JSON ({e})")

        if error is not None:
            logger.warning(error.message)
            tasks = self.integrity.emergency_recovery()
            if tasks:
                self.save(tasks)
        else:
            tasks = migrate(parsed, now=self._clock(), today=self._today())
            self._mark_version()
        self._tasks = tasks

        activated = lifecycle.activate_scheduled(tasks, today=self._today(), now=self._clock())
        if activated != tasks:
            logger.info("Activated scheduled tasks on load")
            self.save(activated)
        return self.tasks

    def stored_version(self) -> str:
        return self.storage.get_item(DATA_VERSION_KEY) or LEGACY_DATA_VERSION

    # ---- writing ----

    def _mark_version(self) -> None:
        try:
            self.storage.set_item(DATA_VERSION_KEY, CURRENT_DATA_VERSION)
        except StorageWriteError as e:
            logger.error(f"Could not update data version marker: {e.message}")

    def save(self, tasks: Sequence[Task]) -> None:
        """Snapshot the previous state, then write the new one."""
        tasks = list(tasks)
        now = self._clock()
        previous_tasks, previous, previous_raw, previous_version = self._read_primary()

        if previous_raw is not None:
            try:
                self.backups.snapshot(previous_raw, now, version=previous_version)
            except StorageWriteError as e:
                logger.error(f"Failed to create data backup: {e.message}")

        self._tasks = tasks
        envelope = wrap_with_version(tasks, previous, previous_tasks, now)
        try:
            self.storage.set_item(TASKS_KEY, envelope.to_json())
            self.storage.set_item(DATA_VERSION_KEY, CURRENT_DATA_VERSION)
        except StorageWriteError as e:
            self.durable = False
            logger.error(f"Task data not persisted, keeping it in memory: {e.message}")
            return
        self.durable = True

    def update(self, change: Callable[[list[Task]], list[Task]]) -> list[Task]:
        """
        Apply a lifecycle transition to the current list and save the result.

        Transition violations propagate before anything is written.
        """
        changed = change(self.tasks)
        self.save(changed)
        return self.tasks

    # ---- device identity ----

    def device_id(self) -> str:
        """Stable id of this profile, generated on first use."""
        device_id = self.storage.get_item(DEVICE_ID_KEY)
        if device_id:
            return device_id
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
        device_id = f"device_{int(self._clock().timestamp() * 1000)}_{suffix}"
        try:
            self.storage.set_item(DEVICE_ID_KEY, device_id)
        except StorageWriteError as e:
            logger.error(f"Could not store device id: {e.message}")
        return device_id

    def task_counts(self) -> TaskCounts:
        return TaskCounts(
            active_count=len(lifecycle.get_active_tasks(self._tasks)),
            hold_count=len(lifecycle.get_hold_tasks(self._tasks)),
        )

    # ---- backup, export, recovery ----

    def export_data(self) -> str:
        """The stored envelope verbatim; a fresh one if nothing is stored yet."""
        raw = self.storage.get_item(TASKS_KEY)
        if raw is not None:
            return raw
        return wrap_with_version(self._tasks, now=self._clock()).to_json()

    def import_data(self, payload: Any) -> list[Task]:
        """
        Replace the task list with imported data.

        Accepts JSON text, a bare task list or an envelope mapping. The
        payload is always migrated; nothing is trusted as-is.
        """
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError:
                raise ImportFormatError()
        is_envelope = (
            isinstance(payload, dict)
            and bool(payload.get("version"))
            and isinstance(payload.get("tasks"), list)
        )
        if not (isinstance(payload, list) or is_envelope):
            raise ImportFormatError("Import file must contain a task list or a data envelope")

        tasks = migrate(payload, now=self._clock(), today=self._today())
        logger.info(f"Imported {len(tasks)} tasks")
        self.save(tasks)
        return self.tasks

    def list_backups(self) -> list[BackupInfo]:
        return self.backups.list_backups()

    def restore_backup(self, timestamp: Optional[str] = None) -> list[Task]:
        tasks = self.backups.restore(timestamp)
        if tasks:
            logger.info(f"Restoring {len(tasks)} tasks from backup {timestamp or '(latest)'}")
            self.save(tasks)
        return tasks

    def recover(self) -> list[Task]:
        """Run emergency recovery and persist whatever it salvaged."""
        tasks = self.integrity.emergency_recovery()
        if tasks:
            self.save(tasks)
        return tasks

    def detect_corruption(self) -> bool:
        return self.integrity.detect_corruption()

    def health_check(self) -> HealthReport:
        return self.integrity.health_check()

    # ---- cross-context sync ----

    def on_external_change(self, callback: SyncCallback) -> Callable[[], None]:
        return self.sync.on_external_change(callback)

    def close(self) -> None:
        self.sync.stop()
        self.storage.close()
