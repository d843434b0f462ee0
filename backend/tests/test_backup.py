"""
Test the rolling backup ring.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from orderline.exceptions import StorageWriteError
from orderline.services.backup import BackupManager
from orderline.services.storage import MemoryBackend, MemoryStorage


NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    return MemoryStorage()


class TestSnapshot:

    def test_snapshot_key_and_payload(self, storage, make_task):
        manager = BackupManager(storage)

        timestamp = manager.snapshot([make_task(), make_task()], NOW)

        assert timestamp == "2026-10-18T12:00:00.000Z"
        payload = json.loads(storage.get_item(f"backup-{timestamp}"))
        assert payload["version"] == "1.0.0"
        assert [t["id"] for t in payload["tasks"]] == ["task_1", "task_2"]

    def test_same_millisecond_never_overwrites(self, storage, make_task):
        manager = BackupManager(storage)

        first = manager.snapshot([make_task()], NOW)
        second = manager.snapshot([make_task(), make_task()], NOW)

        assert first != second
        assert second == "2026-10-18T12:00:00.001Z"
        assert len(manager.backup_keys()) == 2
        assert len(json.loads(storage.get_item(f"backup-{first}"))["tasks"]) == 1

    def test_ring_never_exceeds_limit(self, storage, make_task):
        manager = BackupManager(storage)
        stamps = []

        for minute in range(25):
            stamps.append(manager.snapshot([make_task()], NOW + timedelta(minutes=minute)))
            assert len(manager.backup_keys()) <= 10

        kept = [info.timestamp for info in manager.list_backups()]
        assert kept == list(reversed(stamps))[:10]

    def test_custom_limit(self, storage, make_task):
        manager = BackupManager(storage, limit=2)
        for minute in range(4):
            manager.snapshot([make_task()], NOW + timedelta(minutes=minute))
        assert len(manager.backup_keys()) == 2

    def test_other_keys_untouched_by_prune(self, storage, make_task):
        storage.set_item("tasks-data", "{}")
        manager = BackupManager(storage, limit=1)

        manager.snapshot([make_task()], NOW)
        manager.snapshot([make_task()], NOW + timedelta(seconds=1))

        assert storage.get_item("tasks-data") == "{}"

    def test_full_storage_raises(self, make_task):
        storage = MemoryStorage(MemoryBackend(quota=50))
        manager = BackupManager(storage)

        with pytest.raises(StorageWriteError):
            manager.snapshot([make_task()], NOW)


class TestListAndRestore:

    def test_list_backups_most_recent_first(self, storage, make_task):
        manager = BackupManager(storage)
        manager.snapshot([make_task()], NOW)
        manager.snapshot([make_task(), make_task()], NOW + timedelta(hours=1))

        backups = manager.list_backups()

        assert [b.task_count for b in backups] == [2, 1]
        assert backups[0].date == NOW + timedelta(hours=1)

    def test_restore_named_backup(self, storage, make_task):
        manager = BackupManager(storage)
        older = manager.snapshot([make_task(title="Old")], NOW)
        manager.snapshot([make_task(title="New")], NOW + timedelta(hours=1))

        tasks = manager.restore(older)

        assert [t.title for t in tasks] == ["Old"]

    def test_restore_latest_by_default(self, storage, make_task):
        manager = BackupManager(storage)
        manager.snapshot([make_task(title="Old")], NOW)
        manager.snapshot([make_task(title="New")], NOW + timedelta(hours=1))

        assert [t.title for t in manager.restore()] == ["New"]

    def test_unknown_timestamp_falls_back_to_latest(self, storage, make_task):
        manager = BackupManager(storage)
        manager.snapshot([make_task(title="Only")], NOW)

        assert [t.title for t in manager.restore("1999-01-01T00:00:00.000Z")] == ["Only"]

    def test_restore_without_backups(self, storage):
        assert BackupManager(storage).restore() == []

    def test_restore_unparsable_backup(self, storage):
        storage.set_item("backup-2026-10-18T12:00:00.000Z", "{oops")
        assert BackupManager(storage).restore() == []
