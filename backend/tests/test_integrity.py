"""
Test validation, repair, corruption detection and emergency recovery.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from orderline.models.task import TaskStatus
from orderline.services.backup import BackupManager
from orderline.services.envelope import TASKS_KEY, wrap_with_version
from orderline.services.integrity import IntegrityChecker, repair, validate
from orderline.services.storage import MemoryStorage


NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def backups(storage):
    return BackupManager(storage)


@pytest.fixture
def checker(storage, backups):
    return IntegrityChecker(storage, backups)


class TestValidate:

    def test_valid_models(self, make_task):
        report = validate([make_task(), make_task(TaskStatus.HOLD, held_at=NOW)])
        assert report.is_valid
        assert report.errors == []

    def test_not_a_list(self):
        report = validate({"tasks": []})
        assert not report.is_valid
        assert report.errors == ["Tasks data is not an array"]

    def test_collects_one_error_per_violation(self):
        tasks = [
            {"id": "a", "title": "ok", "status": "active", "repeatType": "none"},
            {"id": 7, "title": "", "status": "done", "repeatType": "yearly", "createdAt": "yesterday"},
        ]

        report = validate(tasks)

        assert not report.is_valid
        assert report.errors == [
            "Task 1: Missing or invalid ID",
            "Task 1: Missing or invalid title",
            'Task 1: Invalid status "done"',
            'Task 1: Invalid repeat type "yearly"',
            "Task 1: Invalid created date",
        ]

    def test_whitespace_title_is_invalid(self):
        report = validate([{"id": "a", "title": "  \t", "status": "active", "repeatType": "none"}])
        assert report.errors == ["Task 0: Missing or invalid title"]

    def test_does_not_mutate(self):
        tasks = [{"id": "a", "status": "nope"}]
        before = json.dumps(tasks)
        validate(tasks)
        assert json.dumps(tasks) == before


class TestRepair:

    @pytest.mark.parametrize("tasks", [
        [],
        [{}],
        [{"id": 5, "title": None, "status": "??", "repeatType": 1, "order": "x"}],
        [{"title": "keep", "scheduledDate": "not a date", "createdAt": "bad"}, "junk", None],
        [{"id": "a", "title": "fine", "status": "hold", "repeatType": "weekly", "heldAt": "2026-10-01T00:00:00Z"}],
    ])
    def test_repaired_output_always_validates(self, tasks):
        assert validate(repair(tasks, NOW)).is_valid

    def test_synthetic_defaults(self):
        repaired = repair([{"status": "weird"}], NOW)

        assert len(repaired) == 1
        task = repaired[0]
        assert task.id == f"repaired_task_{int(NOW.timestamp() * 1000)}_0"
        assert task.title == "Untitled Task"
        assert task.status == TaskStatus.ACTIVE
        assert task.created_at == NOW

    def test_whitespace_title_dropped(self):
        assert repair([{"id": "a", "title": "   "}], NOW) == []

    def test_not_a_list(self):
        assert repair("nope", NOW) == []


class TestDetectCorruption:

    def test_missing_data_is_not_corruption(self, checker):
        assert checker.detect_corruption() is False

    def test_valid_envelope(self, storage, checker, make_task):
        storage.set_item(TASKS_KEY, wrap_with_version([make_task()], now=NOW).to_json())
        assert checker.detect_corruption() is False

    @pytest.mark.parametrize("raw", [
        "{this is not json",
        "42",
        '"a string"',
        json.dumps({"version": "1.0.0", "tasks": [{"id": "a", "status": "bogus"}]}),
        json.dumps([{"title": "no id"}]),
    ])
    def test_corrupt(self, storage, checker, raw):
        storage.set_item(TASKS_KEY, raw)
        assert checker.detect_corruption() is True


class TestEmergencyRecovery:

    def test_unparsable_primary_uses_latest_valid_backup(self, storage, backups, checker, make_task):
        backups.snapshot([make_task(title="Older")], NOW)
        backups.snapshot([make_task(title="Newest"), make_task(title="Second")], NOW + timedelta(minutes=1))
        storage.set_item(TASKS_KEY, "{corrupt")

        assert checker.detect_corruption()
        recovered = checker.emergency_recovery()

        assert [t.title for t in recovered] == ["Newest", "Second"]

    def test_skips_invalid_backups(self, storage, backups, checker, make_task):
        backups.snapshot([make_task(title="Good")], NOW)
        storage.set_item("backup-2026-10-18T13:00:00.000Z", "{broken")
        storage.set_item(
            "backup-2026-10-18T14:00:00.000Z",
            json.dumps({"version": "1.0.0", "tasks": [{"id": "x", "status": "bad"}]}),
        )
        storage.set_item(TASKS_KEY, "{corrupt")

        assert [t.title for t in checker.emergency_recovery()] == ["Good"]

    def test_repairs_primary_without_backups(self, storage, checker):
        storage.set_item(TASKS_KEY, json.dumps({
            "version": "1.0.0",
            "tasks": [{"title": "Salvage me", "status": "broken"}, {"title": "  "}],
        }))

        recovered = checker.emergency_recovery()

        assert [t.title for t in recovered] == ["Salvage me"]
        assert recovered[0].status == TaskStatus.ACTIVE

    def test_nothing_recoverable(self, storage, checker):
        storage.set_item(TASKS_KEY, "{corrupt")
        assert checker.emergency_recovery() == []


class TestHealthCheck:

    def test_fresh_install(self, checker):
        report = checker.health_check()
        assert report.healthy
        assert report.issues == ["No task data found"]

    def test_unparsable(self, storage, checker):
        storage.set_item(TASKS_KEY, "{corrupt")
        report = checker.health_check()
        assert not report.healthy
        assert report.issues == ["Data format corruption detected"]

    def test_valid_without_backups(self, storage, checker, make_task):
        storage.set_item(TASKS_KEY, wrap_with_version([make_task()], now=NOW).to_json())

        report = checker.health_check()

        assert report.healthy
        assert "No automatic backups found" in report.issues

    def test_few_backups_is_informational(self, storage, backups, checker, make_task):
        storage.set_item(TASKS_KEY, wrap_with_version([make_task()], now=NOW).to_json())
        backups.snapshot([make_task()], NOW)

        report = checker.health_check()

        assert report.healthy
        assert report.issues == []
        assert report.recommendations == ["1 backup available - more will be created over time"]

    def test_invalid_tasks_reported(self, storage, checker):
        storage.set_item(TASKS_KEY, json.dumps([{"id": "a", "title": "x", "status": "nope", "repeatType": "none"}]))

        report = checker.health_check()

        assert not report.healthy
        assert 'Task 0: Invalid status "nope"' in report.issues
        assert "Data repair may be needed" in report.recommendations
