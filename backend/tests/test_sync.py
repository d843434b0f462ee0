"""
Test cross-context change notification: the storage adapters and the
SyncBridge that republishes task-data changes.
"""

import pytest

from orderline.exceptions import StorageWriteError
from orderline.services.envelope import TASKS_KEY
from orderline.services.storage import MemoryBackend, SqlStorage
from orderline.services.sync import SyncBridge


class TestMemoryStorage:

    def test_writer_does_not_see_its_own_events(self, memory_backend):
        tab_a = memory_backend.view()
        tab_b = memory_backend.view()
        seen_a, seen_b = [], []
        tab_a.add_listener(seen_a.append)
        tab_b.add_listener(seen_b.append)

        tab_a.set_item("k", "v1")
        tab_a.set_item("k", "v2")

        assert seen_a == []
        assert [(e.key, e.old_value, e.new_value) for e in seen_b] == [("k", None, "v1"), ("k", "v1", "v2")]
        assert tab_b.get_item("k") == "v2"

    def test_remove_listener(self, memory_backend):
        tab_a = memory_backend.view()
        tab_b = memory_backend.view()
        seen = []
        remove = tab_b.add_listener(seen.append)
        remove()

        tab_a.set_item("k", "v")

        assert seen == []

    def test_failing_listener_does_not_block_others(self, memory_backend):
        tab_a = memory_backend.view()
        tab_b = memory_backend.view()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        tab_b.add_listener(broken)
        tab_b.add_listener(seen.append)

        tab_a.set_item("k", "v")

        assert len(seen) == 1

    def test_close_detaches_view(self, memory_backend):
        writer = memory_backend.view()
        closed = memory_backend.view()
        seen = []
        closed.add_listener(seen.append)

        closed.close()
        writer.set_item("k", "v")

        assert seen == []
        assert memory_backend._views == [writer]
        assert closed.get_item("k") == "v"

    def test_quota(self):
        storage = MemoryBackend(quota=10).view()
        storage.set_item("k", "12345")
        with pytest.raises(StorageWriteError):
            storage.set_item("other", "123456789")
        assert storage.get_item("other") is None


class TestSyncBridge:

    def test_only_task_key_is_republished(self, memory_backend):
        writer = memory_backend.view()
        bridge = SyncBridge(memory_backend.view())
        events = []
        bridge.on_external_change(events.append)

        writer.set_item("device-id", "device_1")
        writer.set_item(TASKS_KEY, '{"version": "1.0.0"}')
        writer.remove_item(TASKS_KEY)

        assert [(e.key, e.new_value) for e in events] == [(TASKS_KEY, '{"version": "1.0.0"}')]

    def test_start_is_idempotent(self, memory_backend):
        writer = memory_backend.view()
        bridge = SyncBridge(memory_backend.view())
        events = []
        bridge.on_external_change(events.append)
        bridge.start()
        bridge.start()

        writer.set_item(TASKS_KEY, "[]")

        assert len(events) == 1

    def test_stop(self, memory_backend):
        writer = memory_backend.view()
        bridge = SyncBridge(memory_backend.view())
        events = []
        bridge.on_external_change(events.append)

        bridge.stop()
        bridge.stop()
        writer.set_item(TASKS_KEY, "[]")

        assert events == []
        assert not bridge.running

    def test_unsubscribe(self, memory_backend):
        writer = memory_backend.view()
        bridge = SyncBridge(memory_backend.view())
        kept, dropped = [], []
        bridge.on_external_change(kept.append)
        unsubscribe = bridge.on_external_change(dropped.append)
        unsubscribe()

        writer.set_item(TASKS_KEY, "[]")

        assert len(kept) == 1
        assert dropped == []

    def test_subscriber_error_is_contained(self, memory_backend):
        writer = memory_backend.view()
        bridge = SyncBridge(memory_backend.view())
        events = []

        def broken(event):
            raise ValueError("bad subscriber")

        bridge.on_external_change(broken)
        bridge.on_external_change(events.append)

        writer.set_item(TASKS_KEY, "[]")

        assert len(events) == 1


class TestSqlStorage:

    def test_values_shared_across_contexts(self, storage_engine):
        tab_a = SqlStorage(storage_engine, "alice")
        tab_b = SqlStorage(storage_engine, "alice")

        tab_a.set_item("k", "v")

        assert tab_b.get_item("k") == "v"
        assert tab_b.keys() == ["k"]

    def test_namespaces_are_isolated(self, storage_engine):
        alice = SqlStorage(storage_engine, "alice")
        bob = SqlStorage(storage_engine, "bob")

        alice.set_item("k", "v")

        assert bob.get_item("k") is None
        assert bob.keys() == []

    def test_poll_reports_other_contexts_only(self, storage_engine):
        tab_a = SqlStorage(storage_engine, "alice")
        tab_b = SqlStorage(storage_engine, "alice")
        seen_a, seen_b = [], []
        tab_a.add_listener(seen_a.append)
        tab_b.add_listener(seen_b.append)

        tab_a.set_item("k", "v")

        assert tab_a.poll_changes() == 0
        assert tab_b.poll_changes() == 1
        assert seen_a == []
        assert [(e.key, e.new_value, e.origin) for e in seen_b] == [("k", "v", tab_a.context_id)]

    def test_rapid_writes_coalesce(self, storage_engine):
        tab_a = SqlStorage(storage_engine, "alice")
        tab_b = SqlStorage(storage_engine, "alice")
        seen = []
        tab_b.add_listener(seen.append)

        for i in range(5):
            tab_a.set_item(TASKS_KEY, f"v{i}")

        assert tab_b.poll_changes() == 1
        assert seen[0].new_value == "v4"
        assert tab_b.poll_changes() == 0

    def test_removal_event(self, storage_engine):
        tab_a = SqlStorage(storage_engine, "alice")
        tab_a.set_item("k", "v")
        tab_b = SqlStorage(storage_engine, "alice")
        seen = []
        tab_b.add_listener(seen.append)

        tab_a.remove_item("k")

        assert tab_b.poll_changes() == 1
        assert seen[0].new_value is None

    def test_bridge_over_sql_storage(self, storage_engine):
        tab_a = SqlStorage(storage_engine, "alice")
        tab_b = SqlStorage(storage_engine, "alice")
        bridge = SyncBridge(tab_b)
        events = []
        bridge.on_external_change(events.append)

        tab_a.set_item(TASKS_KEY, "[]")
        tab_a.set_item("data-version", "1.0.0")
        tab_b.poll_changes()

        assert [e.new_value for e in events] == ["[]"]
