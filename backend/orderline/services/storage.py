"""
Profile storage: the key-value port the persistence layer writes through.

Semantics follow browser localStorage:
- string keys and string values, synchronous calls
- every write is visible immediately to all contexts sharing the storage
- change events are delivered only to *other* contexts, never the writer

Adapters:
- MemoryStorage: views onto a shared in-process MemoryBackend
- SqlStorage: rows of the storage_entries table, one namespace per profile
"""

import uuid
from typing import Callable, NamedTuple, Optional, Protocol

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from orderline.exceptions import StorageWriteError
from orderline.logging_config import get_logger
from orderline.models.storage_entry import StorageEntry
from orderline.models.task import utcnow

logger = get_logger(__name__)


class StorageEvent(NamedTuple):
    """A key changed in another storage context."""
    key: str
    old_value: Optional[str]
    new_value: Optional[str]
    origin: str


StorageListener = Callable[[StorageEvent], None]


class StoragePort(Protocol):
    """Synchronous key-value storage shared between contexts."""

    context_id: str

    def get_item(self, key: str) -> Optional[str]: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...
    def keys(self) -> list[str]: ...
    def add_listener(self, listener: StorageListener) -> Callable[[], None]: ...
    def close(self) -> None: ...


class _ListenerMixin:
    """Listener bookkeeping shared by the adapters."""

    def _init_listeners(self) -> None:
        self._listeners: list[StorageListener] = []

    def add_listener(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _dispatch(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Storage listener failed for key={event.key}")

    def close(self) -> None:
        """Drop all listeners; the context stays usable for reads and writes."""
        self._listeners.clear()


# =============================================================================
# In-memory adapter
# =============================================================================

class MemoryBackend:
    """
    Shared dictionary behind any number of MemoryStorage views.

    quota limits the total number of characters stored (keys + values);
    writes past it fail like a full browser storage.
    """

    def __init__(self, quota: Optional[int] = None):
        self.quota = quota
        self._data: dict[str, str] = {}
        self._views: list["MemoryStorage"] = []

    def view(self) -> "MemoryStorage":
        """Open a new storage context onto this backend."""
        return MemoryStorage(self)

    def _attach(self, view: "MemoryStorage") -> None:
        self._views.append(view)

    def _detach(self, view: "MemoryStorage") -> None:
        if view in self._views:
            self._views.remove(view)

    def _size_with(self, key: str, value: str) -> int:
        size = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
        return size + len(key) + len(value)

    def _broadcast(self, event: StorageEvent) -> None:
        for view in list(self._views):
            if view.context_id != event.origin:
                view._dispatch(event)


class MemoryStorage(_ListenerMixin):
    """One storage context over a MemoryBackend."""

    def __init__(self, backend: Optional[MemoryBackend] = None):
        self._backend = backend or MemoryBackend()
        self.context_id = uuid.uuid4().hex
        self._init_listeners()
        self._backend._attach(self)

    @property
    def backend(self) -> MemoryBackend:
        return self._backend

    def get_item(self, key: str) -> Optional[str]:
        return self._backend._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        quota = self._backend.quota
        if quota is not None and self._backend._size_with(key, value) > quota:
            raise StorageWriteError(key, "quota exceeded")
        old = self._backend._data.get(key)
        self._backend._data[key] = value
        self._backend._broadcast(StorageEvent(key, old, value, self.context_id))

    def remove_item(self, key: str) -> None:
        old = self._backend._data.pop(key, None)
        if old is not None:
            self._backend._broadcast(StorageEvent(key, old, None, self.context_id))

    def keys(self) -> list[str]:
        return list(self._backend._data.keys())

    def close(self) -> None:
        super().close()
        self._backend._detach(self)


# =============================================================================
# SQL adapter
# =============================================================================

class SqlStorage(_ListenerMixin):
    """
    Storage context backed by the storage_entries table.

    Other processes writing the same namespace are noticed by poll_changes(),
    which compares row revisions with the ones this context last saw. Several
    writes between two polls surface as a single event.
    """

    def __init__(self, engine: Engine, namespace: str, context_id: Optional[str] = None):
        self._engine = engine
        self.namespace = namespace
        self.context_id = context_id or uuid.uuid4().hex
        self._init_listeners()
        self._seen: dict[str, int] = self._revisions()

    def _revisions(self) -> dict[str, int]:
        with Session(self._engine) as session:
            rows = session.exec(
                select(StorageEntry.key, StorageEntry.revision)
                .where(StorageEntry.namespace == self.namespace)
            ).all()
        return {key: revision for key, revision in rows}

    def get_item(self, key: str) -> Optional[str]:
        with Session(self._engine) as session:
            entry = session.get(StorageEntry, (self.namespace, key))
            return entry.value if entry else None

    def set_item(self, key: str, value: str) -> None:
        try:
            with Session(self._engine) as session:
                entry = session.get(StorageEntry, (self.namespace, key))
                if entry is None:
                    entry = StorageEntry(
                        namespace=self.namespace,
                        key=key,
                        value=value,
                        origin=self.context_id,
                    )
                else:
                    entry.value = value
                    entry.revision += 1
                    entry.origin = self.context_id
                    entry.updated_at = utcnow()
                session.add(entry)
                session.commit()
                self._seen[key] = entry.revision
        except SQLAlchemyError as e:
            raise StorageWriteError(key, str(e)) from e

    def remove_item(self, key: str) -> None:
        try:
            with Session(self._engine) as session:
                entry = session.get(StorageEntry, (self.namespace, key))
                if entry is not None:
                    session.delete(entry)
                    session.commit()
        except SQLAlchemyError as e:
            raise StorageWriteError(key, str(e)) from e
        self._seen.pop(key, None)

    def keys(self) -> list[str]:
        with Session(self._engine) as session:
            return list(session.exec(
                select(StorageEntry.key).where(StorageEntry.namespace == self.namespace)
            ).all())

    def poll_changes(self) -> int:
        """
        Deliver events for keys changed by other contexts since the last poll.

        Returns the number of events dispatched.
        """
        with Session(self._engine) as session:
            rows = session.exec(
                select(StorageEntry).where(StorageEntry.namespace == self.namespace)
            ).all()
            current = {row.key: (row.revision, row.origin, row.value) for row in rows}

        events = []
        for key, (revision, origin, value) in current.items():
            if self._seen.get(key) == revision:
                continue
            self._seen[key] = revision
            if origin != self.context_id:
                events.append(StorageEvent(key, None, value, origin))

        for key in [k for k in self._seen if k not in current]:
            del self._seen[key]
            events.append(StorageEvent(key, None, None, ""))

        for event in events:
            self._dispatch(event)
        if events:
            logger.debug(f"Storage poll namespace={self.namespace}: {len(events)} external changes")
        return len(events)
