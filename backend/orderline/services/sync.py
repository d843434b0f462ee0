"""
Cross-context sync: turns storage changes made elsewhere into app events.

The storage only reports writes made by *other* contexts, and may coalesce
several writes into one event. Subscribers must treat an event as
"task data may have changed, re-read it" and never as the new state.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from orderline.logging_config import get_logger
from orderline.services.envelope import TASKS_KEY
from orderline.services.storage import StorageEvent, StoragePort

logger = get_logger(__name__)


@dataclass(frozen=True)
class SyncEvent:
    key: str
    new_value: str


SyncCallback = Callable[[SyncEvent], None]


class SyncBridge:
    """Republishes external changes of one storage key to subscribers."""

    def __init__(self, storage: StoragePort, key: str = TASKS_KEY):
        self.storage = storage
        self.key = key
        self._subscribers: list[SyncCallback] = []
        self._detach: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._detach is not None

    def start(self) -> None:
        if self._detach is None:
            self._detach = self.storage.add_listener(self._on_storage_event)

    def stop(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def on_external_change(self, callback: SyncCallback) -> Callable[[], None]:
        """Subscribe; starts listening if needed. Returns an unsubscribe function."""
        self._subscribers.append(callback)
        self.start()

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != self.key or not event.new_value:
            return
        sync_event = SyncEvent(key=event.key, new_value=event.new_value)
        for callback in list(self._subscribers):
            try:
                callback(sync_event)
            except Exception:
                logger.exception("Sync subscriber failed")
