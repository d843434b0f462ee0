"""
FastAPI dependencies giving routes a TaskStore for the requested profile.
"""

from typing import Generator

from fastapi import Depends, Path
from sqlalchemy import Engine

from orderline.config import get_settings
from orderline.database import get_storage_engine
from orderline.services.persistence import TaskStore
from orderline.services.storage import SqlStorage

PROFILE_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


def get_task_store(
    profile: str = Path(pattern=PROFILE_PATTERN),
    engine: Engine = Depends(get_storage_engine),
) -> Generator[TaskStore, None, None]:
    """A storage context over the profile's data, not yet loaded."""
    settings = get_settings()
    store = TaskStore(SqlStorage(engine, namespace=profile), backup_limit=settings.backup_limit)
    try:
        yield store
    finally:
        store.close()


def get_loaded_task_store(store: TaskStore = Depends(get_task_store)) -> TaskStore:
    """Same as get_task_store, with load() (migration, recovery, activation) done."""
    store.load()
    return store
