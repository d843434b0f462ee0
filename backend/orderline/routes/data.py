"""
Data management routes: export/import, backups, health and recovery.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response

from orderline.dependencies import get_task_store
from orderline.exceptions import ErrorResponse
from orderline.logging_config import get_logger
from orderline.models.task import local_today
from orderline.schemas import BackupRead, DataResult, HealthRead, RestoreRequest
from orderline.services.persistence import TaskStore

logger = get_logger(__name__)

router = APIRouter()


def _result(store: TaskStore) -> DataResult:
    tasks = store.tasks
    return DataResult(task_count=len(tasks), tasks=tasks, durable=store.durable)


@router.get("/export")
def export_data(store: TaskStore = Depends(get_task_store)) -> Response:
    """Download the stored envelope exactly as persisted."""
    filename = f"orderline-backup-{local_today().isoformat()}.json"
    return Response(
        content=store.export_data(),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=DataResult, responses={400: {"model": ErrorResponse}})
def import_data(
    payload: Any = Body(...),
    store: TaskStore = Depends(get_task_store),
) -> DataResult:
    """
    Replace all tasks with an exported file.

    Accepts a bare task list or a full envelope; either way the data is
    migrated and validated before it is stored.
    """
    store.import_data(payload)
    return _result(store)


@router.get("/backups", response_model=list[BackupRead])
def list_backups(store: TaskStore = Depends(get_task_store)) -> list[BackupRead]:
    """Available backups, most recent first."""
    return [
        BackupRead(timestamp=info.timestamp, date=info.date, task_count=info.task_count)
        for info in store.list_backups()
    ]


@router.post("/backups/restore", response_model=DataResult)
def restore_backup(
    request: RestoreRequest | None = None,
    store: TaskStore = Depends(get_task_store),
) -> DataResult:
    """Restore a backup by timestamp, or the most recent one."""
    store.restore_backup(request.timestamp if request else None)
    return _result(store)


@router.get("/health", response_model=HealthRead)
def health(store: TaskStore = Depends(get_task_store)) -> HealthRead:
    """Read-only diagnostic of the stored data."""
    report = store.health_check()
    return HealthRead(
        healthy=report.healthy,
        issues=report.issues,
        recommendations=report.recommendations,
    )


@router.post("/recover", response_model=DataResult)
def recover(store: TaskStore = Depends(get_task_store)) -> DataResult:
    """
    Run emergency recovery if the stored data is corrupt.

    Healthy data is only reloaded, never replaced by a backup.
    """
    if store.detect_corruption():
        store.recover()
        logger.info("Manual recovery restored corrupt task data")
    else:
        store.load()
        logger.info("Manual recovery skipped, stored data is healthy")
    return _result(store)
