"""
Task routes for the Orderline API.

Every mutation goes through TaskStore.update(), so it is backed up,
versioned and written in one place. Workflow rejections surface as 409
responses and leave the stored list untouched.

Storage access blocks, so read-only routes are plain functions and
mutations hand it to the threadpool.
"""

from fastapi import APIRouter, Depends, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from orderline.config import get_settings
from orderline.database import get_session
from orderline.dependencies import get_loaded_task_store
from orderline.exceptions import ErrorResponse
from orderline.logging_config import get_logger
from orderline.models.task import Task, TaskStatus
from orderline.schemas import TaskCreate, TaskOverview
from orderline.services import lifecycle
from orderline.services.notifications import upsert_task_snapshot
from orderline.services.persistence import TaskStore

logger = get_logger(__name__)

router = APIRouter()

TRANSITION_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


async def report_task_counts(session: AsyncSession, store: TaskStore) -> None:
    """Push the active/hold counts the reminder loop works from."""
    counts = store.task_counts()
    device_id = await run_in_threadpool(store.device_id)
    await upsert_task_snapshot(
        session,
        device_id,
        counts.active_count,
        counts.hold_count,
    )


@router.get("/", response_model=list[Task])
def list_tasks(
    status: TaskStatus | None = None,
    store: TaskStore = Depends(get_loaded_task_store),
) -> list[Task]:
    """
    List tasks.

    Optionally filter by status; filtered lists are sorted by order.
    """
    if status is None:
        return store.tasks
    return lifecycle.by_status(store.tasks, status)


@router.get("/overview", response_model=TaskOverview)
def get_overview(
    store: TaskStore = Depends(get_loaded_task_store),
) -> TaskOverview:
    """Visible active and hold windows, backlog and today's completions."""
    tasks = store.tasks
    return TaskOverview(
        device_id=store.device_id(),
        active=lifecycle.get_active_tasks(tasks),
        hold=lifecycle.get_hold_tasks(tasks),
        backlog=lifecycle.by_status(tasks, TaskStatus.BACKLOG),
        completed_today=lifecycle.tasks_completed_today(tasks),
        queued_count=lifecycle.queued_count(tasks),
        durable=store.durable,
    )


@router.post("/", response_model=Task, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    store: TaskStore = Depends(get_loaded_task_store),
    session: AsyncSession = Depends(get_session),
) -> Task:
    """
    Create a new task.

    If scheduledDate is not provided, defaults to today. Future dates go
    to the backlog.
    """
    settings = get_settings()
    task = lifecycle.create_task(task_in.title, task_in.repeat_type, task_in.scheduled_date)
    await run_in_threadpool(store.update, lambda tasks: lifecycle.add_task(
        tasks, task, enforce_active_limit=settings.strict_active_limit,
    ))
    await report_task_counts(session, store)

    logger.info(f"Created task: id={task.id} title='{task.title}' status={task.status.value}")
    return task


@router.post("/{task_id}/complete", response_model=list[Task], responses=TRANSITION_ERRORS)
async def complete_task(
    task_id: str,
    store: TaskStore = Depends(get_loaded_task_store),
    session: AsyncSession = Depends(get_session),
) -> list[Task]:
    """
    Complete the top task of the active or hold list.

    Repeating tasks get their next occurrence appended.
    """
    tasks = await run_in_threadpool(store.update, lambda current: lifecycle.complete(current, task_id))
    await report_task_counts(session, store)
    logger.info(f"Completed task {task_id}")
    return tasks


@router.post("/{task_id}/hold", response_model=list[Task], responses=TRANSITION_ERRORS)
async def hold_task(
    task_id: str,
    store: TaskStore = Depends(get_loaded_task_store),
    session: AsyncSession = Depends(get_session),
) -> list[Task]:
    """Put an active task on hold (at most 3 held tasks)."""
    tasks = await run_in_threadpool(store.update, lambda current: lifecycle.hold(current, task_id))
    await report_task_counts(session, store)
    logger.info(f"Held task {task_id}")
    return tasks


@router.post("/{task_id}/resume", response_model=list[Task], responses=TRANSITION_ERRORS)
async def resume_task(
    task_id: str,
    store: TaskStore = Depends(get_loaded_task_store),
    session: AsyncSession = Depends(get_session),
) -> list[Task]:
    """Move a held task back to the end of the active list."""
    settings = get_settings()
    tasks = await run_in_threadpool(store.update, lambda current: lifecycle.resume(
        current, task_id, enforce_active_limit=settings.strict_active_limit,
    ))
    await report_task_counts(session, store)
    logger.info(f"Resumed task {task_id}")
    return tasks
