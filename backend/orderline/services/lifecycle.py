"""
Task lifecycle: the workflow state machine.

All functions are pure. They take a task list and return a new one,
raising a TransitionViolation (and leaving the input untouched) when the
workflow rules reject the change:

- at most 3 tasks on hold
- only the top task (lowest order) of the active or hold list can be completed
- completing a repeating task appends its next occurrence
- backlog tasks become active once their scheduled date arrives
"""

import calendar
import random
import string
from datetime import date, datetime, timedelta
from typing import Optional, Sequence

from orderline.exceptions import (
    ActiveLimitExceededError,
    HoldLimitExceededError,
    InvalidTransitionError,
    NotTopTaskError,
    TaskNotFoundError,
    ValidationError,
)
from orderline.models.task import (
    RepeatType,
    Task,
    TaskStatus,
    local_today,
    order_key,
    utcnow,
)

ACTIVE_LIMIT = 3
HOLD_LIMIT = 3
WINDOW_SIZE = 3


def generate_task_id(now: Optional[datetime] = None) -> str:
    """Opaque id in the task_<epoch-ms>_<9 random chars> form."""
    now = now or utcnow()
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"task_{int(now.timestamp() * 1000)}_{suffix}"


def create_task(
    title: str,
    repeat_type: RepeatType | str = RepeatType.NONE,
    scheduled_date: Optional[date] = None,
    *,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Task:
    """
    Create a new task.

    If scheduled_date is not provided, defaults to today. Tasks scheduled
    after today start in the backlog; everything else starts active.
    """
    now = now or utcnow()
    today = today or local_today()

    cleaned = title.strip() if isinstance(title, str) else ""
    if not cleaned:
        raise ValidationError(
            "Task title cannot be empty",
            details=[{"loc": ["body", "title"], "msg": "Title is required", "type": "value_error"}],
        )
    try:
        repeat = RepeatType(repeat_type)
    except ValueError:
        raise ValidationError(
            f"Unknown repeat type: {repeat_type}",
            details=[{"loc": ["body", "repeatType"], "msg": "Invalid repeat type", "type": "value_error"}],
        )

    scheduled = scheduled_date or today
    status = TaskStatus.BACKLOG if scheduled > today else TaskStatus.ACTIVE

    return Task(
        id=generate_task_id(now),
        title=cleaned,
        status=status,
        repeat_type=repeat,
        scheduled_date=scheduled,
        created_at=now,
        order=order_key(now),
    )


# =============================================================================
# Queries
# =============================================================================

def by_status(tasks: Sequence[Task], status: TaskStatus) -> list[Task]:
    """Tasks with the given status, ascending by order (stable on ties)."""
    return sorted((t for t in tasks if t.status == status), key=lambda t: t.order)


def window(tasks: Sequence[Task], status: TaskStatus) -> list[Task]:
    """The visible slice of a status list; anything past it is queued."""
    return by_status(tasks, status)[:WINDOW_SIZE]


def get_active_tasks(tasks: Sequence[Task]) -> list[Task]:
    return window(tasks, TaskStatus.ACTIVE)


def get_hold_tasks(tasks: Sequence[Task]) -> list[Task]:
    return window(tasks, TaskStatus.HOLD)


def top_of(tasks: Sequence[Task], status: TaskStatus) -> Optional[Task]:
    visible = window(tasks, status)
    return visible[0] if visible else None


def queued_count(tasks: Sequence[Task]) -> int:
    """Active tasks beyond the visible window."""
    active = sum(1 for t in tasks if t.status == TaskStatus.ACTIVE)
    return max(0, active - WINDOW_SIZE)


def tasks_completed_today(tasks: Sequence[Task], today: Optional[date] = None) -> list[Task]:
    today = today or local_today()
    return [
        t for t in tasks
        if t.status == TaskStatus.COMPLETED
        and t.completed_at is not None
        and t.completed_at.astimezone().date() == today
    ]


def can_hold(tasks: Sequence[Task]) -> bool:
    return sum(1 for t in tasks if t.status == TaskStatus.HOLD) < HOLD_LIMIT


def can_complete(tasks: Sequence[Task], task_id: str) -> bool:
    for status in (TaskStatus.ACTIVE, TaskStatus.HOLD):
        top = top_of(tasks, status)
        if top is not None and top.id == task_id:
            return True
    return False


def _index_of(tasks: Sequence[Task], task_id: str) -> int:
    for index, task in enumerate(tasks):
        if task.id == task_id:
            return index
    raise TaskNotFoundError(task_id)


def _active_count(tasks: Sequence[Task]) -> int:
    return sum(1 for t in tasks if t.status == TaskStatus.ACTIVE)


# =============================================================================
# Transitions
# =============================================================================

def add_task(
    tasks: Sequence[Task],
    task: Task,
    *,
    enforce_active_limit: bool = False,
) -> list[Task]:
    """Append a task, optionally refusing a 4th active one."""
    if (
        enforce_active_limit
        and task.status == TaskStatus.ACTIVE
        and _active_count(tasks) >= ACTIVE_LIMIT
    ):
        raise ActiveLimitExceededError(task.id, ACTIVE_LIMIT)
    return [*tasks, task]


def add_months(day: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of short months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def next_occurrence(base: date, repeat_type: RepeatType) -> Optional[date]:
    if repeat_type == RepeatType.DAILY:
        return base + timedelta(days=1)
    if repeat_type == RepeatType.WEEKLY:
        return base + timedelta(weeks=1)
    if repeat_type == RepeatType.MONTHLY:
        return add_months(base, 1)
    return None


def create_successor(
    task: Task,
    *,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Optional[Task]:
    """Next occurrence of a repeating task, or None for one-off tasks."""
    today = today or local_today()
    base = task.scheduled_date or today
    next_date = next_occurrence(base, task.repeat_type)
    if next_date is None:
        return None
    return create_task(task.title, task.repeat_type, next_date, today=today, now=now)


def complete(
    tasks: Sequence[Task],
    task_id: str,
    *,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> list[Task]:
    """
    Complete the top task of the active or hold list.

    Raises:
        TaskNotFoundError: unknown id
        NotTopTaskError: the task is not a top task
    """
    now = now or utcnow()
    index = _index_of(tasks, task_id)
    if not can_complete(tasks, task_id):
        raise NotTopTaskError(task_id)

    task = tasks[index]
    done = task.model_copy(update={
        "status": TaskStatus.COMPLETED,
        "completed_at": now,
        "held_at": None,
    })
    result = [*tasks[:index], done, *tasks[index + 1:]]

    successor = create_successor(task, today=today, now=now)
    if successor is not None:
        result.append(successor)
    return result


def hold(
    tasks: Sequence[Task],
    task_id: str,
    *,
    now: Optional[datetime] = None,
) -> list[Task]:
    """
    Move an active task to the hold list.

    Raises:
        TaskNotFoundError: unknown id
        HoldLimitExceededError: 3 tasks are already on hold
        InvalidTransitionError: the task is not active
    """
    now = now or utcnow()
    index = _index_of(tasks, task_id)
    if not can_hold(tasks):
        raise HoldLimitExceededError(task_id, HOLD_LIMIT)

    task = tasks[index]
    if task.status != TaskStatus.ACTIVE:
        raise InvalidTransitionError(task_id, task.status.value, "hold")

    held = task.model_copy(update={"status": TaskStatus.HOLD, "held_at": now})
    return [*tasks[:index], held, *tasks[index + 1:]]


def resume(
    tasks: Sequence[Task],
    task_id: str,
    *,
    now: Optional[datetime] = None,
    enforce_active_limit: bool = False,
) -> list[Task]:
    """
    Move a held task back to the end of the active queue.

    The order key is re-stamped, so the task does not reclaim the top spot.
    """
    now = now or utcnow()
    index = _index_of(tasks, task_id)
    task = tasks[index]
    if task.status != TaskStatus.HOLD:
        raise InvalidTransitionError(task_id, task.status.value, "resume")
    if enforce_active_limit and _active_count(tasks) >= ACTIVE_LIMIT:
        raise ActiveLimitExceededError(task_id, ACTIVE_LIMIT)

    resumed = task.model_copy(update={
        "status": TaskStatus.ACTIVE,
        "held_at": None,
        "order": order_key(now),
    })
    return [*tasks[:index], resumed, *tasks[index + 1:]]


def activate_scheduled(
    tasks: Sequence[Task],
    *,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> list[Task]:
    """Promote every backlog task whose scheduled date has arrived."""
    now = now or utcnow()
    today = today or local_today()
    stamp = order_key(now)

    result = []
    for task in tasks:
        if (
            task.status == TaskStatus.BACKLOG
            and task.scheduled_date is not None
            and task.scheduled_date <= today
        ):
            task = task.model_copy(update={"status": TaskStatus.ACTIVE, "order": stamp})
        result.append(task)
    return result
