#!/usr/bin/env python3
"""
Seed script to fill a profile with tasks for manual and load testing.

Generates a realistic mix:
- active tasks, a few beyond the visible window of 3
- up to 3 held tasks
- backlog tasks scheduled over the coming weeks
- completed history, some of it repeating

Usage:
    python -m scripts.seed [--profile demo] [--tasks 40] [--clear] [--legacy]

Options:
    --profile NAME  Profile (storage namespace) to seed (default: demo)
    --tasks N       Number of tasks to generate (default: 40)
    --clear         Remove the profile's keys before seeding
    --legacy        Write a bare pre-versioning list instead of an envelope,
                    so the next load exercises the migration path
"""

import argparse
import json
import random
import time
from datetime import timedelta
from typing import List

from orderline.database import get_storage_engine
from orderline.models.task import RepeatType, Task, TaskStatus, local_today, order_key, utcnow
from orderline.services import lifecycle
from orderline.services.envelope import TASKS_KEY
from orderline.services.persistence import TaskStore
from orderline.services.storage import SqlStorage

TITLES = [
    "Reply to emails", "Water the plants", "Review pull request", "Plan the week",
    "Call the bank", "Stretch", "Pay rent", "Read a chapter", "Clean the desk",
    "Update the budget", "Book dentist", "Back up photos",
]


def clear_profile(storage: SqlStorage):
    """Remove every key of the profile."""
    print(f"Clearing profile {storage.namespace}...")
    for key in storage.keys():
        storage.remove_item(key)
    print("Profile cleared.")


def generate_tasks(num_tasks: int = 40) -> List[Task]:
    """
    Build a task list that respects the workflow limits.

    Roughly half the tasks are completed history, the rest are split between
    active, hold (never more than 3) and backlog.
    """
    now = utcnow()
    today = local_today()
    tasks: List[Task] = []
    held = 0

    print(f"Generating {num_tasks} tasks...")

    for i in range(num_tasks):
        created = now - timedelta(days=random.randint(0, 30), minutes=i)
        title = f"{random.choice(TITLES)} #{i:03d}"
        repeat = random.choice([RepeatType.NONE] * 6 + [RepeatType.DAILY, RepeatType.WEEKLY, RepeatType.MONTHLY])
        roll = random.random()

        if roll < 0.5:
            completed = created + timedelta(hours=random.randint(1, 48))
            task = Task(
                id=lifecycle.generate_task_id(created),
                title=title,
                status=TaskStatus.COMPLETED,
                repeat_type=repeat,
                scheduled_date=completed.date(),
                created_at=created,
                completed_at=completed,
                order=order_key(created),
            )
        elif roll < 0.65 and held < lifecycle.HOLD_LIMIT:
            held += 1
            task = Task(
                id=lifecycle.generate_task_id(created),
                title=title,
                status=TaskStatus.HOLD,
                repeat_type=repeat,
                scheduled_date=today,
                created_at=created,
                held_at=now,
                order=order_key(created),
            )
        elif roll < 0.8:
            task = lifecycle.create_task(
                title,
                repeat,
                today + timedelta(days=random.randint(1, 21)),
                today=today,
                now=created,
            )
        else:
            task = lifecycle.create_task(title, repeat, today, today=today, now=created)
        tasks.append(task)

    return tasks


def write_legacy(storage: SqlStorage, tasks: List[Task]):
    """Store tasks the way pre-versioning releases did: a bare list, no scheduled dates."""
    legacy = []
    for task in tasks:
        data = task.to_storage()
        data.pop("scheduledDate", None)
        legacy.append(data)
    storage.set_item(TASKS_KEY, json.dumps(legacy))


def print_stats(store: TaskStore):
    """Statistics about the seeded profile, read back through the normal load path."""
    tasks = store.load()
    counts = {status: len([t for t in tasks if t.status == status]) for status in TaskStatus}

    print(f"\n=== Profile Statistics ===")
    print(f"Tasks:        {len(tasks)}")
    for status, count in counts.items():
        print(f"  {status.value:<10} {count}")
    print(f"Queued:       {lifecycle.queued_count(tasks)} (active beyond the window)")
    print(f"Backups:      {len(store.list_backups())}")
    print(f"Device ID:    {store.device_id()}")


def main():
    parser = argparse.ArgumentParser(description="Seed a profile with tasks")
    parser.add_argument("--profile", type=str, default="demo", help="Profile to seed")
    parser.add_argument("--tasks", type=int, default=40, help="Number of tasks to create")
    parser.add_argument("--clear", action="store_true", help="Clear the profile first")
    parser.add_argument("--legacy", action="store_true", help="Write unversioned legacy data")

    args = parser.parse_args()

    print(f"=== Orderline Seed Script ===")

    storage = SqlStorage(get_storage_engine(), namespace=args.profile)
    if args.clear:
        clear_profile(storage)

    start_time = time.time()
    tasks = generate_tasks(args.tasks)
    print(f"Generation time: {time.time() - start_time:.2f}s")

    store = TaskStore(storage)
    if args.legacy:
        write_legacy(storage, tasks)
        print("Wrote legacy bare list (will be migrated on next load)")
    else:
        store.save(tasks)

    print_stats(store)

    print(f"\n=== Seeding Complete ===")
    print(f"Profile: {args.profile}")


if __name__ == "__main__":
    main()
