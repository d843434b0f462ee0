"""
Notification preference and task snapshot persistence.

Shared by the notification routes, the task routes (which report counts
after every change) and the reminder loop.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orderline.logging_config import get_logger
from orderline.models import NotificationPreference, TaskSnapshot
from orderline.models.task import utcnow

logger = get_logger(__name__)


async def get_preferences(session: AsyncSession, device_id: str) -> Optional[NotificationPreference]:
    result = await session.execute(
        select(NotificationPreference).where(NotificationPreference.device_id == device_id)
    )
    return result.scalars().first()


async def upsert_preferences(
    session: AsyncSession,
    device_id: str,
    values: dict[str, Any],
) -> NotificationPreference:
    """Create or update the preferences of a device; unset fields keep their value."""
    prefs = await get_preferences(session, device_id)
    if prefs is None:
        prefs = NotificationPreference(device_id=device_id, **values)
        logger.info(f"Created notification preferences for device={device_id}")
    else:
        for field, value in values.items():
            setattr(prefs, field, value)
        prefs.updated_at = utcnow()
    session.add(prefs)
    await session.flush()
    await session.refresh(prefs)
    return prefs


async def list_active_preferences(session: AsyncSession) -> list[NotificationPreference]:
    """Preferences that are enabled and have somewhere to send to."""
    result = await session.execute(
        select(NotificationPreference).where(
            NotificationPreference.enabled == True,  # noqa: E712
            NotificationPreference.push_subscription.is_not(None),
        )
    )
    return list(result.scalars().all())


async def get_task_snapshot(session: AsyncSession, device_id: str) -> Optional[TaskSnapshot]:
    return await session.get(TaskSnapshot, device_id)


async def upsert_task_snapshot(
    session: AsyncSession,
    device_id: str,
    active_count: int,
    hold_count: int,
    last_change: Optional[datetime] = None,
) -> TaskSnapshot:
    now = utcnow()
    snapshot = await session.get(TaskSnapshot, device_id)
    if snapshot is None:
        snapshot = TaskSnapshot(device_id=device_id)
    snapshot.active_count = active_count
    snapshot.hold_count = hold_count
    snapshot.last_change = last_change or now
    snapshot.updated_at = now
    session.add(snapshot)
    await session.flush()
    await session.refresh(snapshot)
    logger.debug(f"Task snapshot device={device_id} active={active_count} hold={hold_count}")
    return snapshot
