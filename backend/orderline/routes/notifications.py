"""
Notification routes: reminder preferences and task count snapshots per device.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderline.database import get_session
from orderline.exceptions import NotFoundError
from orderline.logging_config import get_logger
from orderline.models import NotificationPreference, TaskSnapshot
from orderline.schemas import (
    PreferencesRead,
    PreferencesUpdate,
    TaskSnapshotCreate,
    TaskSnapshotRead,
)
from orderline.services import notifications

logger = get_logger(__name__)

router = APIRouter()


@router.get("/preferences/{device_id}", response_model=PreferencesRead)
async def get_preferences(
    device_id: str,
    session: AsyncSession = Depends(get_session),
) -> NotificationPreference:
    """Get the reminder preferences of a device."""
    prefs = await notifications.get_preferences(session, device_id)
    if not prefs:
        raise NotFoundError("Notification preferences", device_id)
    return prefs


@router.post("/preferences/{device_id}", response_model=PreferencesRead)
async def save_preferences(
    device_id: str,
    prefs_in: PreferencesUpdate,
    session: AsyncSession = Depends(get_session),
) -> NotificationPreference:
    """Create or update the reminder preferences of a device."""
    # Explicit nulls only mean something for the subscription
    values = {
        field: value
        for field, value in prefs_in.model_dump(exclude_unset=True).items()
        if value is not None or field == "push_subscription"
    }
    prefs = await notifications.upsert_preferences(session, device_id, values)
    logger.info(f"Saved notification preferences for device={device_id}: enabled={prefs.enabled}")
    return prefs


@router.get("/task-snapshot/{device_id}", response_model=TaskSnapshotRead)
async def get_task_snapshot(
    device_id: str,
    session: AsyncSession = Depends(get_session),
) -> TaskSnapshot:
    """Get the latest active/hold counts reported for a device."""
    snapshot = await notifications.get_task_snapshot(session, device_id)
    if not snapshot:
        raise NotFoundError("Task snapshot", device_id)
    return snapshot


@router.post("/task-snapshot", response_model=TaskSnapshotRead)
async def save_task_snapshot(
    snapshot_in: TaskSnapshotCreate,
    session: AsyncSession = Depends(get_session),
) -> TaskSnapshot:
    """Record the active/hold counts of a device."""
    return await notifications.upsert_task_snapshot(
        session,
        snapshot_in.device_id,
        snapshot_in.active_count,
        snapshot_in.hold_count,
        snapshot_in.last_change,
    )
