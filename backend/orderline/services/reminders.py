"""
Reminder loop: periodically nudges devices that still have open tasks.

Replaces a fire-and-forget interval timer with a cancellable asyncio task:
- start() / stop() are idempotent
- a check that fires while the previous one is still running is skipped

Delivery itself is pluggable (ReminderSender); the default sender only logs.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from orderline.database import get_session_context
from orderline.exceptions import SubscriptionGoneError
from orderline.logging_config import get_logger
from orderline.models import NotificationPreference, TaskSnapshot
from orderline.models.task import utcnow
from orderline.services.notifications import get_task_snapshot, list_active_preferences

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReminderPayload:
    title: str
    body: str
    url: str = "/"


class ReminderSender(Protocol):
    async def send(self, prefs: NotificationPreference, payload: ReminderPayload) -> None: ...


class LoggingReminderSender:
    """Records reminders in the log instead of pushing them."""

    async def send(self, prefs: NotificationPreference, payload: ReminderPayload) -> None:
        logger.info(f"Reminder logged for device {prefs.device_id}: {payload.body}")


# =============================================================================
# Reminder rules
# =============================================================================

def _as_utc(moment: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_clock_time(value: str) -> time:
    """Parse "HH:MM"."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_within_bedtime(
    bedtime_start: str,
    bedtime_end: str,
    tz_name: str = "UTC",
    now: Optional[datetime] = None,
) -> bool:
    """
    True when the local time of tz_name is inside the quiet window.

    The window may cross midnight (22:00 - 07:00). Malformed input never
    blocks a reminder.
    """
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, using UTC")
        zone = ZoneInfo("UTC")
    try:
        start = parse_clock_time(bedtime_start)
        end = parse_clock_time(bedtime_end)
    except ValueError as e:
        logger.error(f"Error checking bedtime: {e}")
        return False

    local = _as_utc(now or utcnow()).astimezone(zone).time().replace(second=0, microsecond=0)
    if start > end:
        return local >= start or local <= end
    return start <= local <= end


def should_send_reminder(
    last_notified_at: Optional[datetime],
    frequency_minutes: int,
    now: Optional[datetime] = None,
) -> bool:
    if last_notified_at is None:
        return True
    elapsed = _as_utc(now or utcnow()) - _as_utc(last_notified_at)
    return elapsed >= timedelta(minutes=frequency_minutes)


def has_outstanding_tasks(snapshot: TaskSnapshot) -> bool:
    return snapshot.active_count > 0 or snapshot.hold_count > 0


def reminder_message(active_count: int, hold_count: int) -> str:
    total = active_count + hold_count
    if total == 1:
        return "You've got 1 task waiting - tap to pick it up"
    if active_count > 0 and hold_count == 0:
        return f"You've got {active_count} active tasks waiting"
    if active_count == 0 and hold_count > 0:
        return f"You've got {hold_count} tasks on hold - ready to resume?"
    return f"You've got {total} tasks waiting - tap to pick the top one"


# =============================================================================
# Manager
# =============================================================================

class ReminderManager:
    """Background loop checking every active preference on a fixed interval."""

    def __init__(
        self,
        sender: Optional[ReminderSender] = None,
        interval_seconds: float = 300.0,
        initial_delay_seconds: float = 10.0,
        session_factory: Callable[[], Any] = get_session_context,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sender = sender or LoggingReminderSender()
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._session_factory = session_factory
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info("Starting reminder manager...")
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Reminder manager stopped")

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay_seconds)
        while True:
            await self.check_and_send()
            await asyncio.sleep(self.interval_seconds)

    async def check_and_send(self) -> int:
        """
        One pass over all active preferences.

        Returns the number of reminders sent; 0 when skipped because a
        previous pass is still running.
        """
        if self._lock.locked():
            logger.debug("Reminder check still in flight, skipping")
            return 0
        async with self._lock:
            sent = 0
            try:
                async with self._session_factory() as session:
                    for prefs in await list_active_preferences(session):
                        try:
                            if await self._process(session, prefs):
                                sent += 1
                        except Exception:
                            logger.exception(f"Error processing reminder for device {prefs.device_id}")
            except Exception:
                logger.exception("Error checking reminders")
            return sent

    async def _process(self, session, prefs: NotificationPreference) -> bool:
        now = self._clock()
        if is_within_bedtime(prefs.bedtime_start, prefs.bedtime_end, prefs.timezone, now):
            return False
        if not should_send_reminder(prefs.last_notified_at, prefs.frequency_minutes, now):
            return False

        snapshot = await get_task_snapshot(session, prefs.device_id)
        if snapshot is None or not has_outstanding_tasks(snapshot):
            return False

        payload = ReminderPayload(
            title="Task Reminder",
            body=reminder_message(snapshot.active_count, snapshot.hold_count),
        )
        try:
            await self.sender.send(prefs, payload)
        except SubscriptionGoneError:
            logger.warning(f"Subscription gone for device {prefs.device_id}, disabling reminders")
            prefs.push_subscription = None
            prefs.enabled = False
            prefs.updated_at = now
            session.add(prefs)
            return False

        prefs.last_notified_at = now
        prefs.updated_at = now
        session.add(prefs)
        return True
