"""
Reminder scheduler.

Two kinds of APScheduler jobs on one asyncio loop:
    - "reminder-sync": interval job; fires everything already due, then
      rebuilds the per-reminder jobs from a fresh snapshot of storage
    - "reminder:<id>": one date job per reminder, armed for its nextDue

Firing a reminder always advances its stored nextDue to now + frequency
before the next check can see it, so a due instant is notified once.
"""
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from rx_reminder.core.config import SCHEDULER_POLL_S
from rx_reminder.schemas.models import Reminder
from rx_reminder.services.notifications import NotificationDispatcher, get_dispatcher
from rx_reminder.services.reminder_store import (
    ReminderNotFound,
    ReminderStore,
    ReminderStoreError,
    get_store,
)
from rx_reminder.services.reminders import is_due, rescheduled, utcnow

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "reminder-sync"

_PERSIST_ERRORS = (ReminderStoreError, sqlite3.Error, OSError)


def reminder_job_id(reminder_id: str) -> str:
    return f"reminder:{reminder_id}"


class ReminderScheduler:
    def __init__(
        self,
        store: ReminderStore,
        dispatcher: NotificationDispatcher,
        scheduler=None,
        poll_s: int = SCHEDULER_POLL_S,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.poll_s = poll_s
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._clock = clock
        # reminder id -> run time of its armed job
        self._armed: Dict[str, datetime] = {}
        self._firing: Set[str] = set()
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    @property
    def armed(self) -> Dict[str, datetime]:
        return dict(self._armed)

    # ---------------------------
    # lifecycle
    # ---------------------------
    def start(self) -> None:
        if self._started:
            return
        self._scheduler.add_job(
            self.sync,
            "interval",
            seconds=self.poll_s,
            id=SYNC_JOB_ID,
            next_run_time=datetime.now(timezone.utc),
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self._scheduler.start()
        self._started = True
        logger.info("Reminder scheduler started (sync every %ss)", self.poll_s)

    def stop(self) -> None:
        if not self._started:
            return
        self._scheduler.shutdown(wait=False)
        self._armed.clear()
        self._started = False
        logger.info("Reminder scheduler stopped")

    def refresh(self) -> None:
        """Pull the next sync forward to now, e.g. after a reminder changed."""
        if not self._started:
            return
        try:
            self._scheduler.modify_job(SYNC_JOB_ID, next_run_time=datetime.now(timezone.utc))
        except JobLookupError:
            logger.warning("Sync job missing; reminders will not refresh until restart")

    # ---------------------------
    # firing
    # ---------------------------
    async def fire(self, reminder: Reminder, now: datetime) -> Optional[Reminder]:
        """
        Notify, then persist nextDue = now + frequency.
        Returns the stored reminder, or None when persisting failed.
        """
        try:
            await self.dispatcher.dispatch(reminder)
        except Exception:
            logger.exception("Notification failed for reminder %s", reminder.id)

        try:
            return self.store.update(reminder.id, {"next_due": rescheduled(reminder, now)})
        except _PERSIST_ERRORS as e:
            logger.error("Could not reschedule reminder %s, retrying on next sync: %s", reminder.id, e)
            return None

    async def _fire_once(self, reminder: Reminder, now: datetime) -> Optional[Reminder]:
        if reminder.id in self._firing:
            return None
        self._firing.add(reminder.id)
        try:
            return await self.fire(reminder, now)
        finally:
            self._firing.discard(reminder.id)

    async def check_due(self, now: Optional[datetime] = None) -> List[Reminder]:
        """Fire every reminder whose nextDue is at or before now."""
        now = now or self._clock()
        try:
            reminders = self.store.list()
        except _PERSIST_ERRORS as e:
            logger.error("Could not read reminders for due check: %s", e)
            return []

        fired: List[Reminder] = []
        for reminder in reminders:
            if not is_due(reminder, now) or reminder.id in self._firing:
                continue
            await self._fire_once(reminder, now)
            fired.append(reminder)

        if fired:
            logger.info("Fired %d due reminder(s)", len(fired))
        return fired

    # ---------------------------
    # per-reminder jobs
    # ---------------------------
    def _arm(self, reminder: Reminder) -> None:
        self._scheduler.add_job(
            self._on_due,
            "date",
            run_date=reminder.next_due,
            args=[reminder.id],
            id=reminder_job_id(reminder.id),
            replace_existing=True,
            misfire_grace_time=None,
        )
        self._armed[reminder.id] = reminder.next_due
        logger.debug("Armed reminder %s for %s", reminder.id, reminder.next_due.isoformat())

    def _disarm(self, reminder_id: str) -> None:
        self._armed.pop(reminder_id, None)
        try:
            self._scheduler.remove_job(reminder_job_id(reminder_id))
        except JobLookupError:
            pass  # already ran

    def rearm(self, reminders: List[Reminder], now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        current = {r.id: r for r in reminders}

        for reminder_id in list(self._armed):
            if reminder_id not in current:
                self._disarm(reminder_id)

        for reminder in current.values():
            if is_due(reminder, now):
                # left for the next due check
                if reminder.id in self._armed:
                    self._disarm(reminder.id)
                continue
            if self._armed.get(reminder.id) != reminder.next_due:
                self._arm(reminder)

    async def _on_due(self, reminder_id: str) -> None:
        self._armed.pop(reminder_id, None)
        now = self._clock()
        try:
            reminder = self.store.get(reminder_id)
        except ReminderNotFound:
            logger.debug("Reminder %s was deleted before it came due", reminder_id)
            return
        except _PERSIST_ERRORS as e:
            logger.error("Could not load reminder %s: %s", reminder_id, e)
            return

        if not is_due(reminder, now):
            self._arm(reminder)
            return

        updated = await self._fire_once(reminder, now)
        if updated is not None:
            self._arm(updated)

    async def sync(self) -> None:
        now = self._clock()
        await self.check_due(now)
        try:
            reminders = self.store.list()
        except _PERSIST_ERRORS as e:
            logger.error("Could not read reminders for rescheduling: %s", e)
            return
        self.rearm(reminders, now)


_scheduler: Optional[ReminderScheduler] = None


def get_scheduler() -> ReminderScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = ReminderScheduler(get_store(), get_dispatcher())
    return _scheduler


def set_scheduler(scheduler: Optional[ReminderScheduler]) -> None:
    global _scheduler
    _scheduler = scheduler
