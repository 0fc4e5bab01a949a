import os
import tempfile
from datetime import datetime, timedelta, timezone

# settings are read at import time; point everything at a scratch dir first
_TMP = tempfile.mkdtemp(prefix="rx_reminder_tests_")
os.environ["RX_DATA_DIR"] = _TMP
os.environ["RX_DB_PATH"] = os.path.join(_TMP, "test.db")
os.environ["VOICE_AUDIO_DIR"] = os.path.join(_TMP, "voice")
os.environ["TTS_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"

import pytest
from apscheduler.jobstores.base import JobLookupError

from rx_reminder.db.local_storage import MemoryLocalStorage
from rx_reminder.services.notifications import NotificationDispatcher, set_dispatcher
from rx_reminder.services.reminder_store import ReminderStore, set_store
from rx_reminder.services.scheduler import ReminderScheduler, set_scheduler

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeJobScheduler:
    """Records APScheduler calls instead of running them."""

    def __init__(self):
        self.jobs = {}
        self.modified = []
        self.running = False

    def add_job(self, func, trigger, id=None, replace_existing=False, **kwargs):
        self.jobs[id] = {"func": func, "trigger": trigger, **kwargs}

    def remove_job(self, job_id):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def modify_job(self, job_id, **changes):
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        self.jobs[job_id].update(changes)
        self.modified.append(job_id)

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.running = False


class RecordingDispatcher:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.dispatched = []

    async def dispatch(self, reminder):
        self.dispatched.append(reminder)
        if self.fail:
            raise RuntimeError("notification backend down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryLocalStorage()


@pytest.fixture
def store(storage, clock):
    s = ReminderStore(storage, clock=clock)
    set_store(s)
    yield s
    set_store(None)


@pytest.fixture
def job_scheduler():
    return FakeJobScheduler()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def scheduler(store, dispatcher, job_scheduler, clock):
    s = ReminderScheduler(store, dispatcher, scheduler=job_scheduler, poll_s=60, clock=clock)
    set_scheduler(s)
    yield s
    set_scheduler(None)


@pytest.fixture
def notification_dispatcher():
    d = NotificationDispatcher()
    set_dispatcher(d)
    yield d
    set_dispatcher(None)
