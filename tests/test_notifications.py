from datetime import datetime, timezone

import pytest

from rx_reminder.schemas.models import Reminder, SpeechResult
from rx_reminder.services.notifications import (
    NotificationDispatcher,
    NotificationHub,
    ToastFeed,
    build_message,
)

NOW = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def _reminder():
    return Reminder(
        id="r-42",
        medicine_name="PREXT (100)",
        dosage="1-0-1 tablet",
        frequency=12,
        duration=30,
        next_due=NOW,
        created_at=NOW,
    )


class FakeWebSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(payload)


class FakeVoice:
    def __init__(self, fail=False):
        self.fail = fail
        self.announced = []

    def announce(self, reminder):
        self.announced.append(reminder.id)
        if self.fail:
            raise RuntimeError("audio device busy")
        return SpeechResult(channel="device", text="...")


def test_message_content():
    msg = build_message(_reminder())
    assert msg.title == "Medicine Reminder"
    assert msg.body == "Time to take PREXT (100), 1-0-1 tablet"
    assert msg.tag == "reminder-r-42"
    assert msg.url == "/reminders/r-42"


@pytest.mark.asyncio
async def test_without_permission_falls_back_to_toast():
    ws = FakeWebSocket()
    dispatcher = NotificationDispatcher()
    await dispatcher.hub.connect(ws)

    shown = await dispatcher.dispatch(_reminder())

    assert shown.channel == "toast"
    assert ws.sent == []
    assert [t.reminder_id for t in dispatcher.toasts.drain()] == ["r-42"]


@pytest.mark.asyncio
async def test_granted_permission_pushes_system_notification():
    ws = FakeWebSocket()
    dispatcher = NotificationDispatcher()
    dispatcher.hub.permission = "granted"
    await dispatcher.hub.connect(ws)

    shown = await dispatcher.dispatch(_reminder())

    assert shown.channel == "system"
    assert ws.accepted
    assert len(ws.sent) == 1
    payload = ws.sent[0]
    assert payload["reminderId"] == "r-42"
    assert payload["title"] == "Medicine Reminder"
    assert payload["url"] == "/reminders/r-42"
    assert len(dispatcher.toasts) == 0


@pytest.mark.asyncio
async def test_granted_but_no_clients_shows_toast():
    dispatcher = NotificationDispatcher()
    dispatcher.hub.permission = "granted"

    shown = await dispatcher.dispatch(_reminder())

    assert shown.channel == "toast"
    assert len(dispatcher.toasts) == 1


@pytest.mark.asyncio
async def test_broken_client_is_dropped_and_toast_shown():
    hub = NotificationHub()
    hub.permission = "granted"
    await hub.connect(FakeWebSocket(fail=True))
    dispatcher = NotificationDispatcher(hub=hub)

    shown = await dispatcher.dispatch(_reminder())

    assert shown.channel == "toast"
    assert hub.connection_count == 0


@pytest.mark.asyncio
async def test_voice_runs_alongside_notification():
    voice = FakeVoice()
    dispatcher = NotificationDispatcher(voice=voice)

    await dispatcher.dispatch(_reminder())

    assert voice.announced == ["r-42"]
    assert len(dispatcher.toasts) == 1


@pytest.mark.asyncio
async def test_voice_failure_is_not_fatal():
    dispatcher = NotificationDispatcher(voice=FakeVoice(fail=True))

    shown = await dispatcher.dispatch(_reminder())

    assert shown.channel == "toast"


def test_toast_feed_is_bounded_and_drains():
    feed = ToastFeed(maxlen=2)
    for _ in range(3):
        feed.push(build_message(_reminder()))
    assert len(feed) == 2
    assert len(feed.drain()) == 2
    assert feed.drain() == []


def test_disconnect_unknown_client_is_harmless():
    hub = NotificationHub()
    hub.disconnect(FakeWebSocket())
    assert hub.connection_count == 0
