"""
Reminder notification dispatch.

Channels, in order:
    1. system notification: JSON push to every subscribed WebSocket client,
       only once the user has granted permission
    2. in-app toast: a bounded feed the UI drains on each refresh
Speech runs alongside whichever channel was used. Nothing here raises to the
scheduler.
"""
import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set

from fastapi import WebSocket

from rx_reminder.core.config import TTS_ENABLED
from rx_reminder.schemas.models import NotificationMessage, NotificationPermission, Reminder
from rx_reminder.services.reminders import utcnow
from rx_reminder.services.voice import VoiceService, get_voice

logger = logging.getLogger(__name__)


def build_message(reminder: Reminder) -> NotificationMessage:
    return NotificationMessage(
        reminder_id=reminder.id,
        body=f"Time to take {reminder.medicine_name}, {reminder.dosage}",
        tag=f"reminder-{reminder.id}",
        url=f"/reminders/{reminder.id}",
        sent_at=utcnow(),
    )


class ToastFeed:
    def __init__(self, maxlen: int = 50):
        self._items: Deque[NotificationMessage] = deque(maxlen=maxlen)

    def push(self, message: NotificationMessage) -> None:
        self._items.append(message)

    def drain(self) -> List[NotificationMessage]:
        items = list(self._items)
        self._items.clear()
        return items

    def __len__(self) -> int:
        return len(self._items)


class NotificationHub:
    """Connected notification clients plus the user's permission choice."""

    def __init__(self) -> None:
        self.permission: NotificationPermission = "default"
        self._connections: Set[WebSocket] = set()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        logger.info("Notification client connected (%d total)", len(self._connections))

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections.discard(websocket)
        logger.info("Notification client disconnected (%d left)", len(self._connections))

    async def broadcast(self, payload: Dict[str, Any]) -> int:
        """Send to every client; returns how many received it."""
        delivered = 0
        for ws in list(self._connections):
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning("Dropping notification client after send failure: %s", e)
                self.disconnect(ws)
        return delivered


class NotificationDispatcher:
    def __init__(
        self,
        hub: Optional[NotificationHub] = None,
        toasts: Optional[ToastFeed] = None,
        voice: Optional[VoiceService] = None,
    ):
        self.hub = hub or NotificationHub()
        self.toasts = toasts or ToastFeed()
        self.voice = voice

    async def _show(self, message: NotificationMessage) -> NotificationMessage:
        if self.hub.permission == "granted":
            system = message.model_copy(update={"channel": "system"})
            try:
                if await self.hub.broadcast(system.model_dump(mode="json", by_alias=True)):
                    return system
            except Exception as e:
                logger.warning("System notification failed for %s: %s", message.reminder_id, e)

        toast = message.model_copy(update={"channel": "toast"})
        self.toasts.push(toast)
        return toast

    async def _speak(self, reminder: Reminder) -> None:
        if self.voice is None:
            return
        try:
            result = await asyncio.to_thread(self.voice.announce, reminder)
            logger.debug("Voice reminder for %s via %s", reminder.id, result.channel)
        except Exception as e:
            logger.warning("Voice reminder failed for %s: %s", reminder.id, e)

    async def dispatch(self, reminder: Reminder) -> NotificationMessage:
        message = build_message(reminder)
        shown, _ = await asyncio.gather(self._show(message), self._speak(reminder))
        logger.info("Reminder %s (%s) shown via %s", reminder.id, reminder.medicine_name, shown.channel)
        return shown


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(voice=get_voice() if TTS_ENABLED else None)
    return _dispatcher


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    global _dispatcher
    _dispatcher = dispatcher
