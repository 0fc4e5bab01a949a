import json
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from rx_reminder.db.db_config import get_sqlite_connection
from rx_reminder.db.local_storage import LocalStorage, SqliteLocalStorage
from rx_reminder.schemas.models import Reminder, ReminderCreate
from rx_reminder.services.reminders import utcnow

logger = logging.getLogger(__name__)

REMINDERS_STORAGE_KEY = "prescription-reminders"


class ReminderStoreError(RuntimeError):
    pass


class ReminderNotFound(ReminderStoreError):
    def __init__(self, reminder_id: str):
        super().__init__(f"Reminder not found: {reminder_id}")
        self.reminder_id = reminder_id


class StorageCorrupted(ReminderStoreError):
    pass


class ReminderStore:
    """
    The reminder collection, kept as one JSON array under one storage key.
    Every mutation is a read-modify-write of the whole array (last write wins).
    """

    def __init__(
        self,
        storage: LocalStorage,
        key: str = REMINDERS_STORAGE_KEY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.key = key
        self._clock = clock
        self._lock = threading.RLock()

    # ---------------------------
    # raw collection
    # ---------------------------
    def _read(self) -> List[Reminder]:
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageCorrupted(f"Stored reminders are not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise StorageCorrupted("Stored reminders are not a list.")
        try:
            return [Reminder.model_validate(item) for item in data]
        except ValidationError as e:
            raise StorageCorrupted(f"Stored reminder failed validation: {e}") from e

    def _write(self, reminders: List[Reminder]) -> None:
        payload = [r.model_dump(mode="json", by_alias=True) for r in reminders]
        self.storage.set_item(self.key, json.dumps(payload))

    def _new(self, data: ReminderCreate) -> Reminder:
        if data.next_due is None:
            raise ValueError("next_due must be set before a reminder is stored")
        return Reminder(
            id=str(uuid.uuid4()),
            created_at=self._clock(),
            **data.model_dump(),
        )

    # ---------------------------
    # primitives
    # ---------------------------
    def list(self) -> List[Reminder]:
        with self._lock:
            return self._read()

    def get(self, reminder_id: str) -> Reminder:
        with self._lock:
            for r in self._read():
                if r.id == reminder_id:
                    return r
        raise ReminderNotFound(reminder_id)

    def create(self, data: ReminderCreate) -> Reminder:
        return self.create_many([data])[0]

    def create_many(self, items: List[ReminderCreate]) -> List[Reminder]:
        with self._lock:
            reminders = self._read()
            created = [self._new(d) for d in items]
            self._write(reminders + created)
        logger.info("Stored %d new reminder(s)", len(created))
        return created

    def put(self, reminder: Reminder) -> Reminder:
        """Insert or replace by id."""
        with self._lock:
            reminders = self._read()
            for i, r in enumerate(reminders):
                if r.id == reminder.id:
                    reminders[i] = reminder
                    break
            else:
                reminders.append(reminder)
            self._write(reminders)
        return reminder

    def update(self, reminder_id: str, updates: Dict[str, Any]) -> Reminder:
        # id and createdAt are immutable
        changes = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
        with self._lock:
            reminders = self._read()
            for i, r in enumerate(reminders):
                if r.id == reminder_id:
                    merged = Reminder.model_validate({**r.model_dump(), **changes})
                    reminders[i] = merged
                    self._write(reminders)
                    return merged
        raise ReminderNotFound(reminder_id)

    def delete(self, reminder_id: str) -> None:
        with self._lock:
            reminders = self._read()
            kept = [r for r in reminders if r.id != reminder_id]
            if len(kept) == len(reminders):
                raise ReminderNotFound(reminder_id)
            self._write(kept)

    def clear(self) -> None:
        with self._lock:
            self.storage.remove_item(self.key)


_store: Optional[ReminderStore] = None


def get_store() -> ReminderStore:
    global _store
    if _store is None:
        _store = ReminderStore(SqliteLocalStorage(get_sqlite_connection()))
    return _store


def set_store(store: Optional[ReminderStore]) -> None:
    global _store
    _store = store
