import re
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Set

from rx_reminder.schemas.models import MedicineDetails, Reminder, ReminderCreate, ReminderUpdate

_EVERY_N_HOURS_RE = re.compile(r"every\s+(\d+)\s+hours?", re.I)


class DuplicateSubmission(RuntimeError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def frequency_label_to_hours(label: str) -> int:
    f = (label or "").strip().lower()
    m = _EVERY_N_HOURS_RE.search(f)
    if m and int(m.group(1)) >= 1:
        return int(m.group(1))
    if f == "twice daily":
        return 12
    if f == "thrice daily":
        return 8
    return 24  # once daily / anything unrecognised


def compute_next_due(frequency_hours: int, now: datetime) -> datetime:
    # always from "now", never from the previous due time
    return now + timedelta(hours=frequency_hours)


def is_due(reminder: Reminder, now: datetime) -> bool:
    return reminder.next_due <= now


def reminder_input_from_medicine(med: MedicineDetails, now: datetime) -> ReminderCreate:
    hours = frequency_label_to_hours(med.frequency)
    return ReminderCreate(
        medicine_name=med.name,
        dosage=med.dosage,
        frequency=hours,
        next_due=compute_next_due(hours, now),
        duration=med.duration,
        notes=med.notes or None,
    )


def build_reminder_inputs(meds: List[MedicineDetails], now: datetime) -> List[ReminderCreate]:
    return [reminder_input_from_medicine(m, now) for m in meds]


def with_next_due(data: ReminderCreate, now: datetime) -> ReminderCreate:
    """Manual entry: fill in nextDue = now + frequency when the caller left it out."""
    if data.next_due is not None:
        return data
    return data.model_copy(update={"next_due": compute_next_due(data.frequency, now)})


def edit_updates(reminder: Reminder, edit: ReminderUpdate, now: datetime) -> Dict[str, Any]:
    """
    Field updates for a user edit. nextDue restarts from "now" with the
    (possibly new) frequency unless the edit brings its own due time.
    """
    updates = edit.model_dump(exclude_unset=True)
    if edit.next_due is None:
        updates.pop("next_due", None)
        hours = edit.frequency if edit.frequency is not None else reminder.frequency
        updates["next_due"] = compute_next_due(hours, now)
    return updates


def rescheduled(reminder: Reminder, now: datetime) -> datetime:
    """Due time after a dose fires; missed intermediate doses are not replayed."""
    return compute_next_due(reminder.frequency, now)


class BatchGuard:
    """At most one in-flight create batch per key (e.g. per scan)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: Set[str] = set()

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    @contextmanager
    def claim(self, key: str) -> Iterator[None]:
        with self._lock:
            if key in self._in_flight:
                raise DuplicateSubmission(f"Reminders for {key} are already being created.")
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(key)

