from typing import List

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from rx_reminder.schemas.models import Reminder, ReminderCreate, ReminderUpdate, SpeechResult
from rx_reminder.services.reminder_store import ReminderNotFound, get_store
from rx_reminder.services.reminders import edit_updates, utcnow, with_next_due
from rx_reminder.services.scheduler import get_scheduler
from rx_reminder.services.voice import get_voice

router = APIRouter(prefix="/reminders", tags=["reminders"])


def _get_or_404(reminder_id: str) -> Reminder:
    try:
        return get_store().get(reminder_id)
    except ReminderNotFound as e:
        raise HTTPException(status_code=404, detail="Reminder not found") from e


@router.get("", response_model=List[Reminder])
def list_reminders():
    return get_store().list()


@router.post("", response_model=Reminder, status_code=201)
def create_reminder(req: ReminderCreate):
    reminder = get_store().create(with_next_due(req, utcnow()))
    get_scheduler().refresh()
    return reminder


@router.delete("")
def clear_reminders():
    # also the way out of an unreadable collection, so no read first
    get_store().clear()
    get_scheduler().refresh()
    return {"ok": True}


@router.get("/{reminder_id}", response_model=Reminder)
def get_reminder(reminder_id: str):
    return _get_or_404(reminder_id)


@router.patch("/{reminder_id}", response_model=Reminder)
def update_reminder(reminder_id: str, req: ReminderUpdate):
    current = _get_or_404(reminder_id)
    try:
        updated = get_store().update(reminder_id, edit_updates(current, req, utcnow()))
    except ReminderNotFound as e:
        raise HTTPException(status_code=404, detail="Reminder not found") from e
    get_scheduler().refresh()
    return updated


@router.delete("/{reminder_id}")
def delete_reminder(reminder_id: str):
    try:
        get_store().delete(reminder_id)
    except ReminderNotFound as e:
        raise HTTPException(status_code=404, detail="Reminder not found") from e
    get_scheduler().refresh()
    return {"ok": True, "id": reminder_id}


@router.get("/{reminder_id}/voice")
def reminder_voice(reminder_id: str):
    _get_or_404(reminder_id)
    path = get_voice().audio_path_for(reminder_id)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="No voice audio for this reminder yet.")
    return FileResponse(path, media_type="audio/mpeg", filename=path.name)


@router.post("/{reminder_id}/voice", response_model=SpeechResult)
def speak_reminder(reminder_id: str):
    """Speak the reminder now (remote voice, else the device voice)."""
    return get_voice().announce(_get_or_404(reminder_id))
