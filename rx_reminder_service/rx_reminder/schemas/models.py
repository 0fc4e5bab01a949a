from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ScanStatus = Literal["NEED_MANUAL_ENTRY", "NEED_CONFIRMATION", "CREATED"]
ScanSource = Literal["OCR", "TEXT", "SAMPLE"]
NotificationPermission = Literal["default", "granted", "denied"]
NotificationChannel = Literal["system", "toast"]
SpeechChannel = Literal["remote", "device", "none"]

SAFETY_NOTE = (
    "Not medical advice. Reminders are built from your prescription text on a best-effort basis. "
    "Always confirm instructions with a doctor/pharmacist."
)


def _as_utc(value: datetime) -> datetime:
    # stored/posted timestamps without an offset are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _required_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class CamelModel(BaseModel):
    """Persisted and wire layout uses camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MedicineDetails(BaseModel):
    """One medicine as parsed from prescription text (never persisted)."""

    name: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1)
    frequency: str = Field(
        "once daily",
        description="once daily, twice daily, thrice daily or 'every N hours'",
    )
    duration: int = Field(7, ge=1, description="Course length in days")
    notes: Optional[str] = None

    @field_validator("name", "dosage")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        return _required_text(v)


class ReminderBase(CamelModel):
    medicine_name: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1)
    frequency: int = Field(..., ge=1, description="Hours between doses")
    duration: int = Field(..., ge=1, description="Course length in days")
    notes: Optional[str] = None

    @field_validator("medicine_name", "dosage")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        return _required_text(v)


class ReminderCreate(ReminderBase):
    # None => now + frequency hours
    next_due: Optional[datetime] = None

    @field_validator("next_due")
    @classmethod
    def _next_due_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None


class Reminder(ReminderBase):
    id: str
    next_due: datetime
    created_at: datetime

    @field_validator("next_due", "created_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class ReminderUpdate(CamelModel):
    """Partial edit: omitted fields stay as stored; only notes and nextDue accept null."""

    medicine_name: Optional[str] = Field(default=None, min_length=1)
    dosage: Optional[str] = Field(default=None, min_length=1)
    frequency: Optional[int] = Field(default=None, ge=1)
    duration: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None
    next_due: Optional[datetime] = None

    # defaults are not validated, so these only see values the caller sent
    @field_validator("medicine_name", "dosage", "frequency", "duration")
    @classmethod
    def _not_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return _required_text(v) if isinstance(v, str) else v

    @field_validator("next_due")
    @classmethod
    def _next_due_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v) if v is not None else None


class ScanTextRequest(BaseModel):
    extracted_text: str


class ScanConfirmRequest(BaseModel):
    scan_id: str
    # index in the parsed list -> replacement details
    edits: Dict[int, MedicineDetails] = Field(default_factory=dict)


class ScanManualRequest(BaseModel):
    scan_id: str
    medicines: Optional[List[MedicineDetails]] = None
    extracted_text: Optional[str] = None


class ScanResponse(BaseModel):
    scan_id: str
    status: ScanStatus
    source: ScanSource
    extracted_text: str = ""
    medicines: List[MedicineDetails] = Field(default_factory=list)
    reminders: List[Reminder] = Field(default_factory=list)
    message: Optional[str] = None
    safety_note: str = SAFETY_NOTE


class NotificationMessage(CamelModel):
    reminder_id: str
    title: str = "Medicine Reminder"
    body: str
    tag: str
    url: str
    channel: NotificationChannel = "toast"
    sent_at: datetime


class PermissionRequest(BaseModel):
    permission: NotificationPermission


class SpeechResult(BaseModel):
    channel: SpeechChannel
    text: str
    audio_path: Optional[str] = None


class CheckResult(BaseModel):
    checked_at: datetime
    fired: List[Reminder] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    message: str
    sample_available: bool = False
