from datetime import timedelta

import pytest
from pydantic import ValidationError

from rx_reminder.schemas.models import MedicineDetails, Reminder, ReminderCreate, ReminderUpdate
from rx_reminder.services.reminders import (
    BatchGuard,
    DuplicateSubmission,
    build_reminder_inputs,
    compute_next_due,
    edit_updates,
    frequency_label_to_hours,
    is_due,
    rescheduled,
    with_next_due,
)


@pytest.mark.parametrize(
    "label, hours",
    [
        ("every 6 hours", 6),
        ("twice daily", 12),
        ("thrice daily", 8),
        ("once daily", 24),
        ("Every 1 hour", 1),
        ("weekly", 24),
        ("", 24),
    ],
)
def test_frequency_label_to_hours(label, hours):
    assert frequency_label_to_hours(label) == hours


def _reminder(now, **overrides):
    data = dict(
        id="r1",
        medicine_name="PREXT (100)",
        dosage="1-0-1 tablet",
        frequency=12,
        duration=30,
        next_due=now,
        created_at=now,
    )
    data.update(overrides)
    return Reminder(**data)


def test_build_reminder_inputs_from_parsed_medicines(clock):
    meds = [
        MedicineDetails(name="PREXT (100)", dosage="1-0-1 tablet", frequency="twice daily", duration=30),
        MedicineDetails(name="Crocin", dosage="10ml", frequency="every 6 hours", duration=5, notes=""),
    ]
    prext, crocin = build_reminder_inputs(meds, clock())

    assert prext.medicine_name == "PREXT (100)"
    assert prext.frequency == 12
    assert prext.next_due == clock() + timedelta(hours=12)
    assert prext.duration == 30

    assert crocin.frequency == 6
    assert crocin.next_due == clock() + timedelta(hours=6)
    assert crocin.notes is None


def test_manual_entry_gets_next_due_from_frequency(clock):
    data = ReminderCreate(medicine_name="Vitamin D", dosage="1 capsule", frequency=24, duration=7)
    assert with_next_due(data, clock()).next_due == clock() + timedelta(hours=24)


def test_manual_entry_keeps_explicit_next_due(clock):
    explicit = clock() + timedelta(hours=3)
    data = ReminderCreate(medicine_name="Vitamin D", dosage="1 capsule", frequency=24, duration=7, next_due=explicit)
    assert with_next_due(data, clock()).next_due == explicit


def test_edit_recomputes_next_due_from_now_with_new_frequency(clock):
    reminder = _reminder(clock() - timedelta(days=2))
    updates = edit_updates(reminder, ReminderUpdate(frequency=8), clock())
    assert updates == {"frequency": 8, "next_due": clock() + timedelta(hours=8)}


def test_edit_without_frequency_uses_current_frequency(clock):
    reminder = _reminder(clock())
    updates = edit_updates(reminder, ReminderUpdate(dosage="2 tablets"), clock())
    assert updates["dosage"] == "2 tablets"
    assert updates["next_due"] == clock() + timedelta(hours=12)


def test_edit_with_explicit_next_due_is_kept(clock):
    reminder = _reminder(clock())
    explicit = clock() + timedelta(minutes=30)
    updates = edit_updates(reminder, ReminderUpdate(frequency=6, next_due=explicit), clock())
    assert updates["next_due"] == explicit


def test_due_is_inclusive(clock):
    reminder = _reminder(clock())
    assert is_due(reminder, clock())
    assert not is_due(reminder, clock() - timedelta(seconds=1))


def test_rescheduled_counts_from_firing_instant(clock):
    reminder = _reminder(clock() - timedelta(hours=30))
    assert rescheduled(reminder, clock()) == clock() + timedelta(hours=12)
    assert compute_next_due(24, clock()) == clock() + timedelta(hours=24)


def test_reminder_rejects_invalid_fields(clock):
    with pytest.raises(ValueError):
        _reminder(clock(), frequency=0)
    with pytest.raises(ValueError):
        _reminder(clock(), duration=0)
    with pytest.raises(ValueError):
        _reminder(clock(), medicine_name="   ")


def test_batch_guard_rejects_second_claim():
    guard = BatchGuard()
    with guard.claim("scan_1"):
        assert guard.is_in_flight("scan_1")
        with pytest.raises(DuplicateSubmission):
            with guard.claim("scan_1"):
                pass
        # other keys are independent
        with guard.claim("scan_2"):
            pass
    assert not guard.is_in_flight("scan_1")


def test_batch_guard_releases_on_error():
    guard = BatchGuard()
    with pytest.raises(RuntimeError):
        with guard.claim("scan_1"):
            raise RuntimeError("store failed")
    with guard.claim("scan_1"):
        pass


@pytest.mark.parametrize("field", ["name", "dosage"])
@pytest.mark.parametrize("value", ["", "   "])
def test_medicine_details_reject_blank_text(field, value):
    data = {"name": "Crocin", "dosage": "1 tablet", field: value}
    with pytest.raises(ValidationError):
        MedicineDetails(**data)


def test_medicine_details_strip_text():
    med = MedicineDetails(name="  Crocin ", dosage=" 1 tablet")
    assert (med.name, med.dosage) == ("Crocin", "1 tablet")


@pytest.mark.parametrize(
    "body",
    [
        {"frequency": None},
        {"duration": None},
        {"medicineName": None},
        {"dosage": "   "},
    ],
)
def test_update_rejects_null_or_blank_required_fields(body):
    with pytest.raises(ValidationError):
        ReminderUpdate.model_validate(body)


def test_update_allows_clearing_notes(clock):
    reminder = _reminder(clock())
    updates = edit_updates(reminder, ReminderUpdate.model_validate({"notes": None}), clock())
    assert updates["notes"] is None
    assert "frequency" not in updates
