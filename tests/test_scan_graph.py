import uuid

import pytest
from langgraph.checkpoint.memory import MemorySaver
from langgraph.types import Command

from rx_reminder.agent.graph import build_scan_graph, pending_interrupt, scan_config

CARD_TEXT = "**PREXT (100)**\n\n* **Dosage**: 1-0-1 tablet\n* **Duration**: One month"


@pytest.fixture
def graph():
    return build_scan_graph(MemorySaver())


def _start(graph, text):
    scan_id = "scan_" + uuid.uuid4().hex
    graph.invoke(
        {"scan_id": scan_id, "source": "TEXT", "extracted_text": text, "audit": []},
        config=scan_config(scan_id),
    )
    return scan_id


def _pending(graph, scan_id):
    return pending_interrupt(graph.get_state(scan_config(scan_id)))


def test_parsed_medicines_wait_for_confirmation(graph, store):
    scan_id = _start(graph, CARD_TEXT)

    pending = _pending(graph, scan_id)
    assert pending["type"] == "CONFIRM_REQUIRED"
    assert [m["name"] for m in pending["medicines"]] == ["PREXT (100)"]
    # nothing stored before confirmation
    assert store.list() == []


def test_confirm_with_edit_creates_reminders(graph, store):
    scan_id = _start(graph, CARD_TEXT)

    edit = {"name": "PREXT (100)", "dosage": "1-1-1 tablet", "frequency": "thrice daily", "duration": 10}
    result = graph.invoke(Command(resume={"edits": {"0": edit}}), config=scan_config(scan_id))

    assert result["status"] == "CREATED"
    assert _pending(graph, scan_id) is None

    [reminder] = store.list()
    assert reminder.medicine_name == "PREXT (100)"
    assert reminder.dosage == "1-1-1 tablet"
    assert reminder.frequency == 8
    assert reminder.duration == 10
    assert result["reminders"][0]["id"] == reminder.id


def test_no_medicines_asks_for_manual_entry(graph, store):
    scan_id = _start(graph, "Patient: J. Doe\nDiagnosis: fever")

    pending = _pending(graph, scan_id)
    assert pending["type"] == "NEED_MANUAL_ENTRY"
    assert "manually" in pending["message"]

    manual = [{"name": "Vitamin C", "dosage": "1 tablet", "frequency": "once daily", "duration": 14}]
    graph.invoke(Command(resume={"medicines": manual}), config=scan_config(scan_id))

    pending = _pending(graph, scan_id)
    assert pending["type"] == "CONFIRM_REQUIRED"
    assert [m["name"] for m in pending["medicines"]] == ["Vitamin C"]

    graph.invoke(Command(resume={}), config=scan_config(scan_id))
    [reminder] = store.list()
    assert reminder.frequency == 24
    assert reminder.duration == 14


def test_manual_entry_with_corrected_text_is_reparsed(graph, store):
    scan_id = _start(graph, "unreadable scan")
    assert _pending(graph, scan_id)["type"] == "NEED_MANUAL_ENTRY"

    graph.invoke(Command(resume={"extracted_text": CARD_TEXT}), config=scan_config(scan_id))

    pending = _pending(graph, scan_id)
    assert pending["type"] == "CONFIRM_REQUIRED"
    assert pending["medicines"][0]["frequency"] == "twice daily"

    audit = [e["event"] for e in graph.get_state(scan_config(scan_id)).values["audit"]]
    assert audit[:3] == ["parse.done", "manual_entry.resumed", "parse.done"]
