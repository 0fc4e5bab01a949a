# rx_reminder/agent/nodes.py
import logging
from typing import Any, Dict, List, Optional

from langgraph.types import interrupt

from rx_reminder.agent.state import ScanState
from rx_reminder.schemas.models import MedicineDetails
from rx_reminder.services.extraction import extract_medicine_details
from rx_reminder.services.reminder_store import get_store
from rx_reminder.services.reminders import build_reminder_inputs, utcnow

logger = logging.getLogger(__name__)

NO_MEDICINES_MESSAGE = (
    "No medicine details found in this prescription. You can add the medicines manually."
)


def _audit(state: ScanState, event: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    audit = list(state.get("audit") or [])
    audit.append({"event": event, **(extra or {})})
    return {"audit": audit}


def parse_node(state: ScanState) -> Dict[str, Any]:
    if state.get("medicines"):
        return {"status": "PARSED", **_audit(state, "parse.skip", {"reason": "medicines already provided"})}

    meds = extract_medicine_details(state.get("extracted_text") or "")
    out: Dict[str, Any] = {
        "medicines": [m.model_dump() for m in meds],
        "status": "PARSED",
        "message": "" if meds else NO_MEDICINES_MESSAGE,
    }
    out.update(_audit(state, "parse.done", {"count": len(meds)}))
    return out


def route_after_parse(state: ScanState) -> str:
    return "confirm" if state.get("medicines") else "manual_entry"


def manual_entry_node(state: ScanState) -> Dict[str, Any]:
    """
    Interrupt until the user supplies medicines by hand or corrected text.
    Resume payload expected: {"medicines":[...]} OR {"extracted_text":"..."}.
    """
    payload = {
        "type": "NEED_MANUAL_ENTRY",
        "scan_id": state["scan_id"],
        "extracted_text": state.get("extracted_text") or "",
        "message": state.get("message") or NO_MEDICINES_MESSAGE,
    }

    resume = interrupt(payload)

    updates: Dict[str, Any] = {"medicines": []}
    if isinstance(resume, dict):
        if resume.get("medicines"):
            updates["medicines"] = [MedicineDetails(**m).model_dump() for m in resume["medicines"]]
        if resume.get("extracted_text"):
            updates["extracted_text"] = resume["extracted_text"]

    keys = list(resume.keys()) if isinstance(resume, dict) else []
    updates.update(_audit(state, "manual_entry.resumed", {"keys": keys}))
    # back to parse (graph edge does that)
    return updates


def _apply_edits(medicines: List[Dict[str, Any]], edits: Dict[Any, Dict[str, Any]]) -> List[Dict[str, Any]]:
    edited = list(medicines)
    for key, med in (edits or {}).items():
        i = int(key)
        if 0 <= i < len(edited):
            edited[i] = MedicineDetails(**med).model_dump()
    return edited


def confirm_node(state: ScanState) -> Dict[str, Any]:
    payload = {
        "type": "CONFIRM_REQUIRED",
        "scan_id": state["scan_id"],
        "medicines": state.get("medicines") or [],
        "instructions": "Review the medicines, edit any entry, then confirm to create reminders.",
    }

    resume = interrupt(payload)
    edits: Dict[str, Any] = {}
    if isinstance(resume, dict):
        edits = resume.get("edits") or {}
    return {
        "edits": edits,
        "medicines": _apply_edits(state.get("medicines") or [], edits),
        **_audit(state, "confirm.resumed", {"edited": sorted(int(k) for k in edits)}),
    }


def create_node(state: ScanState) -> Dict[str, Any]:
    meds = [MedicineDetails(**m) for m in state.get("medicines") or []]
    inputs = build_reminder_inputs(meds, utcnow())
    created = get_store().create_many(inputs)
    logger.info("Scan %s created %d reminder(s)", state["scan_id"], len(created))

    return {
        "reminders": [r.model_dump(mode="json", by_alias=True) for r in created],
        "status": "CREATED",
        **_audit(state, "create.done", {"count": len(created)}),
    }
