# rx_reminder/api/routes_scan.py
import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, File, HTTPException, UploadFile
from langgraph.types import Command

from rx_reminder.agent.graph import pending_interrupt, scan_config, scan_graph
from rx_reminder.schemas.models import (
    ErrorDetail,
    MedicineDetails,
    Reminder,
    ScanConfirmRequest,
    ScanManualRequest,
    ScanResponse,
    ScanTextRequest,
)
from rx_reminder.services.ocr_client import (
    OcrError,
    OcrInputError,
    OcrQuotaExceeded,
    extract_prescription_text,
)
from rx_reminder.services.reminders import BatchGuard, DuplicateSubmission
from rx_reminder.services.sample_data import SAMPLE_PRESCRIPTION_TEXT
from rx_reminder.services.scheduler import get_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scan", tags=["scan"])

# one create batch in flight per scan
create_guard = BatchGuard()

_STATUS_BY_INTERRUPT = {
    "NEED_MANUAL_ENTRY": "NEED_MANUAL_ENTRY",
    "CONFIRM_REQUIRED": "NEED_CONFIRMATION",
}


def _scan_response(scan_id: str) -> ScanResponse:
    snap = scan_graph.get_state(scan_config(scan_id))
    state: Dict[str, Any] = snap.values or {}
    if not state:
        raise HTTPException(status_code=404, detail="scan_id not found")

    pending = pending_interrupt(snap)
    if pending:
        status = _STATUS_BY_INTERRUPT.get(pending.get("type"), "NEED_CONFIRMATION")
        message = pending.get("message") or pending.get("instructions")
    else:
        status = "CREATED" if state.get("status") == "CREATED" else "NEED_CONFIRMATION"
        message = None

    return ScanResponse(
        scan_id=scan_id,
        status=status,
        source=state.get("source") or "TEXT",
        extracted_text=state.get("extracted_text") or "",
        medicines=[MedicineDetails(**m) for m in state.get("medicines") or []],
        reminders=[Reminder.model_validate(r) for r in state.get("reminders") or []],
        message=message,
    )


def _start_scan(extracted_text: str, source: str) -> ScanResponse:
    scan_id = "scan_" + uuid.uuid4().hex
    initial_state = {
        "scan_id": scan_id,
        "source": source,
        "extracted_text": extracted_text,
        "audit": [],
    }
    scan_graph.invoke(initial_state, config=scan_config(scan_id))
    return _scan_response(scan_id)


def _pending_type(scan_id: str):
    snap = scan_graph.get_state(scan_config(scan_id))
    state = snap.values or {}
    if not state:
        raise HTTPException(status_code=404, detail="scan_id not found")
    pending = pending_interrupt(snap)
    if pending is None and state.get("status") == "CREATED":
        raise HTTPException(status_code=409, detail="Reminders were already created for this scan.")
    return state, (pending or {}).get("type")


@router.post("", response_model=ScanResponse)
def scan_image(file: UploadFile = File(...)):
    data = file.file.read()
    try:
        text = extract_prescription_text(data, file.content_type or "image/jpeg")
    except OcrQuotaExceeded as e:
        raise HTTPException(
            status_code=402,
            detail=ErrorDetail(message=e.user_message, sample_available=True).model_dump(),
        ) from e
    except OcrInputError as e:
        raise HTTPException(status_code=400, detail=ErrorDetail(message=e.user_message).model_dump()) from e
    except OcrError as e:
        # technical detail stays in the log
        logger.warning("OCR failed (%s): %s", type(e).__name__, e)
        raise HTTPException(
            status_code=502,
            detail=ErrorDetail(message=e.user_message).model_dump(),
        ) from e

    return _start_scan(text, "OCR")


@router.post("/text", response_model=ScanResponse)
def scan_text(req: ScanTextRequest):
    if not req.extracted_text.strip():
        raise HTTPException(status_code=400, detail=ErrorDetail(message="Provide extracted_text.").model_dump())
    return _start_scan(req.extracted_text, "TEXT")


@router.post("/sample", response_model=ScanResponse)
def scan_sample():
    return _start_scan(SAMPLE_PRESCRIPTION_TEXT, "SAMPLE")


@router.post("/manual", response_model=ScanResponse)
def scan_manual(req: ScanManualRequest):
    _, itype = _pending_type(req.scan_id)
    if itype != "NEED_MANUAL_ENTRY":
        raise HTTPException(
            status_code=409,
            detail=f"Scan not waiting for manual entry. interrupt_type={itype}",
        )

    if not req.medicines and not (req.extracted_text or "").strip():
        raise HTTPException(status_code=400, detail="Provide medicines[] or extracted_text to continue.")

    resume_payload: Dict[str, Any] = {}
    if req.medicines:
        resume_payload["medicines"] = [m.model_dump() for m in req.medicines]
    if req.extracted_text:
        resume_payload["extracted_text"] = req.extracted_text

    scan_graph.invoke(Command(resume=resume_payload), config=scan_config(req.scan_id))
    return _scan_response(req.scan_id)


@router.post("/confirm", response_model=ScanResponse)
def scan_confirm(req: ScanConfirmRequest):
    state, itype = _pending_type(req.scan_id)
    if itype != "CONFIRM_REQUIRED":
        raise HTTPException(
            status_code=409,
            detail=f"Scan not waiting for confirmation. interrupt_type={itype}",
        )

    count = len(state.get("medicines") or [])
    bad = sorted(i for i in req.edits if not 0 <= i < count)
    if bad:
        raise HTTPException(status_code=400, detail=f"Edit index out of range: {bad}")

    resume_payload = {"edits": {str(i): m.model_dump() for i, m in req.edits.items()}}

    try:
        with create_guard.claim(req.scan_id):
            # a confirmation that finished while this one waited
            _pending_type(req.scan_id)
            scan_graph.invoke(Command(resume=resume_payload), config=scan_config(req.scan_id))
    except DuplicateSubmission as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    get_scheduler().refresh()
    return _scan_response(req.scan_id)


@router.get("/{scan_id}", response_model=ScanResponse)
def scan_status(scan_id: str):
    return _scan_response(scan_id)
