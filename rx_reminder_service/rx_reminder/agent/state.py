from typing import Any, Dict, List, TypedDict

class ScanState(TypedDict, total=False):
    # identity (scan_id doubles as LangGraph thread_id)
    scan_id: str
    source: str                        # OCR | TEXT | SAMPLE

    # inputs
    extracted_text: str

    # parse / review
    medicines: List[Dict[str, Any]]    # list of MedicineDetails dicts
    edits: Dict[str, Dict[str, Any]]   # index -> replacement MedicineDetails dict
    message: str

    # outputs
    reminders: List[Dict[str, Any]]    # stored Reminder dicts (camelCase)
    status: str                        # PARSED | CREATED
    audit: List[Dict[str, Any]]
