import logging
import math
import re
from typing import Dict, List, Optional, Sequence

from rx_reminder.core.config import DEFAULT_DURATION_DAYS
from rx_reminder.schemas.models import MedicineDetails
from rx_reminder.services.frequency import derive_frequency, doses_per_day, parse_duration_days

logger = logging.getLogger(__name__)

DEFAULT_DOSAGE = "As directed"
DEFAULT_TABLE_DOSAGE = "1 unit daily"

_DRUG_FORMS = r"tab(?:let)?s?|cap(?:sule)?s?|susp(?:ension)?|drops?|syr(?:up)?|syp|inj(?:ection)?"

_BULLET = r"[*\-•+]"


def _label(word: str) -> str:
    # **Dosage**:  /  **Dosage:**  /  Dosage:
    return r"\*{0,2}[ \t]*" + word + r"[ \t]*\*{0,2}[ \t]*:[ \t]*\*{0,2}[ \t]*"


_CARD_RE = re.compile(
    r"^[ \t]*(?:\d+[.)][ \t]*)?\*\*(?P<name>[^*\n]+?)\*\*[ \t]*:?[ \t]*\n"
    r"(?:[ \t]*\n)*"
    r"[ \t]*" + _BULLET + r"[ \t]+" + _label("Dosage") + r"(?P<dosage>[^\n]+)\n"
    r"(?:[ \t]*" + _BULLET + r"[ \t]+[^\n]*\n)*?"
    r"[ \t]*" + _BULLET + r"[ \t]+" + _label("Duration") + r"(?P<duration>[^\n]+)",
    re.M | re.I,
)

_FIELD_RE = re.compile(
    r"^\s*(?:" + _BULLET + r"\s+)?\**\s*(?P<label>dosage|dose|duration|frequency|notes?|instructions?)"
    r"\s*\**\s*:\s*\**\s*(?P<value>.*?)\s*$",
    re.I,
)
_BOLD_NAME_RE = re.compile(
    r"^\s*(?:" + _BULLET + r"\s+)?(?:\d+[.)]\s*)?"
    r"\*\*(?P<name>[^*(\n]+?)\s*(?:\((?P<strength>[^)\n]*)\))?\s*\*\*"
    r"\s*(?:\((?P<strength_out>[^)\n]*)\))?\s*:?\s*$"
)

_TABLE_SEPARATOR_RE = re.compile(r"^[\s|:]*-[\s|:\-]*$")
_TABLE_HEADER_RE = re.compile(
    r"\|\s*(?:medicine\s*name|medicines?|drug|dosage|dose|duration|notes?|frequency|timing|instructions?"
    r"|s\.?\s*no\.?|sr\.?\s*no\.?)\s*(?=\||$)",
    re.I,
)
_NAME_CELL_RE = re.compile(
    r"^(?:\d+\s*[).]\s*)?(?:med\s+)?(?:" + _DRUG_FORMS + r")\b\.?\s*"
    r"(?P<name>[^(|]+)(?:\((?P<strength>[^)]*)\))?",
    re.I,
)
_DOSAGE_CELL_RE = re.compile(
    r"\b(?:morning|afternoon|aft|evening|eve|night|daily|hourly|hours?|units?|ml"
    r"|tab(?:let)?s?|cap(?:sule)?s?|once|twice|thrice|times)\b|\d\s*-\s*\d\s*-\s*\d",
    re.I,
)
_TOTAL_RE = re.compile(r"\b(?:total|tot)\b\.?\s*(?:qty|quantity)?\s*[:=\-]?\s*(\d+)", re.I)

_FORM_KEYWORD_RE = re.compile(r"\b(?:" + _DRUG_FORMS + r")\b", re.I)
_LOOSE_SPLIT_RE = re.compile(r"\s*:\s*|\s+[-–—]\s+")
_LEADING_MARK_RE = re.compile(r"^\s*(?:" + _BULLET + r"\s+|\d+\s*\)\s*|\d+\.\s+)")


def _clean(value: str) -> str:
    return value.replace("**", "").strip().strip("*").strip()


def _with_strength(name: str, strength: Optional[str]) -> str:
    name = _clean(name)
    strength = (strength or "").strip()
    return f"{name} ({strength})" if strength else name


def _duration_or_default(text: Optional[str]) -> int:
    return parse_duration_days(text or "") or DEFAULT_DURATION_DAYS


class ParseStrategy:
    """One heuristic over the whole OCR text; an empty list means "no match"."""

    name = "base"

    def attempt(self, text: str) -> List[MedicineDetails]:
        raise NotImplementedError


class CardFormatStrategy(ParseStrategy):
    """
    **PREXT (100)**
    * **Dosage**: 1-0-1 tablet
    * **Duration**: One month
    """

    name = "card"

    def attempt(self, text: str) -> List[MedicineDetails]:
        meds: List[MedicineDetails] = []
        for m in _CARD_RE.finditer(text):
            name = _clean(m.group("name"))
            if not name:
                continue
            dosage = _clean(m.group("dosage"))
            meds.append(MedicineDetails(
                name=name,
                dosage=dosage or DEFAULT_DOSAGE,
                frequency=derive_frequency(dosage),
                duration=_duration_or_default(_clean(m.group("duration"))),
            ))
        return meds


class LabeledFieldsStrategy(ParseStrategy):
    """Bold name line, then "Dosage:" / "Duration:" lines in any order."""

    name = "labeled_fields"

    def attempt(self, text: str) -> List[MedicineDetails]:
        meds: List[MedicineDetails] = []
        current: Optional[Dict[str, Optional[str]]] = None

        def flush() -> None:
            if not current or not current.get("name"):
                return
            fields = [current.get(k) for k in ("dosage", "duration", "frequency", "notes")]
            # a bare bold heading with nothing under it is not a medicine
            if not any(fields):
                return
            dosage = current.get("dosage") or DEFAULT_DOSAGE
            freq_src = current.get("frequency") or dosage
            meds.append(MedicineDetails(
                name=current["name"],
                dosage=dosage,
                frequency=derive_frequency(freq_src),
                duration=_duration_or_default(current.get("duration")),
                notes=current.get("notes"),
            ))

        for line in text.splitlines():
            if not line.strip():
                continue

            field = _FIELD_RE.match(line)
            if field:
                if current is None:
                    continue
                label = field.group("label").lower()
                value = _clean(field.group("value")) or None
                if label in ("dosage", "dose"):
                    current["dosage"] = value
                elif label == "duration":
                    current["duration"] = value
                elif label == "frequency":
                    current["frequency"] = value
                else:
                    current["notes"] = value
                continue

            head = _BOLD_NAME_RE.match(line)
            if head:
                flush()
                name = _with_strength(head.group("name"), head.group("strength") or head.group("strength_out"))
                current = {"name": name} if name else None

        flush()
        return meds


class TableRowStrategy(ParseStrategy):
    """Markdown/pipe tables with a drug-form token in the medicine column."""

    name = "table"

    def _row(self, line: str) -> Optional[MedicineDetails]:
        cells = [c.strip() for c in line.split("|")]
        cells = [_clean(c) for c in cells if c.strip()]
        if not cells:
            return None

        name_idx = None
        name = ""
        for i, cell in enumerate(cells):
            m = _NAME_CELL_RE.match(cell)
            if m and re.search(r"[A-Za-z]", m.group("name") or ""):
                name_idx = i
                name = _with_strength(m.group("name"), m.group("strength"))
                break
        if name_idx is None:
            return None

        others = [c for i, c in enumerate(cells) if i != name_idx]
        dosage = next((c for c in others if _DOSAGE_CELL_RE.search(c)), DEFAULT_TABLE_DOSAGE)
        frequency = derive_frequency(dosage)

        duration = next((d for d in (parse_duration_days(c) for c in others) if d), None)
        if duration is None:
            total = _TOTAL_RE.search(line)
            if total and int(total.group(1)) > 0:
                duration = math.ceil(int(total.group(1)) / doses_per_day(frequency))

        return MedicineDetails(
            name=name,
            dosage=dosage,
            frequency=frequency,
            duration=duration or DEFAULT_DURATION_DAYS,
        )

    def attempt(self, text: str) -> List[MedicineDetails]:
        meds: List[MedicineDetails] = []
        for line in text.splitlines():
            if "|" not in line:
                continue
            if _TABLE_SEPARATOR_RE.match(line) or _TABLE_HEADER_RE.search(line):
                continue
            med = self._row(line)
            if med:
                meds.append(med)
        return meds


class LooseLineStrategy(ParseStrategy):
    """Any line naming a drug form: "<name> - <dosage>" or "<name>: <dosage>"."""

    name = "loose"

    def attempt(self, text: str) -> List[MedicineDetails]:
        meds: List[MedicineDetails] = []
        for raw in text.splitlines():
            line = raw.strip()
            if not line or _TABLE_SEPARATOR_RE.match(line) or _TABLE_HEADER_RE.search(line):
                continue
            if _FIELD_RE.match(line):
                continue
            if "|" in line:
                line = " - ".join(c.strip() for c in line.split("|") if c.strip())
            line = _clean(_LEADING_MARK_RE.sub("", line))

            if not _FORM_KEYWORD_RE.search(line):
                continue

            parts = _LOOSE_SPLIT_RE.split(line, maxsplit=1)
            name = parts[0].strip(" *.,;")
            if not name:
                continue
            dosage = parts[1].strip() if len(parts) > 1 and parts[1].strip() else DEFAULT_DOSAGE

            meds.append(MedicineDetails(
                name=name,
                dosage=dosage,
                frequency=derive_frequency(line),
                duration=_duration_or_default(line),
            ))
        return meds


STRATEGIES: Sequence[ParseStrategy] = (
    CardFormatStrategy(),
    LabeledFieldsStrategy(),
    TableRowStrategy(),
    LooseLineStrategy(),
)


def extract_medicine_details(
    text: str,
    strategies: Sequence[ParseStrategy] = STRATEGIES,
) -> List[MedicineDetails]:
    """
    Turn raw OCR text into medicine entries.
    Strategies run in priority order; the first one that finds anything wins.
    Never raises: unparseable text gives an empty list.
    """
    if not text or not text.strip():
        return []

    text = text.replace("\r\n", "\n")
    for strategy in strategies:
        try:
            meds = strategy.attempt(text)
        except Exception:
            logger.exception("Parser strategy %r failed, trying the next one", strategy.name)
            continue
        if meds:
            logger.debug("Parser strategy %r found %d medicine(s)", strategy.name, len(meds))
            return meds

    logger.info("No medicines found in %d chars of prescription text", len(text))
    return []
