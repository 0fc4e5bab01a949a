# rx_reminder/services/frequency.py
"""
Dosage-text heuristics shared by every parsing strategy.

- derive_frequency(text)       -> "once daily" | "twice daily" | "thrice daily" | "every N hours"
- parse_duration_days(text)    -> int days, or None when no course length is stated
- doses_per_day(label)         -> how many doses a frequency label implies
"""
import re
from typing import Optional

ONCE_DAILY = "once daily"
TWICE_DAILY = "twice daily"
THRICE_DAILY = "thrice daily"

_NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}
_WORDS = "|".join(sorted(_NUMBER_WORDS, key=len, reverse=True))
_COUNT = r"(?:(\d+)|\b(" + _WORDS + r"))"

_HOURLY_RE = re.compile(r"\b(\d+)\s*(?:-\s*)?hourly\b|\bevery\s+(\d+)\s*(?:hours?|hrs?|h)\b", re.I)
_THRICE_RE = re.compile(r"\b(?:three\s+times|thrice)\b", re.I)
_TWICE_RE = re.compile(r"\b(?:two\s+times|twice)\b", re.I)

# 1-0-1 => morning / afternoon / night, nonzero digit => take
_SLOT_PATTERN_RE = re.compile(r"(?<![\d\-/.])(\d)\s*-\s*(\d)\s*-\s*(\d)(?![\d\-/.])")

_SLOT_RES = (
    re.compile(r"\bmorning\b", re.I),
    re.compile(r"\b(?:afternoon|aft)\b", re.I),
    re.compile(r"\b(?:evening|eve)\b", re.I),
    re.compile(r"\bnight\b", re.I),
)

_DAYS_RE = re.compile(_COUNT + r"\s*(?<![A-Za-z])days?\b", re.I)
_MONTHS_RE = re.compile(r"(?:" + _COUNT + r"\s*)?(?<![A-Za-z])months?\b", re.I)
_WEEKS_RE = re.compile(r"(?:" + _COUNT + r"\s*)?(?<![A-Za-z])weeks?\b", re.I)


def _count_value(raw: Optional[str]) -> int:
    if not raw:
        return 1
    raw = raw.strip().lower()
    if raw.isdigit():
        return int(raw)
    return _NUMBER_WORDS.get(raw, 1)


def _label_for_count(count: int) -> str:
    if count >= 3:
        return THRICE_DAILY
    if count == 2:
        return TWICE_DAILY
    return ONCE_DAILY


def derive_frequency(text: str) -> str:
    """Map free dosage text to one of the frequency labels."""
    t = text or ""

    m = _HOURLY_RE.search(t)
    if m:
        hours = int(m.group(1) or m.group(2))
        if hours >= 1:
            return f"every {hours} hours"

    if _THRICE_RE.search(t):
        return THRICE_DAILY
    if _TWICE_RE.search(t):
        return TWICE_DAILY

    m = _SLOT_PATTERN_RE.search(t)
    if m:
        active = sum(1 for d in m.groups() if int(d) != 0)
        return _label_for_count(active)

    slots = sum(1 for rx in _SLOT_RES if rx.search(t))
    return _label_for_count(slots)


def parse_duration_days(text: str) -> Optional[int]:
    """
    "8 Days" -> 8, "one month" -> 30, "2 months" -> 60, "2 weeks" -> 14.
    An explicit day count wins over months, months over weeks.
    """
    t = text or ""

    m = _DAYS_RE.search(t)
    if m:
        days = _count_value(m.group(1) or m.group(2))
        return days if days >= 1 else None

    m = _MONTHS_RE.search(t)
    if m:
        return 30 * max(1, _count_value(m.group(1) or m.group(2)))

    m = _WEEKS_RE.search(t)
    if m:
        return 7 * max(1, _count_value(m.group(1) or m.group(2)))

    return None


def doses_per_day(label: str) -> int:
    f = (label or "").strip().lower()
    m = re.match(r"every\s+(\d+)\s+hours?", f)
    if m:
        return max(1, 24 // max(1, int(m.group(1))))
    return {TWICE_DAILY: 2, THRICE_DAILY: 3}.get(f, 1)
