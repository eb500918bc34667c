"""
Normalize the date expressions that show up in forum search results
("2023/4/7", "04-07-2023", "March 3, 2024", "2 months ago") to YYYY-MM-DD.

Anything that can't be read without guessing comes back unchanged; callers
display non-ISO values as opaque text.
"""
import calendar
import re
from datetime import date, datetime, timedelta
from typing import List, Optional

_ISO = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b")
_NUMERIC = re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{4})\b")
_MONTH_NAME = re.compile(r"\b([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b")
_RELATIVE = re.compile(r"\b(\d+|an?)\s+(year|month|day)s?\s+ago\b", re.IGNORECASE)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _shift_months(anchor: date, months: int) -> date:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    index = anchor.year * 12 + (anchor.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def numeric_date_readings(value: str) -> List[str]:
    """
    Both readings of an ``NN-NN-YYYY`` date, month-first then day-first.

    Only valid calendar dates are returned and duplicates collapse, so a
    single element means the input is unambiguous.
    """
    match = _NUMERIC.search(value or "")
    if not match:
        return []
    first, second, year = (int(g) for g in match.groups())
    readings = []
    for candidate in (_safe_date(year, first, second), _safe_date(year, second, first)):
        if candidate and candidate.isoformat() not in readings:
            readings.append(candidate.isoformat())
    return readings


def _from_iso(value: str) -> Optional[str]:
    match = _ISO.search(value)
    if not match:
        return None
    parsed = _safe_date(*(int(g) for g in match.groups()))
    return parsed.isoformat() if parsed else None


def _from_numeric(value: str, order_hint: Optional[str]) -> Optional[str]:
    match = _NUMERIC.search(value)
    if not match:
        return None
    readings = numeric_date_readings(value)
    if len(readings) == 1:
        return readings[0]
    if len(readings) == 2 and order_hint in ("MDY", "DMY"):
        first, second, year = (int(g) for g in match.groups())
        if order_hint == "MDY":
            return date(year, first, second).isoformat()
        return date(year, second, first).isoformat()
    # Ambiguous without a hint (or not a date at all)
    return None


def _from_month_name(value: str) -> Optional[str]:
    match = _MONTH_NAME.search(value)
    if not match:
        return None
    month_text, day, year = match.groups()
    cleaned = f"{month_text.capitalize()} {day} {year}"
    for fmt in ("%B %d %Y", "%b %d %Y"):
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    # "Sept" is common and neither %B nor %b
    if month_text.lower() == "sept":
        parsed = _safe_date(int(year), 9, int(day))
        return parsed.isoformat() if parsed else None
    return None


def _from_relative(value: str, now: datetime) -> Optional[str]:
    match = _RELATIVE.search(value)
    if not match:
        return None
    amount_text, unit = match.group(1).lower(), match.group(2).lower()
    amount = 1 if amount_text in ("a", "an") else int(amount_text)
    anchor = now.date()
    if unit == "day":
        return (anchor - timedelta(days=amount)).isoformat()
    if unit == "month":
        return _shift_months(anchor, amount).isoformat()
    return _shift_months(anchor, amount * 12).isoformat()


def normalize_date(value: str, now: Optional[datetime] = None, order_hint: Optional[str] = None) -> str:
    """
    Convert a date expression to ``YYYY-MM-DD``.

    Rules are tried in order: ISO/slash dates, ``MM-DD-YYYY``/``DD-MM-YYYY``,
    ``Month DD, YYYY``, then ``N years/months/days ago`` relative to ``now``
    (defaults to the current time). ``order_hint`` ("MDY" or "DMY") settles
    numeric dates where both readings are valid; without it those dates are
    returned unchanged. Unrecognised input is returned unchanged.
    """
    if not value or not value.strip():
        return value

    text = value.strip()
    for rule in (_from_iso, lambda v: _from_numeric(v, order_hint), _from_month_name):
        result = rule(text)
        if result:
            return result

    relative = _from_relative(text, now or datetime.now())
    if relative:
        return relative

    return value
