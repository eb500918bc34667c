"""
Field coercion for records parsed out of search-service output.

Nothing the model returns is trusted: enums are restricted, numbers are
clamped, missing values get defaults. Each substitution is recorded as a
Correction, logged as ``validation.corrected`` and counted, so data-quality
drift is visible without ever failing a request.
"""
import math
import re
from dataclasses import dataclass, asdict
from typing import Any, Iterable, List, Optional

from transition_ai.utils.logger import get_logger
from transition_ai.utils.metrics import inc

logger = get_logger("validation")

LEVELS = ("Low", "Medium", "High")

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


@dataclass(frozen=True)
class Correction:
    field: str
    received: Any
    applied: Any
    reason: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["received"] = _preview(self.received)
        return data


def _preview(value: Any) -> Any:
    if isinstance(value, int) and value.bit_length() > 64:
        return f"<{value.bit_length()}-bit integer>"
    if isinstance(value, (int, float, bool)) or value is None:
        return value
    text = str(value)
    return text if len(text) <= 120 else text[:117] + "..."


class CorrectionLog:
    """Collects corrections for one stage run."""

    def __init__(self, stage: str, sink: Optional[List[Correction]] = None):
        self.stage = stage
        self.items: List[Correction] = sink if sink is not None else []

    def record(self, field: str, received: Any, applied: Any, reason: str) -> None:
        correction = Correction(field=field, received=received, applied=applied, reason=reason)
        self.items.append(correction)
        inc(f"validation.{self.stage}.corrected")
        logger.warning(
            "validation.corrected",
            extra={
                "stage": self.stage,
                "field": field,
                "received": _preview(received),
                "applied": _preview(applied),
                "reason": reason,
            },
        )


def to_number(value: Any) -> Optional[float]:
    """
    Read a number from ints, floats, or numeric strings such as "75%" or "~6 months".

    Values too large for a float come back as +/-inf so callers can clamp
    them; NaN is not a number.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, str):
        match = _NUMBER.search(value.replace(",", ""))
        if match:
            return float(match.group(0))
    return None


def coerce_text(value: Any, field: str, log: CorrectionLog, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    log.record(field, value, default, "not a string")
    return default


def coerce_level(value: Any, field: str, log: CorrectionLog, default: str = "Medium") -> str:
    """Restrict to Low/Medium/High; a case-insensitive match is accepted."""
    if value in LEVELS:
        return value
    if isinstance(value, str):
        for level in LEVELS:
            if value.strip().lower() == level.lower():
                log.record(field, value, level, "case normalized")
                return level
    log.record(field, value, default, "not one of Low/Medium/High")
    return default


def clamp_number(
    value: Any,
    field: str,
    log: CorrectionLog,
    low: Optional[float] = None,
    high: Optional[float] = None,
    default: Optional[float] = None,
    integer: bool = False,
) -> Optional[float]:
    """
    Coerce ``value`` to a number within [low, high].

    Missing or non-numeric input yields ``default``; out-of-range input is
    clamped. An infinite value with no bound on that side is treated as
    non-numeric. Every substitution is recorded unless the value was simply
    absent.
    """
    number = to_number(value)
    if number is not None:
        clamped = number
        if low is not None and clamped < low:
            clamped = low
        if high is not None and clamped > high:
            clamped = high
        if not math.isfinite(clamped):
            number = None

    if number is None:
        if value is not None:
            log.record(field, value, default, "not a number")
        return default

    if clamped != number:
        log.record(field, value, clamped, f"clamped to [{low}, {high}]")

    if integer:
        rounded = int(round(clamped))
        if rounded != clamped:
            log.record(field, value, rounded, "rounded to integer")
        return rounded
    return clamped


def only_dicts(items: Iterable[Any], field: str, log: CorrectionLog) -> List[dict]:
    kept = []
    for index, item in enumerate(items):
        if isinstance(item, dict):
            kept.append(item)
        else:
            log.record(f"{field}[{index}]", item, None, "dropped: not an object")
    return kept
