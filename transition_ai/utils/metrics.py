"""
In-process pipeline metrics: upstream call counts and durations, parse
strategy hits, and validation corrections.

Exposed as a JSON snapshot on GET /metrics.
"""

from collections import defaultdict
from typing import Dict, Any

# ---------------------------------------------------------------------------
# In-process counters
# ---------------------------------------------------------------------------

_counters: Dict[str, int] = defaultdict(int)
_histograms: Dict[str, list] = defaultdict(list)

MAX_HISTOGRAM_SAMPLES = 500  # Rolling window


def inc(name: str, value: int = 1) -> None:
    """Increment a counter."""
    _counters[name] += value


def observe(name: str, value: float) -> None:
    """Record a histogram observation (e.g., duration)."""
    bucket = _histograms[name]
    bucket.append(value)
    if len(bucket) > MAX_HISTOGRAM_SAMPLES:
        _histograms[name] = bucket[-MAX_HISTOGRAM_SAMPLES:]


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def _percentile(sorted_samples: list, fraction: float) -> float:
    idx = min(int(len(sorted_samples) * fraction), len(sorted_samples) - 1)
    return round(sorted_samples[idx], 1)


def get_snapshot() -> Dict[str, Any]:
    """Return all counters and histogram summaries."""
    summaries = {}
    for name, samples in _histograms.items():
        if not samples:
            continue
        ordered = sorted(samples)
        summaries[name] = {
            "count": len(ordered),
            "p50": _percentile(ordered, 0.5),
            "p95": _percentile(ordered, 0.95),
            "max": round(ordered[-1], 1),
        }
    return {"counters": dict(_counters), "histograms": summaries}


def reset() -> None:
    """Reset all metrics (used by tests)."""
    _counters.clear()
    _histograms.clear()
