"""Volume history samples: boundary parsing and the repair/compaction rules.

Persisted history is a JSON list whose items were written by several
generations of writers, so an item may carry a numeric or textual ``volume``
and a numeric or textual ``time``, or be garbage altogether (for instance two
decimals glued together: ``"0.0117802051273427440.02837845831182257"``).

``parse_sample`` turns one raw item into a strict ``Sample`` or rejects it;
``repair_history`` filters, sorts and truncates a whole history. Both are pure.

Retention: a history is truncated only once it holds more than
``RETENTION_WINDOW`` samples, and truncation keeps the newest
``RETENTION_KEEP`` of them. Consumers currently rely on histories of up to
seven points, so the two constants intentionally differ.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any

RETENTION_WINDOW = 4
RETENTION_KEEP = 7

# Leading decimal literal, same acceptance as a browser's parseFloat():
# "1.5abc" -> 1.5, "abc" -> rejected, "Infinity" -> inf (rejected later).
_DECIMAL_PREFIX = re.compile(
    r"^\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))"
)

RawSample = dict[str, Any]


@dataclass(frozen=True)
class Sample:
    time: int  # ms
    volume: float

    def to_raw(self) -> RawSample:
        return {"time": self.time, "volume": self.volume}


def _parse_decimal_prefix(text: str) -> float | None:
    m = _DECIMAL_PREFIX.match(text)
    if m is None:
        return None
    try:
        return float(m.group(1).replace("Infinity", "inf"))
    except ValueError:
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_volume(value: Any) -> float | None:
    if value is None:
        return None
    if _is_number(value):
        # numeric volumes are kept as stored (an int stays an int)
        if isinstance(value, int):
            return value
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        if value.count(".") > 1:
            return None
        parsed = _parse_decimal_prefix(value)
        if parsed is None or not math.isfinite(parsed):
            return None
        return parsed
    return None


def _parse_time(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        t = value
    elif isinstance(value, str):
        parsed = _parse_decimal_prefix(value)
        if parsed is None:
            return None
        t = parsed
    else:
        return None
    if not math.isfinite(t):
        return None
    # sub-millisecond fractions are truncated
    return int(t)


def parse_sample(raw: Any) -> Sample | None:
    """Parse one persisted item, or None if it must be dropped."""
    if not isinstance(raw, dict):
        return None
    volume = _parse_volume(raw.get("volume"))
    if volume is None:
        return None
    time_ms = _parse_time(raw.get("time"))
    if time_ms is None:
        return None
    return Sample(time=time_ms, volume=volume)


def retention_start(count: int) -> int:
    """Index of the first sample kept out of ``count`` sorted samples."""
    if count > RETENTION_WINDOW:
        return max(count - RETENTION_KEEP, 0)
    return 0


def repair_history(raw_history: Any) -> list[Sample]:
    """Filter malformed items, sort ascending by time, apply retention."""
    if not isinstance(raw_history, list):
        return []
    parsed = [s for s in (parse_sample(item) for item in raw_history) if s is not None]
    # stable: equal timestamps keep their stored order
    parsed.sort(key=lambda s: s.time)
    return parsed[retention_start(len(parsed)):]


def current_volume_of(samples: list[Sample]) -> float:
    return samples[-1].volume if samples else 0


def samples_to_raw(samples: list[Sample]) -> list[RawSample]:
    return [s.to_raw() for s in samples]


def history_fingerprint(raw_history: Any) -> str:
    """Structural serialization used to detect no-op repairs."""
    return json.dumps(raw_history, sort_keys=True, separators=(",", ":"), default=str)
