"""Timestamp normalization and expiry arithmetic for entitlement fields.

Stored instants arrive in several shapes depending on who wrote them: epoch
numbers (seconds or millis), ISO-8601 strings, ``{seconds, nanoseconds}`` maps
(``_seconds``/``_nanoseconds`` when serialized by a JS client) and ``datetime``
objects returned by the Firestore client. Everything is reduced to epoch
milliseconds; anything else is treated as absent.
"""
import math
import time
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

DAY_MS = 24 * 60 * 60 * 1000

# epoch numbers below this are seconds, at or above are millis
MILLIS_THRESHOLD = 1e12


def now_ms() -> int:
    return int(time.time() * 1000)


def _from_number(value: float) -> Optional[int]:
    if math.isnan(value) or math.isinf(value) or value < 0:
        return None
    if value < MILLIS_THRESHOLD:
        return int(round(value * 1000))
    return int(round(value))


def _from_datetime(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round(value.timestamp() * 1000))


def _from_iso(value: str) -> Optional[int]:
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return _from_datetime(datetime.fromisoformat(text))
    except ValueError:
        return None


def _from_seconds_nanos(value: Mapping[str, Any]) -> Optional[int]:
    for sec_key, nano_key in (("seconds", "nanoseconds"), ("_seconds", "_nanoseconds")):
        if sec_key in value:
            seconds = value.get(sec_key)
            nanos = value.get(nano_key) or 0
            if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
                return None
            if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
                return None
            if seconds < 0:
                return None
            return int(seconds) * 1000 + int(nanos) // 1_000_000
    return None


def to_millis(value: Any) -> Optional[int]:
    """Return the epoch-millisecond instant for ``value`` or ``None`` if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _from_datetime(value)
    if isinstance(value, (int, float)):
        return _from_number(float(value))
    if isinstance(value, str):
        return _from_iso(value)
    if isinstance(value, Mapping):
        return _from_seconds_nanos(value)
    return None


def is_active(instant: Optional[int], now: Optional[int] = None) -> bool:
    """``instant`` is already normalized; pass raw stored values through ``to_millis`` first."""
    if instant is None:
        return False
    return instant > (now_ms() if now is None else now)


def extend(existing: Optional[int], days: int, now: Optional[int] = None) -> int:
    """Stack ``days`` on top of ``existing`` when it is still in the future, else on top of now."""
    current = now_ms() if now is None else now
    base = existing if existing is not None and existing > current else current
    return base + int(days) * DAY_MS
