"""Canonical timestamp handling.

Every timestamp written to the store uses ``YYYY-MM-DDTHH:MM:SS.mmmZ``
(UTC, millisecond precision), so stored values sort lexicographically
and derived idempotency keys are stable across redeliveries.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def to_canonical(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return to_canonical(datetime.now(timezone.utc))


def parse_timestamp(value: Any) -> Optional[str]:
    """Return the canonical form of an ISO-8601 string, or ``None``."""
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return to_canonical(parsed)
