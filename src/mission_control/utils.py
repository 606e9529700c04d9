"""Small helpers for time, text and identifiers."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso(clock: Optional[Clock] = None) -> str:
    return (clock or utc_now)().isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, assuming UTC for naive values."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_stamp(previous: Optional[str], clock: Optional[Clock] = None) -> str:
    """Return a timestamp strictly later than `previous`."""
    now = (clock or utc_now)()
    before = parse_iso(previous)
    if before is not None and now <= before:
        now = before + timedelta(microseconds=1)
    return now.isoformat()


def minutes_since(value: Optional[str], now: datetime) -> Optional[float]:
    then = parse_iso(value)
    if then is None:
        return None
    return (now - then).total_seconds() / 60.0


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}"


def truncate(text: Optional[str], limit: int) -> str:
    """Trim `text` and cut it to `limit` characters, ending with an ellipsis when cut."""
    trimmed = (text or "").strip()
    if len(trimmed) <= limit:
        return trimmed
    if limit <= 1:
        return "…"
    return trimmed[: limit - 1] + "…"


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", (value or "").strip().lower()).strip("-")


def clamp(value: Optional[int], low: int, high: int, default: int) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def stamp_key(value: Optional[str]) -> datetime:
    """Sort key for stored ISO timestamps; unparsable values sort first."""
    return parse_iso(value) or _EPOCH
