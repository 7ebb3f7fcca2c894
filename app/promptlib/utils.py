from __future__ import annotations

import re
from datetime import datetime, timezone

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_ms(dt: datetime | None) -> int | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_epoch_ms(ms: int | float | None) -> datetime | None:
    if ms is None:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).replace(tzinfo=None)


def iso_utc_ms(dt: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. 2026-03-01T09:30:00.000Z."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def is_valid_slug(value: str) -> bool:
    return bool(_SLUG_RE.fullmatch(value or ""))


def slugify(value: str) -> str:
    s = re.sub(r"[^a-z0-9]+", "-", (value or "").strip().lower())
    return s.strip("-")


def parse_positive_int(raw: str | None) -> int | None:
    """Return a positive int from query/form input, else None."""
    try:
        n = int((raw or "").strip())
    except ValueError:
        return None
    return n if n > 0 else None


def is_safe_next(nxt: str) -> bool:
    # Only local paths; avoids open redirects.
    return nxt.startswith("/") and not nxt.startswith("//")
