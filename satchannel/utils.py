from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

ISO = "%Y-%m-%dT%H:%M:%SZ"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(t: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive input is taken as UTC."""
    if t.tzinfo is None:
        return t.replace(tzinfo=timezone.utc)
    return t.astimezone(timezone.utc)


def parse_iso(s: Optional[str], default: Optional[datetime] = None) -> datetime:
    if s is None:
        if default is not None:
            return default
        return now_utc()
    return to_utc(datetime.fromisoformat(s.replace("Z", "+00:00")))


def to_iso(d: datetime) -> str:
    return to_utc(d).strftime(ISO)
