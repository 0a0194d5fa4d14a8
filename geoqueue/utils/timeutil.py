from datetime import datetime

import pytz

UTC_TZ = pytz.utc


def utcnow() -> datetime:
    """Naive UTC "now"; every timestamp column stores naive UTC."""
    return datetime.now(UTC_TZ).replace(tzinfo=None)


def as_utc(dt: datetime | None) -> datetime | None:
    """Marks a stored (naive UTC) datetime as UTC. Aware values are converted."""
    if not dt:
        return None
    if dt.tzinfo is None:
        return UTC_TZ.localize(dt)
    return dt.astimezone(UTC_TZ)


def to_local(dt: datetime | None, tz_name: str) -> datetime | None:
    aware = as_utc(dt)
    if not aware:
        return None
    return aware.astimezone(pytz.timezone(tz_name))


def iso(dt: datetime | None) -> str | None:
    aware = as_utc(dt)
    return aware.isoformat() if aware else None


def parse_iso(value) -> datetime | None:
    """ISO-8601 string to naive UTC. Naive input is taken as UTC."""
    if value in (None, ""):
        return None
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC_TZ).replace(tzinfo=None)
    return dt
