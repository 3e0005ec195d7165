"""UTC timestamp helpers.

Every timestamp stored in the database uses the same fixed-width ISO-8601
form (``2025-03-10T15:45:18+00:00``) so string comparison in SQL matches
chronological order.
"""

from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_ts(value) -> datetime | None:
    """Parse an ISO string, epoch number or datetime into an aware UTC datetime.

    Epoch values larger than 1e12 are treated as milliseconds.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000.0 if value > 1e12 else float(value)
        dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.replace(".", "", 1).isdigit():
            return parse_ts(float(text))
        dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def to_iso(value) -> str | None:
    dt = parse_ts(value)
    return dt.isoformat() if dt else None


def now_iso() -> str:
    return utcnow().isoformat()
