"""Dashboard aggregates: totals, daily counts and bucketed chart series."""

from datetime import date, datetime, time, timedelta, timezone

from avatarwatch import config
from avatarwatch.db import get_conn
from avatarwatch.timestamps import parse_ts, utcnow

RANGE_PRESETS = {
    "yesterday": None,
    "7days": 7,
    "14days": 14,
    "30days": 30,
    "custom": None,
}

METRICS = {
    "sessions": "Sessions",
    "messages": "Messages",
    "avgMessages": "Avg. messages per session",
    "avgDuration": "Avg. session duration (min)",
}

INTERVALS = ("hour", "day", "week")


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time(23, 59, 59), tzinfo=timezone.utc)


def _is_date_only(value) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and len(value.strip()) == 10


def date_range(preset: str = "7days", start=None, end=None, today: date | None = None):
    """Resolve a range preset to (start, end) aware UTC datetimes.

    Presets include today: ``7days`` runs from six days ago 00:00:00 to
    today 23:59:59. ``custom`` takes explicit bounds; a date-only end is
    inclusive of that whole day.
    """
    if preset not in RANGE_PRESETS:
        raise ValueError(
            f"Unknown range {preset!r}; expected one of {', '.join(RANGE_PRESETS)}"
        )
    today = today or utcnow().date()

    if preset == "custom":
        if not start or not end:
            raise ValueError("custom range needs both start and end")
        start_dt = parse_ts(start)
        end_dt = _day_end(parse_ts(end).date()) if _is_date_only(end) else parse_ts(end)
        if start_dt > end_dt:
            raise ValueError("start must not be after end")
        return start_dt, end_dt

    if preset == "yesterday":
        day = today - timedelta(days=1)
        return _day_start(day), _day_end(day)

    days = RANGE_PRESETS[preset]
    return _day_start(today - timedelta(days=days - 1)), _day_end(today)


def _session_rows(start: datetime, end: datetime):
    """(session_id, start_time, end_time, message_count) for non-trashed sessions in range."""
    return get_conn().execute(
        """
        SELECT s.session_id, s.start_time, s.end_time, COUNT(m.id) as message_count
        FROM sessions s
        LEFT JOIN messages m ON m.session_id = s.session_id
        WHERE s.start_time >= ? AND s.start_time <= ?
          AND s.deleted_at IS NULL
        GROUP BY s.session_id
        ORDER BY s.start_time
    """,
        [start.isoformat(), end.isoformat()],
    ).fetchall()


def dashboard_stats(start: datetime, end: datetime) -> dict:
    """Sessions per day plus message count per session for a range."""
    conn = get_conn()

    daily = conn.execute(
        """
        SELECT DATE(start_time) as day, COUNT(*) as session_count
        FROM sessions
        WHERE start_time >= ? AND start_time <= ?
          AND deleted_at IS NULL
        GROUP BY DATE(start_time)
        ORDER BY day
    """,
        [start.isoformat(), end.isoformat()],
    ).fetchall()

    return {
        "daily_sessions": [{"date": d, "session_count": c} for d, c in daily],
        "message_counts": [
            {"session_id": sid, "created_at": st, "message_count": n}
            for sid, st, _, n in _session_rows(start, end)
        ],
    }


def summary(start: datetime, end: datetime) -> dict:
    rows = _session_rows(start, end)

    total_sessions = len(rows)
    total_messages = sum(r[3] for r in rows)
    durations = [
        (parse_ts(e) - parse_ts(s)).total_seconds() for _, s, e, _ in rows if e
    ]

    placeholders = ", ".join("?" for _ in config.ACTIVE_STATUSES)
    counts = get_conn().execute(
        f"""
        SELECT
            SUM(CASE WHEN is_relevant = 1 THEN 1 ELSE 0 END),
            SUM(CASE WHEN status IN ({placeholders}) AND end_time IS NULL THEN 1 ELSE 0 END)
        FROM sessions
        WHERE start_time >= ? AND start_time <= ?
          AND deleted_at IS NULL
    """,
        list(config.ACTIVE_STATUSES) + [start.isoformat(), end.isoformat()],
    ).fetchone()

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total_sessions": total_sessions,
        "total_messages": total_messages,
        "avg_messages_per_session": (
            round(total_messages / total_sessions, 1) if total_sessions else 0
        ),
        "avg_duration_minutes": (
            round(sum(durations) / len(durations) / 60, 1) if durations else 0
        ),
        "relevant_sessions": counts[0] or 0,
        "running_sessions": counts[1] or 0,
    }


def bucket_start(dt: datetime, interval: str) -> datetime:
    """Floor a timestamp to its hour, day or week (weeks start on Sunday)."""
    if interval == "hour":
        return dt.replace(minute=0, second=0, microsecond=0)
    day = _day_start(dt.date())
    if interval == "day":
        return day
    if interval == "week":
        return day - timedelta(days=(day.weekday() + 1) % 7)
    raise ValueError(f"Unknown interval {interval!r}; expected one of {', '.join(INTERVALS)}")


def _bucket_label(dt: datetime, interval: str) -> str:
    if interval == "hour":
        return dt.strftime("%Y-%m-%dT%H:00")
    return dt.date().isoformat()


def _step(interval: str) -> timedelta:
    return {
        "hour": timedelta(hours=1),
        "day": timedelta(days=1),
        "week": timedelta(weeks=1),
    }[interval]


def chart_series(start: datetime, end: datetime, metric: str = "sessions", interval: str = "day") -> dict:
    """One metric bucketed by hour, day or week; empty buckets are zero.

    Messages are attributed to the bucket their session started in, so
    ``avgMessages`` is messages / sessions within the same bucket.
    """
    if metric not in METRICS:
        raise ValueError(f"Unknown metric {metric!r}; expected one of {', '.join(METRICS)}")
    if interval not in INTERVALS:
        raise ValueError(f"Unknown interval {interval!r}; expected one of {', '.join(INTERVALS)}")

    buckets = {}
    cursor = bucket_start(start, interval)
    step = _step(interval)
    while cursor <= end:
        buckets[cursor] = {"sessions": 0, "messages": 0, "durations": []}
        cursor += step

    for _, s, e, n in _session_rows(start, end):
        started = parse_ts(s)
        b = buckets.setdefault(
            bucket_start(started, interval), {"sessions": 0, "messages": 0, "durations": []}
        )
        b["sessions"] += 1
        b["messages"] += n
        if e:
            b["durations"].append((parse_ts(e) - started).total_seconds())

    points = []
    for key in sorted(buckets):
        b = buckets[key]
        if metric == "sessions":
            value = b["sessions"]
        elif metric == "messages":
            value = b["messages"]
        elif metric == "avgMessages":
            value = round(b["messages"] / b["sessions"], 1) if b["sessions"] else 0
        else:
            value = (
                round(sum(b["durations"]) / len(b["durations"]) / 60, 1)
                if b["durations"] else 0
            )
        points.append({"date": _bucket_label(key, interval), "value": value})

    return {
        "metric": metric,
        "interval": interval,
        "label": METRICS[metric],
        "points": points,
    }
