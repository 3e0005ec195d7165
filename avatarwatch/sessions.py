"""Session records: listing, lifecycle flags and trash handling."""

import logging
import uuid
from datetime import timedelta

from avatarwatch import config
from avatarwatch.db import execute_write, get_conn, write_transaction
from avatarwatch.heygen import HeyGenError
from avatarwatch.timestamps import now_iso, parse_ts, to_iso, utcnow

logger = logging.getLogger(__name__)

VIEW_MODES = ("active", "archived", "trash")

SESSION_COLUMNS = [
    "id",
    "session_id",
    "start_time",
    "end_time",
    "status",
    "heygen_status",
    "last_sync_at",
    "created_at",
    "updated_at",
    "is_relevant",
    "is_archived",
    "deleted_at",
]

_SELECT = f"SELECT {', '.join(SESSION_COLUMNS)} FROM sessions"


class SessionNotFound(LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


def _row_to_session(row, now=None) -> dict:
    s = dict(zip(SESSION_COLUMNS, row))
    s["is_relevant"] = bool(s["is_relevant"])
    s["is_archived"] = bool(s["is_archived"])

    start = parse_ts(s["start_time"])
    end = parse_ts(s["end_time"]) or now or utcnow()
    s["duration_seconds"] = max(0, int((end - start).total_seconds())) if start else 0

    if s["heygen_status"] and s["heygen_status"] != s["status"]:
        s["display_status"] = f"{s['status']} (provider: {s['heygen_status']})"
    else:
        s["display_status"] = s["status"]

    if s["deleted_at"]:
        purge_at = parse_ts(s["deleted_at"]) + timedelta(days=config.TRASH_RETENTION_DAYS)
        s["purge_at"] = purge_at.isoformat()
    else:
        s["purge_at"] = None
    return s


def _validate_status(status: str):
    if status not in config.SESSION_STATUSES:
        raise ValueError(
            f"Unknown status {status!r}; expected one of {', '.join(config.SESSION_STATUSES)}"
        )


def get_session(session_id: str) -> dict:
    row = get_conn().execute(f"{_SELECT} WHERE session_id = ?", [session_id]).fetchone()
    if row is None:
        raise SessionNotFound(session_id)
    return _row_to_session(row)


def register_session(session_id: str, status: str = "active", start_time=None) -> dict:
    """Insert a session record if it doesn't exist yet. Returns the stored record."""
    session_id = (session_id or "").strip()
    if not session_id:
        raise ValueError("session_id is required")
    _validate_status(status)

    now = now_iso()
    execute_write(
        """
        INSERT OR IGNORE INTO sessions (
            id, session_id, start_time, status, last_sync_at, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        [uuid.uuid4().hex, session_id, to_iso(start_time) or now, status, now, now, now],
    )
    return get_session(session_id)


def list_sessions(
    view: str = "active",
    status: str | None = None,
    start=None,
    end=None,
    limit: int = 100,
    offset: int = 0,
) -> dict:
    """Sessions for one dashboard view, newest first.

    ``active`` hides archived and trashed sessions, ``archived`` shows
    archived sessions that are not trashed, ``trash`` shows everything with
    a deletion mark.
    """
    if view not in VIEW_MODES:
        raise ValueError(f"Unknown view {view!r}; expected one of {', '.join(VIEW_MODES)}")

    conditions = []
    params = []

    if view == "active":
        conditions.append("is_archived = 0 AND deleted_at IS NULL")
    elif view == "archived":
        conditions.append("is_archived = 1 AND deleted_at IS NULL")
    else:
        conditions.append("deleted_at IS NOT NULL")

    if status and status != "all":
        _validate_status(status)
        conditions.append("status = ?")
        params.append(status)
    if start is not None:
        conditions.append("start_time >= ?")
        params.append(to_iso(start))
    if end is not None:
        conditions.append("start_time <= ?")
        params.append(to_iso(end))

    where = "WHERE " + " AND ".join(conditions)
    conn = get_conn()

    total = conn.execute(f"SELECT COUNT(*) FROM sessions {where}", params).fetchone()[0]
    rows = conn.execute(
        f"{_SELECT} {where} ORDER BY start_time DESC LIMIT ? OFFSET ?",
        params + [int(limit), int(offset)],
    ).fetchall()

    now = utcnow()
    return {
        "total": total,
        "sessions": [_row_to_session(r, now) for r in rows],
    }


def list_running_sessions() -> list[dict]:
    """Sessions the dashboard still believes are live."""
    placeholders = ", ".join("?" for _ in config.ACTIVE_STATUSES)
    rows = get_conn().execute(
        f"{_SELECT} WHERE status IN ({placeholders}) AND end_time IS NULL",
        list(config.ACTIVE_STATUSES),
    ).fetchall()
    return [_row_to_session(r) for r in rows]


def _update(session_id: str, assignments: dict) -> dict:
    assignments = dict(assignments, updated_at=now_iso())
    sets = ", ".join(f"{col} = ?" for col in assignments)
    with write_transaction() as conn:
        cur = conn.execute(
            f"UPDATE sessions SET {sets} WHERE session_id = ?",
            list(assignments.values()) + [session_id],
        )
        if cur.rowcount == 0:
            raise SessionNotFound(session_id)
    return get_session(session_id)


def set_relevant(session_id: str, value: bool) -> dict:
    return _update(session_id, {"is_relevant": int(bool(value))})


def toggle_relevant(session_id: str) -> dict:
    return set_relevant(session_id, not get_session(session_id)["is_relevant"])


def set_archived(session_id: str, value: bool) -> dict:
    return _update(session_id, {"is_archived": int(bool(value))})


def toggle_archived(session_id: str) -> dict:
    return set_archived(session_id, not get_session(session_id)["is_archived"])


def move_to_trash(session_id: str) -> dict:
    return _update(session_id, {"deleted_at": now_iso()})


def restore_from_trash(session_id: str) -> dict:
    return _update(session_id, {"deleted_at": None})


def mark_completed(session_id: str, now=None) -> dict:
    ts = to_iso(now) or now_iso()
    return _update(session_id, {
        "status": "completed",
        "heygen_status": "completed",
        "end_time": ts,
        "last_sync_at": ts,
    })


def touch_synced(session_id: str, heygen_status: str | None = None) -> dict:
    assignments = {"last_sync_at": now_iso()}
    if heygen_status in config.SESSION_STATUSES:
        assignments["heygen_status"] = heygen_status
    return _update(session_id, assignments)


def stop_session(session_id: str, client) -> dict:
    """Stop a live session at the provider, then close it locally.

    The local record is completed even when the provider call fails, so an
    operator can always clear a stuck session. Provider failures are
    reported in the returned dict.
    """
    session = get_session(session_id)
    if session["status"] == "completed":
        return {"status": "completed", "message": "Session was already completed"}

    try:
        result = client.stop_session(session_id)
    except HeyGenError as exc:
        logger.warning("Provider stop failed for %s: %s", session_id, exc)
        result = {"status": "error", "message": str(exc)}
    mark_completed(session_id)
    logger.info("Stopped session %s", session_id)
    return result


def purge_trash(now=None) -> int:
    """Hard delete sessions that have been in the trash past the retention window."""
    cutoff = (parse_ts(now) or utcnow()) - timedelta(days=config.TRASH_RETENTION_DAYS)
    cur = execute_write(
        "DELETE FROM sessions WHERE deleted_at IS NOT NULL AND deleted_at < ?",
        [cutoff.isoformat()],
    )
    if cur.rowcount:
        logger.info("Purged %d sessions from the trash", cur.rowcount)
    return cur.rowcount
