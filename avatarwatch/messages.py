"""Per-session transcripts, provider message sync and session statistics."""

import logging
import uuid

from avatarwatch.db import get_conn, write_transaction
from avatarwatch.sessions import get_session
from avatarwatch.timestamps import now_iso, parse_ts, to_iso

logger = logging.getLogger(__name__)

MESSAGE_COLUMNS = ["id", "session_id", "sender", "message", "timestamp", "created_at"]

# Provider roles -> stored sender
_SENDER_ALIASES = {
    "user": "user",
    "avatar": "avatar",
    "assistant": "avatar",
}


def normalize_sender(role: str) -> str:
    sender = _SENDER_ALIASES.get((role or "").strip().lower())
    if sender is None:
        raise ValueError(f"Unknown sender {role!r}; expected 'user' or 'avatar'")
    return sender


def list_messages(session_id: str) -> list[dict]:
    """Transcript of one session, oldest first."""
    get_session(session_id)
    rows = get_conn().execute(
        f"""
        SELECT {', '.join(MESSAGE_COLUMNS)}
        FROM messages
        WHERE session_id = ?
        ORDER BY timestamp, created_at
    """,
        [session_id],
    ).fetchall()
    return [dict(zip(MESSAGE_COLUMNS, r)) for r in rows]


def _insert(conn, session_id: str, sender: str, message: str, timestamp: str) -> str:
    message_id = uuid.uuid4().hex
    conn.execute(
        """
        INSERT INTO messages (id, session_id, sender, message, timestamp, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
    """,
        [message_id, session_id, sender, message, timestamp, now_iso()],
    )
    return message_id


def add_message(session_id: str, sender: str, message: str, timestamp=None) -> dict:
    sender = normalize_sender(sender)
    if not (message or "").strip():
        raise ValueError("message is required")
    get_session(session_id)

    with write_transaction() as conn:
        message_id = _insert(conn, session_id, sender, message, to_iso(timestamp) or now_iso())

    row = get_conn().execute(
        f"SELECT {', '.join(MESSAGE_COLUMNS)} FROM messages WHERE id = ?", [message_id]
    ).fetchone()
    return dict(zip(MESSAGE_COLUMNS, row))


def sync_messages(session_id: str, client) -> int:
    """Pull the provider transcript and store messages we don't have yet.

    A provider message is a duplicate when sender, text and timestamp all
    match a stored one; messages without a provider timestamp match on
    sender and text alone. Returns the number of inserted messages.
    """
    get_session(session_id)
    remote = client.fetch_messages(session_id)
    if not remote:
        return 0

    inserted = 0
    with write_transaction() as conn:
        # Read under the writer lock so concurrent syncs see each other's rows
        existing = conn.execute(
            "SELECT sender, message, timestamp FROM messages WHERE session_id = ?",
            [session_id],
        ).fetchall()
        seen_exact = {(s, m, t) for s, m, t in existing}
        seen_text = {(s, m) for s, m, _ in existing}

        for item in remote:
            role = item.get("role")
            sender = "user" if role == "user" else "avatar"
            text = item.get("content")
            if not text:
                continue
            ts = item.get("timestamp")

            if ts:
                if (sender, text, ts) in seen_exact:
                    continue
            elif (sender, text) in seen_text:
                continue

            stored_ts = ts or now_iso()
            _insert(conn, session_id, sender, text, stored_ts)
            seen_exact.add((sender, text, stored_ts))
            seen_text.add((sender, text))
            inserted += 1

    if inserted:
        logger.info("Synced %d new messages for session %s", inserted, session_id)
    return inserted


def session_stats(session_id: str) -> dict:
    """Message counts, average avatar response time and duration for one session."""
    session = get_session(session_id)
    messages = list_messages(session_id)

    user_count = sum(1 for m in messages if m["sender"] == "user")
    avatar_count = len(messages) - user_count

    # Response time: user message -> next avatar message
    response_times = []
    pending_user = None
    for m in messages:
        ts = parse_ts(m["timestamp"])
        if m["sender"] == "user":
            if pending_user is None:
                pending_user = ts
        elif pending_user is not None:
            response_times.append((ts - pending_user).total_seconds())
            pending_user = None

    avg_response = (
        round(sum(response_times) / len(response_times), 1) if response_times else 0.0
    )

    return {
        "session_id": session_id,
        "total_messages": len(messages),
        "user_messages": user_count,
        "avatar_messages": avatar_count,
        "average_response_seconds": avg_response,
        "duration_seconds": session["duration_seconds"],
        "first_message_at": messages[0]["timestamp"] if messages else None,
        "last_message_at": messages[-1]["timestamp"] if messages else None,
    }
