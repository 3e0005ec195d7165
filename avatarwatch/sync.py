"""Reconcile local session records with the provider's active-session list."""

import logging

from avatarwatch.heygen import HeyGenError, HeyGenNotConfigured
from avatarwatch.messages import sync_messages
from avatarwatch.sessions import list_running_sessions, mark_completed, touch_synced

logger = logging.getLogger(__name__)


def reconcile(client, now=None) -> dict:
    """One reconciliation pass.

    Running sessions the provider no longer lists are completed; the rest
    get their transcripts synced. If the provider can't be asked, nothing
    is touched and the pass is reported as skipped.
    """
    stats = {
        "checked": 0,
        "completed": 0,
        "synced": 0,
        "messages": 0,
        "errors": 0,
        "skipped": False,
        "reason": "",
    }

    running = list_running_sessions()
    stats["checked"] = len(running)
    if not running:
        return stats

    try:
        remote = {s["session_id"]: s for s in client.list_sessions()}
    except HeyGenNotConfigured as exc:
        stats.update(skipped=True, reason=str(exc))
        logger.warning("Skipping reconciliation: %s", exc)
        return stats
    except HeyGenError as exc:
        stats.update(skipped=True, reason=str(exc))
        logger.error("Skipping reconciliation, provider unavailable: %s", exc)
        return stats

    for session in running:
        sid = session["session_id"]
        if sid not in remote:
            mark_completed(sid, now=now)
            stats["completed"] += 1
            continue

        try:
            stats["messages"] += sync_messages(sid, client)
            touch_synced(sid, remote[sid].get("status"))
            stats["synced"] += 1
        except HeyGenError as exc:
            stats["errors"] += 1
            logger.warning("Message sync failed for %s: %s", sid, exc)

    logger.info(
        "Reconciled %d sessions: %d completed, %d synced, %d new messages",
        stats["checked"], stats["completed"], stats["synced"], stats["messages"],
    )
    return stats
