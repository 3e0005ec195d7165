"""Background refresh worker: periodic reconciliation with the avatar provider."""

import logging
import threading

from avatarwatch import config
from avatarwatch.sessions import purge_trash
from avatarwatch.sync import reconcile
from avatarwatch.timestamps import now_iso

logger = logging.getLogger(__name__)


class SyncWorker(threading.Thread):
    """Daemon thread that reconciles sessions with the provider on a fixed interval.

    Every ``interval`` seconds (or sooner, when ``request_refresh`` is
    called) it runs one reconciliation pass and purges expired trash.

    The ``status`` attribute is a dict visible to other threads:
      {"state": "idle"/"syncing", "step": "...", "ready": True/False,
       "last_run": ISO timestamp or None, "last_result": {...} or None}
    """

    def __init__(self, client, interval: float | None = None, run_immediately: bool = True):
        super().__init__(daemon=True, name="sync-worker")
        self._client = client
        self._interval = config.SYNC_INTERVAL if interval is None else interval
        self._run_immediately = run_immediately
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._last_run: str | None = None
        self._last_result: dict | None = None
        self.status: dict = self._idle_status()

    def stop(self):
        self._stop_event.set()
        self._wake_event.set()  # Wake the run loop so it can exit

    def request_refresh(self):
        """Ask for a pass now. Non-blocking; the worker picks it up on its next loop."""
        self._wake_event.set()

    @property
    def is_busy(self) -> bool:
        return self.status.get("state") != "idle"

    def run(self):
        if not self._run_immediately:
            self._wake_event.wait(timeout=self._interval)
            self._wake_event.clear()

        while not self._stop_event.is_set():
            self.run_once()
            self._wake_event.wait(timeout=self._interval)
            self._wake_event.clear()

    def run_once(self) -> dict | None:
        try:
            self._set_status("Reconciling sessions")
            result = reconcile(self._client)
            self._set_status("Purging trash")
            result["purged"] = purge_trash()
            self._last_result = result
            return result
        except Exception:
            logger.exception("Sync pass failed")
            return None
        finally:
            self._last_run = now_iso()
            self.status = self._idle_status()

    def _set_status(self, step: str):
        self.status = {
            "state": "syncing",
            "step": step,
            "ready": False,
            "last_run": self._last_run,
            "last_result": self._last_result,
        }

    def _idle_status(self) -> dict:
        return {
            "state": "idle",
            "step": "",
            "ready": True,
            "last_run": self._last_run,
            "last_result": self._last_result,
        }
