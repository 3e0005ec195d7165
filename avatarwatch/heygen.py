"""HTTP client for the HeyGen streaming-avatar API."""

import logging

import requests

from avatarwatch import config
from avatarwatch.timestamps import to_iso

logger = logging.getLogger(__name__)


class HeyGenError(RuntimeError):
    """The provider could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: int | None = None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class HeyGenNotConfigured(HeyGenError):
    """No usable API key is configured."""


def _safe_iso(value):
    try:
        return to_iso(value)
    except ValueError:
        logger.warning("Ignoring unparseable HeyGen timestamp %r", value)
        return None


def _unwrap(payload):
    """HeyGen wraps most responses as {"code": ..., "data": {...}}."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return payload if payload is not None else {}


class HeyGenClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.api_key = config.HEYGEN_API_KEY if api_key is None else api_key
        self.base_url = (base_url or config.HEYGEN_API_BASE).rstrip("/")
        self.timeout = config.HEYGEN_TIMEOUT if timeout is None else timeout
        self._session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        key = (self.api_key or "").strip()
        return bool(key) and key != config.HEYGEN_PLACEHOLDER_KEY

    def _request(self, method: str, endpoint: str, body: dict | None = None):
        if not self.is_configured:
            raise HeyGenNotConfigured("HeyGen API key not configured")

        url = f"{self.base_url}/{endpoint}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        try:
            response = self._session.request(
                method, url, json=body, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as exc:
            raise HeyGenError(f"Request to {url} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if not response.ok:
            message = ""
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("error") or ""
            logger.error("HeyGen %s %s returned %s: %s", method, endpoint, response.status_code, payload)
            raise HeyGenError(
                message or f"HeyGen {endpoint} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )
        return payload

    def list_sessions(self) -> list[dict]:
        """Sessions the provider currently considers active.

        Raises HeyGenError unless the answer carries a sessions list, so a
        garbled response is never mistaken for "nothing is running".
        """
        payload = self._request("GET", "streaming.list")
        if isinstance(payload, dict) and payload.get("code") not in (None, 100):
            raise HeyGenError(
                payload.get("message") or f"HeyGen streaming.list returned code {payload['code']}",
                payload=payload,
            )
        data = _unwrap(payload)
        sessions = data.get("sessions") if isinstance(data, dict) else data
        if not isinstance(sessions, list):
            raise HeyGenError("Unexpected streaming.list response format", payload=payload)
        return [
            {
                "session_id": s.get("session_id"),
                "status": s.get("status"),
                "created_at": s.get("created_at"),
            }
            for s in sessions
            if isinstance(s, dict) and s.get("session_id")
        ]

    def get_session_status(self, session_id: str) -> dict:
        return _unwrap(self._request("POST", "streaming.get", {"session_id": session_id}))

    def stop_session(self, session_id: str) -> dict:
        try:
            current = self.get_session_status(session_id)
        except HeyGenNotConfigured:
            raise
        except HeyGenError as exc:
            logger.warning("Status lookup for %s failed, stopping anyway: %s", session_id, exc)
            current = {"status": "error"}
        if current.get("status") == "completed":
            return {"status": "completed", "message": "Session was already completed"}
        return self._request("POST", "streaming.stop", {"session_id": session_id})

    def send_message(self, session_id: str, message: str) -> dict:
        logger.info("Sending message to HeyGen session %s", session_id)
        return self._request(
            "POST", "streaming.chat", {"session_id": session_id, "message": message}
        )

    def fetch_messages(self, session_id: str) -> list[dict]:
        """Transcript of a session as [{role, content, timestamp}, ...]."""
        data = _unwrap(
            self._request("POST", "streaming.messages", {"session_id": session_id})
        )
        raw = data.get("messages") if isinstance(data, dict) else data
        if not isinstance(raw, list):
            return []

        messages = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            content = item.get("content") or item.get("message") or item.get("text")
            if not content:
                continue
            messages.append({
                "role": item.get("role") or item.get("sender") or "avatar",
                "content": content,
                "timestamp": _safe_iso(item.get("timestamp") or item.get("created_at")),
            })
        return messages
