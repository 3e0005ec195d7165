"""Shared fixtures: a throwaway database and fake provider transports."""

import pytest
import requests

from avatarwatch import config, db


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point every test at its own SQLite file."""
    db_path = tmp_path / "data.sqlite"
    monkeypatch.setattr(config, "DB_PATH", db_path)
    db.reset_connections()
    yield db_path
    db.reset_connections()


# ---------------------------------------------------------------------------
# Provider fakes
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text_body=False):
        self.status_code = status_code
        self._payload = payload
        self._text_body = text_body

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._text_body:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHTTPSession:
    """Stands in for requests.Session; answers by endpoint name."""

    def __init__(self, routes=None, error=None):
        self.routes = routes or {}
        self.error = error
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({
            "method": method,
            "url": url,
            "json": json,
            "headers": headers,
            "timeout": timeout,
        })
        if self.error is not None:
            raise self.error
        endpoint = url.rsplit("/", 1)[-1]
        response = self.routes.get(endpoint)
        if response is None:
            return FakeResponse(404, {"message": f"no route for {endpoint}"})
        return response


class FakeClient:
    """Duck-typed HeyGenClient for code that only needs its public methods."""

    def __init__(self, active=None, transcripts=None, fail_list=None, fail_messages=None, fail_stop=None):
        self.active = active or {}
        self.transcripts = transcripts or {}
        self.fail_list = fail_list
        self.fail_messages = fail_messages or {}
        self.fail_stop = fail_stop
        self.stopped = []
        self.sent = []

    @property
    def is_configured(self):
        return True

    def list_sessions(self):
        if self.fail_list is not None:
            raise self.fail_list
        return [
            {"session_id": sid, "status": status, "created_at": None}
            for sid, status in self.active.items()
        ]

    def fetch_messages(self, session_id):
        if session_id in self.fail_messages:
            raise self.fail_messages[session_id]
        return list(self.transcripts.get(session_id, []))

    def stop_session(self, session_id):
        self.stopped.append(session_id)
        if self.fail_stop is not None:
            raise self.fail_stop
        return {"status": "success"}

    def send_message(self, session_id, message):
        self.sent.append((session_id, message))
        self.transcripts.setdefault(session_id, []).append(
            {"role": "user", "content": message, "timestamp": None}
        )
        return {"status": "success"}


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def connection_error():
    return requests.exceptions.ConnectionError("connection refused")
