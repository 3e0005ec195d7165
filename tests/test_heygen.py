"""Tests for the HeyGen HTTP client against a fake transport."""

import pytest

from avatarwatch.heygen import HeyGenClient, HeyGenError, HeyGenNotConfigured

from conftest import FakeHTTPSession, FakeResponse


def _client(routes=None, error=None, api_key="test-key"):
    transport = FakeHTTPSession(routes=routes, error=error)
    return HeyGenClient(api_key=api_key, base_url="https://heygen.test/v1/", timeout=5, session=transport), transport


class TestConfiguration:
    @pytest.mark.parametrize("key", ["", "   ", "your_heygen_api_key_here"])
    def test_unusable_keys_are_not_configured(self, key):
        client, transport = _client(api_key=key)
        assert client.is_configured is False
        with pytest.raises(HeyGenNotConfigured):
            client.list_sessions()
        assert transport.calls == []

    def test_request_shape(self):
        client, transport = _client({"streaming.list": FakeResponse(200, {"data": {"sessions": []}})})
        client.list_sessions()
        call = transport.calls[0]
        assert call["method"] == "GET"
        assert call["url"] == "https://heygen.test/v1/streaming.list"
        assert call["headers"]["Authorization"] == "Bearer test-key"
        assert call["timeout"] == 5


class TestListSessions:
    def test_parses_wrapped_sessions(self):
        client, _ = _client({"streaming.list": FakeResponse(200, {
            "code": 100,
            "data": {"sessions": [
                {"session_id": "a", "status": "connected", "created_at": 1741621518},
                {"session_id": "b", "status": "connecting"},
                {"status": "orphan"},
            ]},
        })})
        listed = client.list_sessions()
        assert [s["session_id"] for s in listed] == ["a", "b"]
        assert listed[0]["status"] == "connected"

    def test_empty_list_is_empty(self):
        client, _ = _client({"streaming.list": FakeResponse(200, {"code": 100, "data": {"sessions": []}})})
        assert client.list_sessions() == []

    def test_invalid_shape_raises(self):
        client, _ = _client({"streaming.list": FakeResponse(200, {"data": {"sessions": None}})})
        with pytest.raises(HeyGenError):
            client.list_sessions()

    def test_non_json_success_body_raises(self):
        client, _ = _client({"streaming.list": FakeResponse(200, text_body=True)})
        with pytest.raises(HeyGenError):
            client.list_sessions()

    def test_error_code_in_body_raises(self):
        client, _ = _client({"streaming.list": FakeResponse(200, {
            "code": 400, "message": "quota exceeded", "data": {"sessions": []},
        })})
        with pytest.raises(HeyGenError) as exc:
            client.list_sessions()
        assert str(exc.value) == "quota exceeded"

    def test_http_error_raises_with_provider_message(self):
        client, _ = _client({"streaming.list": FakeResponse(401, {"message": "Unauthorized"})})
        with pytest.raises(HeyGenError) as exc:
            client.list_sessions()
        assert str(exc.value) == "Unauthorized"
        assert exc.value.status_code == 401

    def test_non_json_error_body(self):
        client, _ = _client({"streaming.list": FakeResponse(500, text_body=True)})
        with pytest.raises(HeyGenError) as exc:
            client.list_sessions()
        assert "HTTP 500" in str(exc.value)

    def test_transport_error_wrapped(self, connection_error):
        client, _ = _client(error=connection_error)
        with pytest.raises(HeyGenError) as exc:
            client.list_sessions()
        assert exc.value.status_code is None
        assert not isinstance(exc.value, HeyGenNotConfigured)


class TestStopSession:
    def test_stops_live_session(self):
        client, transport = _client({
            "streaming.get": FakeResponse(200, {"data": {"status": "connected"}}),
            "streaming.stop": FakeResponse(200, {"status": "success"}),
        })
        assert client.stop_session("abc") == {"status": "success"}
        assert [c["url"].rsplit("/", 1)[-1] for c in transport.calls] == ["streaming.get", "streaming.stop"]
        assert transport.calls[1]["json"] == {"session_id": "abc"}

    def test_already_completed_session_not_stopped(self):
        client, transport = _client({
            "streaming.get": FakeResponse(200, {"data": {"status": "completed"}}),
        })
        assert client.stop_session("abc")["status"] == "completed"
        assert len(transport.calls) == 1

    def test_failed_status_lookup_still_sends_stop(self):
        client, transport = _client({
            "streaming.get": FakeResponse(500, {"message": "status lookup broke"}),
            "streaming.stop": FakeResponse(200, {"status": "success"}),
        })
        assert client.stop_session("abc") == {"status": "success"}
        assert [c["url"].rsplit("/", 1)[-1] for c in transport.calls] == ["streaming.get", "streaming.stop"]


class TestMessages:
    def test_send_message(self):
        client, transport = _client({"streaming.chat": FakeResponse(200, {"status": "success"})})
        client.send_message("abc", "Hello")
        assert transport.calls[0]["method"] == "POST"
        assert transport.calls[0]["json"] == {"session_id": "abc", "message": "Hello"}

    def test_fetch_messages_normalises(self):
        client, _ = _client({"streaming.messages": FakeResponse(200, {"data": {"messages": [
            {"role": "user", "content": "Hi", "timestamp": "2025-03-10T10:00:01Z"},
            {"sender": "assistant", "message": "Hello", "created_at": 1741600803},
            {"role": "user", "text": "odd timestamp", "timestamp": "yesterday-ish"},
            {"role": "user", "content": ""},
            "garbage",
        ]}})})
        fetched = client.fetch_messages("abc")
        assert fetched == [
            {"role": "user", "content": "Hi", "timestamp": "2025-03-10T10:00:01+00:00"},
            {"role": "assistant", "content": "Hello", "timestamp": "2025-03-10T10:00:03+00:00"},
            {"role": "user", "content": "odd timestamp", "timestamp": None},
        ]

    def test_fetch_messages_accepts_bare_list(self):
        client, _ = _client({"streaming.messages": FakeResponse(200, [
            {"role": "avatar", "content": "Hi"},
        ])})
        assert client.fetch_messages("abc")[0]["content"] == "Hi"
