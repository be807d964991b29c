"""Tests for Session (chained execution) and the requests-based transport."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from reqfile.executor import FileBodyLoader, RequestsTransport, Session
from reqfile.parser import parse
from tests.conftest import FakeTransport, make_request_result

CHAINED = """\
@baseUrl = https://api.example.com

### Login
# @name login
POST {{baseUrl}}/login
Content-Type: application/json

{"user":"a"}

### Profile
# @name profile
GET {{baseUrl}}/profile
Authorization: Bearer {{login.response.body.$.token}}
X-Sent-User: {{login.request.body.$.user}}
X-Sent-Type: {{login.request.headers.Content-Type}}
"""


def _session(content, *results, path="api.http", **kwargs):
    transport = FakeTransport(*results)
    kwargs.setdefault("env", {})
    session = Session(parse(content, path), transport=transport, **kwargs)
    return session, transport


# ── Chaining ─────────────────────────────────────────────────────────────


class TestChaining:
    def test_token_flows_into_next_request(self):
        session, transport = _session(CHAINED, make_request_result(body={"token": "abc"}))
        results = session.run()

        assert len(results) == 2
        assert transport.calls[0]["method"] == "POST"
        assert transport.calls[0]["url"] == "https://api.example.com/login"
        assert transport.calls[0]["body"] == '{"user":"a"}'
        assert transport.calls[1]["url"] == "https://api.example.com/profile"
        assert transport.calls[1]["headers"]["Authorization"] == "Bearer abc"
        assert results[1][1].prepared.url == "https://api.example.com/profile"

    def test_request_side_references(self):
        session, transport = _session(CHAINED, make_request_result(body={"token": "abc"}))
        session.run()
        headers = transport.calls[1]["headers"]
        assert headers["X-Sent-User"] == "a"
        assert headers["X-Sent-Type"] == "application/json"

    def test_named_requests_are_captured(self):
        session, _ = _session(CHAINED, make_request_result(status_code=201, body={"token": "abc"}))
        session.run()
        assert len(session.store) == 2
        assert session.store.get("login").status_code == 201

    def test_unnamed_requests_not_captured(self):
        session, _ = _session("GET http://a/\n")
        session.run()
        assert len(session.store) == 0

    def test_clear(self):
        session, _ = _session(CHAINED, make_request_result(body={"token": "abc"}))
        session.run()
        session.clear()
        assert len(session.store) == 0

    def test_explicit_order(self):
        session, transport = _session(CHAINED)
        profile, login = reversed(session.http_file.requests)
        session.run([profile, login])
        assert transport.calls[0]["headers"]["Authorization"] == (
            "Bearer {{login.response.body.$.token}}"
        )


class TestStopOnError:
    def test_transport_error_stops_run(self):
        session, transport = _session(CHAINED, make_request_result(error="Connection error: boom"))
        results = session.run()
        assert len(results) == 1
        assert results[0][1].error == "Connection error: boom"
        assert len(transport.calls) == 1
        assert len(session.store) == 0

    def test_missing_body_file_stops_run(self, tmp_path):
        content = "POST http://a/upload\n\n< ./missing.json\n\n###\nGET http://a/next\n"
        session, transport = _session(content, path=str(tmp_path / "api.http"))
        results = session.run()
        assert len(results) == 1
        assert "Cannot read body file" in results[0][1].error
        assert transport.calls == []


# ── Preparation ──────────────────────────────────────────────────────────


class TestPrepare:
    def test_scope_precedence(self):
        content = (
            "@who = file\n"
            "@only = file\n"
            "GET http://a/{{who}}/{{only}}/{{cfg}}\n"
            "\n"
            "###\n"
            "@who = request\n"
            "GET http://b/{{who}}/{{cli}}\n"
        )
        session, _ = _session(
            content,
            defaults={"who": "config", "cfg": "config"},
            overrides={"cli": "override"},
        )
        first, second = session.http_file.requests
        assert session.prepare(first).url == "http://a/file/file/config"
        assert session.prepare(second).url == "http://b/request/override"

    def test_overrides_win(self):
        session, _ = _session("@who = file\nGET http://a/{{who}}\n", overrides={"who": "cli"})
        assert session.prepare(session.http_file.requests[0]).url == "http://a/cli"

    def test_default_content_type_for_body(self):
        session, _ = _session("POST http://a/\n\n{}\n")
        prepared = session.prepare(session.http_file.requests[0])
        assert prepared.headers["content-type"] == "application/json"

    def test_no_content_type_without_body(self):
        session, _ = _session("GET http://a/\n")
        prepared = session.prepare(session.http_file.requests[0])
        assert "Content-Type" not in prepared.headers

    def test_explicit_content_type_kept(self):
        session, _ = _session("POST http://a/\ncontent-type: text/plain\n\nhi\n")
        prepared = session.prepare(session.http_file.requests[0])
        assert prepared.headers["Content-Type"] == "text/plain"
        assert len(prepared.headers) == 1

    def test_default_headers_overridden_by_request(self):
        session, _ = _session(
            "GET http://a/\nAccept: application/json\n",
            default_headers={"accept": "text/plain", "X-Client": "{{client}}"},
            defaults={"client": "reqfile"},
        )
        prepared = session.prepare(session.http_file.requests[0])
        assert prepared.headers["Accept"] == "application/json"
        assert prepared.headers["X-Client"] == "reqfile"

    def test_dynamic_variables_resolved(self):
        session, _ = _session("GET http://a/?k={{$processEnv KEY}}\n", env={"KEY": "v"})
        assert session.prepare(session.http_file.requests[0]).url == "http://a/?k=v"

    def test_file_body(self, tmp_path):
        (tmp_path / "payload.json").write_bytes(b'{"from": "file"}')
        content = "@file = payload\nPOST http://a/upload\n\n< ./{{file}}.json\n"
        session, transport = _session(
            content,
            make_request_result(),
            path=str(tmp_path / "api.http"),
        )
        request = session.http_file.requests[0]
        prepared = session.prepare(request)
        assert prepared.body == b'{"from": "file"}'
        assert prepared.headers["Content-Type"] == "application/json"

        request.name = "upload"
        session.send(request)
        assert transport.calls[0]["body"] == b'{"from": "file"}'
        assert session.store.get("upload").request_body == '{"from": "file"}'

    def test_timeout_passed_to_transport(self):
        session, transport = _session("GET http://a/\n", timeout=7)
        session.run()
        assert transport.calls[0]["timeout"] == 7


class TestFileBodyLoader:
    def test_relative_to_base_dir(self, tmp_path):
        (tmp_path / "b.txt").write_bytes(b"data")
        assert FileBodyLoader(tmp_path).read_bytes("b.txt") == b"data"

    def test_absolute_path(self, tmp_path):
        target = tmp_path / "abs.txt"
        target.write_bytes(b"abs")
        assert FileBodyLoader("/elsewhere").read_bytes(str(target)) == b"abs"

    def test_missing_raises(self, tmp_path):
        with pytest.raises(OSError):
            FileBodyLoader(tmp_path).read_bytes("nope.txt")


# ── RequestsTransport ────────────────────────────────────────────────────


def _mock_response(status_code=200, text="", headers=None, json_body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.headers = headers or {}
    if json_body is None:
        resp.json.side_effect = json.JSONDecodeError("no json", text, 0)
    else:
        resp.json.return_value = json_body
    return resp


class TestRequestsTransport:
    @patch("reqfile.executor.requests.request")
    def test_json_response(self, mock_request):
        mock_request.return_value = _mock_response(
            text='{"a": 1}',
            headers={"Content-Type": "application/json"},
            json_body={"a": 1},
        )
        result = RequestsTransport().send(
            "post",
            "http://a/",
            headers={"X": "1"},
            body='{"q": 1}',
            timeout=5,
        )
        assert result.error is None
        assert result.status_code == 200
        assert result.body == {"a": 1}
        assert result.raw_text == '{"a": 1}'
        assert result.headers == {"Content-Type": "application/json"}

        kwargs = mock_request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["data"] == b'{"q": 1}'
        assert kwargs["headers"] == {"X": "1"}
        assert kwargs["timeout"] == 5

    @patch("reqfile.executor.requests.request")
    def test_text_response(self, mock_request):
        mock_request.return_value = _mock_response(text="<ok/>")
        result = RequestsTransport().send("GET", "http://a/")
        assert result.body == "<ok/>"
        assert mock_request.call_args.kwargs["data"] is None

    @patch("reqfile.executor.requests.request")
    def test_timeout(self, mock_request):
        mock_request.side_effect = requests.exceptions.Timeout()
        result = RequestsTransport().send("GET", "http://a/", timeout=3)
        assert result.error == "Request timed out after 3s"

    @patch("reqfile.executor.requests.request")
    def test_connection_error(self, mock_request):
        mock_request.side_effect = requests.exceptions.ConnectionError("refused")
        result = RequestsTransport().send("GET", "http://a/")
        assert result.error.startswith("Connection error:")

    def test_uses_given_session(self):
        http = MagicMock()
        http.request.return_value = _mock_response(text="ok")
        result = RequestsTransport(session=http).send("GET", "http://a/")
        assert result.body == "ok"
        http.request.assert_called_once()

    @patch("reqfile.executor.requests.request")
    def test_unexpected_error(self, mock_request):
        mock_request.side_effect = UnicodeEncodeError("latin-1", "€", 0, 1, "ordinal not in range(256)")
        result = RequestsTransport().send("GET", "http://a/", headers={"X-Token": "€"})
        assert result.error.startswith("Unexpected error:")
        assert result.status_code == 0

    @patch("reqfile.executor.requests.request")
    def test_unexpected_error_stops_session(self, mock_request):
        mock_request.side_effect = UnicodeEncodeError("latin-1", "€", 0, 1, "ordinal not in range(256)")
        content = "# @name a\nGET http://a/\nX-Token: €\n\n###\nGET http://b/\n"
        session = Session(parse(content, "api.http"), env={})
        results = session.run()
        assert len(results) == 1
        assert results[0][1].error.startswith("Unexpected error:")
        assert mock_request.call_count == 1
        assert len(session.store) == 0
