"""Shared fixtures for reqfile tests."""

import json

import pytest
from click.testing import CliRunner

from reqfile import core
from reqfile.executor import RequestResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def global_reqfile_dir(tmp_path, monkeypatch):
    """Override the global ~/.reqfile directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".reqfile"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    return fake_global


def make_request_result(
    status_code=200,
    body=None,
    headers=None,
    elapsed_ms=42.0,
    error=None,
    raw_text="",
):
    """Factory for mock RequestResult objects."""
    r = RequestResult()
    r.status_code = status_code
    r.headers = headers or {}
    r.body = body
    r.elapsed_ms = elapsed_ms
    r.error = error
    r.raw_text = raw_text or (
        json.dumps(body) if isinstance(body, dict | list) else str(body or "")
    )
    return r


class FakeTransport:
    """Records sends and replays queued results (200 with empty body once drained)."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def send(self, method, url, headers=None, body=None, timeout=30):
        self.calls.append(
            {"method": method, "url": url, "headers": headers, "body": body, "timeout": timeout},
        )
        if self.results:
            return self.results.pop(0)
        return make_request_result()
