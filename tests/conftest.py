# Shared pytest fixtures: fake upstream, fake clock, configured app
from __future__ import annotations

import threading

import pytest
import requests

from boothmap import create_app
from boothmap.integrations import google_sheets_source
from boothmap.integrations.google_sheets_source import build_live_query_url, normalize_publish_url

PUBLISH_URL = "https://docs.google.com/spreadsheets/d/e/2PACX-test/pubhtml"
EDIT_URL = "https://docs.google.com/spreadsheets/d/SHEET123/edit#gid=0"
PUB_CSV_URL = normalize_publish_url(PUBLISH_URL)
LIVE_URL = build_live_query_url(EDIT_URL, "0")

SAMPLE_CSV = "攤位編號,社團名稱,創作主題\nA01,某社,BL\n,,GL\n"
LOGIN_PAGE = "<!DOCTYPE html><html><head><title>Sign in</title></head><body></body></html>"


def make_response(body: str, status: int = 200, content_type: str = "text/csv; charset=utf-8"):
    resp = requests.Response()
    resp.status_code = status
    resp._content = body.encode("utf-8")
    if content_type:
        resp.headers["Content-Type"] = content_type
    resp.encoding = requests.utils.get_encoding_from_headers(resp.headers)
    return resp


class FakeUpstream:
    """Stands in for ``requests.get``; records every URL it is asked for."""

    def __init__(self, routes=None, default=None):
        self.routes = dict(routes or {})
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, url, **kwargs):
        with self._lock:
            self.calls.append(url)
        outcome = self.routes.get(url, self.default)
        if outcome is None:
            raise requests.ConnectionError(f"no route to {url}")
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome()
        return outcome


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def upstream(monkeypatch) -> FakeUpstream:
    fake = FakeUpstream(routes={LIVE_URL: make_response(SAMPLE_CSV)})
    monkeypatch.setattr(google_sheets_source.requests, "get", fake)
    return fake


@pytest.fixture()
def app_config(tmp_path) -> dict:
    return {
        "TESTING": True,
        "PUBLIC_CSV_URL": PUBLISH_URL,
        "PUBLIC_SHEET_EDIT_URL": EDIT_URL,
        "LOG_DIR": str(tmp_path / "logs"),
        "LOG_LEVEL": "DEBUG",
        "CACHE_TTL_SECONDS": 15,
    }


@pytest.fixture()
def app(app_config, upstream):
    return create_app(app_config)


@pytest.fixture()
def client(app):
    return app.test_client()
