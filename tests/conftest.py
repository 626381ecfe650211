"""Shared test fixtures and helpers."""
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest
import requests


class FakeClock:
    """Settable clock standing in for ``time.time``."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fake_response(json_data: Any = None, status: int = 200, text: str = "", content: bytes = b"") -> Mock:
    """A ``requests.Response`` stand-in; non-2xx raises on ``raise_for_status``."""
    resp = Mock()
    resp.status_code = status
    resp.text = text
    resp.content = content
    resp.json.return_value = json_data
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(
            f"{status} Error", response=Mock(status_code=status)
        )
    else:
        resp.raise_for_status.return_value = None
    return resp


class FakeSession:
    """Routes ``session.request`` to canned responses by URL prefix and records calls."""

    def __init__(self, routes: Optional[Dict[str, Mock]] = None):
        self.routes = routes or {}
        self.calls: List[str] = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.calls.append(url)
        for prefix, resp in self.routes.items():
            if url.startswith(prefix):
                return resp
        raise requests.ConnectionError(f"no route for {url}")


@pytest.fixture
def clock():
    return FakeClock()
