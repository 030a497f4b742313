"""Pytest configuration and fixtures shared across all test modules.

Environment variables are pinned before anything imports the settings
module, so local .env files and shell variables can't change guard limits
under the tests.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_SWEEP_PROBABILITY", "0")

import json
from http.cookies import SimpleCookie
from typing import Callable

import pytest
from starlette.requests import Request
from starlette.responses import Response

from siwes_guard.core.config import Settings


class FakeClock:
    """Manually advanced time source (UNIX seconds)."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults as documented, independent of the environment."""
    return Settings()


def build_request(
    path: str,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    cookies: dict[str, str] | None = None,
) -> Request:
    """Build a bare Starlette request for calling guards directly."""
    raw_headers = [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode("latin-1")))
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "client": ("127.0.0.1", 50000),
        "root_path": "",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "headers": raw_headers,
    }
    return Request(scope)


@pytest.fixture
def make_request() -> Callable[..., Request]:
    return build_request


def csrf_cookie_value(token: str, expires_at: int) -> str:
    return json.dumps({"token": token, "expiresAt": expires_at}, separators=(",", ":"))


def read_set_cookie(response: Response, name: str = "csrf-token") -> str | None:
    """Return the unquoted value of cookie ``name`` set on ``response``."""
    for header in response.headers.getlist("set-cookie"):
        jar = SimpleCookie()
        jar.load(header)
        if name in jar:
            return jar[name].value
    return None


def response_json(response: Response) -> dict:
    return json.loads(response.body)
