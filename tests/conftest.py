"""Shared fixtures: an in-process fake of the router firmware HTTP endpoints."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from src.ndm.challenge import compute_response


class FakeResponse:
    """Minimal stand-in for ``requests.Response``."""

    def __init__(
        self,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
        body: Any = None,
    ) -> None:
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.cookies = dict(cookies or {})
        self._body = body

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


@dataclass
class Call:
    method: str
    url: str
    kwargs: dict[str, Any]


class FakeSession:
    def __init__(self, router: FakeRouter) -> None:
        self._router = router

    def __enter__(self) -> FakeSession:
        with self._router.lock:
            self._router.opened += 1
        return self

    def __exit__(self, *exc_info: object) -> None:
        with self._router.lock:
            self._router.closed += 1

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        with self._router.lock:
            self._router.calls.append(Call(method, url, kwargs))
        return self._router.handler(method, url, kwargs)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("GET", url, **kwargs)


@dataclass
class FakeRouter:
    """Session factory whose sessions answer through ``handler``."""

    handler: Callable[[str, str, dict[str, Any]], FakeResponse]
    calls: list[Call] = field(default_factory=list)
    opened: int = 0
    closed: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)

    def __call__(self) -> FakeSession:
        return FakeSession(self)

    def methods(self) -> list[str]:
        return [c.method for c in self.calls]


def ndm_auth_handler(
    users: dict[str, str],
    realm: str = "example",
    challenge: str = "abc123",
    cookie: tuple[str, str] = ("ndm_sid", "s1d"),
) -> Callable[[str, str, dict[str, Any]], FakeResponse]:
    """Canned ``/auth`` endpoint: 401 challenge on GET, verifies the POST body."""

    def handler(method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
        if not url.endswith("/auth"):
            return FakeResponse(404)
        if method == "GET":
            return FakeResponse(
                401,
                headers={"X-NDM-Realm": realm, "X-NDM-Challenge": challenge},
                cookies={cookie[0]: cookie[1]},
            )
        body = kwargs.get("json") or {}
        sent_cookies = dict(kwargs.get("cookies") or {})
        login = body.get("login", "")
        expected = compute_response(login, users.get(login, ""), realm, challenge) if login in users else None
        if body.get("password") == expected and sent_cookies.get(cookie[0]) == cookie[1]:
            return FakeResponse(200)
        return FakeResponse(401)

    return handler


def unreachable_handler(method: str, url: str, kwargs: dict[str, Any]) -> FakeResponse:
    raise requests.ConnectionError(f"connection refused: {url}")


@pytest.fixture
def ndm_router() -> FakeRouter:
    return FakeRouter(ndm_auth_handler({"alice": "secret"}))


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
