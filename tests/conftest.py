import json
from pathlib import Path
from typing import Any, Callable, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from fanfeed import http
from fanfeed.app import create_app
from fanfeed.store import MemoryPostStore


@pytest.fixture
def fixture_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def load_fixture(fixture_dir):
    def _loader(name: str) -> Any:
        with open(fixture_dir / name, "r", encoding="utf-8") as f:
            return json.load(f)
    return _loader


@pytest.fixture
def read_fixture(fixture_dir):
    def _reader(name: str) -> str:
        return (fixture_dir / name).read_text(encoding="utf-8")
    return _reader


Route = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class MockUpstream:
    """Routes keyed by ``host + path``; unknown URLs answer 404. Every request is recorded."""

    def __init__(self):
        self.routes: dict[str, Route] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url_prefix: str, route: Route) -> "MockUpstream":
        self.routes[url_prefix] = route
        return self

    def requested(self, fragment: str) -> bool:
        return any(fragment in str(r.url) for r in self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        target = f"{request.url.host}{request.url.path}"
        for prefix in sorted(self.routes, key=len, reverse=True):
            if target.startswith(prefix):
                route = self.routes[prefix]
                return route(request) if callable(route) else route
        return httpx.Response(404, text="not found")


@pytest.fixture
def upstream(monkeypatch):
    """Send every fanfeed HTTP client through an in-process mock upstream."""
    mock = MockUpstream()
    monkeypatch.setattr(http, "_cookies_store", {})
    http._cookie_cache.clear()
    http.set_transport(httpx.MockTransport(mock))
    yield mock
    http.set_transport(None)
    http._cookie_cache.clear()


@pytest.fixture
def store():
    return MemoryPostStore(max_posts=50)


@pytest.fixture
def api(store):
    with TestClient(create_app(store=store)) as client:
        yield client


@pytest.fixture
def auth_headers(api):
    from fanfeed.auth import create_token

    token, _ = create_token("admin")
    return {"Authorization": f"Bearer {token}"}
