from http.cookies import SimpleCookie

import httpx
import pytest
from fastapi import Response
from fastapi.testclient import TestClient

from estate_crm.auth import SessionStore
from estate_crm.config import Settings
from estate_crm.dependencies import get_http_client, get_settings
from estate_crm.main import app
from estate_crm.schemas.session import Session, SessionUser, TokenSet


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is awaited."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeUpstream:
    """Scripted remote APIs keyed by (method, path).

    Responses queued for a route are served in order; the last one repeats.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, status: int = 200, json=None, text: str | None = None):
        self.routes.setdefault((method, path), []).append((status, json, text))

    def fail(self, method: str, path: str, exc: Exception):
        self.routes.setdefault((method, path), []).append(exc)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"detail": "not scripted"})
        entry = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(entry, Exception):
            raise entry
        status, json, text = entry
        if text is not None:
            return httpx.Response(status, text=text)
        return httpx.Response(status, json=json)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        values = {
            "BRIGHT_DATA_API_KEY": "bd-test-key",
            "GHL_CLIENT_ID": "client-123",
            "GHL_CLIENT_SECRET": "secret-456",
            "GHL_AGENCY_API_TOKEN": "agency-token",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)
    return _make


@pytest.fixture
def app_settings(make_settings):
    return make_settings(SEARCH_POLL_INTERVAL_SECONDS=0)


@pytest.fixture
def client(app_settings, upstream):
    app.dependency_overrides[get_settings] = lambda: app_settings
    app.dependency_overrides[get_http_client] = lambda: upstream.client()
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_session():
    def _make(
        access_token: str = "access-1",
        refresh_token: str | None = "refresh-1",
        expires_at: float | None = None,
        location_id: str | None = "loc-1",
    ) -> Session:
        return Session(
            user=SessionUser(id="user-1", name="Dana Agent", email="dana@example.com", location_id=location_id),
            tokens=TokenSet(access_token=access_token, refresh_token=refresh_token, expires_at=expires_at),
        )
    return _make


@pytest.fixture
def session_cookie(app_settings):
    """Signed cookie value for a session, as the app would set it."""
    def _cookie(session: Session) -> str:
        response = Response()
        SessionStore(app_settings).store(response, session)
        jar = SimpleCookie()
        jar.load(response.headers["set-cookie"])
        return jar[app_settings.SESSION_COOKIE_NAME].value
    return _cookie


@pytest.fixture
def login(client, app_settings, session_cookie):
    def _login(session: Session):
        # same domain key the cookie jar uses for cookies set by the app, so responses can replace it
        client.cookies.set(
            app_settings.SESSION_COOKIE_NAME, session_cookie(session), domain="testserver.local"
        )
    return _login
