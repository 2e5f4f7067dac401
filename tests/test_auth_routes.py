import time
from urllib.parse import parse_qs, urlparse

import pytest

from estate_crm.dependencies import get_settings
from estate_crm.main import app

TOKEN = "/oauth/token"
USERINFO = "/oauth/userinfo"


def _start(client) -> str:
    resp = client.get("/api/auth/gohighlevel", follow_redirects=False)
    assert resp.status_code == 302
    return parse_qs(urlparse(resp.headers["location"]).query)["state"][0]


class TestStart:
    def test_redirects_to_authorize_page(self, client):
        resp = client.get("/api/auth/gohighlevel", follow_redirects=False)

        assert resp.status_code == 302
        assert resp.headers["location"].startswith(
            "https://marketplace.gohighlevel.com/oauth/chooselocation?"
        )
        assert "ghl_oauth_state" in client.cookies

    def test_missing_client_id(self, client, make_settings):
        app.dependency_overrides[get_settings] = lambda: make_settings(GHL_CLIENT_ID="")
        resp = client.get("/api/auth/gohighlevel", follow_redirects=False)

        assert resp.status_code == 302
        assert resp.headers["location"] == "/?error=Missing+GoHighLevel+client+ID"


class TestCallback:
    def _script_login(self, upstream, userinfo=None):
        upstream.add("POST", TOKEN, json={
            "access_token": "at-1", "refresh_token": "rt-1", "expires_in": 86399,
        })
        upstream.add("GET", USERINFO, json=userinfo or {
            "id": "u-9", "name": "Dana Agent", "email": "dana@example.com",
        })

    def test_successful_login_with_location(self, client, upstream):
        self._script_login(upstream)
        state = _start(client)

        resp = client.get(
            "/api/auth/callback/gohighlevel",
            params={"code": "abc", "state": state, "locationId": "loc-5"},
            follow_redirects=False,
        )

        assert resp.status_code == 302
        assert resp.headers["location"] == "/dashboard"
        me = client.get("/api/auth/user").json()
        assert me["user"]["id"] == "u-9"
        assert me["user"]["location_id"] == "loc-5"
        assert me["access_token"] == "at-1"

    def test_login_without_location_goes_to_onboarding(self, client, upstream):
        self._script_login(upstream)
        state = _start(client)

        resp = client.get(
            "/api/auth/callback/gohighlevel",
            params={"code": "abc", "state": state},
            follow_redirects=False,
        )
        assert resp.headers["location"] == "/onboarding"

    @pytest.mark.parametrize("path", [
        "/api/auth/callback/gohighlevel",
        "/api/auth/gohighlevel/callback",
        "/api/auth/callback",
    ])
    def test_provider_error_redirects_home(self, client, path):
        resp = client.get(path, params={"error": "access_denied"}, follow_redirects=False)
        assert resp.status_code == 302
        assert resp.headers["location"] == "/?error=access_denied"

    def test_missing_code(self, client):
        resp = client.get("/api/auth/callback/gohighlevel")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No authorization code provided"

    def test_state_mismatch(self, client, upstream):
        _start(client)
        resp = client.get(
            "/api/auth/callback/gohighlevel",
            params={"code": "abc", "state": "forged"},
            follow_redirects=False,
        )
        assert resp.headers["location"] == "/?error=Invalid+OAuth+state"
        assert upstream.calls("POST", TOKEN) == []

    def test_token_exchange_failure(self, client, upstream):
        upstream.add("POST", TOKEN, status=400, json={"error": "invalid_grant"})
        state = _start(client)

        resp = client.get("/api/auth/callback", params={"code": "abc", "state": state})

        assert resp.status_code == 500
        assert resp.json()["detail"].startswith("Authentication failed:")
        assert client.get("/api/auth/user").status_code == 401


class TestRefresh:
    def test_no_session(self, client):
        resp = client.post("/api/auth/refresh")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "No refresh token found"

    def test_session_without_refresh_token(self, client, login, make_session):
        login(make_session(refresh_token=None))
        assert client.post("/api/auth/refresh").status_code == 401

    def test_refresh_replaces_tokens(self, client, login, make_session, upstream):
        upstream.add("POST", TOKEN, json={"access_token": "access-2", "expires_in": 3600})
        upstream.add("GET", USERINFO, json={"id": "user-1", "name": "Dana Agent"})
        login(make_session())

        resp = client.post("/api/auth/refresh")

        assert resp.json() == {"success": True}
        assert client.get("/api/auth/user").json()["access_token"] == "access-2"

    def test_failed_refresh_signs_out(self, client, login, make_session, upstream):
        upstream.add("POST", TOKEN, status=401, json={"error": "invalid_grant"})
        login(make_session())

        resp = client.post("/api/auth/refresh")

        assert resp.status_code == 401
        assert resp.json()["detail"] == "Failed to refresh token"
        assert client.get("/api/auth/user").status_code == 401


class TestSessionInfo:
    def test_user_requires_session(self, client):
        resp = client.get("/api/auth/user")
        assert resp.status_code == 401

    def test_session_without_login(self, client):
        assert client.get("/api/auth/session").json() == {"user": None}

    def test_session_reports_expiry(self, client, login, make_session):
        login(make_session(expires_at=time.time() + 3600))
        body = client.get("/api/auth/session").json()

        assert body["user"]["name"] == "Dana Agent"
        assert body["expires"].endswith("+00:00")

    def test_tampered_cookie_is_anonymous(self, client):
        client.cookies.set("ghl_session", "not-a-signed-value", domain="testserver.local")
        assert client.get("/api/auth/session").json() == {"user": None}


class TestSignout:
    def test_post_signout(self, client, login, make_session):
        login(make_session())
        resp = client.post("/api/auth/signout")

        assert resp.json() == {"success": True}
        cleared = resp.headers.get_list("set-cookie")
        assert any(h.startswith("ghl_session=") for h in cleared)
        assert any(h.startswith("ghl_access_token=") for h in cleared)
        assert client.get("/api/auth/user").status_code == 401

    def test_get_signout_redirects_home(self, client, login, make_session):
        login(make_session())
        resp = client.get("/api/auth/signout", follow_redirects=False)

        assert resp.status_code == 302
        assert resp.headers["location"] == "/"


REGISTRATION = {
    "firstName": "Dana",
    "lastName": "Agent",
    "email": "dana@example.com",
    "password": "s3cret-pass",
    "businessName": "Dana Realty",
    "phone": "+13055550100",
}


class TestRegister:
    def test_creates_account_and_signs_in(self, client, upstream):
        upstream.add("POST", "/v1/locations", json={"id": "loc-new", "apiKey": "loc-api-key"})
        upstream.add("POST", "/v1/users/", json={"id": "usr-1"})

        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "Registration successful",
            "location_id": "loc-new",
            "user_id": "usr-1",
        }
        me = client.get("/api/auth/user").json()
        assert me["access_token"] == "loc-api-key"
        assert me["user"]["location_id"] == "loc-new"
        agency_auth = upstream.calls("POST", "/v1/locations")[0].headers["authorization"]
        assert agency_auth == "Bearer agency-token"

    def test_user_failure_removes_location(self, client, upstream):
        upstream.add("POST", "/v1/locations", json={"id": "loc-new"})
        upstream.add("POST", "/v1/users/", status=422, json={"message": "email taken"})
        upstream.add("DELETE", "/v1/locations/loc-new", json={})

        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 502
        assert len(upstream.calls("DELETE", "/v1/locations/loc-new")) == 1
        assert client.get("/api/auth/user").status_code == 401

    def test_without_agency_token(self, client, make_settings, upstream):
        app.dependency_overrides[get_settings] = lambda: make_settings(GHL_AGENCY_API_TOKEN="")
        resp = client.post("/api/auth/register", json=REGISTRATION)

        assert resp.status_code == 500
        assert resp.json()["detail"] == "Server configuration error"
        assert upstream.requests == []

    def test_invalid_body(self, client):
        resp = client.post("/api/auth/register", json={"email": "dana@example.com"})
        assert resp.status_code == 422
