import logging
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from estate_crm.config import Settings
from estate_crm.schemas.session import Session, SessionUser, TokenSet

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class OAuthProvider:
    client_id: str
    client_secret: str
    redirect_uri: str
    scope: str
    authorize_url: str
    token_url: str
    userinfo_url: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "OAuthProvider":
        return cls(
            client_id=settings.GHL_CLIENT_ID,
            client_secret=settings.GHL_CLIENT_SECRET,
            redirect_uri=settings.GHL_REDIRECT_URI,
            scope=settings.GHL_SCOPE,
            authorize_url=settings.GHL_AUTHORIZE_URL,
            token_url=settings.GHL_TOKEN_URL,
            userinfo_url=settings.GHL_USERINFO_URL,
        )


class AuthorizationCodeExchange:
    """OAuth 2.0 authorization-code flow against a single provider."""

    def __init__(self, provider: OAuthProvider, http: httpx.AsyncClient, timeout: float = 15.0):
        self.provider = provider
        self.http = http
        self.timeout = timeout

    def authorization_url(self, state: str) -> str:
        if not self.provider.client_id:
            raise OAuthError("OAuth client id is not configured")
        query = urlencode({
            "response_type": "code",
            "client_id": self.provider.client_id,
            "redirect_uri": self.provider.redirect_uri,
            "scope": self.provider.scope,
            "state": state,
        })
        return f"{self.provider.authorize_url}?{query}"

    async def exchange_code(self, code: str) -> TokenSet:
        logger.info(f"[OAuth] Exchanging authorization code (client={self.provider.client_id[:8]}...)")
        return await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.provider.redirect_uri,
        })

    async def refresh(self, refresh_token: str) -> TokenSet:
        logger.info("[OAuth] Refreshing access token")
        return await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        })

    async def _token_request(self, form: dict) -> TokenSet:
        if not self.provider.client_id or not self.provider.client_secret:
            raise OAuthError("OAuth client credentials are not configured")

        data = {
            "client_id": self.provider.client_id,
            "client_secret": self.provider.client_secret,
            **form,
        }
        try:
            resp = await self.http.post(
                self.provider.token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise OAuthError(f"Token request failed: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"[OAuth] Token endpoint returned {resp.status_code}: {resp.text[:200]}")
            raise OAuthError(f"Token endpoint returned {resp.status_code}", status_code=resp.status_code)

        try:
            payload = resp.json()
        except ValueError as e:
            raise OAuthError("Token endpoint returned a non-JSON body") from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise OAuthError("No access token received")

        logger.info("[OAuth] Token received")
        return TokenSet.from_response(payload)

    async def fetch_userinfo(self, access_token: str) -> dict:
        try:
            resp = await self.http.get(
                self.provider.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise OAuthError(f"Userinfo request failed: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"[OAuth] Userinfo endpoint returned {resp.status_code}: {resp.text[:200]}")
            raise OAuthError(f"Userinfo endpoint returned {resp.status_code}", status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise OAuthError("Userinfo endpoint returned a non-JSON body") from e

    async def login(self, code: str, location_id: str | None = None) -> Session:
        """Run the callback half of the flow: code -> tokens -> user."""
        tokens = await self.exchange_code(code)
        info = await self.fetch_userinfo(tokens.access_token)
        user = SessionUser.from_userinfo(info, location_id=location_id, client_id=self.provider.client_id)
        logger.info(f"[OAuth] Signed in user {user.id} (location={user.location_id or 'none'})")
        return Session(user=user, tokens=tokens)

    async def refresh_session(self, session: Session) -> Session:
        """Swap in fresh tokens; keep the old user if it cannot be re-read."""
        if not session.tokens.refresh_token:
            raise OAuthError("Session has no refresh token", status_code=401)

        tokens = await self.refresh(session.tokens.refresh_token)
        if not tokens.refresh_token:
            tokens = tokens.model_copy(update={"refresh_token": session.tokens.refresh_token})

        user = session.user
        try:
            info = await self.fetch_userinfo(tokens.access_token)
            user = SessionUser.from_userinfo(
                info,
                location_id=session.user.location_id,
                client_id=session.user.client_id or self.provider.client_id,
            )
        except OAuthError as e:
            logger.warning(f"[OAuth] Keeping cached user after refresh: {e}")
        return Session(user=user, tokens=tokens)
