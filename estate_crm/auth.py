import logging
import secrets
from typing import Callable

from itsdangerous import URLSafeTimedSerializer, SignatureExpired, BadSignature
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from estate_crm.config import Settings
from estate_crm.schemas.session import Session

logger = logging.getLogger(__name__)

# Browsers silently drop cookies over 4096 bytes, name and attributes included
MAX_COOKIE_BYTES = 4000

# Cookie names left behind by the two earlier session layouts; cleared on sign-out
LEGACY_COOKIES = (
    "ghl_user", "ghl_access_token", "ghl_refresh_token",
    "user", "access_token", "refresh_token",
)


class SessionStore:
    """Signed-cookie storage for the CRM session (store / read / clear)."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._serializer = URLSafeTimedSerializer(settings.SESSION_SECRET_KEY)

    def _set_cookie(self, response: Response, name: str, value: str, max_age: int):
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            path="/",
            httponly=True,
            secure=self.settings.COOKIE_SECURE,
            samesite="lax",
        )

    # --- Session ---

    def store(self, response: Response, session: Session):
        token = self._serializer.dumps(session.model_dump(mode="json"), salt="session")
        if len(token) > MAX_COOKIE_BYTES:
            logger.warning(
                f"[Session] Session cookie is {len(token)} bytes, browsers may drop it "
                f"(limit ~{MAX_COOKIE_BYTES})"
            )
        self._set_cookie(response, self.settings.SESSION_COOKIE_NAME, token, self.settings.SESSION_MAX_AGE)

    def read(self, request: Request) -> Session | None:
        token = request.cookies.get(self.settings.SESSION_COOKIE_NAME)
        if not token:
            return None
        try:
            data = self._serializer.loads(token, salt="session", max_age=self.settings.SESSION_MAX_AGE)
            return Session.model_validate(data)
        except (SignatureExpired, BadSignature):
            logger.info("[Session] Rejected expired or tampered session cookie")
            return None
        except ValidationError as e:
            logger.warning(f"[Session] Session cookie has an unexpected layout: {e}")
            return None

    def clear(self, response: Response):
        response.delete_cookie(self.settings.SESSION_COOKIE_NAME, path="/")
        for name in LEGACY_COOKIES:
            response.delete_cookie(name, path="/")

    # --- OAuth state ---

    @staticmethod
    def new_state() -> str:
        return secrets.token_urlsafe(16)

    def remember_state(self, response: Response, state: str):
        self._set_cookie(
            response,
            self.settings.OAUTH_STATE_COOKIE_NAME,
            self._serializer.dumps(state, salt="oauth-state"),
            self.settings.OAUTH_STATE_MAX_AGE,
        )

    def verify_state(self, request: Request, state: str | None) -> bool:
        token = request.cookies.get(self.settings.OAUTH_STATE_COOKIE_NAME)
        if not token or not state:
            return False
        try:
            expected = self._serializer.loads(
                token, salt="oauth-state", max_age=self.settings.OAUTH_STATE_MAX_AGE
            )
        except (SignatureExpired, BadSignature):
            return False
        return secrets.compare_digest(str(expected), state)

    def clear_state(self, response: Response):
        response.delete_cookie(self.settings.OAUTH_STATE_COOKIE_NAME, path="/")


# --- Middleware ---

PROTECTED_PREFIXES = ("/api/ghl/",)


class AuthMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, store_for: Callable[[Request], SessionStore]):
        super().__init__(app)
        self.store_for = store_for

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if not any(path.startswith(p) for p in PROTECTED_PREFIXES):
            return await call_next(request)

        session = self.store_for(request).read(request)
        if session is None:
            return JSONResponse(status_code=401, content={"detail": "Not authenticated"})

        request.state.session = session
        return await call_next(request)
