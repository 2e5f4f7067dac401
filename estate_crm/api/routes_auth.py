import logging
from datetime import datetime, timezone
from urllib.parse import quote_plus

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from estate_crm.auth import SessionStore
from estate_crm.config import Settings
from estate_crm.dependencies import get_agency_client, get_oauth, get_session_store, get_settings
from estate_crm.schemas.auth import RegisterRequest, RegisterResponse
from estate_crm.services.ghl import GHLAgencyClient, GHLApiError
from estate_crm.services.oauth import AuthorizationCodeExchange, OAuthError
from estate_crm.services.registration import register_account

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _error_redirect(message: str) -> RedirectResponse:
    return RedirectResponse(url=f"/?error={quote_plus(message)}", status_code=302)


@router.get("/gohighlevel")
async def start_oauth(
    store: SessionStore = Depends(get_session_store),
    oauth: AuthorizationCodeExchange = Depends(get_oauth),
):
    if not oauth.provider.client_id:
        logger.error("[OAuth] GHL_CLIENT_ID is not set")
        return _error_redirect("Missing GoHighLevel client ID")

    state = store.new_state()
    url = oauth.authorization_url(state)
    logger.info(f"[OAuth] Redirecting to authorization page (redirect_uri={oauth.provider.redirect_uri})")
    response = RedirectResponse(url=url, status_code=302)
    store.remember_state(response, state)
    return response


# Older redirect URIs registered with the marketplace app land on the same handler
@router.get("/callback/gohighlevel")
@router.get("/gohighlevel/callback")
@router.get("/callback")
async def oauth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    locationId: str | None = None,
    store: SessionStore = Depends(get_session_store),
    oauth: AuthorizationCodeExchange = Depends(get_oauth),
):
    if error:
        logger.error(f"[OAuth] Provider returned error: {error} {error_description or ''}")
        return _error_redirect(error_description or error)

    if not code:
        return JSONResponse(status_code=400, content={"detail": "No authorization code provided"})

    if not store.verify_state(request, state):
        logger.warning("[OAuth] State mismatch on callback")
        return _error_redirect("Invalid OAuth state")

    try:
        session = await oauth.login(code, location_id=locationId)
    except OAuthError as e:
        logger.error(f"[OAuth] Callback failed: {e}")
        return JSONResponse(status_code=500, content={"detail": f"Authentication failed: {e}"})

    target = "/dashboard" if session.user.location_id else "/onboarding"
    response = RedirectResponse(url=target, status_code=302)
    store.store(response, session)
    store.clear_state(response)
    return response


@router.post("/refresh")
async def refresh_token(
    request: Request,
    store: SessionStore = Depends(get_session_store),
    oauth: AuthorizationCodeExchange = Depends(get_oauth),
):
    session = store.read(request)
    if session is None or not session.tokens.refresh_token:
        return JSONResponse(status_code=401, content={"detail": "No refresh token found"})

    try:
        refreshed = await oauth.refresh_session(session)
    except OAuthError as e:
        logger.error(f"[OAuth] Token refresh failed: {e}")
        response = JSONResponse(status_code=401, content={"detail": "Failed to refresh token"})
        store.clear(response)
        return response

    response = JSONResponse(content={"success": True})
    store.store(response, refreshed)
    return response


@router.get("/user")
async def current_user(request: Request, store: SessionStore = Depends(get_session_store)):
    session = store.read(request)
    if session is None:
        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
    return {"user": session.user.model_dump(), "access_token": session.tokens.access_token}


@router.get("/session")
async def current_session(request: Request, store: SessionStore = Depends(get_session_store)):
    session = store.read(request)
    if session is None:
        return {"user": None}

    expires = None
    if session.tokens.expires_at:
        expires = datetime.fromtimestamp(session.tokens.expires_at, tz=timezone.utc).isoformat()
    return {"user": session.user.model_dump(), "expires": expires}


@router.post("/signout")
async def signout(store: SessionStore = Depends(get_session_store)):
    response = JSONResponse(content={"success": True})
    store.clear(response)
    logger.info("[Auth] User signed out")
    return response


@router.get("/signout")
async def signout_redirect(store: SessionStore = Depends(get_session_store)):
    response = RedirectResponse(url="/", status_code=302)
    store.clear(response)
    logger.info("[Auth] User signed out")
    return response


@router.post("/register", response_model=RegisterResponse)
async def register(
    req: RegisterRequest,
    response: Response,
    store: SessionStore = Depends(get_session_store),
    agency: GHLAgencyClient = Depends(get_agency_client),
    settings: Settings = Depends(get_settings),
):
    if not agency.configured:
        logger.error("[Register] GHL_AGENCY_API_TOKEN is not set")
        return JSONResponse(status_code=500, content={"detail": "Server configuration error"})

    try:
        registration = await register_account(agency, req, client_id=settings.GHL_CLIENT_ID)
    except GHLApiError as e:
        logger.error(f"[Register] Registration failed: {e}")
        return JSONResponse(status_code=502, content={"detail": str(e)})

    store.store(response, registration.session)
    return RegisterResponse(
        success=True,
        message="Registration successful",
        location_id=registration.location_id,
        user_id=registration.user_id,
    )
