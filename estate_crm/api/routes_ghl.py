import logging
from typing import Awaitable, Callable

import httpx
from fastapi import APIRouter, Body, Depends, HTTPException, Response

from estate_crm.auth import SessionStore
from estate_crm.config import Settings
from estate_crm.dependencies import (
    get_http_client, get_oauth, get_session_store, get_settings, require_session,
)
from estate_crm.schemas.session import Session
from estate_crm.services.ghl import GHLApiError, GHLClient
from estate_crm.services.oauth import AuthorizationCodeExchange, OAuthError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ghl", tags=["crm"])


class CRMSession:
    """Runs CRM calls for the signed-in user, refreshing the token when needed."""

    def __init__(
        self,
        session: Session,
        response: Response,
        store: SessionStore,
        oauth: AuthorizationCodeExchange,
        settings: Settings,
        http: httpx.AsyncClient,
    ):
        self.session = session
        self.response = response
        self.store = store
        self.oauth = oauth
        self.settings = settings
        self.http = http
        self.refreshed = False

    @property
    def location_id(self) -> str | None:
        return self.session.user.location_id

    async def _refresh(self):
        try:
            self.session = await self.oauth.refresh_session(self.session)
        except OAuthError as e:
            logger.warning(f"[GHL] Token refresh failed: {e}")
            raise HTTPException(status_code=401, detail="Session expired")
        self.refreshed = True
        self.store.store(self.response, self.session)

    def _error(self, e: GHLApiError) -> HTTPException:
        exc = _http_error(e)
        # error responses do not carry the injected response's cookies
        if self.refreshed:
            carrier = Response()
            self.store.store(carrier, self.session)
            exc.headers = {"set-cookie": carrier.headers["set-cookie"]}
        return exc

    async def call(self, fn: Callable[[GHLClient], Awaitable]):
        can_refresh = bool(self.session.tokens.refresh_token)
        if self.session.is_expired and can_refresh:
            logger.info("[GHL] Access token expired, refreshing before the call")
            await self._refresh()
            can_refresh = False

        try:
            return await fn(GHLClient(self.session.tokens.access_token, self.settings, self.http))
        except GHLApiError as e:
            if e.status_code != 401 or not can_refresh:
                raise self._error(e)
        logger.info("[GHL] Upstream rejected the token, refreshing and retrying once")
        await self._refresh()
        try:
            return await fn(GHLClient(self.session.tokens.access_token, self.settings, self.http))
        except GHLApiError as e:
            raise self._error(e)


def _http_error(e: GHLApiError) -> HTTPException:
    if e.status_code == 401:
        return HTTPException(status_code=401, detail="Not authorized by Go High Level")
    return HTTPException(status_code=502, detail=str(e))


def get_crm(
    response: Response,
    session: Session = Depends(require_session),
    store: SessionStore = Depends(get_session_store),
    oauth: AuthorizationCodeExchange = Depends(get_oauth),
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> CRMSession:
    return CRMSession(session, response, store, oauth, settings, http)


def _resolve_location(crm: CRMSession, location_id: str | None) -> str:
    location_id = location_id or crm.location_id
    if not location_id:
        raise HTTPException(status_code=400, detail="No location selected")
    return location_id


@router.get("/locations")
async def list_locations(crm: CRMSession = Depends(get_crm)):
    return await crm.call(lambda api: api.get_locations())


@router.get("/locations/{location_id}")
async def get_location(location_id: str, crm: CRMSession = Depends(get_crm)):
    return await crm.call(lambda api: api.get_location(location_id))


@router.post("/locations")
async def create_location(payload: dict = Body(...), crm: CRMSession = Depends(get_crm)):
    return await crm.call(lambda api: api.create_location(payload))


@router.get("/contacts")
async def list_contacts(location_id: str | None = None, crm: CRMSession = Depends(get_crm)):
    location_id = _resolve_location(crm, location_id)
    return await crm.call(lambda api: api.get_contacts(location_id))


@router.get("/pipelines")
async def list_pipelines(location_id: str | None = None, crm: CRMSession = Depends(get_crm)):
    location_id = _resolve_location(crm, location_id)
    return await crm.call(lambda api: api.get_pipelines(location_id))


@router.get("/opportunities")
async def list_opportunities(pipeline_id: str, crm: CRMSession = Depends(get_crm)):
    return await crm.call(lambda api: api.get_opportunities(pipeline_id))


@router.post("/opportunities")
async def create_opportunity(payload: dict = Body(...), crm: CRMSession = Depends(get_crm)):
    return await crm.call(lambda api: api.create_opportunity(payload))


@router.get("/user")
async def crm_user(crm: CRMSession = Depends(get_crm)):
    return await crm.call(lambda api: api.get_user_info())
