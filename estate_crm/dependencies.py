import httpx
from fastapi import Depends, HTTPException, Request

from estate_crm.auth import SessionStore
from estate_crm.config import Settings, settings
from estate_crm.schemas.session import Session
from estate_crm.services.brightdata import BrightDataClient
from estate_crm.services.ghl import GHLAgencyClient
from estate_crm.services.listing_search import ListingSearchService
from estate_crm.services.oauth import AuthorizationCodeExchange, OAuthProvider
from estate_crm.services.result_fetcher import load_fallback_listings


def get_settings() -> Settings:
    return settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


def get_session_store(settings: Settings = Depends(get_settings)) -> SessionStore:
    return SessionStore(settings)


def current_session_store(request: Request) -> SessionStore:
    """Session store for code outside the dependency graph (middleware).

    Resolves settings through the same provider the routes use, overrides included.
    """
    provider = request.app.dependency_overrides.get(get_settings, get_settings)
    return SessionStore(provider())


def get_oauth(
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> AuthorizationCodeExchange:
    return AuthorizationCodeExchange(
        OAuthProvider.from_settings(settings), http, timeout=settings.GHL_TIMEOUT_SECONDS
    )


def get_agency_client(
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> GHLAgencyClient:
    return GHLAgencyClient(settings, http)


def get_brightdata_client(
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> BrightDataClient:
    return BrightDataClient(settings, http)


def get_listing_search(
    settings: Settings = Depends(get_settings),
    client: BrightDataClient = Depends(get_brightdata_client),
) -> ListingSearchService:
    fallback = load_fallback_listings(settings.fallback_listings_path)
    return ListingSearchService(settings, client, fallback)


async def require_session(request: Request) -> Session:
    session = getattr(request.state, "session", None)
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session
