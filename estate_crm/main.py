import logging
import traceback
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from estate_crm.auth import AuthMiddleware
from estate_crm.config import settings
from estate_crm.dependencies import current_session_store
from estate_crm.api.routes_auth import router as auth_router
from estate_crm.api.routes_ghl import router as ghl_router
from estate_crm.api.routes_listings import router as listings_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for name in settings.missing_oauth_settings():
        logger.warning(f"Missing required setting: {name}")
    if not settings.bright_data_enabled:
        logger.warning("BRIGHT_DATA_API_KEY is not set, listing searches will use fallback data")

    app.state.http = httpx.AsyncClient(follow_redirects=True)
    yield
    await app.state.http.aclose()


app = FastAPI(title="EstateCRM", version="0.1.0", lifespan=lifespan)
app.add_middleware(AuthMiddleware, store_for=current_session_store)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exc()
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}\n{tb}")
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "bright_data": settings.bright_data_enabled,
        "oauth": not settings.missing_oauth_settings(),
    }


# API routes
app.include_router(auth_router)
app.include_router(ghl_router)
app.include_router(listings_router)
