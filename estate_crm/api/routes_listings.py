import logging
import time

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from estate_crm.dependencies import get_brightdata_client, get_listing_search
from estate_crm.errors import clean_error_message
from estate_crm.schemas.listing import (
    BatchSearchRequest, ListingSearchResponse, SnapshotCreateResponse,
    SnapshotStatusResponse, ZillowSearchRequest,
)
from estate_crm.services.brightdata import BrightDataClient, BrightDataError, build_search_url
from estate_crm.services.listing_search import ListingSearchService, OutcomeStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/zillow-search", tags=["listings"])

NO_DATA_MESSAGE = "No properties found. Please try again with different search parameters."
NO_MATCHES_MESSAGE = "No properties found in the specified price range."


@router.post("", response_model=ListingSearchResponse)
async def search_listings(
    request: ZillowSearchRequest,
    service: ListingSearchService = Depends(get_listing_search),
):
    started = time.monotonic()
    try:
        outcome = await service.search(request)
    except Exception as e:
        logger.exception(f"[Search] Unexpected error: {e}")
        body = ListingSearchResponse(
            success=False,
            used_fallback=True,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            error=f"Unexpected error: {clean_error_message(e)}",
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    if outcome.status is not OutcomeStatus.FOUND:
        message = NO_DATA_MESSAGE if outcome.status is OutcomeStatus.NO_DATA else NO_MATCHES_MESSAGE
        body = ListingSearchResponse(
            success=False,
            used_fallback=outcome.used_fallback,
            elapsed_ms=outcome.elapsed_ms,
            error=message,
        )
        return JSONResponse(status_code=404, content=body.model_dump())

    return ListingSearchResponse(
        success=True,
        listings=outcome.records,
        total=outcome.total_matched,
        used_fallback=outcome.used_fallback,
        elapsed_ms=outcome.elapsed_ms,
    )


def _require_configured(client: BrightDataClient):
    if not client.configured:
        raise HTTPException(status_code=503, detail="Bright Data API key is not configured")


@router.post("/batch", response_model=SnapshotCreateResponse)
async def batch_search(
    request: BatchSearchRequest,
    client: BrightDataClient = Depends(get_brightdata_client),
):
    _require_configured(client)
    if not request.searches:
        raise HTTPException(status_code=400, detail="No search parameters provided")

    inputs = [{"url": build_search_url(s)} for s in request.searches]
    try:
        snapshot_id = await client.trigger(inputs)
    except BrightDataError as e:
        raise HTTPException(status_code=502, detail=clean_error_message(e))
    return SnapshotCreateResponse(snapshot_id=snapshot_id)


@router.post("/price-history/{zpid}", response_model=SnapshotCreateResponse)
async def price_history(
    zpid: str,
    client: BrightDataClient = Depends(get_brightdata_client),
):
    _require_configured(client)
    try:
        snapshot_id = await client.trigger(
            [{"zpid": zpid}], dataset_id=client.settings.ZILLOW_PRICE_HISTORY_DATASET_ID
        )
    except BrightDataError as e:
        raise HTTPException(status_code=502, detail=clean_error_message(e))
    return SnapshotCreateResponse(snapshot_id=snapshot_id)


@router.get("/snapshots/{snapshot_id}", response_model=SnapshotStatusResponse)
async def snapshot_status(
    snapshot_id: str,
    client: BrightDataClient = Depends(get_brightdata_client),
):
    _require_configured(client)
    try:
        status = await client.progress(snapshot_id)
    except BrightDataError as e:
        raise HTTPException(status_code=502, detail=clean_error_message(e))

    return SnapshotStatusResponse(
        snapshot_id=snapshot_id,
        status=status.raw_status,
        records=status.records,
        errors=status.errors,
        error_codes=status.error_codes,
    )
