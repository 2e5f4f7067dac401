import logging
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

import httpx

from estate_crm.config import Settings
from estate_crm.schemas.listing import ZillowSearchRequest

logger = logging.getLogger(__name__)

ZILLOW_HOMES_URL = "https://www.zillow.com/homes/"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


# Raw status strings reported by the progress endpoint
_STATUS_MAP = {
    "completed": JobStatus.COMPLETED,
    "done": JobStatus.COMPLETED,
    "ready": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
    "running": JobStatus.RUNNING,
    "collecting": JobStatus.RUNNING,
    "digesting": JobStatus.RUNNING,
    "pending": JobStatus.PENDING,
    "initializing": JobStatus.PENDING,
    "starting": JobStatus.PENDING,
}


def classify_status(raw: str | None) -> JobStatus:
    if not raw:
        return JobStatus.UNKNOWN
    return _STATUS_MAP.get(str(raw).strip().lower(), JobStatus.UNKNOWN)


@dataclass(frozen=True)
class SnapshotStatus:
    status: JobStatus
    raw_status: str
    records: int | None = None
    errors: int | None = None
    error_codes: dict | None = None


class BrightDataError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def build_search_url(params: ZillowSearchRequest) -> str:
    """Build a Zillow search results URL for the dataset trigger."""
    url = ZILLOW_HOMES_URL
    if params.location:
        url += quote(params.location, safe="") + "_rb/"

    if params.listing_category:
        if "rent" in params.listing_category.lower():
            url = url.replace("/homes/", "/homes/for_rent/")
        else:
            url = url.replace("/homes/", "/homes/for_sale/")

    query = []
    if params.home_type and params.home_type != "Any":
        home_type = re.sub(r"s$", "", params.home_type.lower())
        query.append(f"home_type={quote(home_type, safe='')}")

    if params.days_on_zillow and params.days_on_zillow != "Any":
        days = re.sub(r"\s+days?$", "", params.days_on_zillow.lower())
        query.append(f"days_on_zillow={quote(days, safe='')}")

    if params.min_price:
        query.append(f"price_min={_format_price(params.min_price)}")
    if params.max_price:
        query.append(f"price_max={_format_price(params.max_price)}")

    if query:
        url += "?" + "&".join(query)
    return url


def _format_price(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


class BrightDataClient:
    """Thin client for the Bright Data datasets v3 API (trigger / progress / snapshot)."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient):
        self.settings = settings
        self.http = http

    @property
    def configured(self) -> bool:
        return self.settings.bright_data_enabled

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.settings.BRIGHT_DATA_API_KEY}",
            "Accept": "application/json",
        }

    async def trigger(self, inputs: list[dict], dataset_id: str | None = None) -> str:
        """Start a collection job and return its snapshot id."""
        if not self.configured:
            raise BrightDataError("BRIGHT_DATA_API_KEY is not set")

        dataset_id = dataset_id or self.settings.ZILLOW_DATASET_ID
        logger.info(
            f"[BrightData] Triggering dataset {dataset_id} with {len(inputs)} input(s) "
            f"(key={self.settings.BRIGHT_DATA_API_KEY[:8]}...)"
        )
        try:
            resp = await self.http.post(
                f"{self.settings.BRIGHT_DATA_BASE_URL}/trigger",
                params={
                    "dataset_id": dataset_id,
                    "format": "json",
                    "uncompressed_webhook": "true",
                },
                json=inputs,
                headers=self._headers(),
                timeout=self.settings.TRIGGER_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise BrightDataError(f"Trigger request failed: {e}") from e

        if resp.status_code >= 400:
            raise BrightDataError(
                f"Trigger returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            snapshot_id = resp.json().get("snapshot_id")
        except (ValueError, AttributeError) as e:
            raise BrightDataError(f"Trigger returned an unreadable body: {resp.text[:200]}") from e
        if not snapshot_id:
            raise BrightDataError("Trigger response did not include a snapshot_id")

        logger.info(f"[BrightData] Snapshot {snapshot_id} started")
        return str(snapshot_id)

    async def trigger_search(self, params: ZillowSearchRequest) -> str:
        if params.property_url and "zillow.com" in params.property_url:
            logger.info(f"[BrightData] Using direct property URL: {params.property_url}")
            url = params.property_url
        else:
            url = build_search_url(params)
            logger.info(f"[BrightData] Using Zillow search URL: {url}")
        return await self.trigger([{"url": url}])

    async def progress(self, snapshot_id: str) -> SnapshotStatus:
        try:
            resp = await self.http.get(
                f"{self.settings.BRIGHT_DATA_BASE_URL}/progress/{snapshot_id}",
                headers=self._headers(),
                timeout=self.settings.STATUS_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise BrightDataError(f"Progress request failed: {e}") from e

        # A fresh snapshot is not visible on the progress endpoint right away
        if resp.status_code == 404:
            logger.debug(f"[BrightData] Snapshot {snapshot_id} not found yet, still initializing")
            return SnapshotStatus(status=JobStatus.PENDING, raw_status="initializing", records=0, errors=0)

        if resp.status_code >= 400:
            raise BrightDataError(
                f"Progress returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise BrightDataError(f"Progress returned non-JSON body: {resp.text[:200]}") from e
        if not isinstance(data, dict):
            raise BrightDataError("Progress returned an unexpected body")

        raw = str(data.get("status") or "unknown")
        return SnapshotStatus(
            status=classify_status(raw),
            raw_status=raw,
            records=data.get("records"),
            errors=data.get("errors"),
            error_codes=data.get("error_codes"),
        )

    async def snapshot(self, snapshot_id: str) -> str:
        """Download the raw result body of a snapshot."""
        try:
            resp = await self.http.get(
                f"{self.settings.BRIGHT_DATA_BASE_URL}/snapshot/{snapshot_id}",
                params={"format": "json"},
                headers=self._headers(),
                timeout=self.settings.RESULT_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise BrightDataError(f"Snapshot request failed: {e}") from e

        if resp.status_code >= 400:
            raise BrightDataError(
                f"Snapshot returned {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        return resp.text
