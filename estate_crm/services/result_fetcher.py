import hashlib
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable

from estate_crm.schemas.listing import ListingRecord
from estate_crm.services.brightdata import BrightDataClient
from estate_crm.services.snapshot_poller import TerminalState

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_URL = "https://photos.zillowstatic.com/fp/default.jpg"


def _as_str(value: Any) -> str | None:
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.replace(",", ""))
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> int | None:
    number = _as_number(value)
    return int(number) if number is not None else None


def _as_price(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        digits = re.sub(r"[^0-9]", "", value)
        return int(digits) if digits else None
    return None


# target field -> (source paths tried in order, default, coercion)
FIELD_MAP: dict[str, tuple[tuple[str, ...], Any, Callable[[Any], Any]]] = {
    "zpid": (("zpid", "id"), None, _as_str),
    "address": (("address", "streetAddress", "address.streetAddress", "location.address"), "Unknown Address", _as_str),
    "city": (("city", "address.city", "location.city"), "Unknown City", _as_str),
    "state": (("state", "address.state", "location.state"), "Unknown State", _as_str),
    "zipcode": (("zipcode", "address.zipcode", "location.zipcode", "postalCode"), "Unknown Zip", _as_str),
    "price": (("price",), 0, _as_price),
    "bedrooms": (("bedrooms", "beds"), 0, _as_number),
    "bathrooms": (("bathrooms", "baths"), 0, _as_number),
    "living_area": (("livingArea", "sqft", "area"), 0, _as_number),
    "home_type": (("homeType", "propertyType"), "Unknown", _as_str),
    "home_status": (("homeStatus", "status"), "FOR_SALE", _as_str),
    "days_on_zillow": (("daysOnZillow", "daysOnMarket"), 0, _as_int),
    "image_url": (("imageUrl", "imgSrc", "image"), DEFAULT_IMAGE_URL, _as_str),
    "detail_url": (("detailUrl", "url"), None, _as_str),
}


def _lookup(raw: dict, path: str) -> Any:
    value: Any = raw
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _record_key(raw: dict) -> str:
    blob = json.dumps(raw, sort_keys=True, default=str)
    return hashlib.sha256(blob.encode()).hexdigest()[:12]


def normalize_listing(raw: dict) -> ListingRecord:
    """Map one raw result row onto a ListingRecord, filling gaps with defaults."""
    fields = {}
    for target, (paths, default, coerce) in FIELD_MAP.items():
        value = None
        for path in paths:
            value = coerce(_lookup(raw, path))
            if value:
                break
        fields[target] = value if value else default

    raw_zpid = fields["zpid"]
    if not fields["zpid"]:
        fields["zpid"] = f"gen-{_record_key(raw)}"
    if not fields["detail_url"]:
        fields["detail_url"] = f"https://www.zillow.com/homedetails/{raw_zpid or 'unknown'}_zpid/"
    return ListingRecord(**fields)


def _bare_array(data: Any) -> list | None:
    return data if isinstance(data, list) else None


def _keyed_array(key: str) -> Callable[[Any], list | None]:
    def extract(data: Any) -> list | None:
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return data[key]
        return None
    extract.__name__ = f"{key}_array"
    return extract


# Known snapshot payload layouts, tried in order
PAYLOAD_SHAPES = (_bare_array, _keyed_array("results"), _keyed_array("data"))


def parse_payload(text: str | None) -> list[ListingRecord] | None:
    """Parse a snapshot body into records.

    Returns None when the body is empty, not JSON, or in none of the known
    shapes. A known shape holding zero rows parses to an empty list.
    """
    if not text or not text.strip():
        logger.info("[Results] Empty response body")
        return None
    try:
        data = json.loads(text)
    except ValueError as e:
        logger.error(f"[Results] Could not parse snapshot JSON: {e}. Body starts with: {text[:200]}")
        return None

    for shape in PAYLOAD_SHAPES:
        rows = shape(data)
        if rows is None:
            continue
        records = [r for r in rows if isinstance(r, dict)]
        if rows and not records:
            logger.warning(f"[Results] {shape.__name__} payload holds no objects")
            return None
        logger.info(f"[Results] Parsed {len(records)} row(s) from {shape.__name__} payload")
        return [normalize_listing(r) for r in records]

    keys = list(data.keys()) if isinstance(data, dict) else type(data).__name__
    logger.warning(f"[Results] Unrecognized payload structure: {keys}")
    return None


@lru_cache(maxsize=4)
def _load_fallback(path: Path) -> tuple[ListingRecord, ...]:
    with open(path) as f:
        rows = json.load(f)
    return tuple(normalize_listing(r) for r in rows)


def load_fallback_listings(path: Path) -> list[ListingRecord]:
    return list(_load_fallback(path))


@dataclass
class ListingBatch:
    records: list[ListingRecord]
    from_fallback: bool


class ResultFetcher:
    def __init__(self, client: BrightDataClient, fallback: list[ListingRecord]):
        self.client = client
        self.fallback = fallback

    def _fallback_batch(self) -> ListingBatch:
        return ListingBatch(records=list(self.fallback), from_fallback=True)

    async def fetch(self, job_id: str | None, terminal_state: TerminalState) -> ListingBatch:
        if job_id is None or terminal_state is TerminalState.FALLBACK_REQUIRED:
            logger.info(f"[Results] Serving {len(self.fallback)} fallback listing(s)")
            return self._fallback_batch()

        try:
            text = await self.client.snapshot(job_id)
        except Exception as e:
            logger.error(f"[Results] Fetching snapshot {job_id} failed: {e}. Using fallback data")
            return self._fallback_batch()

        records = parse_payload(text)
        if records is None:
            logger.info(f"[Results] Snapshot {job_id} gave no usable payload, using fallback data")
            return self._fallback_batch()
        return ListingBatch(records=records, from_fallback=False)
