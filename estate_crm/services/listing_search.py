import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from estate_crm.config import Settings
from estate_crm.schemas.listing import ListingRecord, ZillowSearchRequest
from estate_crm.services.brightdata import BrightDataClient, BrightDataError
from estate_crm.services.price_filter import filter_by_price
from estate_crm.services.result_fetcher import ResultFetcher
from estate_crm.services.snapshot_poller import SnapshotPoller, TerminalState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchJob:
    # None means no remote job was started
    job_id: str | None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_real(self) -> bool:
        return self.job_id is not None


class OutcomeStatus(str, Enum):
    FOUND = "found"
    NO_DATA = "no_data"
    NO_MATCHES = "no_matches"


@dataclass
class SearchOutcome:
    status: OutcomeStatus
    records: list[ListingRecord]
    total_matched: int
    used_fallback: bool
    elapsed_ms: int


class ListingSearchService:
    def __init__(
        self,
        settings: Settings,
        client: BrightDataClient,
        fallback: list[ListingRecord],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.client = client
        self.clock = clock
        self.poller = SnapshotPoller(client, sleep=sleep, clock=clock)
        self.fetcher = ResultFetcher(client, fallback)

    async def start(self, params: ZillowSearchRequest) -> SearchJob:
        """Trigger a remote collection; any failure yields a job with no remote id."""
        if not self.client.configured:
            logger.warning("[Search] BRIGHT_DATA_API_KEY is not set, using fallback data")
            return SearchJob(job_id=None)
        try:
            return SearchJob(job_id=await self.client.trigger_search(params))
        except BrightDataError as e:
            logger.error(f"[Search] Could not start snapshot: {e}. Using fallback data")
            return SearchJob(job_id=None)

    async def search(self, params: ZillowSearchRequest) -> SearchOutcome:
        started = self.clock()
        logger.info(
            f"[Search] location={params.location!r} home_type={params.home_type!r} "
            f"category={params.listing_category!r} days={params.days_on_zillow or 'Any'} "
            f"price=${params.min_price:,.0f}-${params.max_price:,.0f}"
        )

        job = await self.start(params)
        if job.is_real:
            result = await self.poller.poll(
                job.job_id,
                max_wait=self.settings.SEARCH_MAX_WAIT_SECONDS,
                poll_interval=self.settings.SEARCH_POLL_INTERVAL_SECONDS,
                max_attempts=self.settings.SEARCH_MAX_POLL_ATTEMPTS,
                started_at=started,
            )
            state = result.state
        else:
            state = TerminalState.FALLBACK_REQUIRED

        batch = await self.fetcher.fetch(job.job_id, state)
        elapsed_ms = int((self.clock() - started) * 1000)

        if not batch.records:
            logger.info("[Search] No listings returned")
            return SearchOutcome(OutcomeStatus.NO_DATA, [], 0, batch.from_fallback, elapsed_ms)

        filtered = filter_by_price(
            batch.records, params.min_price, params.max_price, self.settings.SEARCH_RESULT_LIMIT
        )
        logger.info(
            f"[Search] Filtered {len(batch.records)} listing(s) to {filtered.total_matched} "
            f"in price range (fallback={batch.from_fallback}, {elapsed_ms}ms)"
        )
        status = OutcomeStatus.NO_MATCHES if filtered.empty else OutcomeStatus.FOUND
        return SearchOutcome(
            status=status,
            records=filtered.records,
            total_matched=filtered.total_matched,
            used_fallback=batch.from_fallback,
            elapsed_ms=elapsed_ms,
        )
