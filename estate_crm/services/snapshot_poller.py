import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from estate_crm.services.brightdata import BrightDataClient, JobStatus

logger = logging.getLogger(__name__)


class TerminalState(str, Enum):
    DATA_READY = "data-ready"
    FALLBACK_REQUIRED = "fallback-required"


@dataclass
class PollResult:
    state: TerminalState
    attempts: int
    last_status: str | None = None
    errors: int | None = None

    @property
    def data_ready(self) -> bool:
        return self.state is TerminalState.DATA_READY


class SnapshotPoller:
    """Poll a snapshot's progress until it settles or the budget runs out.

    Failed jobs, transport errors and budget exhaustion all come back as
    ``FALLBACK_REQUIRED``; nothing raised by the status query escapes ``poll``.
    """

    def __init__(
        self,
        client: BrightDataClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.sleep = sleep
        self.clock = clock

    async def poll(
        self,
        job_id: str,
        max_wait: float,
        poll_interval: float,
        max_attempts: int,
        started_at: float | None = None,
    ) -> PollResult:
        start = self.clock() if started_at is None else started_at
        attempts = 0
        last_status = None
        errors = None

        while self.clock() - start < max_wait and attempts < max_attempts:
            attempts += 1
            logger.info(f"[Poller] Checking snapshot {job_id} (attempt {attempts}/{max_attempts})")
            try:
                status = await self.client.progress(job_id)
            except Exception as e:
                logger.error(f"[Poller] Status check for {job_id} failed: {e}. Using fallback data")
                return PollResult(TerminalState.FALLBACK_REQUIRED, attempts, last_status, errors)

            last_status = status.raw_status
            errors = status.errors
            logger.info(f"[Poller] Snapshot {job_id} status: {status.raw_status}")

            if status.status is JobStatus.COMPLETED:
                return PollResult(TerminalState.DATA_READY, attempts, last_status, errors)

            if status.status is JobStatus.FAILED:
                logger.warning(
                    f"[Poller] Snapshot {job_id} failed with status {status.raw_status}"
                    + (f", error codes: {status.error_codes}" if status.error_codes else "")
                )
                return PollResult(TerminalState.FALLBACK_REQUIRED, attempts, last_status, errors)

            if attempts < max_attempts:
                await self.sleep(poll_interval)

        logger.warning(
            f"[Poller] Snapshot {job_id} did not complete after {attempts} attempt(s) "
            f"({self.clock() - start:.1f}s). Using fallback data"
        )
        return PollResult(TerminalState.FALLBACK_REQUIRED, attempts, last_status, errors)
