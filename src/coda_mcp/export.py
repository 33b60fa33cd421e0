"""Page export workflow.

Coda cannot return canvas page content synchronously. Reading a page means
starting an export job, polling its status until it completes, then
downloading the rendered artifact from the link the API hands back.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pydantic import ValidationError

from coda_mcp import endpoints
from coda_mcp.client import CodaClient
from coda_mcp.errors import ExportFailedError, ExportTimeoutError, MalformedResponseError
from coda_mcp.models import ExportState, ExportStatus, GetPageArgs

logger = logging.getLogger(__name__)

MAX_POLL_ATTEMPTS = 30
POLL_INTERVAL_SECONDS = 1.0

STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"

_TERMINAL_STATES = frozenset({ExportState.COMPLETE, ExportState.FAILED, ExportState.TIMED_OUT})

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class ExportJob:
    """Client-side view of one export job."""

    doc_id: str
    page_id: str
    output_format: str
    export_id: str | None = None
    state: ExportState = ExportState.INITIATING
    download_link: str | None = None
    error: str | None = None
    poll_attempts: int = 0

    def transition(self, new_state: ExportState) -> None:
        """Move to new_state; terminal states are final."""
        if self.state in _TERMINAL_STATES:
            raise RuntimeError(f"Export job already {self.state.value}, cannot become {new_state.value}")
        logger.debug("Export %s: %s -> %s", self.export_id, self.state.value, new_state.value)
        self.state = new_state


def _parse_status(payload: object) -> ExportStatus:
    try:
        return ExportStatus.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponseError(f"Unexpected export status payload: {e.errors()[0]['msg']}") from e


class PageExporter:
    """Drives one page export from initiation to downloaded content.

    Args:
        client: Shared Coda client.
        max_attempts: Number of status checks before giving up.
        poll_interval: Seconds to wait between status checks.
        sleep: Awaitable delay; tests inject a no-op.
    """

    def __init__(
        self,
        client: CodaClient,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._poll_interval = poll_interval
        self._sleep = sleep

    async def _initiate(self, job: ExportJob, args: GetPageArgs) -> None:
        logger.info("Starting export of page %s in doc %s (%s)", job.page_id, job.doc_id, job.output_format)
        try:
            started = _parse_status(await self._client.send(endpoints.start_page_export(args)))
        except Exception as e:
            job.error = str(e)
            job.transition(ExportState.FAILED)
            raise
        job.export_id = started.id
        job.transition(ExportState.PENDING)

    async def _poll(self, job: ExportJob) -> None:
        request = endpoints.page_export_status(job.doc_id, job.page_id, job.export_id or "")
        while job.state is ExportState.PENDING:
            if job.poll_attempts >= self._max_attempts:
                job.transition(ExportState.TIMED_OUT)
                break
            if job.poll_attempts:
                await self._sleep(self._poll_interval)

            job.poll_attempts += 1
            logger.debug("Polling export %s, attempt %d/%d", job.export_id, job.poll_attempts, self._max_attempts)
            try:
                status = _parse_status(await self._client.send(request))
            except Exception as e:
                job.error = str(e)
                job.transition(ExportState.FAILED)
                raise

            if status.status == STATUS_COMPLETE:
                job.download_link = status.download_link
                job.transition(ExportState.COMPLETE)
            elif status.status == STATUS_FAILED:
                job.error = status.error or "Unknown error"
                job.transition(ExportState.FAILED)
            elif status.status != "inProgress":
                logger.warning("Export %s reported unrecognized status %r", job.export_id, status.status)

    async def run(self, args: GetPageArgs) -> tuple[ExportJob, str]:
        """Export a page and return the job with its downloaded content.

        Raises:
            ExportFailedError: If the API reports the export as failed.
            ExportTimeoutError: If the export is still pending after max_attempts checks.
            MalformedResponseError: If the export completes without a download link.
            CodaError: For any request failure along the way.
        """
        job = ExportJob(doc_id=args.doc_id, page_id=args.page_id, output_format=args.output_format)

        await self._initiate(job, args)
        await self._poll(job)

        if job.state is ExportState.TIMED_OUT:
            raise ExportTimeoutError(
                seconds=self._max_attempts * self._poll_interval,
                attempts=job.poll_attempts,
                export_id=job.export_id,
            )
        if job.state is ExportState.FAILED:
            raise ExportFailedError(f"Export failed: {job.error}", detail=job.error)
        if not job.download_link:
            raise MalformedResponseError("Export complete but no download link provided")

        content = await self._client.download(job.download_link)
        logger.info("Exported page %s (%d characters)", job.page_id, len(content))
        return job, content
