import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set

from loguru import logger

from graph.models import Job, ReportStatus, StatusReport
from graph.workflow import build_workflow
from tools.errors import InvalidInput, ReportError, StoreUnavailable

STALE_ERROR = "Report processing timed out"


def validate_email(email: Optional[str]) -> str:
    email = (email or "").strip()
    if not email or "@" not in email:
        raise InvalidInput("Please provide a valid email address")
    return email


class ReportOrchestrator:
    """
    Owns the report lifecycle: creates jobs and runs each one's pipeline detached.

    `submit` returns as soon as the job record exists. The pipeline runs as an
    asyncio task whose outcome is only ever visible through the job store;
    nothing it raises reaches the submitter.
    """

    def __init__(self, store, enricher, generator, max_concurrent_jobs: Optional[int] = None):
        self.store = store
        self.graph = build_workflow(enricher, store, generator)
        self._tasks: Set[asyncio.Task] = set()

        if max_concurrent_jobs is None and os.getenv("MAX_CONCURRENT_JOBS"):
            max_concurrent_jobs = int(os.getenv("MAX_CONCURRENT_JOBS"))
        self._slots = asyncio.Semaphore(max_concurrent_jobs) if max_concurrent_jobs else None

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    async def submit(self, email: str) -> str:
        """Validate, record a new job and schedule its pipeline. Returns the job id."""
        email = validate_email(email)
        job_id = await self.store.create(email)
        logger.info(f"Created report {job_id} for {email}")

        task = asyncio.create_task(self._run(job_id, email), name=f"report-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job_id

    async def query_status(self, job_id: str) -> StatusReport:
        """Status of a job; the full record is only exposed once it is completed."""
        job = await self.store.get(job_id)
        return StatusReport(
            status=job.status,
            error=job.error,
            job=job if job.status == ReportStatus.COMPLETED else None,
        )

    async def list_all(self) -> List[Job]:
        return await self.store.list_all()

    async def drain(self):
        """Wait for every in-flight pipeline to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def reconcile_stale(self, max_age: timedelta) -> List[str]:
        """Mark jobs stuck in a non-terminal state for longer than `max_age` as failed."""
        cutoff = datetime.now(timezone.utc) - max_age
        running = {task.get_name() for task in self._tasks}
        failed = []
        for job in await self.store.list_stale(cutoff):
            if f"report-{job.id}" in running:
                continue
            if not await self.store.update_if_active(job.id, status=ReportStatus.FAILED, error=STALE_ERROR):
                continue
            logger.warning(f"Report {job.id} stuck in {job.status.value} since {job.created_at}, marked failed")
            failed.append(job.id)
        return failed

    async def _run(self, job_id: str, email: str):
        try:
            if self._slots is None:
                await self.graph.ainvoke({"job_id": job_id, "email": email})
            else:
                async with self._slots:
                    await self.graph.ainvoke({"job_id": job_id, "email": email})
        except StoreUnavailable as e:
            logger.error(f"Report {job_id} abandoned, job store unavailable: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error processing report {job_id}")
            try:
                await self.store.update_if_active(job_id, status=ReportStatus.FAILED, error=str(e) or "Unknown error")
            except ReportError as store_error:
                logger.error(f"Could not record failure for report {job_id}: {store_error}")
