"""
Background jobs for asynchronous full-tree imports.

A job is dispatched with a retry policy; each failed attempt is retried
after an exponentially growing delay, and once the attempts are exhausted
the job's rescue hook runs. Two dispatchers are provided: one backed by an
APScheduler AsyncIOScheduler and one that runs jobs inline.
"""

import asyncio
import uuid
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from pydantic import BaseModel, Field

from models.base import ImportType
from schemas.discovery import FullTreeImportPayload, QueuedImport
from genealogy.identifiers import clean_identifier
from repositories.contracts import ImportsRepository
from core.exceptions import GenealogyException, NonRetryableError

logger = logging.getLogger(__name__)


class RetryPolicy(BaseModel):
    """Bounded retries; exponential backoff doubles the delay per attempt"""
    attempts: int = Field(3, ge=1)
    backoff: str = "exponential"
    delay: float = Field(5.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry following failed attempt number `attempt` (1-based)"""
        if self.backoff == "exponential":
            return self.delay * (2 ** (attempt - 1))
        return self.delay


class Job(Protocol):
    name: str

    async def handle(self, payload: Dict[str, Any]) -> Any: ...

    async def rescue(self, payload: Dict[str, Any], error: Exception) -> None: ...


class JobDispatcher(Protocol):
    async def dispatch(self, job: Job, payload: Dict[str, Any], policy: Optional[RetryPolicy] = None) -> str: ...


def _should_retry(error: Exception, attempt: int, policy: RetryPolicy) -> bool:
    return attempt < policy.attempts and not isinstance(error, NonRetryableError)


async def _rescue(job: Job, payload: Dict[str, Any], error: Exception, job_id: str) -> None:
    logger.error(f"Job {job.name} ({job_id}) failed after all retries: {error}")
    try:
        await job.rescue(payload, error)
    except Exception as e:
        logger.error(f"Rescue of job {job.name} ({job_id}) failed: {e}")


class InMemoryJobDispatcher:
    """
    Runs jobs inline, retrying with the policy's delays.

    Outcomes are kept in `completed` and `failed` for inspection.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep
        self.completed: List[str] = []
        self.failed: List[str] = []

    async def dispatch(self, job: Job, payload: Dict[str, Any], policy: Optional[RetryPolicy] = None) -> str:
        policy = policy or RetryPolicy()
        job_id = str(uuid.uuid4())

        for attempt in range(1, policy.attempts + 1):
            try:
                await job.handle(payload)
            except Exception as e:
                if not _should_retry(e, attempt, policy):
                    await _rescue(job, payload, e, job_id)
                    self.failed.append(job_id)
                    return job_id
                delay = policy.delay_for(attempt)
                logger.warning(f"Job {job.name} attempt {attempt} failed, retrying in {delay}s: {e}")
                await self._sleep(delay)
            else:
                self.completed.append(job_id)
                return job_id
        return job_id


class SchedulerJobDispatcher:
    """
    Dispatches jobs as one-shot APScheduler jobs.

    A failed attempt re-schedules itself with a DateTrigger after the
    policy's backoff delay.
    """

    def __init__(
        self,
        scheduler: Optional[AsyncIOScheduler] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        self.scheduler = scheduler or AsyncIOScheduler()
        self._now = now

    def start(self):
        self.scheduler.start()
        logger.info("Job scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Job scheduler stopped")

    async def dispatch(self, job: Job, payload: Dict[str, Any], policy: Optional[RetryPolicy] = None) -> str:
        policy = policy or RetryPolicy()
        job_id = str(uuid.uuid4())
        self._schedule(job, payload, policy, job_id, attempt=1, delay=0)
        logger.info(f"Dispatched job {job.name} ({job_id})")
        return job_id

    def _schedule(self, job: Job, payload: Dict[str, Any], policy: RetryPolicy, job_id: str, attempt: int, delay: float):
        self.scheduler.add_job(
            self._execute,
            trigger=DateTrigger(run_date=self._now() + timedelta(seconds=delay)),
            args=[job, payload, policy, job_id, attempt],
            id=f"{job_id}:{attempt}",
            replace_existing=True
        )

    async def _execute(self, job: Job, payload: Dict[str, Any], policy: RetryPolicy, job_id: str, attempt: int):
        try:
            await job.handle(payload)
            logger.info(f"Job {job.name} ({job_id}) completed on attempt {attempt}")
        except Exception as e:
            if not _should_retry(e, attempt, policy):
                await _rescue(job, payload, e, job_id)
                return
            delay = policy.delay_for(attempt)
            logger.warning(f"Job {job.name} ({job_id}) attempt {attempt} failed, retrying in {delay}s: {e}")
            self._schedule(job, payload, policy, job_id, attempt + 1, delay)


# ============================================================================
# Full tree import
# ============================================================================

ServicesProvider = Callable[[], AbstractAsyncContextManager]


class FullTreeImportJob:
    """
    Runs a full-tree import from a queued payload.

    `provider` opens a scope yielding an object with `full_tree` and
    `imports` attributes (see genealogy.factory.open_services), so every
    attempt gets fresh repositories.
    """

    name = "import_full_tree"

    def __init__(self, provider: ServicesProvider):
        self.provider = provider

    async def handle(self, payload: Dict[str, Any]):
        data = FullTreeImportPayload(**payload)
        logger.info(f"Starting {self.name} for {data.identifier}")
        async with self.provider() as services:
            result = await services.full_tree.run(data)
        logger.info(
            f"{self.name} completed: {result.persons_created} created, "
            f"{result.persons_updated} updated, {result.relationships_created} relationships"
        )
        return result

    async def rescue(self, payload: Dict[str, Any], error: Exception) -> None:
        import_id = payload.get("import_id")
        if not import_id:
            return
        message = error.message if isinstance(error, GenealogyException) else str(error)
        async with self.provider() as services:
            try:
                await services.imports.mark_failed(import_id, f"Failed after all retries: {message}")
            except GenealogyException as e:
                logger.error(
                    f"Failed to update import status of {import_id}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )


class QueueFullTreeImportService:
    """Creates the import run record up front and dispatches the import job"""

    def __init__(
        self,
        imports: ImportsRepository,
        dispatcher: JobDispatcher,
        job: FullTreeImportJob,
        policy: Optional[RetryPolicy] = None
    ):
        self.imports = imports
        self.dispatcher = dispatcher
        self.job = job
        self.policy = policy or RetryPolicy()

    async def run(self, payload: FullTreeImportPayload) -> QueuedImport:
        logger.info(f"Queueing full tree import for {payload.identifier}")
        run = await self.imports.create_run(
            ImportType.FULL_TREE,
            f"tree:{clean_identifier(payload.identifier)}:depth{payload.max_depth}",
            payload.family_tree_id,
            payload.actor_id
        )
        await self.imports.update_progress(run.id, {
            "persons_created": 0,
            "persons_updated": 0,
            "relationships_created": 0,
            "duplicates_found": 0,
        })

        job_payload = payload.model_copy(update={"import_id": run.id}).model_dump()
        job_id = await self.dispatcher.dispatch(self.job, job_payload, self.policy)

        logger.info(f"Full tree import job queued with import id {run.id}")
        return QueuedImport(
            import_id=run.id,
            job_id=job_id,
            message=f"Import job queued. Use import_id {run.id} to check status.",
        )
