"""Covenant extraction pipeline.

Extraction is queued on the backend when it accepts the job. Otherwise the job
runs locally: a priority queue feeds a fixed pool of worker tasks, so at most
``max_concurrent`` contracts are sent to Gemini at once and higher-priority
jobs start first. Failed jobs re-enter the queue after an exponential backoff
until ``max_retries`` attempts have been made. Local jobs live in memory only.
"""

from __future__ import annotations

import asyncio
import itertools
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pydantic import ValidationError

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import BackendAPIError
from covenant_guardian.modules.covenant_health.schemas import Covenant, CovenantCreateInput
from covenant_guardian.modules.extraction.normalize import validate_and_classify
from covenant_guardian.modules.extraction.schemas import (
    PRIORITY_ORDER,
    CovenantExtractionResult,
    ExtractionJob,
    JobPriority,
    QueueStats,
)
from covenant_guardian.services.backend import BackendClient
from covenant_guardian.services.gemini import AIConfigurationError, GeminiClient

logger = structlog.get_logger()


@dataclass
class _QueueItem:
    job_id: str
    contract_id: int | str
    contract_text: str
    priority: JobPriority
    backend: BackendClient
    retry_count: int = 0


def generate_job_id() -> str:
    return f"extraction_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ExtractionService:
    def __init__(
        self,
        gemini: GeminiClient,
        *,
        max_concurrent: int | None = None,
        max_retries: int | None = None,
        min_confidence: float | None = None,
        retry_base_delay: float = 1.0,
    ) -> None:
        self.gemini = gemini
        self.max_concurrent = max_concurrent or settings.EXTRACTION_MAX_CONCURRENT_JOBS
        self.max_retries = max_retries or settings.EXTRACTION_MAX_RETRIES
        self.min_confidence = settings.EXTRACTION_MIN_CONFIDENCE if min_confidence is None else min_confidence
        self.retry_base_delay = retry_base_delay

        self.jobs: dict[str, ExtractionJob] = {}
        self._items: dict[str, _QueueItem] = {}
        self._queue: asyncio.PriorityQueue[tuple[int, int, str]] | None = None
        self._workers: list[asyncio.Task] = []
        self._retries: set[asyncio.Task] = set()
        self._sequence = itertools.count()

    # ── Queueing ──────────────────────────────────────────────────────────────

    async def queue_extraction(
        self,
        backend: BackendClient,
        contract_id: int | str,
        contract_text: str,
        priority: JobPriority = "normal",
    ) -> str:
        """Queue on the backend; fall back to a local job when the backend refuses."""
        try:
            data = await backend.post(
                "/xano/covenant-extraction/queue",
                json={"contract_id": contract_id, "contract_text": contract_text, "priority": priority},
            )
        except BackendAPIError as exc:
            logger.warning(
                "backend_extraction_queue_failed",
                contract_id=str(contract_id),
                status_code=exc.status_code,
                error=exc.message,
            )
        else:
            job_id = data.get("job_id") if isinstance(data, dict) else None
            if job_id:
                logger.info("extraction_queued_backend", contract_id=str(contract_id), job_id=str(job_id))
                return str(job_id)
            logger.warning("backend_extraction_queue_invalid_response", contract_id=str(contract_id))

        return self.queue_local(backend, contract_id, contract_text, priority)

    def queue_local(
        self,
        backend: BackendClient,
        contract_id: int | str,
        contract_text: str,
        priority: JobPriority = "normal",
    ) -> str:
        job_id = generate_job_id()
        self.jobs[job_id] = ExtractionJob(
            id=job_id,
            contract_id=contract_id,
            priority=priority,
            created_at=datetime.now(timezone.utc),
            source="local",
        )
        self._items[job_id] = _QueueItem(
            job_id=job_id,
            contract_id=contract_id,
            contract_text=contract_text,
            priority=priority,
            backend=backend,
        )
        self._enqueue(job_id)
        logger.info("extraction_queued_local", contract_id=str(contract_id), job_id=job_id, priority=priority)
        return job_id

    def _enqueue(self, job_id: str) -> None:
        self._ensure_workers()
        priority = PRIORITY_ORDER[self._items[job_id].priority]
        self._queue.put_nowait((-priority, next(self._sequence), job_id))

    def _ensure_workers(self) -> None:
        if self._queue is None:
            self._queue = asyncio.PriorityQueue()
        self._workers = [w for w in self._workers if not w.done()]
        while len(self._workers) < self.max_concurrent:
            self._workers.append(asyncio.create_task(self._worker()))

    async def _worker(self) -> None:
        while True:
            _, _, job_id = await self._queue.get()
            try:
                item = self._items.get(job_id)
                if item is not None:
                    await self._process(item)
            finally:
                self._queue.task_done()

    async def _process(self, item: _QueueItem) -> None:
        job = self.jobs[item.job_id]
        job.status = "processing"
        job.started_at = datetime.now(timezone.utc)
        job.progress_percentage = 10

        def progress(pct: int) -> None:
            job.progress_percentage = pct

        try:
            stored = await self.run_extraction(item.backend, item.contract_id, item.contract_text, progress)
        except Exception as exc:  # noqa: BLE001
            self._handle_failure(item, job, exc)
            return

        job.status = "completed"
        job.progress_percentage = 100
        job.extracted_covenants_count = len(stored)
        job.completed_at = datetime.now(timezone.utc)
        self._items.pop(item.job_id, None)
        logger.info(
            "extraction_job_completed",
            job_id=item.job_id,
            contract_id=str(item.contract_id),
            covenants=len(stored),
        )

    def _handle_failure(self, item: _QueueItem, job: ExtractionJob, exc: Exception) -> None:
        item.retry_count += 1
        job.retry_count = item.retry_count
        retryable = not isinstance(exc, AIConfigurationError)

        if retryable and item.retry_count < self.max_retries:
            delay = self.retry_base_delay * 2 ** item.retry_count
            job.status = "pending"
            job.progress_percentage = 0
            logger.warning(
                "extraction_job_retry",
                job_id=item.job_id,
                attempt=item.retry_count,
                delay_seconds=delay,
                error=str(exc),
            )
            task = asyncio.create_task(self._requeue_after(item.job_id, delay))
            self._retries.add(task)
            task.add_done_callback(self._retries.discard)
            return

        job.status = "failed"
        job.error_message = str(exc) or type(exc).__name__
        job.completed_at = datetime.now(timezone.utc)
        self._items.pop(item.job_id, None)
        logger.error("extraction_job_failed", job_id=item.job_id, attempts=item.retry_count, error=str(exc))

    async def _requeue_after(self, job_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        if job_id in self._items:
            self._enqueue(job_id)

    # ── Pipeline steps ────────────────────────────────────────────────────────

    async def run_extraction(
        self,
        backend: BackendClient,
        contract_id: int | str,
        contract_text: str,
        progress: Callable[[int], None] | None = None,
    ) -> list[Covenant]:
        """Extract, validate and store the covenants of one contract."""
        report = progress or (lambda pct: None)

        report(30)
        result = await self.gemini.extract_covenants(contract_text)
        report(60)
        validated = validate_and_classify(result.covenants, contract_id, self.min_confidence)
        report(80)
        return await self.store_extracted_covenants(backend, validated)

    async def store_extracted_covenants(
        self,
        backend: BackendClient,
        covenants: list[CovenantCreateInput],
    ) -> list[Covenant]:
        """POST each covenant; one that the backend rejects is logged and skipped."""
        stored: list[Covenant] = []
        for covenant in covenants:
            payload = {**covenant.model_dump(exclude_none=True), "gemini_extracted": True}
            try:
                data = await backend.post("/covenants", json=payload)
            except BackendAPIError as exc:
                logger.error(
                    "extracted_covenant_store_failed",
                    covenant_name=covenant.covenant_name,
                    error=exc.message,
                )
                continue
            if data:
                stored.append(Covenant.model_validate(data))
        return stored

    async def extract_immediately(
        self,
        backend: BackendClient,
        contract_text: str,
        contract_id: int | str | None = None,
    ) -> CovenantExtractionResult:
        """Synchronous extraction; the backend's immediate endpoint first, then Gemini directly."""
        try:
            data = await backend.post(
                "/xano/covenant-extraction/immediate",
                json={"contract_text": contract_text, "contract_id": contract_id},
            )
            return CovenantExtractionResult.model_validate(data)
        except (BackendAPIError, ValidationError) as exc:
            logger.warning("backend_immediate_extraction_failed", error=str(exc))

        return await self.gemini.extract_covenants(contract_text)

    # ── Status ────────────────────────────────────────────────────────────────

    def get_job_status(self, job_id: str) -> ExtractionJob | None:
        return self.jobs.get(job_id)

    async def get_remote_job_status(self, backend: BackendClient, job_id: str) -> ExtractionJob | None:
        try:
            data = await backend.get(f"/xano/covenant-extraction/jobs/{job_id}")
        except BackendAPIError as exc:
            if exc.status_code == 404:
                return None
            raise
        return _backend_job(data)

    async def get_contract_extraction_status(
        self, backend: BackendClient, contract_id: int | str
    ) -> ExtractionJob | None:
        """The backend's view of a contract's extraction, else the latest local job."""
        try:
            data = await backend.get(f"/contracts/{contract_id}/covenants/extraction-status")
            job = _backend_job(data)
            if job is not None:
                return job
        except BackendAPIError as exc:
            logger.warning("backend_extraction_status_failed", contract_id=str(contract_id), error=exc.message)

        local = [j for j in self.jobs.values() if str(j.contract_id) == str(contract_id)]
        return max(local, key=lambda j: j.created_at) if local else None

    def get_queue_stats(self) -> QueueStats:
        jobs = list(self.jobs.values())
        return QueueStats(
            pending=sum(1 for j in jobs if j.status == "pending"),
            processing=sum(1 for j in jobs if j.status == "processing"),
            completed=sum(1 for j in jobs if j.status == "completed"),
            failed=sum(1 for j in jobs if j.status == "failed"),
            total=len(jobs),
        )

    def cleanup_old_jobs(self, max_age_hours: float = 24, now: datetime | None = None) -> int:
        """Forget finished jobs that completed more than ``max_age_hours`` ago."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=max_age_hours)
        stale = [
            job_id
            for job_id, job in self.jobs.items()
            if job.status in ("completed", "failed") and job.completed_at and job.completed_at < cutoff
        ]
        for job_id in stale:
            self.jobs.pop(job_id, None)
            self._items.pop(job_id, None)
        if stale:
            logger.info("extraction_jobs_cleaned", removed=len(stale))
        return len(stale)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def join(self) -> None:
        """Wait until no local job is queued, running or waiting for a retry."""
        while self._queue is not None:
            await self._queue.join()
            if not self._retries:
                return
            await asyncio.gather(*list(self._retries))

    async def aclose(self) -> None:
        for task in [*self._workers, *self._retries]:
            task.cancel()
        await asyncio.gather(*self._workers, *self._retries, return_exceptions=True)
        self._workers.clear()
        self._retries.clear()
        self._queue = None


def _backend_job(data: Any) -> ExtractionJob | None:
    if not isinstance(data, dict) or not data.get("id"):
        return None
    try:
        return ExtractionJob.model_validate(
            {
                **data,
                "id": str(data["id"]),
                "created_at": data.get("created_at") or datetime.now(timezone.utc),
                "source": "backend",
            }
        )
    except ValidationError as exc:
        logger.warning("backend_extraction_job_invalid", error=str(exc))
        return None
