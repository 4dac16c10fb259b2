from __future__ import annotations

import heapq
import itertools
import logging
import threading
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .base import validate_url
from .errors import ValidationError
from .logging_utils import log_event
from .models import JobStatus, ScrapeJob, ScrapeOptions, Selector
from .pipeline import ScrapePipeline
from .rotation import parse_proxy
from .storage import StorageBase

logger = logging.getLogger(__name__)

SelectorInput = Union[Selector, Mapping[str, Any]]
OptionsInput = Union[ScrapeOptions, Mapping[str, Any], None]


class ScrapeOrchestrator:
    """Priority job queue drained by a single worker thread.

    submit() only validates and enqueues; it never blocks on network I/O. The
    worker takes the highest-priority job (FIFO among equal priorities), runs
    the pipeline and persists the outcome. Failed jobs are re-enqueued at once
    with priority lowered by one until max_retries is reached.
    """

    def __init__(
        self,
        pipeline: ScrapePipeline,
        storage: StorageBase,
        max_retries: int = 3,
        autostart: bool = True,
    ) -> None:
        self._pipeline = pipeline
        self._storage = storage
        self._max_retries = max_retries
        self._autostart = autostart

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._queue: List[Tuple[int, int, str]] = []
        self._seq = itertools.count()
        self._jobs: Dict[str, ScrapeJob] = {}
        self._active: Optional[str] = None
        self._running = False
        self._worker: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        url: str,
        selectors: Iterable[SelectorInput] = (),
        options: OptionsInput = None,
        priority: int = 1,
    ) -> str:
        """Validate and enqueue a job; returns its id. Raises ValidationError."""
        job = ScrapeJob(
            id=str(uuid.uuid4()),
            url=validate_url(url),
            selectors=_coerce_selectors(selectors),
            options=_coerce_options(options),
            priority=int(priority),
        )
        with self._cv:
            self._jobs[job.id] = job
            self._push(job)
            self._cv.notify_all()
        log_event(logger, logging.INFO, "job_submitted", job_id=job.id, url=job.url, priority=job.priority)
        if self._autostart:
            self.start()
        return job.id

    def submit_batch(
        self,
        urls: Iterable[str],
        selectors: Iterable[SelectorInput] = (),
        options: OptionsInput = None,
        priority: int = 1,
    ) -> List[str]:
        """Submit one job per URL. All URLs are validated before any is enqueued."""
        urls = [validate_url(u) for u in urls]
        selectors = _coerce_selectors(selectors)
        options = _coerce_options(options)
        return [self.submit(u, selectors, options, priority) for u in urls]

    def get_job(self, job_id: str) -> Optional[ScrapeJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return deepcopy(job) if job is not None else None

    def jobs(self) -> List[ScrapeJob]:
        with self._lock:
            return [deepcopy(job) for job in self._jobs.values()]

    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        with self._cv:
            if self._running:
                return
            self._running = True
            self._worker = threading.Thread(target=self._drain, name="scrape-orchestrator", daemon=True)
            self._worker.start()

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop the worker after the job in progress; queued jobs stay pending."""
        with self._cv:
            self._running = False
            self._cv.notify_all()
            worker = self._worker
        if wait and worker is not None and worker is not threading.current_thread():
            worker.join(timeout=timeout)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the queue is empty and no job is running. False on timeout."""
        with self._cv:
            return self._cv.wait_for(lambda: not self._queue and self._active is None, timeout=timeout)

    def _drain(self) -> None:
        while True:
            with self._cv:
                self._cv.wait_for(lambda: self._queue or not self._running)
                if not self._running:
                    return
            self.process_next()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def process_next(self) -> Optional[ScrapeJob]:
        """Run the highest-priority pending job to its next state; returns a copy of it."""
        with self._cv:
            if not self._queue:
                return None
            _, _, job_id = heapq.heappop(self._queue)
            job = self._jobs[job_id]
            job.status = JobStatus.IN_PROGRESS
            job.start_time = _now()
            self._active = job.id

        log_event(logger, logging.INFO, "job_started", job_id=job.id, url=job.url, attempt=job.retry_count + 1)
        try:
            record = self._pipeline.run(job.url, job.selectors, job.options)
            result_id = self._storage.save(
                {
                    "type": "scrape_result",
                    "job_id": job.id,
                    "url": job.url,
                    "data": record,
                    "selectors": [s.to_dict() for s in job.selectors],
                }
            )
        except Exception as exc:  # noqa: BLE001
            self._handle_failure(job, exc)
        else:
            with self._cv:
                job.status = JobStatus.COMPLETED
                job.end_time = _now()
                job.result_id = result_id
            log_event(logger, logging.INFO, "job_completed", job_id=job.id, url=job.url, result_id=result_id)
        finally:
            with self._cv:
                self._active = None
                self._cv.notify_all()
        return self.get_job(job.id)

    def _handle_failure(self, job: ScrapeJob, exc: Exception) -> None:
        message = str(exc) or type(exc).__name__
        with self._cv:
            if job.retry_count < self._max_retries:
                job.retry_count += 1
                job.priority -= 1
                job.status = JobStatus.PENDING
                self._push(job)
                requeued = True
            else:
                job.status = JobStatus.FAILED
                job.error = message
                job.end_time = _now()
                requeued = False

        if requeued:
            log_event(
                logger,
                logging.WARNING,
                "job_requeued",
                job_id=job.id,
                url=job.url,
                retry_count=job.retry_count,
                priority=job.priority,
                error=message,
            )
            return

        log_event(logger, logging.ERROR, "job_failed", job_id=job.id, url=job.url, error=message)
        try:
            self._storage.save({"type": "job_failure", "job_id": job.id, **_failure_payload(job)})
        except Exception as save_exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "job_failure_not_persisted", job_id=job.id, error=str(save_exc))

    def _push(self, job: ScrapeJob) -> None:
        # caller holds the lock; seq keeps equal priorities in insertion order
        heapq.heappush(self._queue, (-job.priority, next(self._seq), job.id))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _failure_payload(job: ScrapeJob) -> dict:
    payload = job.to_dict()
    payload.pop("id", None)
    return payload


def _coerce_selectors(selectors: Iterable[SelectorInput]) -> Tuple[Selector, ...]:
    coerced = []
    for item in selectors or ():
        if isinstance(item, Selector):
            coerced.append(item)
        elif isinstance(item, Mapping):
            coerced.append(Selector.from_dict(item))
        else:
            raise ValidationError(f"invalid selector: {item!r}")
    return tuple(coerced)


def _coerce_options(options: OptionsInput) -> ScrapeOptions:
    if isinstance(options, ScrapeOptions):
        resolved = options
    else:
        resolved = ScrapeOptions.from_dict(options)
    if resolved.proxy not in ("auto", "none"):
        parse_proxy(resolved.proxy)
    return resolved

