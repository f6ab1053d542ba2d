"""In-process background job worker.

Jobs are named, carry a ``dict`` of arguments validated into a pydantic model
registered with the handler, and are retried with capped exponential backoff.
The queue lives in memory: jobs still pending at shutdown are lost.
"""

from __future__ import annotations

import contextlib
import heapq
import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, ContextManager, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from wecarry.core.errors import AppError
from wecarry.platform.worker.config import WorkerConfig

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_RETRY = "retry"
STATUS_RUNNING = "running"
STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"

JobHandler = Callable[[Any], None]
ContextFactory = Callable[[], ContextManager[Any]]


class PermanentJobError(Exception):
    """Raised by a handler when retrying cannot succeed."""


@dataclass
class Job:
    id: int
    name: str
    args: Dict[str, Any]
    status: str = STATUS_PENDING
    attempts: int = 0
    available_at: float = 0.0
    last_error: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status in (STATUS_SUCCEEDED, STATUS_FAILED)


@dataclass
class _Registration:
    handler: JobHandler
    args_model: Optional[Type[BaseModel]] = None


def _compute_backoff_seconds(attempts: int, config: WorkerConfig) -> float:
    """Exponential backoff based on attempt number (1-indexed), capped."""
    base = config.backoff_seconds
    factor = config.backoff_multiplier ** max(attempts - 1, 0)
    return min(config.backoff_cap_seconds, base * factor)


def _is_permanent(exc: BaseException) -> bool:
    if isinstance(exc, (PermanentJobError, ValidationError)):
        return True
    return isinstance(exc, AppError) and not exc.retryable


class Worker:
    def __init__(
        self,
        config: Optional[WorkerConfig] = None,
        context_factory: Optional[ContextFactory] = None,
    ) -> None:
        self.config = config or WorkerConfig.from_env()
        self._context_factory = context_factory or contextlib.nullcontext
        self._registry: Dict[str, _Registration] = {}
        self._queue: List[Tuple[float, int, Job]] = []
        self._seq = itertools.count(1)
        self._cond = threading.Condition()
        self._threads: List[threading.Thread] = []
        self._stopping = False

    # ---- registration / enqueue -------------------------------------------------

    def register(self, name: str, handler: JobHandler, args_model: Optional[Type[BaseModel]] = None) -> None:
        self._registry[name] = _Registration(handler=handler, args_model=args_model)

    def is_registered(self, name: str) -> bool:
        return name in self._registry

    def enqueue(self, name: str, args: Optional[Dict[str, Any]] = None, delay: float = 0.0) -> Job:
        job = Job(id=next(self._seq), name=name, args=dict(args or {}))
        if name not in self._registry:
            job.status = STATUS_FAILED
            job.last_error = f"no handler registered for job {name!r}"
            logger.error("Dropping job %s: %s", job.id, job.last_error)
            return job

        job.available_at = time.monotonic() + max(delay, 0.0)
        with self._cond:
            heapq.heappush(self._queue, (job.available_at, job.id, job))
            self._cond.notify()
        logger.debug("Enqueued job %s (%s) delay=%ss", job.id, name, delay)
        return job

    def pending_jobs(self) -> List[Job]:
        with self._cond:
            return [entry[2] for entry in sorted(self._queue)]

    def clear(self) -> None:
        with self._cond:
            self._queue.clear()

    # ---- execution --------------------------------------------------------------

    def _pop_due_locked(self, now: Optional[float] = None) -> Optional[Job]:
        now = time.monotonic() if now is None else now
        if self._queue and self._queue[0][0] <= now:
            return heapq.heappop(self._queue)[2]
        return None

    def _run(self, job: Job) -> None:
        registration = self._registry[job.name]
        job.status = STATUS_RUNNING
        job.attempts += 1
        try:
            with self._context_factory():
                payload: Any = job.args
                if registration.args_model is not None:
                    payload = registration.args_model.model_validate(job.args)
                registration.handler(payload)
        except Exception as exc:
            self._handle_failure(job, exc)
            return
        job.status = STATUS_SUCCEEDED
        job.last_error = None
        logger.debug("Job %s (%s) succeeded after %s attempt(s)", job.id, job.name, job.attempts)

    def _handle_failure(self, job: Job, exc: Exception) -> None:
        job.last_error = str(exc)
        if _is_permanent(exc):
            job.status = STATUS_FAILED
            logger.error("Job %s (%s) failed permanently: %s", job.id, job.name, exc)
            return
        if job.attempts >= self.config.max_attempts:
            job.status = STATUS_FAILED
            logger.error(
                "Job %s (%s) failed after %s attempts: %s",
                job.id,
                job.name,
                job.attempts,
                exc,
                exc_info=exc,
            )
            return

        delay = _compute_backoff_seconds(job.attempts, self.config)
        job.status = STATUS_RETRY
        job.available_at = time.monotonic() + delay
        logger.warning("Job %s (%s) attempt %s failed, retrying in %ss: %s", job.id, job.name, job.attempts, delay, exc)
        with self._cond:
            heapq.heappush(self._queue, (job.available_at, job.id, job))
            self._cond.notify()

    def drain(self) -> int:
        """Run every due job in the calling thread. Returns the number of runs."""
        runs = 0
        while True:
            with self._cond:
                job = self._pop_due_locked()
            if job is None:
                return runs
            self._run(job)
            runs += 1

    # ---- pool -------------------------------------------------------------------

    def _next_wait_locked(self) -> float:
        if not self._queue:
            return self.config.poll_interval
        return max(0.0, min(self.config.poll_interval, self._queue[0][0] - time.monotonic()))

    def _loop(self) -> None:
        while True:
            with self._cond:
                job = self._pop_due_locked()
                while job is None and not self._stopping:
                    self._cond.wait(self._next_wait_locked())
                    job = self._pop_due_locked()
                if job is None:
                    return
            self._run(job)

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._threads = [
            threading.Thread(target=self._loop, name=f"wecarry-worker-{i}", daemon=True)
            for i in range(self.config.pool_size)
        ]
        for thread in self._threads:
            thread.start()
        logger.info(
            "Started worker (pool_size=%s, max_attempts=%s, backoff=%ss x%s cap=%ss)",
            self.config.pool_size,
            self.config.max_attempts,
            self.config.backoff_seconds,
            self.config.backoff_multiplier,
            self.config.backoff_cap_seconds,
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Worker stopped; %s job(s) left in queue", len(self._queue))
