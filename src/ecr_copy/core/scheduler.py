"""Bounded-concurrency batch scheduler with retry, timeout and fail-fast."""

import heapq
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .cancellation import CancelReason, CancelToken
from .error_handling import BatchOperationContextManager
from .exceptions import CopyError, JobCancelledError
from .job import CopyJob
from .logging_config import get_logger
from .models import BatchResult, CopyState, RunConfig


class Scheduler:
    """
    Runs copy jobs on a pool of at most `concurrency` workers.

    A failed attempt is re-queued after `retry_delay_seconds * attempt` while
    its error is retryable and the job has attempts left, so a job never runs
    more than `retry_limit + 1` times. With `fail_fast`, the first job that
    fails for good cancels every queued job and interrupts running ones.
    """

    def __init__(
        self,
        concurrency: int = 1,
        retry_limit: int = 0,
        retry_delay_seconds: float = 0,
        per_job_timeout_seconds: float = 0,
        fail_fast: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._concurrency = max(1, concurrency)
        self._retry_limit = max(0, retry_limit)
        self._retry_delay = max(0, retry_delay_seconds)
        self._timeout = per_job_timeout_seconds if per_job_timeout_seconds > 0 else None
        self._fail_fast = fail_fast
        self._clock = clock
        self._sleep = sleep
        self._logger = get_logger("scheduler")

    @classmethod
    def from_config(cls, config: RunConfig) -> "Scheduler":
        return cls(
            concurrency=config.concurrency,
            retry_limit=config.retry_limit,
            retry_delay_seconds=config.retry_delay_seconds,
            per_job_timeout_seconds=config.per_job_timeout_seconds,
            fail_fast=config.fail_fast,
        )

    def run(self, jobs: List[CopyJob]) -> BatchResult:
        """Drive every job to a terminal state and return outcomes in input order."""
        ready: Deque[CopyJob] = deque(jobs)
        delayed: List[Tuple[float, int, CopyJob]] = []
        active: Dict[Future, Tuple[CopyJob, CancelToken]] = {}
        self._failing_fast = False

        operation = f"Copy of {len(jobs)} image(s) with concurrency {self._concurrency}"
        with BatchOperationContextManager(operation) as batch, ThreadPoolExecutor(
            max_workers=self._concurrency, thread_name_prefix="copy-job"
        ) as pool:
            while ready or delayed or active:
                now = self._clock()
                while delayed and delayed[0][0] <= now:
                    ready.append(heapq.heappop(delayed)[2])

                while ready and len(active) < self._concurrency:
                    job = ready.popleft()
                    token = CancelToken(self._timeout, self._clock)
                    self._logger.debug(f"Dispatching {job.image} (attempt {job.attempt + 1})")
                    active[pool.submit(job.run_attempt, token)] = (job, token)

                if not active:
                    if delayed:
                        self._sleep(max(0.0, delayed[0][0] - self._clock()))
                    continue

                wait_timeout = None
                if delayed:
                    wait_timeout = max(0.0, delayed[0][0] - self._clock())
                done, _ = wait(list(active), timeout=wait_timeout, return_when=FIRST_COMPLETED)

                for future in done:
                    job, token = active.pop(future)
                    succeeded = self._attempt_result(job, future)
                    if succeeded:
                        job.mark_finished()
                        continue
                    if self._settle_failure(job, token, ready, delayed, batch):
                        self._start_failing_fast(ready, delayed, active, batch)

        result = BatchResult(outcomes=[job.to_outcome() for job in jobs])
        self._logger.info(
            f"Batch finished: {result.succeeded} succeeded, {result.failed} failed, "
            f"{result.cancelled} cancelled"
        )
        return result

    def _attempt_result(self, job: CopyJob, future: Future) -> bool:
        exc = future.exception()
        if exc is None:
            return future.result()
        # run_attempt records CopyErrors itself; anything else is a defect
        self._logger.error(f"Unexpected error while copying {job.image}: {exc!r}")
        job.last_error = CopyError(f"{type(exc).__name__}: {exc}")
        job.state = CopyState.FAILED
        return False

    def _settle_failure(self, job, token, ready, delayed, batch) -> bool:
        """Re-queue, cancel or finalize a failed job. Returns True if it failed for good."""
        error = job.last_error
        # Once fail-fast has tripped an attempt's token, its outcome is Cancelled
        # even if it stopped on an error of its own
        if token.reason == CancelReason.FAIL_FAST or isinstance(error, JobCancelledError):
            if error is not None and not isinstance(error, JobCancelledError):
                self._logger.info(f"{job.image} failed during fail-fast, reported as cancelled: {error}")
            job.cancel()
            batch.add_error("cancelled", str(job.image))
            return False

        attempts_left = job.attempt <= self._retry_limit
        if error is not None and error.retryable and attempts_left and not self._failing_fast:
            job.requeue()
            delay = self._retry_delay * job.attempt
            self._logger.info(
                f"Retrying {job.image} after {error.kind.value} "
                f"(attempt {job.attempt}/{self._retry_limit + 1}, delay {delay}s)"
            )
            if delay > 0:
                heapq.heappush(delayed, (self._clock() + delay, job.index, job))
            else:
                ready.append(job)
            return False

        job.finalize_failed()
        batch.add_error(str(error), str(job.image))
        return self._fail_fast and not self._failing_fast

    def _start_failing_fast(self, ready, delayed, active, batch) -> None:
        self._failing_fast = True
        self._logger.warning(
            f"Fail-fast: cancelling {len(ready) + len(delayed)} queued and "
            f"{len(active)} running job(s)"
        )
        while ready:
            job = ready.popleft()
            job.cancel()
            batch.add_error("cancelled", str(job.image))
        while delayed:
            job = heapq.heappop(delayed)[2]
            job.cancel()
            batch.add_error("cancelled", str(job.image))
        for _, token in active.values():
            token.cancel(CancelReason.FAIL_FAST)
