"""Lifecycle of one asynchronous image generation job.

``ImageJobOrchestrator`` is an explicit state machine::

    Idle -> Submitting -> Queued <-> Generating -> Completed | Failed | Errored
                    \\                     \\
                     -> Errored             -> Abandoned

Submission retries only on rate limits (bounded). Polling backs off
exponentially up to a cap, is bounded both by an attempt count and by an
absolute deadline, and never leaves a terminal state. The deadline starts at
submission, so rate-limit waits while submitting count against it. Rate-limit
waits during polling do not consume poll attempts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import (
    JobStateError,
    PollError,
    PollTimeoutError,
    RateLimitedError,
    RemoteFault,
    SubmissionError,
)
from .horde import ImageServiceClient, classify_poll
from .models import ImageJob, JobState, PollResult


_FROM_POLLING = {JobState.QUEUED, JobState.GENERATING, JobState.COMPLETED, JobState.FAILED, JobState.ERRORED, JobState.ABANDONED}

ALLOWED_TRANSITIONS: Dict[JobState, frozenset] = {
    JobState.IDLE: frozenset({JobState.SUBMITTING}),
    JobState.SUBMITTING: frozenset({JobState.SUBMITTING, JobState.QUEUED, JobState.ERRORED, JobState.ABANDONED}),
    JobState.QUEUED: frozenset(_FROM_POLLING),
    JobState.GENERATING: frozenset(_FROM_POLLING),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.ERRORED: frozenset(),
    JobState.ABANDONED: frozenset(),
}


def backoff_interval(attempt: int, initial: float, cap: float, factor: float = 2.0) -> float:
    """Delay before poll number ``attempt`` (0-based): ``min(cap, initial * factor**attempt)``."""
    exponent = min(max(attempt, 0), 64)
    return min(cap, initial * factor**exponent)


class ImageJobOrchestrator:
    """Drives a single image job from submission to a terminal state.

    One instance per trip request. ``sleep`` and ``clock`` are injectable so
    the cadence can be exercised without real waiting.
    """

    def __init__(
        self,
        client: ImageServiceClient,
        *,
        params: Optional[Dict[str, Any]] = None,
        submit_max_retries: int = 3,
        default_retry_after_sec: float = 5.0,
        poll_initial_interval_sec: float = 2.0,
        poll_max_interval_sec: float = 15.0,
        poll_max_attempts: int = 20,
        poll_timeout_sec: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.params = params or {"n": 1, "steps": 30, "width": 512, "height": 512}
        self.submit_max_retries = submit_max_retries
        self.default_retry_after_sec = default_retry_after_sec
        self.poll_initial_interval_sec = poll_initial_interval_sec
        self.poll_max_interval_sec = poll_max_interval_sec
        self.poll_max_attempts = poll_max_attempts
        self.poll_timeout_sec = (
            poll_timeout_sec if poll_timeout_sec is not None else poll_max_attempts * poll_max_interval_sec
        )
        self._sleep = sleep
        self._clock = clock
        self._started_at: Optional[float] = None
        self._cancel_requested = False
        self.job = ImageJob()

    @property
    def state(self) -> JobState:
        return self.job.state

    @property
    def active(self) -> bool:
        return self.job.state is not JobState.IDLE and not self.job.state.is_terminal

    def cancel(self) -> None:
        """Ask the job to stop; observed before the next sleep."""
        self._cancel_requested = True

    async def run(self, prompt: str) -> ImageJob:
        """Submit and poll until terminal. A second call is a no-op."""
        if self.job.state is not JobState.IDLE:
            logging.info("Image job already started (state=%s); ignoring resubmission", self.job.state.value)
            return self.job
        try:
            await self.initiate(prompt)
            if self.job.state is JobState.QUEUED:
                await self.poll_until_done()
        except asyncio.CancelledError:
            self._abandon("cancelled")
            raise
        return self.job

    async def initiate(self, prompt: str) -> ImageJob:
        if self.job.state is not JobState.IDLE:
            return self.job
        self._transition(JobState.SUBMITTING)
        self._started_at = self._clock()
        deadline = self._deadline()

        while True:
            try:
                job_id = await self.client.submit(prompt, self.params)
            except RateLimitedError as e:
                if self.job.submission_retries >= self.submit_max_retries:
                    self._transition(
                        JobState.ERRORED,
                        error=f"Submission rate limited after {self.job.submission_retries} retries",
                    )
                    return self.job
                remaining = self._remaining(deadline)
                if remaining <= 0:
                    self._abandon(f"Gave up after {self.poll_timeout_sec:g}s")
                    return self.job
                self.job.submission_retries += 1
                self._transition(JobState.SUBMITTING, retry_after=e.retry_after)
                if not await self._pause(min(self._retry_delay(e), remaining)):
                    return self.job
                if self._clock() >= deadline:
                    # Submitting now would leave no time to poll the job
                    self._abandon(f"Gave up after {self.poll_timeout_sec:g}s")
                    return self.job
                continue
            except SubmissionError as e:
                self._transition(JobState.ERRORED, error=str(e))
                return self.job

            self._assign_id(job_id)
            self._transition(JobState.QUEUED)
            return self.job

    async def poll_until_done(self) -> ImageJob:
        if self.job.state not in (JobState.QUEUED, JobState.GENERATING):
            return self.job
        if self._started_at is None:
            self._started_at = self._clock()
        deadline = self._deadline()
        rate_limited = False

        while not self.job.state.is_terminal:
            try:
                self._check_budget(deadline)
            except PollTimeoutError as e:
                self._abandon(str(e))
                break

            # The advisory wait already stands in for the backoff
            if not rate_limited:
                delay = backoff_interval(self.job.attempt, self.poll_initial_interval_sec, self.poll_max_interval_sec)
                if not await self._pause(min(delay, self._remaining(deadline))):
                    break
            rate_limited = False

            try:
                result = await self.client.check(self.job.id)
            except RateLimitedError as e:
                # Honour the advisory delay without spending an attempt
                if not await self._pause(min(self._retry_delay(e), self._remaining(deadline))):
                    break
                rate_limited = True
                continue
            except PollError as e:
                self.job.attempt += 1
                logging.warning("Image job %s poll %d failed: %s", self.job.id, self.job.attempt, e)
                continue

            self.job.attempt += 1
            self._apply(result)

        return self.job

    def _apply(self, result: PollResult) -> None:
        self.job.queue_position = result.queue_position
        self.job.wait_time_seconds = result.wait_time_seconds
        new_state = classify_poll(result)
        if new_state is JobState.COMPLETED:
            self.job.url = result.results[0]
            self._transition(new_state)
        elif new_state is JobState.FAILED:
            self._transition(new_state, error=str(RemoteFault("Image generation faulted on the remote")))
        elif new_state is JobState.ERRORED:
            self._transition(new_state, error="Remote reported done without any generations")
        else:
            self._transition(new_state, queue_position=result.queue_position, wait_time=result.wait_time_seconds)

    def _check_budget(self, deadline: float) -> None:
        if self.job.attempt >= self.poll_max_attempts:
            raise PollTimeoutError(f"Gave up after {self.job.attempt} polls")
        if self._clock() >= deadline:
            raise PollTimeoutError(f"Gave up after {self.poll_timeout_sec:g}s")

    def _deadline(self) -> float:
        return self._started_at + self.poll_timeout_sec

    def _remaining(self, deadline: float) -> float:
        return max(0.0, deadline - self._clock())

    def _retry_delay(self, e: RateLimitedError) -> float:
        return e.retry_after if e.retry_after > 0 else self.default_retry_after_sec

    async def _pause(self, delay: float) -> bool:
        """Sleep unless cancelled; returns False (and abandons) on cancellation."""
        if self._cancel_requested:
            self._abandon("cancelled")
            return False
        await self._sleep(delay)
        if self._cancel_requested:
            self._abandon("cancelled")
            return False
        return True

    def _abandon(self, reason: str) -> None:
        if not self.job.state.is_terminal and self.job.state is not JobState.IDLE:
            self._transition(JobState.ABANDONED, error=reason)

    def _assign_id(self, job_id: str) -> None:
        if self.job.id is not None and self.job.id != job_id:
            raise JobStateError(f"Job id already assigned ({self.job.id})")
        self.job.id = job_id

    def _transition(self, new_state: JobState, error: Optional[str] = None, **extra: object) -> None:
        old_state = self.job.state
        if new_state not in ALLOWED_TRANSITIONS[old_state]:
            raise JobStateError(f"Illegal transition {old_state.value} -> {new_state.value}")
        self.job.state = new_state
        if error is not None:
            self.job.error = error
        log_data = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "tool": "image-job",
            "fn": "transition",
            "job_id": self.job.id,
            "from": old_state.value,
            "to": new_state.value,
            "attempt": self.job.attempt,
            "error": error,
            **extra,
        }
        logging.info(json.dumps(log_data))
