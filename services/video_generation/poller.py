"""
Status Poller and Polling Supervisor

StatusPoller runs the bounded polling loop for one job:
    PENDING -> SUCCEEDED | FAILED | TIMED_OUT

PollingSupervisor runs pollers as background tasks keyed by job id and
records finished jobs in the video store. Tasks can be joined (tests) and
are cancelled when the server shuts down.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from core.config import Config, get_config

from .client import VideoGenerationClient, VideoGenerationError
from .status import FAILED, SUCCEEDED
from .store import StoreEntry, VideoStore

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class PollState(str, Enum):
    """Local lifecycle of a polling run."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PollOutcome:
    """Result of polling one job."""
    job_id: str
    state: PollState = PollState.PENDING
    attempts: int = 0
    generation_id: Optional[str] = None
    last_status: Optional[str] = None
    error: Optional[str] = None
    stored: bool = False
    finished_at: Optional[datetime] = None

    def finish(self, state: PollState, error: Optional[str] = None) -> "PollOutcome":
        self.state = state
        self.error = error
        self.finished_at = datetime.utcnow()
        return self


class StatusPoller:
    """
    Bounded polling loop over fetch_status.

    Usage:
        poller = StatusPoller(client, max_attempts=60, interval_seconds=10)
        outcome = await poller.run(job_id)
    """

    def __init__(
        self,
        client: VideoGenerationClient,
        max_attempts: int = 60,
        interval_seconds: float = 10.0,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.client = client
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        client: VideoGenerationClient,
        config: Optional[Config] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> "StatusPoller":
        config = config or get_config()
        return cls(
            client,
            max_attempts=config.polling.max_attempts,
            interval_seconds=config.polling.interval_seconds,
            sleep=sleep,
        )

    async def run(self, job_id: str, outcome: Optional[PollOutcome] = None) -> PollOutcome:
        """
        Poll until the job succeeds, fails, or the attempt budget runs out.

        A failed fetch only costs its attempt; it never ends the loop.
        The passed outcome, if any, is updated in place so callers can watch
        progress while the loop runs.
        """
        outcome = outcome or PollOutcome(job_id=job_id)

        for attempt in range(1, self.max_attempts + 1):
            outcome.attempts = attempt

            try:
                status = await self.client.fetch_status(job_id)
            except Exception as e:
                logger.warning(
                    f"Poll {attempt}/{self.max_attempts} for job {job_id} failed: "
                    f"{type(e).__name__}: {e}"
                )
                outcome.error = str(e)
            else:
                outcome.last_status = status.status

                if status.status == SUCCEEDED:
                    outcome.generation_id = status.generation_id
                    logger.info(
                        f"Job {job_id} succeeded after {attempt} polls "
                        f"(generation {status.generation_id})"
                    )
                    return outcome.finish(PollState.SUCCEEDED)

                if status.status == FAILED:
                    reason = status.failure_reason or "Video generation failed"
                    logger.error(f"Job {job_id} failed: {reason}")
                    return outcome.finish(PollState.FAILED, error=reason)

                logger.debug(f"Job {job_id} still {status.status} (poll {attempt})")

            if attempt < self.max_attempts:
                await self._sleep(self.interval_seconds)

        logger.warning(
            f"Job {job_id} did not finish within {self.max_attempts} polls; giving up"
        )
        return outcome.finish(
            PollState.TIMED_OUT,
            error=f"Job did not complete within {self.max_attempts} polls",
        )


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, VideoGenerationError) and error.retryable


class PollingSupervisor:
    """
    Owns the background poll tasks.

    Usage:
        supervisor = PollingSupervisor(client, store)
        supervisor.start(job_id, prompt)

        outcome = supervisor.outcome(job_id)   # live view, None if unknown
        await supervisor.join(job_id)          # wait for the task (tests)
        await supervisor.shutdown()            # cancel everything
    """

    def __init__(
        self,
        client: VideoGenerationClient,
        store: VideoStore,
        poller: Optional[StatusPoller] = None,
        config: Optional[Config] = None,
    ):
        self.client = client
        self.store = store
        self.poller = poller or StatusPoller.from_config(client, config)
        self._tasks: dict[str, asyncio.Task] = {}
        self._outcomes: dict[str, PollOutcome] = {}

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def is_running(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def outcome(self, job_id: str) -> Optional[PollOutcome]:
        return self._outcomes.get(job_id)

    def start(self, job_id: str, prompt: Optional[str] = None) -> asyncio.Task:
        """Start polling a job in the background; no-op if already running."""
        if self.is_running(job_id):
            return self._tasks[job_id]

        outcome = PollOutcome(job_id=job_id)
        self._outcomes[job_id] = outcome

        task = asyncio.create_task(self._run(job_id, prompt, outcome), name=f"poll-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t, job_id=job_id: self._forget(job_id, t))

        logger.info(f"Started background polling for job {job_id}")
        return task

    def _forget(self, job_id: str, task: asyncio.Task):
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]

    async def _run(self, job_id: str, prompt: Optional[str], outcome: PollOutcome) -> PollOutcome:
        try:
            await self.poller.run(job_id, outcome)

            if outcome.state == PollState.SUCCEEDED:
                await self._capture(outcome, prompt)

        except asyncio.CancelledError:
            outcome.finish(PollState.CANCELLED)
            logger.info(f"Polling for job {job_id} cancelled")
            raise

        return outcome

    async def _capture(self, outcome: PollOutcome, prompt: Optional[str]):
        """Record a succeeded job in the store, downloading first if needed."""
        if not outcome.generation_id:
            outcome.error = "Job succeeded without a generation id"
            logger.error(f"Job {outcome.job_id}: {outcome.error}")
            return

        entry = StoreEntry(
            job_id=outcome.job_id,
            generation_id=outcome.generation_id,
            prompt=prompt,
        )

        try:
            content = None
            if self.store.keeps_content:
                content = await self._download(outcome.job_id, outcome.generation_id)
            await self.store.put(entry, content)
        except Exception as e:
            outcome.error = f"Could not store video: {e}"
            logger.error(f"Job {outcome.job_id}: {outcome.error}")
            return

        outcome.stored = True

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception(_is_retryable),
        reraise=True,
    )
    async def _download(self, job_id: str, generation_id: str) -> bytes:
        return await self.client.fetch_content(job_id, generation_id)

    async def join(self, job_id: str) -> Optional[PollOutcome]:
        """Wait for a job's task to finish and return its outcome."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._outcomes.get(job_id)

    async def cancel(self, job_id: str) -> bool:
        task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def shutdown(self):
        """Cancel and await every running poll task."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        if not tasks:
            return

        logger.info(f"Cancelling {len(tasks)} polling task(s)")
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
