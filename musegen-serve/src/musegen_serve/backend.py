"""Single-worker generation queue.

:class:`GenerationBackend` accepts generation requests, runs them one at a
time through a :class:`~musegen_core.pipeline.JobProcessor`, and broadcasts
lifecycle events to subscribers.

Two threads run once :meth:`GenerationBackend.run` is called:

- the *command loop* is the only owner of the job queue. ``submit``,
  ``cancel``, ``shutdown`` and the worker's completion notices all reach it
  as messages on one inbound queue. It hands the head job to the worker
  and keeps it as the in-flight job until the worker reports back, so a
  cancel can still find it while it runs.
- the *worker* waits for a dispatched job, runs the pipeline, and emits
  ``JobStarted -> JobProgress* -> (JobCompleted | JobFailed)``.

Cancellation is cooperative: the job's flag is polled at the top of every
decode step and in the progress callback.
"""

from __future__ import annotations

import dataclasses
import logging
import queue
import threading
import uuid
from collections import deque

import numpy as np

from musegen_core.constants import MAX_DURATION_SECS, MIN_DURATION_SECS, POLL_INTERVAL_MS
from musegen_core.pipeline import JobProcessor

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class GenerationRequest:
    """One prompt to render into *secs* seconds of audio."""

    id: str
    prompt: str
    secs: int

    def __post_init__(self) -> None:
        if not MIN_DURATION_SECS <= self.secs <= MAX_DURATION_SECS:
            raise ValueError(
                f"secs must be between {MIN_DURATION_SECS} and "
                f"{MAX_DURATION_SECS}, got {self.secs}"
            )

    @classmethod
    def new(cls, prompt: str, secs: int) -> GenerationRequest:
        return cls(id=str(uuid.uuid4()), prompt=prompt, secs=secs)


class Job:
    """A queued request plus its cancellation flag."""

    def __init__(self, request: GenerationRequest) -> None:
        self.request = request
        self.cancel_event = threading.Event()

    @property
    def id(self) -> str:
        return self.request.id

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def __repr__(self) -> str:
        return f"Job(id={self.id!r}, cancelled={self.cancelled})"


# ---------------------------------------------------------------------------
# Outbound events
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class JobStarted:
    request: GenerationRequest

    @property
    def id(self) -> str:
        return self.request.id


@dataclasses.dataclass(frozen=True)
class JobProgress:
    id: str
    progress: float


@dataclasses.dataclass(frozen=True)
class JobCompleted:
    id: str
    samples: np.ndarray


@dataclasses.dataclass(frozen=True)
class JobFailed:
    id: str
    reason: str


JobEvent = JobStarted | JobProgress | JobCompleted | JobFailed


# Wakes iterators blocked on a closed subscription.
_CLOSED = object()


class Subscription:
    """Receives every event published after it was created."""

    def __init__(self, backend: GenerationBackend) -> None:
        self._backend = backend
        self._queue: queue.Queue = queue.Queue()
        self.closed = False

    def _deliver(self, event: JobEvent) -> None:
        self._queue.put_nowait(event)

    def get(self, timeout: float | None = None) -> JobEvent:
        """Next event; raises :class:`queue.Empty` after *timeout* seconds or once closed."""
        event = self._queue.get(timeout=timeout)
        if event is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise queue.Empty
        return event

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._backend._unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __iter__(self):
        while True:
            event = self._queue.get()
            if event is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                return
            yield event

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Inbound commands (command loop only)
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class _Submit:
    request: GenerationRequest


@dataclasses.dataclass(frozen=True)
class _Cancel:
    id: str


@dataclasses.dataclass(frozen=True)
class _Finished:
    job: Job


@dataclasses.dataclass(frozen=True)
class _Shutdown:
    pass


class GenerationBackend:
    """Serialized generation worker with cancellation and event fan-out.

    Args:
        processor: Pipeline used for every job.
        poll_interval: Seconds the idle worker waits between shutdown checks.
    """

    def __init__(
        self,
        processor: JobProcessor,
        poll_interval: float = POLL_INTERVAL_MS / 1000,
    ) -> None:
        self.processor = processor
        self.poll_interval = poll_interval

        self._inbound: queue.Queue = queue.Queue()
        self._dispatch: queue.Queue[Job] = queue.Queue(maxsize=1)
        self._shutdown = threading.Event()

        self._subscribers: list[Subscription] = []
        self._subscribers_lock = threading.Lock()

        self._command_thread: threading.Thread | None = None
        self._worker_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> GenerationBackend:
        """Start the command loop and the worker."""
        if self._command_thread is not None:
            raise RuntimeError("Backend is already running")
        self._worker_thread = threading.Thread(
            target=self._job_processing_loop, name="musegen-worker", daemon=True,
        )
        self._command_thread = threading.Thread(
            target=self._command_loop, name="musegen-commands", daemon=True,
        )
        self._worker_thread.start()
        self._command_thread.start()
        logger.info("Generation backend running (%s on %s)", self.processor.name, self.processor.device)
        return self

    @property
    def running(self) -> bool:
        return self._command_thread is not None and not self._shutdown.is_set()

    def submit(self, request: GenerationRequest) -> None:
        """Enqueue *request*; duplicates become independent jobs."""
        self._inbound.put(_Submit(request))

    def cancel(self, request_id: str) -> None:
        """Cancel queued or in-flight jobs with *request_id*.

        Queued jobs are dropped without emitting any event. A running job
        stops at its next decode step and ends with ``JobFailed(id, "Aborted")``.
        """
        self._inbound.put(_Cancel(request_id))

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        with self._subscribers_lock:
            self._subscribers.append(sub)
        return sub

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """Stop the command loop; the worker exits once its job ends."""
        self._inbound.put(_Shutdown())
        if self._command_thread is not None:
            self._command_thread.join(timeout)
        if self._worker_thread is not None:
            self._worker_thread.join(timeout)

    def __enter__(self) -> GenerationBackend:
        return self.run()

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Event fan-out
    # ------------------------------------------------------------------

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._subscribers_lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def _publish(self, event: JobEvent) -> None:
        with self._subscribers_lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub._deliver(event)

    # ------------------------------------------------------------------
    # Command loop
    # ------------------------------------------------------------------

    def _command_loop(self) -> None:
        jobs: deque[Job] = deque()
        in_flight: Job | None = None

        while True:
            msg = self._inbound.get()

            if isinstance(msg, _Submit):
                jobs.append(Job(msg.request))
                logger.debug("Queued %s (%d pending)", msg.request.id, len(jobs))

            elif isinstance(msg, _Cancel):
                if in_flight is not None and in_flight.id == msg.id:
                    in_flight.cancel()
                    logger.info("Cancelling running job %s", msg.id)
                removed = [job for job in jobs if job.id == msg.id]
                for job in removed:
                    job.cancel()
                    jobs.remove(job)
                if removed:
                    logger.info("Removed %d queued job(s) %s", len(removed), msg.id)

            elif isinstance(msg, _Finished):
                if msg.job is in_flight:
                    in_flight = None

            elif isinstance(msg, _Shutdown):
                if in_flight is not None:
                    in_flight.cancel()
                for job in jobs:
                    job.cancel()
                jobs.clear()
                break

            if in_flight is None and jobs:
                in_flight = jobs.popleft()
                self._dispatch.put(in_flight)

        self._shutdown.set()
        logger.info("Generation backend stopped")

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _job_processing_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                job = self._dispatch.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            try:
                self._process(job)
            finally:
                self._inbound.put(_Finished(job))

    def _process(self, job: Job) -> None:
        request = job.request
        if job.cancelled:
            logger.info("Skipping cancelled job %s", request.id)
            return

        logger.info("Starting job %s (%ds): %r", request.id, request.secs, request.prompt)
        self._publish(JobStarted(request))

        last_progress = 0.0

        def on_progress(progress: float) -> bool:
            nonlocal last_progress
            if job.cancelled:
                return True
            last_progress = min(1.0, max(last_progress, float(progress)))
            self._publish(JobProgress(request.id, last_progress))
            return job.cancelled

        try:
            samples = self.processor.process(
                request.prompt, request.secs, on_progress, cancel=job.cancel_event,
            )
        except Exception as e:
            logger.error("Job %s failed: %s", request.id, e)
            self._publish(JobFailed(request.id, str(e)))
            return

        logger.info("Job %s completed (%d samples)", request.id, len(samples))
        self._publish(JobCompleted(request.id, samples))
