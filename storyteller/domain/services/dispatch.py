"""
Ways of getting a job's videos processed after the upload request returns:

- BackgroundDispatcher: one sequential loop per job on an Executor; the
  returned Future resolves once every video of the job is terminal.
- QueueDispatcher + WorkerPool: one task per video on a broker, consumed by a
  fixed number of worker threads across all jobs.
"""
import logging
import threading
import time
from concurrent.futures import Executor, Future
from typing import List, Optional, Protocol, Sequence, Set

from storyteller.domain.models import Job, VideoStatus, VideoTask
from storyteller.domain.services.job_service import JobService

logger = logging.getLogger(__name__)


class Broker(Protocol):
    def put(self, task: VideoTask) -> None: ...

    def get(self, timeout: float = 1.0) -> Optional[VideoTask]: ...

    def depth(self) -> int: ...


class BackgroundDispatcher:
    def __init__(self, service: JobService, executor: Executor, *, staged: bool = False) -> None:
        self.service = service
        self.executor = executor
        self.staged = staged
        self._futures: Set[Future] = set()
        self._lock = threading.Lock()

    def dispatch(self, job: Job, tasks: Sequence[VideoTask]) -> Future:
        future = self.executor.submit(self.service.run_job, job.id, list(tasks), staged=self.staged)
        with self._lock:
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._futures.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background job loop failed: %s", exc)

    def in_flight(self) -> int:
        with self._lock:
            return len(self._futures)


class QueueDispatcher:
    def __init__(self, broker: Broker) -> None:
        self.broker = broker

    def dispatch(self, job: Job, tasks: Sequence[VideoTask]) -> List[str]:
        for task in tasks:
            self.broker.put(task)
        logger.info("Queued %d video(s) for job %s", len(tasks), job.id)
        return [task.video_id for task in tasks]


class WorkerPool:
    """
    Fixed-size pool of threads pulling VideoTasks from a broker.

    A failed task is recorded on its video and never requeued; the worker
    moves on to the next task.
    """

    def __init__(
        self,
        service: JobService,
        broker: Broker,
        *,
        workers: int = 5,
        poll_timeout: float = 1.0,
    ) -> None:
        if workers < 1:
            raise ValueError("WorkerPool needs at least one worker")
        self.service = service
        self.broker = broker
        self.workers = workers
        self.poll_timeout = poll_timeout
        self.active = 0
        self.completed = 0
        self.failed = 0
        self._stop = threading.Event()
        self._state = threading.Condition()
        # Held while taking a task so a popped task is always counted as active.
        self._fetch_lock = threading.Lock()
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        self._stop.clear()
        for i in range(self.workers):
            thread = threading.Thread(target=self._loop, name=f"story-worker-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)
        logger.info("Started %d story worker(s)", self.workers)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once(self.poll_timeout)
            except Exception:  # noqa: BLE001 - a broken task must not kill the worker
                logger.exception("Story worker error")

    def run_once(self, timeout: float = 0) -> bool:
        """Process at most one task on the calling thread; False if none was waiting."""
        with self._fetch_lock:
            task = self.broker.get(timeout)
            if task is None:
                return False
            with self._state:
                self.active += 1

        status = VideoStatus.FAILED
        try:
            video = self.service.process_video(task)
            status = video.status
        except Exception as exc:  # noqa: BLE001 - surfaced as a failed record
            logger.exception("Worker failed on video %s of job %s", task.video_id, task.job_id)
            self.service.fail_if_open(task, str(exc) or "Worker failed while processing video")
        finally:
            with self._state:
                self.active -= 1
                if status == VideoStatus.COMPLETED:
                    self.completed += 1
                elif status == VideoStatus.FAILED:
                    self.failed += 1
                self._state.notify_all()
        return True

    def wait_idle(self, timeout: float = 10.0) -> bool:
        """Block until the broker is drained and no task is running."""
        deadline = time.monotonic() + timeout
        while True:
            with self._fetch_lock, self._state:
                if self.active == 0 and self.broker.depth() == 0:
                    return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            with self._state:
                self._state.wait(min(remaining, 0.05))

    def stats(self) -> dict:
        waiting = self.broker.depth()
        with self._state:
            return {
                "waiting": waiting,
                "active": self.active,
                "completed": self.completed,
                "failed": self.failed,
            }
