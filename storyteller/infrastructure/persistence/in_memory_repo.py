import copy
from datetime import datetime
from threading import RLock
from typing import Callable, Dict, Optional

from storyteller.domain.errors import JobNotFound, VideoNotFound
from storyteller.domain.models import Clock, Job, Video, utc_now

VideoMutation = Callable[[Video, datetime], None]


class InMemoryJobRepository:
    """
    In-memory job store owned by the application instance.

    Every read returns a deep copy, and every write goes through
    ``update_video`` so the job's aggregate status is recomputed under the
    same lock as the record change. Jobs live as long as the process.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = RLock()
        self._clock = clock

    def create(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = copy.deepcopy(job)

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def get_video(self, job_id: str, video_id: str) -> Optional[Video]:
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                return None
            video = job.find_video(video_id)
            return copy.deepcopy(video) if video else None

    def update_video(self, job_id: str, video_id: str, mutate: VideoMutation) -> Video:
        """
        Apply ``mutate(video, now)`` to one record and refresh the job status.

        Raises JobNotFound / VideoNotFound for unknown ids. If ``mutate``
        raises, the exception propagates and the job status is left as it was.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                raise JobNotFound(job_id)
            video = job.find_video(video_id)
            if not video:
                raise VideoNotFound(video_id)
            now = self._clock()
            mutate(video, now)
            job.refresh_status(now)
            return copy.deepcopy(video)

    def count(self) -> int:
        with self._lock:
            return len(self._jobs)
