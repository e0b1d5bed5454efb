import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from storyteller.domain.errors import JobNotFound, UploadRejected, VideoNotFound
from storyteller.domain.models import (
    ALLOWED_MIME_TYPES,
    Clock,
    Job,
    Video,
    VideoSource,
    VideoStatus,
    VideoTask,
    utc_now,
)
from storyteller.infrastructure.gcs_adapter import GCSVideoStager
from storyteller.infrastructure.gemini_adapter import GeminiStoryGenerator
from storyteller.infrastructure.persistence.in_memory_repo import InMemoryJobRepository

logger = logging.getLogger(__name__)

MAX_FILES_PER_UPLOAD = 10


@dataclass(frozen=True)
class UploadedVideo:
    name: str
    mime_type: str
    data: bytes


@dataclass(frozen=True)
class StoryOutcome:
    story: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.story is not None


def validate_upload_batch(
    files: Sequence[Tuple[str, Optional[str]]],
    max_files: int = MAX_FILES_PER_UPLOAD,
) -> None:
    """
    Check (filename, content_type) pairs before anything is read or stored.

    The declared MIME type decides; the filename extension is ignored.
    """
    if not files:
        raise UploadRejected("No video files provided")
    if len(files) > max_files:
        raise UploadRejected(f"Too many files. At most {max_files} videos per upload.")
    for name, content_type in files:
        if content_type not in ALLOWED_MIME_TYPES:
            raise UploadRejected(
                "Invalid file type. Only MP4, WebM, and QuickTime are allowed."
                f" ({name or 'unnamed'}: {content_type or 'unknown'})"
            )


def generate_story(generator: GeminiStoryGenerator, source: VideoSource) -> StoryOutcome:
    """Run the generator and fold any failure into the outcome."""
    try:
        return StoryOutcome(story=generator.generate(source))
    except Exception as exc:  # noqa: BLE001 - recorded on the video, never retried
        logger.warning("Story generation failed: %s", exc)
        return StoryOutcome(error=str(exc) or exc.__class__.__name__)


class JobService:
    """
    Creates jobs and drives each video through its lifecycle. All record
    changes go through the repository; this class holds no job state.
    """

    def __init__(
        self,
        repository: InMemoryJobRepository,
        generator: GeminiStoryGenerator,
        *,
        stager: Optional[GCSVideoStager] = None,
        stage_on_upload: bool = False,
        clock: Clock = utc_now,
    ) -> None:
        self.repository = repository
        self.generator = generator
        self.stager = stager
        self.stage_on_upload = stage_on_upload and stager is not None
        self._clock = clock
        self._in_flight: Set[Tuple[str, str]] = set()
        self._lock = threading.Lock()

    def create_job(self, uploads: Sequence[UploadedVideo]) -> Tuple[Job, List[VideoTask]]:
        """
        Create a job with one pending video per upload, in upload order.

        When staging on upload, every file is staged before the job is stored;
        a StagingError propagates and no job is created.
        """
        job_id = str(uuid.uuid4())
        now = self._clock()
        job = Job(id=job_id, created_at=now)
        tasks: List[VideoTask] = []

        for upload in uploads:
            video_id = str(uuid.uuid4())
            gcs_uri = None
            if self.stage_on_upload:
                gcs_uri = self.stager.stage(job_id, video_id, upload.name, upload.data, upload.mime_type)
                source = VideoSource(mime_type=upload.mime_type, uri=gcs_uri)
            else:
                source = VideoSource(mime_type=upload.mime_type, data=upload.data)

            job.videos.append(
                Video(
                    id=video_id,
                    original_name=upload.name,
                    mime_type=upload.mime_type,
                    created_at=now,
                    size_bytes=len(upload.data),
                    gcs_uri=gcs_uri,
                )
            )
            tasks.append(VideoTask(job_id=job_id, video_id=video_id, original_name=upload.name, source=source))

        self.repository.create(job)
        logger.info("Created job %s with %d video(s)", job_id, len(tasks))
        return job, tasks

    def get_job(self, job_id: str) -> Job:
        job = self.repository.get(job_id)
        if not job:
            raise JobNotFound(job_id)
        return job

    def get_video(self, job_id: str, video_id: str) -> Video:
        if not self.repository.get(job_id):
            raise JobNotFound(job_id)
        video = self.repository.get_video(job_id, video_id)
        if not video:
            raise VideoNotFound(video_id)
        return video

    def _begin(self, task: VideoTask, status: VideoStatus) -> bool:
        """Move a video forward to ``status``; False if it is already terminal."""
        started = []

        def begin(video: Video, now) -> None:
            if video.status.is_terminal:
                return
            if video.status != status:
                video.advance(status, now)
            started.append(video.id)

        video = self.repository.update_video(task.job_id, task.video_id, begin)
        if not started:
            logger.info("Video %s already %s, skipping", task.video_id, video.status.value)
        return bool(started)

    def record_outcome(self, job_id: str, video_id: str, outcome: StoryOutcome) -> Video:
        """Store the story or error; a video that is already terminal keeps its result."""

        def finish(video: Video, now) -> None:
            if video.status.is_terminal:
                logger.info("Video %s already %s, outcome dropped", video.id, video.status.value)
            elif outcome.ok:
                video.complete(outcome.story, now)
            else:
                video.fail(outcome.error, now)

        return self.repository.update_video(job_id, video_id, finish)

    def process_video(self, task: VideoTask) -> Video:
        """
        Generate the story for one video and record the result.

        A redelivered task for a video that is already terminal, or that
        another worker is generating right now, is a no-op.
        """
        key = (task.job_id, task.video_id)
        with self._lock:
            if key in self._in_flight:
                logger.info("Video %s is already being processed, skipping", task.video_id)
                return self.repository.get_video(task.job_id, task.video_id)
            self._in_flight.add(key)
        try:
            return self._generate(task)
        finally:
            with self._lock:
                self._in_flight.discard(key)

    def _generate(self, task: VideoTask) -> Video:
        if not self._begin(task, VideoStatus.PROCESSING):
            return self.repository.get_video(task.job_id, task.video_id)

        outcome = generate_story(self.generator, task.source)
        video = self.record_outcome(task.job_id, task.video_id, outcome)
        if outcome.ok:
            logger.info("Story generated for %s (job %s)", task.original_name, task.job_id)
        else:
            logger.error("Video %s (job %s) failed: %s", task.original_name, task.job_id, outcome.error)
        return video

    def stage_and_process(self, task: VideoTask) -> Video:
        """Stage inline bytes to storage, then generate from the staged URI."""
        if task.source.is_staged or self.stager is None:
            return self.process_video(task)
        if not self._begin(task, VideoStatus.UPLOADING):
            return self.repository.get_video(task.job_id, task.video_id)

        try:
            uri = self.stager.stage(
                task.job_id, task.video_id, task.original_name, task.source.data, task.source.mime_type
            )
        except Exception as exc:  # noqa: BLE001 - staging failure ends this video only
            logger.error("Staging %s (job %s) failed: %s", task.original_name, task.job_id, exc)
            return self.record_outcome(task.job_id, task.video_id, StoryOutcome(error=str(exc)))

        def mark_staged(video: Video, now) -> None:
            video.gcs_uri = uri
            video.advance(VideoStatus.PROCESSING, now)

        self.repository.update_video(task.job_id, task.video_id, mark_staged)
        staged = VideoTask(
            job_id=task.job_id,
            video_id=task.video_id,
            original_name=task.original_name,
            source=VideoSource(mime_type=task.source.mime_type, uri=uri),
        )
        return self.process_video(staged)

    def run_job(self, job_id: str, tasks: Iterable[VideoTask], *, staged: bool = False) -> Job:
        """Process a job's videos one after another, in upload order."""
        step = self.stage_and_process if staged else self.process_video
        for task in tasks:
            try:
                step(task)
            except Exception:  # noqa: BLE001 - keep going with the sibling videos
                logger.exception("Unexpected error on video %s of job %s", task.video_id, job_id)
                self.fail_if_open(task, "Internal error while processing video")
        job = self.get_job(job_id)
        logger.info("Job %s %s", job_id, job.status.value)
        return job

    def fail_if_open(self, task: VideoTask, message: str) -> None:
        def fail(video: Video, now) -> None:
            if not video.status.is_terminal:
                video.fail(message, now)

        try:
            self.repository.update_video(task.job_id, task.video_id, fail)
        except (JobNotFound, VideoNotFound):
            logger.warning("Cannot mark video %s of job %s failed: record is gone", task.video_id, task.job_id)
