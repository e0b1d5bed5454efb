import base64
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional

from storyteller.domain.errors import InvalidTransition

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VideoStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoStatus.COMPLETED, VideoStatus.FAILED)


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"


# Forward-only lifecycle; terminal states have no outgoing edges.
_TRANSITIONS: Dict[VideoStatus, FrozenSet[VideoStatus]] = {
    VideoStatus.PENDING: frozenset(
        {VideoStatus.UPLOADING, VideoStatus.PROCESSING, VideoStatus.COMPLETED, VideoStatus.FAILED}
    ),
    VideoStatus.UPLOADING: frozenset({VideoStatus.PROCESSING, VideoStatus.FAILED}),
    VideoStatus.PROCESSING: frozenset({VideoStatus.COMPLETED, VideoStatus.FAILED}),
    VideoStatus.COMPLETED: frozenset(),
    VideoStatus.FAILED: frozenset(),
}

ALLOWED_MIME_TYPES = frozenset({"video/mp4", "video/webm", "video/quicktime"})


@dataclass
class Video:
    id: str
    original_name: str
    mime_type: str
    created_at: datetime
    status: VideoStatus = VideoStatus.PENDING
    size_bytes: int = 0
    story: Optional[str] = None
    error: Optional[str] = None
    gcs_uri: Optional[str] = None
    completed_at: Optional[datetime] = None

    def advance(self, status: VideoStatus, now: datetime) -> None:
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"Video {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status.is_terminal:
            self.completed_at = now

    def complete(self, story: str, now: datetime) -> None:
        self.advance(VideoStatus.COMPLETED, now)
        self.story = story
        self.error = None

    def fail(self, error: str, now: datetime) -> None:
        self.advance(VideoStatus.FAILED, now)
        self.error = error
        self.story = None


@dataclass(frozen=True)
class VideoSource:
    """Video payload for one generation call: raw bytes or a staged URI."""
    mime_type: str
    data: Optional[bytes] = None
    uri: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.uri is None):
            raise ValueError("VideoSource needs exactly one of data or uri")

    @property
    def is_staged(self) -> bool:
        return self.uri is not None


@dataclass(frozen=True)
class VideoTask:
    """One unit of queued work: which record to update and what to send."""
    job_id: str
    video_id: str
    original_name: str
    source: VideoSource

    def to_json(self) -> str:
        payload = {
            "jobId": self.job_id,
            "videoId": self.video_id,
            "originalName": self.original_name,
            "mimeType": self.source.mime_type,
        }
        if self.source.is_staged:
            payload["gcsUri"] = self.source.uri
        else:
            payload["data"] = base64.b64encode(self.source.data).decode("ascii")
        return json.dumps(payload)

    @classmethod
    def from_json(cls, raw) -> "VideoTask":
        payload = json.loads(raw)
        data = payload.get("data")
        source = VideoSource(
            mime_type=payload["mimeType"],
            data=base64.b64decode(data) if data is not None else None,
            uri=payload.get("gcsUri"),
        )
        return cls(
            job_id=payload["jobId"],
            video_id=payload["videoId"],
            original_name=payload.get("originalName", ""),
            source=source,
        )


@dataclass
class Job:
    id: str
    created_at: datetime
    videos: List[Video] = field(default_factory=list)
    status: JobStatus = JobStatus.PROCESSING
    completed_at: Optional[datetime] = None

    @property
    def is_finished(self) -> bool:
        return all(v.status.is_terminal for v in self.videos)

    def find_video(self, video_id: str) -> Optional[Video]:
        for video in self.videos:
            if video.id == video_id:
                return video
        return None

    def refresh_status(self, now: datetime) -> JobStatus:
        """
        Recompute the aggregate status from the videos.

        A job is completed once every video is terminal, whether the videos
        succeeded or failed.
        """
        if self.videos and self.is_finished:
            if self.status != JobStatus.COMPLETED:
                self.status = JobStatus.COMPLETED
                self.completed_at = now
        else:
            self.status = JobStatus.PROCESSING
            self.completed_at = None
        return self.status
