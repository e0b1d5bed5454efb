from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from storyteller.domain.models import Job, JobStatus, Video, VideoStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VideoSummary(BaseModel):
    id: str
    name: str
    status: VideoStatus


class UploadResponse(CamelModel):
    job_id: str = Field(alias="jobId")
    message: str
    videos: List[VideoSummary] = []


class VideoDetail(CamelModel):
    id: str
    original_name: str = Field(alias="originalName")
    mime_type: str = Field(alias="mimeType")
    status: VideoStatus
    story: Optional[str] = None
    error: Optional[str] = None
    gcs_uri: Optional[str] = Field(default=None, alias="gcsUri")
    created_at: datetime = Field(alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")

    @classmethod
    def from_video(cls, video: Video) -> "VideoDetail":
        return cls(
            id=video.id,
            original_name=video.original_name,
            mime_type=video.mime_type,
            status=video.status,
            story=video.story,
            error=video.error,
            gcs_uri=video.gcs_uri,
            created_at=video.created_at,
            completed_at=video.completed_at,
        )


class JobDetail(CamelModel):
    id: str
    status: JobStatus
    videos: List[VideoDetail] = []
    created_at: datetime = Field(alias="createdAt")
    completed_at: Optional[datetime] = Field(default=None, alias="completedAt")

    @classmethod
    def from_job(cls, job: Job) -> "JobDetail":
        return cls(
            id=job.id,
            status=job.status,
            videos=[VideoDetail.from_video(v) for v in job.videos],
            created_at=job.created_at,
            completed_at=job.completed_at,
        )


class QueueStats(BaseModel):
    waiting: int
    active: int
    completed: int
    failed: int


class StatsResponse(CamelModel):
    total_jobs: int = Field(alias="totalJobs")
    mode: str
    queue: Optional[QueueStats] = None
