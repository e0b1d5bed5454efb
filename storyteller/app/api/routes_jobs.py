import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from starlette.concurrency import run_in_threadpool

from storyteller.app.context import AppContext, get_context
from storyteller.app.schemas.jobs import (
    JobDetail,
    QueueStats,
    StatsResponse,
    UploadResponse,
    VideoDetail,
    VideoSummary,
)
from storyteller.config import Settings
from storyteller.domain.errors import JobNotFound, StagingError, UploadRejected, VideoNotFound
from storyteller.domain.services.job_service import UploadedVideo, validate_upload_batch

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB per read

router = APIRouter(prefix="/api", tags=["jobs"])


async def _read_upload(file: UploadFile, settings: Settings) -> UploadedVideo:
    """Read one upload into memory, stopping as soon as it passes the size ceiling."""
    limit = settings.max_upload_bytes
    too_large = UploadRejected(
        f"File too large. Maximum size is {settings.max_upload_mb} MB.",
        status_code=413,
    )
    size = getattr(file, "size", None)
    if limit and size is not None and size > limit:
        raise too_large

    chunks = []
    total = 0
    while True:
        chunk = await file.read(CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if limit and total > limit:
            raise too_large
        chunks.append(chunk)

    if total == 0:
        raise UploadRejected(f"Uploaded file {file.filename or 'unnamed'} is empty")
    logger.info("Received %s (%.2f MB)", file.filename, total / 1024 / 1024)
    return UploadedVideo(name=file.filename or "video", mime_type=file.content_type, data=b"".join(chunks))


@router.post("/upload", response_model=UploadResponse, status_code=202)
async def upload_videos(
    videos: Optional[List[UploadFile]] = File(None),
    ctx: AppContext = Depends(get_context),
):
    """
    Accept 1-10 videos, create a job and hand the videos to the dispatcher.
    Returns before any story is generated; poll /api/job/{jobId} for results.
    """
    files = videos or []
    try:
        validate_upload_batch(
            [(f.filename, f.content_type) for f in files],
            max_files=ctx.settings.max_files,
        )
        uploads = [await _read_upload(f, ctx.settings) for f in files]
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    try:
        job, tasks = await run_in_threadpool(ctx.service.create_job, uploads)
    except StagingError as e:
        logger.error("Upload staging failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e)) from e

    try:
        await run_in_threadpool(ctx.dispatcher.dispatch, job, tasks)
    except Exception as e:
        logger.exception("Dispatch failed for job %s", job.id)
        for task in tasks:
            ctx.service.fail_if_open(task, f"Could not queue video: {e!s}")
        raise HTTPException(status_code=500, detail=f"Could not queue videos: {e!s}") from e

    return UploadResponse(
        job_id=job.id,
        message=f"{len(job.videos)} video(s) queued for processing",
        videos=[VideoSummary(id=v.id, name=v.original_name, status=v.status) for v in job.videos],
    )


@router.get("/job/{job_id}", response_model=JobDetail, response_model_exclude_none=True)
async def get_job_status(job_id: str, ctx: AppContext = Depends(get_context)):
    try:
        job = ctx.service.get_job(job_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobDetail.from_job(job)


@router.get(
    "/job/{job_id}/video/{video_id}",
    response_model=VideoDetail,
    response_model_exclude_none=True,
)
async def get_video_status(job_id: str, video_id: str, ctx: AppContext = Depends(get_context)):
    try:
        video = ctx.service.get_video(job_id, video_id)
    except JobNotFound:
        raise HTTPException(status_code=404, detail="Job not found")
    except VideoNotFound:
        raise HTTPException(status_code=404, detail="Video not found")
    return VideoDetail.from_video(video)


@router.get("/stats", response_model=StatsResponse, response_model_exclude_none=True)
async def get_stats(ctx: AppContext = Depends(get_context)):
    queue = None
    if ctx.pool:
        # Broker depth may be a network round trip.
        queue = QueueStats(**await run_in_threadpool(ctx.pool.stats))
    return StatsResponse(
        total_jobs=ctx.service.repository.count(),
        mode=ctx.settings.mode,
        queue=queue,
    )
