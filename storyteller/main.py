import logging
import os
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from storyteller.app.api import routes_jobs
from storyteller.app.context import AppContext
from storyteller.config import Settings
from storyteller.domain.models import Clock, utc_now
from storyteller.domain.prompts import build_story_prompt
from storyteller.domain.services.dispatch import BackgroundDispatcher, Broker, QueueDispatcher, WorkerPool
from storyteller.domain.services.job_service import JobService
from storyteller.infrastructure.brokers import LocalBroker, RedisBroker
from storyteller.infrastructure.gcs_adapter import GCSVideoStager
from storyteller.infrastructure.gemini_adapter import (
    GeminiStoryGenerator,
    api_key_client_factory,
    vertex_client_factory,
)
from storyteller.infrastructure.persistence.in_memory_repo import InMemoryJobRepository

logger = logging.getLogger("uvicorn.access")


class LogRequestsMiddleware(BaseHTTPMiddleware):
    """Log when a request is received (before body is read), so long uploads show up immediately."""

    async def dispatch(self, request, call_next):
        logger.info("Request started: %s %s", request.method, request.url.path)
        response = await call_next(request)
        return response


def build_generator(settings: Settings) -> GeminiStoryGenerator:
    if settings.uses_vertex:
        factory = vertex_client_factory(settings.project_id, settings.location)
    else:
        factory = api_key_client_factory(settings.google_api_key)
    return GeminiStoryGenerator(factory, model=settings.model, prompt=build_story_prompt(settings.dateline))


def build_broker(settings: Settings) -> Broker:
    if settings.redis_url:
        return RedisBroker.from_url(settings.redis_url)
    logging.getLogger(__name__).warning("REDIS_URL not set; using an in-process queue")
    return LocalBroker()


def create_app(
    settings: Optional[Settings] = None,
    *,
    repository: Optional[InMemoryJobRepository] = None,
    generator: Optional[GeminiStoryGenerator] = None,
    stager: Optional[GCSVideoStager] = None,
    broker: Optional[Broker] = None,
    executor: Optional[Executor] = None,
    clock: Clock = utc_now,
    start_workers: bool = True,
) -> FastAPI:
    """
    Wire the store, generator and dispatcher for the configured mode.

    Every collaborator can be passed in; anything missing is built from
    ``settings``.
    """
    settings = settings or Settings.from_env()
    repository = repository or InMemoryJobRepository(clock=clock)
    generator = generator or build_generator(settings)
    if stager is None and settings.bucket_name and settings.mode != "direct":
        stager = GCSVideoStager(settings.bucket_name, project=settings.project_id)

    service = JobService(
        repository,
        generator,
        stager=stager,
        stage_on_upload=settings.mode == "queued",
        clock=clock,
    )

    owns_executor = False
    pool = None
    if settings.mode == "queued":
        broker = broker or build_broker(settings)
        dispatcher = QueueDispatcher(broker)
        pool = WorkerPool(service, broker, workers=settings.max_concurrent_jobs)
    else:
        if executor is None:
            executor = ThreadPoolExecutor(thread_name_prefix="story-job")
            owns_executor = True
        dispatcher = BackgroundDispatcher(service, executor, staged=settings.mode == "staged")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Video storyteller starting in %s mode with %s", settings.mode, settings.model)
        if pool and start_workers:
            pool.start()
        yield
        if pool:
            pool.stop(timeout=5)
        if owns_executor:
            executor.shutdown(wait=False)

    app = FastAPI(title="Video Storyteller API", version="0.1.0", lifespan=lifespan)
    app.state.context = AppContext(settings=settings, service=service, dispatcher=dispatcher, pool=pool)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logging.getLogger(__name__).exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})

    app.add_middleware(LogRequestsMiddleware)
    app.include_router(routes_jobs.router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "timestamp": utc_now().isoformat()}

    return app


def run() -> None:
    import uvicorn

    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(settings), host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))


if __name__ == "__main__":
    run()
