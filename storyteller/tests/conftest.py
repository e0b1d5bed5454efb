from concurrent.futures import Executor, Future
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import List

import pytest
from fastapi.testclient import TestClient

from storyteller.config import Settings
from storyteller.domain.errors import StagingError
from storyteller.domain.models import VideoSource
from storyteller.infrastructure.brokers import LocalBroker
from storyteller.main import create_app


class InlineExecutor(Executor):
    """Runs submitted work on the caller's thread so results are ready immediately."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future


class StepClock:
    """Clock that advances one second per call."""

    def __init__(self, start=datetime(2025, 11, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start
        self._lock = Lock()

    def __call__(self):
        with self._lock:
            self.now += timedelta(seconds=1)
            return self.now


class FakeGenerator:
    """
    Stand-in for the Gemini generator. Payloads starting with b"quota" raise
    a quota error; anything else yields a quoted-title story.
    """

    def __init__(self, on_generate=None):
        self.calls: List[VideoSource] = []
        self.on_generate = on_generate
        self._lock = Lock()

    def generate(self, source: VideoSource) -> str:
        with self._lock:
            self.calls.append(source)
        if self.on_generate:
            self.on_generate(source)
        if source.data is not None and source.data.startswith(b"quota"):
            raise RuntimeError("429 RESOURCE_EXHAUSTED: quota exceeded")
        return "Ice Storm Grips Town\n\nBozeman, Montana — January 15, 2019\n\nBody."


class FakeStager:
    def __init__(self, fail: bool = False, on_stage=None):
        self.fail = fail
        self.on_stage = on_stage
        self.staged = []

    def stage(self, job_id, video_id, original_name, data, mime_type):
        if self.on_stage:
            self.on_stage(job_id, video_id)
        if self.fail:
            raise StagingError(f"Failed to stage {original_name}: bucket unavailable")
        self.staged.append((job_id, video_id, original_name, mime_type))
        return f"gs://test-bucket/{job_id}/{video_id}-{original_name}"


def mp4(name="clip.mp4", data=b"fake_video_content"):
    return ("videos", (name, data, "video/mp4"))


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def direct_client(generator, clock):
    app = create_app(
        Settings(mode="direct"),
        generator=generator,
        executor=InlineExecutor(),
        clock=clock,
    )
    with TestClient(app) as client:
        yield client


@pytest.fixture
def queued_app(generator, clock):
    return create_app(
        Settings(mode="queued"),
        generator=generator,
        broker=LocalBroker(),
        clock=clock,
        start_workers=False,
    )
