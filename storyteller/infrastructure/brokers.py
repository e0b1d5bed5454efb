"""
Work-queue brokers for the queued mode. Both hold VideoTask items in FIFO
order; delivery is at-least-once from the caller's point of view and nothing
is requeued by this code.
"""
import logging
import queue
from typing import Optional

import redis

from storyteller.domain.models import VideoTask

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_KEY = "video-processing"


class LocalBroker:
    """In-process queue for single-process deployments and tests."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[VideoTask]" = queue.Queue()

    def put(self, task: VideoTask) -> None:
        self._queue.put(task)

    def get(self, timeout: float = 1.0) -> Optional[VideoTask]:
        try:
            return self._queue.get(timeout=timeout) if timeout > 0 else self._queue.get_nowait()
        except queue.Empty:
            return None

    def depth(self) -> int:
        return self._queue.qsize()


class RedisBroker:
    """Redis list used as a shared queue (RPUSH to enqueue, BLPOP to take)."""

    def __init__(self, client: redis.Redis, key: str = DEFAULT_QUEUE_KEY) -> None:
        self._client = client
        self.key = key

    @classmethod
    def from_url(cls, url: str, key: str = DEFAULT_QUEUE_KEY) -> "RedisBroker":
        return cls(redis.Redis.from_url(url), key=key)

    def put(self, task: VideoTask) -> None:
        self._client.rpush(self.key, task.to_json())
        logger.debug("Queued video %s of job %s on %s", task.video_id, task.job_id, self.key)

    def get(self, timeout: float = 1.0) -> Optional[VideoTask]:
        if timeout <= 0:
            raw = self._client.lpop(self.key)
        else:
            # BLPOP takes whole seconds on older servers.
            item = self._client.blpop([self.key], timeout=max(1, int(timeout)))
            raw = item[1] if item else None
        if raw is None:
            return None
        return VideoTask.from_json(raw)

    def depth(self) -> int:
        return int(self._client.llen(self.key))
