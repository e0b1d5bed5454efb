from dataclasses import dataclass
from typing import Optional, Union

from fastapi import Request

from storyteller.config import Settings
from storyteller.domain.services.dispatch import BackgroundDispatcher, QueueDispatcher, WorkerPool
from storyteller.domain.services.job_service import JobService


@dataclass
class AppContext:
    """Per-application wiring; routes reach it through ``request.app.state``."""
    settings: Settings
    service: JobService
    dispatcher: Union[BackgroundDispatcher, QueueDispatcher]
    pool: Optional[WorkerPool] = None


def get_context(request: Request) -> AppContext:
    return request.app.state.context
