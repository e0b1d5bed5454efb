import os
from dataclasses import dataclass
from typing import Mapping, Optional

from storyteller.domain.prompts import DatelineRule

MODES = ("direct", "staged", "queued")


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    mode: str = "direct"
    google_api_key: Optional[str] = None
    project_id: Optional[str] = None
    location: str = "us-central1"
    bucket_name: Optional[str] = None
    model: str = "gemini-3-flash-preview"
    dateline: DatelineRule = DatelineRule.SEASONAL_RANGE
    max_upload_mb: int = 500
    max_files: int = 10
    max_concurrent_jobs: int = 5
    redis_url: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"STORYTELLER_MODE must be one of {', '.join(MODES)}, got {self.mode!r}")
        if self.mode == "staged" and not self.bucket_name:
            raise ValueError("staged mode needs GCS_BUCKET_NAME")
        if self.max_files < 1:
            raise ValueError("MAX_FILES_PER_UPLOAD must be at least 1")
        if self.max_concurrent_jobs < 1:
            raise ValueError("MAX_CONCURRENT_JOBS must be at least 1")

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024 if self.max_upload_mb else 0

    @property
    def uses_vertex(self) -> bool:
        # gs:// references can only be read through Vertex AI.
        return self.mode == "staged" or (self.mode == "queued" and bool(self.bucket_name))

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        redis_url = env.get("REDIS_URL")
        if not redis_url and env.get("REDIS_HOST"):
            password = env.get("REDIS_PASSWORD")
            auth = f":{password}@" if password else ""
            redis_url = f"redis://{auth}{env['REDIS_HOST']}:{env.get('REDIS_PORT', '6379')}/0"
        try:
            dateline = DatelineRule(env.get("STORY_DATELINE", DatelineRule.SEASONAL_RANGE.value))
        except ValueError as e:
            raise ValueError(f"Unknown STORY_DATELINE {env.get('STORY_DATELINE')!r}") from e

        return cls(
            mode=env.get("STORYTELLER_MODE", "direct").strip().lower(),
            google_api_key=env.get("GOOGLE_AI_API_KEY"),
            project_id=env.get("GOOGLE_CLOUD_PROJECT_ID"),
            location=env.get("GOOGLE_CLOUD_LOCATION", "us-central1"),
            bucket_name=env.get("GCS_BUCKET_NAME") or None,
            model=env.get("GEMINI_MODEL", "gemini-3-flash-preview"),
            dateline=dateline,
            max_upload_mb=_int(env, "VIDEO_MAX_SIZE_MB", 500),
            max_files=_int(env, "MAX_FILES_PER_UPLOAD", 10),
            max_concurrent_jobs=_int(env, "MAX_CONCURRENT_JOBS", 5),
            redis_url=redis_url,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
