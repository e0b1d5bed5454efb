import logging
import time
from typing import Optional

from google.cloud import storage

from storyteller.domain.errors import StagingError

logger = logging.getLogger(__name__)


class GCSVideoStager:
    """
    Upload video bytes to a Cloud Storage bucket so the model can read them
    by gs:// URI instead of receiving them inline.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        project: Optional[str] = None,
        client: Optional[storage.Client] = None,
    ) -> None:
        self.bucket_name = bucket_name
        self._project = project
        self._client = client

    @property
    def client(self) -> storage.Client:
        if self._client is None:
            self._client = storage.Client(project=self._project)
        return self._client

    def stage(
        self,
        job_id: str,
        video_id: str,
        original_name: str,
        data: bytes,
        mime_type: str,
    ) -> str:
        object_name = f"{job_id}/{video_id}-{original_name}"
        started = time.monotonic()
        try:
            blob = self.client.bucket(self.bucket_name).blob(object_name)
            blob.upload_from_string(data, content_type=mime_type)
        except Exception as e:
            raise StagingError(f"Failed to stage {original_name}: {e!s}") from e
        logger.info(
            "Staged %s (%.2f MB) in %.2fs",
            original_name,
            len(data) / 1024 / 1024,
            time.monotonic() - started,
        )
        return f"gs://{self.bucket_name}/{object_name}"
