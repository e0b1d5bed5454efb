class UploadRejected(Exception):
    """Client-side upload error, raised before any job is created."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class JobNotFound(LookupError):
    pass


class VideoNotFound(LookupError):
    pass


class InvalidTransition(ValueError):
    pass


class GenerationError(RuntimeError):
    pass


class StagingError(RuntimeError):
    pass
