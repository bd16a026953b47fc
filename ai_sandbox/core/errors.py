"""Error types raised while talking to the ComfyUI backend."""


class ComfyError(Exception):
    """Base class for all backend related failures."""


class NetworkError(ComfyError):
    """Network error with status code and details."""

    def __init__(
        self,
        code: int,
        message: str,
        url: str,
        status: int | None = None,
        data: dict | None = None,
    ):
        self.code = code
        self.message = message
        self.url = url
        self.status = status
        self.data = data
        super().__init__(message)

    def __str__(self):
        return self.message


class BackendUnavailableError(NetworkError):
    """The backend could not be reached (refused, DNS failure, timeout)."""


class ArtifactNotFoundError(NetworkError):
    """The requested output file is not (yet) served by the backend."""


class WorkflowValidationError(ComfyError):
    """The backend rejected the submitted workflow."""

    def __init__(self, message: str, data: dict | None = None):
        self.data = data
        super().__init__(message)


class GenerationFailedError(ComfyError):
    """The backend reported that the job failed."""


class GenerationTimeoutError(ComfyError, TimeoutError):
    """No output appeared before the deadline."""
