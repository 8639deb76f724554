"""Custom exceptions for the video render worker.

Every pipeline step raises a subclass of RenderJobError. The worker converts
them into a failed RenderResult at the job boundary; only the worker decides
whether a failed job is retried.
"""


class RenderJobError(Exception):
    """Base exception for all render job errors."""

    code: str = "RENDER_JOB_ERROR"
    message: str = "Render job failed"

    def __init__(self, message: str | None = None, *, job_id: str | None = None):
        self.message = message or self.__class__.message
        self.job_id = job_id
        super().__init__(self.message)


class ClaimRaceLost(RenderJobError):
    """Another worker (or loop iteration) claimed the job first. Not a failure."""

    code = "CLAIM_RACE_LOST"
    message = "Job was claimed by another worker"


class AudioResolutionError(RenderJobError):
    """Storage backend could not produce a signed URL for the source audio."""

    code = "AUDIO_RESOLUTION_FAILED"
    message = "Failed to get signed URL"


class DownloadError(RenderJobError):
    """Source audio could not be downloaded."""

    code = "AUDIO_DOWNLOAD_FAILED"
    message = "Failed to download audio"


class RenderEngineError(RenderJobError):
    """The render engine failed, timed out or produced no output."""

    code = "RENDER_ENGINE_FAILED"
    message = "Render engine failed"


class UploadError(RenderJobError):
    """Final video could not be written to object storage."""

    code = "UPLOAD_FAILED"
    message = "Upload failed"


class StoreUpdateError(RenderJobError):
    """A job store write did not take effect."""

    code = "STORE_UPDATE_FAILED"
    message = "Failed to update job record"


class UnexpectedError(RenderJobError):
    """Anything unanticipated at the job boundary."""

    code = "UNEXPECTED_ERROR"
    message = "Unexpected error"
