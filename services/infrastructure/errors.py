"""
Pipeline Error Taxonomy
=======================
Exceptions raised across the viral clip pipeline.

- ExternalServiceError / TransientExternalError: content model or transcript
  service failures. Transient ones (HTTP 429/5xx) are retried.
- SchemaValidationError: the model answered, but not with usable JSON.
  Extractors recover from it with their documented defaults.
- MediaReadError: the source video cannot be probed or decoded. Fatal.
- PerClipRenderError: one (moment, platform) render failed. Skipped.
- NoClipsRenderedError: every render failed. Fails the job.
- JobCancelledError: cancellation observed at a step boundary.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class ExternalServiceError(PipelineError):
    """An external collaborator returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransientExternalError(ExternalServiceError):
    """HTTP 429 or 5xx from an external collaborator."""


class SchemaValidationError(PipelineError):
    """Malformed or unparseable structured response."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class MediaReadError(PipelineError):
    """Source video is unreadable or undecodable."""


class PerClipRenderError(PipelineError):
    """Rendering a single clip or its thumbnail failed."""


class NoClipsRenderedError(PipelineError):
    """No (moment, platform) pair produced a clip."""


class JobCancelledError(PipelineError):
    """The job was cancelled between pipeline steps."""


def is_transient_status(status_code: Optional[int]) -> bool:
    """True for HTTP 429 and 5xx."""
    if status_code is None:
        return False
    return status_code == 429 or 500 <= status_code < 600


def error_for_status(message: str, status_code: int, body: Optional[str] = None) -> ExternalServiceError:
    """Build the matching external error for an HTTP status code."""
    if is_transient_status(status_code):
        return TransientExternalError(message, status_code=status_code, body=body)
    return ExternalServiceError(message, status_code=status_code, body=body)
