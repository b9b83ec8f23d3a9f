"""
Error taxonomy shared by the relay and the submission client.

Every error is terminal for the file it concerns; nothing here is retried.
``status_code`` is what the relay answers with when the error escapes a request.
"""

from typing import Optional


class UploadError(Exception):
    """Base class for everything that can go wrong while processing one file."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ConfigurationError(UploadError):
    """Workflow API URL or key is missing."""


class ValidationError(UploadError):
    """Missing file, unsupported type or oversized file."""

    status_code = 400


class UpstreamHtmlError(UploadError):
    """An HTML error page came back where JSON was expected."""


class UpstreamApiError(UploadError):
    """The service answered with a non-success status."""


class MalformedJson(UploadError):
    """The body could not be parsed as JSON."""


class EmptyResponse(UploadError):
    """The body was empty."""


class UnexpectedPayload(UploadError):
    """Valid JSON, but without the ``data.outputs`` object."""


class NetworkError(UploadError):
    """Transport-level failure (refused connection, DNS, timeout)."""


class ApplicationError(UploadError):
    """The service ran but reported ``success: false``."""
