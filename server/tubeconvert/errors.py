"""
Error taxonomy.

Provider code normalizes every transport, decoding and validation failure
into one of these before it reaches the router. ``public_message`` is the
single sentence shown to clients; ``detail`` and ``raw_body`` are for logs.
"""

from typing import Optional


class ServiceError(Exception):
    """Base class for failures that map onto the HTTP error envelope."""

    status_code = 500
    public_message = "An unexpected error occurred."

    def __init__(self, detail: Optional[str] = None, *, raw_body: Optional[str] = None):
        self.detail = detail or self.public_message
        self.raw_body = raw_body
        super().__init__(self.detail)


class InvalidReferenceError(ServiceError):
    """The input does not contain a recognizable video identifier."""

    status_code = 400
    public_message = "Invalid YouTube URL."


class ProviderUnavailableError(ServiceError):
    """Host selection or a transport-level exchange with the provider failed."""

    public_message = "The conversion provider is unavailable, please try again."


class DecryptionError(ServiceError):
    """An encrypted provider payload could not be decoded."""

    public_message = "The provider returned an unreadable response."


class ExtractionError(ServiceError):
    """The provider answered without the data needed to continue."""

    public_message = "The provider could not process this video."


class JobSubmissionError(ServiceError):
    """The provider did not hand back a job identifier."""

    public_message = "The provider did not accept the conversion job."


class UnsupportedOperationError(ServiceError):
    """The configured provider has no such capability."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.public_message = message


class JobStateError(RuntimeError):
    """Raised on an attempt to move a job out of a terminal state."""
