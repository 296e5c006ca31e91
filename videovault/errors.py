"""Exception hierarchy for videovault.

Every error carries an explicit ``ErrorKind`` so callers map it to an HTTP
status without inspecting messages.
"""

import enum
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    """Discriminator for domain errors."""
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    UNAUTHENTICATED = "unauthenticated"
    INVALID_STATE = "invalid_state"
    FILE_MISSING = "file_missing"
    VALIDATION_FAILED = "validation_failed"
    RANGE_NOT_SATISFIABLE = "range_not_satisfiable"
    ALREADY_PROCESSING = "already_processing"
    QUOTA_EXCEEDED = "quota_exceeded"


class VideoVaultError(Exception):
    """Base exception for all videovault errors."""

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind.value, **self.details}


class NotFoundError(VideoVaultError):
    """Raised when a record does not exist in the caller's tenant."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404


class UnauthorizedError(VideoVaultError):
    """Raised when the caller may not access or modify a record."""

    kind = ErrorKind.UNAUTHORIZED
    status_code = 403


class UnauthenticatedError(VideoVaultError):
    """Raised when no valid credentials were presented."""

    kind = ErrorKind.UNAUTHENTICATED
    status_code = 401


class InvalidStateError(VideoVaultError):
    """Raised when a record is not in the state an operation requires."""

    kind = ErrorKind.INVALID_STATE
    status_code = 400


class FileMissingError(VideoVaultError):
    """Raised when a record exists but its stored bytes do not."""

    kind = ErrorKind.FILE_MISSING
    status_code = 404


class ValidationFailedError(VideoVaultError):
    """Raised for malformed input."""

    kind = ErrorKind.VALIDATION_FAILED
    status_code = 400


class RangeNotSatisfiableError(VideoVaultError):
    """Raised when a requested byte range starts past the end of the file."""

    kind = ErrorKind.RANGE_NOT_SATISFIABLE
    status_code = 416

    def __init__(self, start: int, size: int):
        super().__init__(
            "Range Not Satisfiable",
            {
                "message": f"Requested range start ({start}) exceeds file size ({size})",
                "start": start,
                "size": size,
            },
        )
        self.start = start
        self.size = size


class AlreadyProcessingError(VideoVaultError):
    """Raised when a pipeline run is requested for a video that is not pending."""

    kind = ErrorKind.ALREADY_PROCESSING
    status_code = 409


class QuotaExceededError(VideoVaultError):
    """Raised when an upload would push a tenant past its storage limit."""

    kind = ErrorKind.QUOTA_EXCEEDED
    status_code = 413


class StageTimeoutError(Exception):
    """Raised inside the pipeline when a stage exceeds its time budget."""

    pass
