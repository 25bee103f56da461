from typing import Any, Dict, Optional


class ArchiveException(Exception):
    """Base exception for the archive client."""

    def __init__(self, message: str, error_code: str = None, details: Dict = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ValidationException(ArchiveException):
    """Raised when input is rejected client-side, before any request is sent."""
    pass


class RequestException(ArchiveException):
    """Raised when the backend answers with a non-2xx status or cannot be reached."""

    def __init__(self, message: str, status: int = 0, detail: Optional[Any] = None, **kwargs):
        super().__init__(message, error_code=kwargs.pop("error_code", "REQUEST_ERROR"), **kwargs)
        self.status = status
        self.detail = detail


class ArchiveTimeoutException(ArchiveException, TimeoutError):
    """Raised when a backend call exceeds its timeout."""
    pass


class ResourceNotFoundException(ArchiveException):
    """Raised when requested resource is not found."""
    pass


class StorageException(ArchiveException):
    """Raised when local persistence cannot be read or written."""
    pass


class InvalidJobStateException(ArchiveException):
    """Raised when a job action is not allowed in the job's current state."""
    pass
