"""Error taxonomy for the backup relay pipeline.

Fatal errors abort a run and produce a failed outcome:
- NoArtifactFound, TransferError, IncompleteTransferError, UploadError

Non-fatal errors are recorded as warnings on a successful outcome:
- ListingError, DeleteError
"""

from __future__ import annotations

from typing import Optional


class RelayError(RuntimeError):
    """Base class for all relay pipeline errors."""

    fatal: bool = True


class ConfigurationError(RelayError):
    """Raised when the relay configuration is incomplete or inconsistent."""


class NoArtifactFound(RelayError):
    """Raised when the source listing contains no matching backup artifact."""


class TransferError(RelayError):
    """Raised when the source host cannot be reached or read."""


class IncompleteTransferError(RelayError):
    """Raised when a staged file does not match the expected size."""


class UploadError(RelayError):
    """Raised when the destination rejects an upload."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        """Initialize the error.

        Args:
            message: Error message.
            status_code: HTTP status code returned by the destination, if any.
        """

        super().__init__(message)
        self.status_code = status_code


class ListingError(RelayError):
    """Raised when the destination listing cannot be fetched or parsed."""

    fatal = False

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DeleteError(RelayError):
    """Raised when a single destination entry cannot be deleted."""

    fatal = False

    def __init__(self, message: str, *, name: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.name = name
        self.status_code = status_code


class RunInProgressError(RelayError):
    """Raised when a run is triggered while another one is still in flight."""
