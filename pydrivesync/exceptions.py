"""Exceptions raised by pydrivesync."""

from typing import Optional


class PyDriveSyncError(Exception):
    """Base class for all pydrivesync errors."""


# =============================================================================
# Remote store (transport) errors
# =============================================================================


class DriveAPIError(PyDriveSyncError):
    """The remote store rejected a request or returned an unusable response."""


class DriveAuthenticationError(DriveAPIError):
    """Invalid or missing credentials."""


class DrivePermissionError(DriveAPIError):
    """Access to a resource was forbidden."""


class DriveNotFoundError(DriveAPIError):
    """The requested resource does not exist."""


class DriveRateLimitError(DriveAPIError):
    """Too many requests."""


class DriveNetworkError(DriveAPIError):
    """Connection level failure."""


class DriveInvalidResponseError(DriveAPIError):
    """The server returned something that is not valid JSON."""


class DriveConfigError(DriveAPIError):
    """The client is missing required configuration."""


class DriveUploadError(DriveAPIError):
    """An upload could not be completed."""


class DriveDownloadError(DriveAPIError):
    """A download could not be completed."""


class DriveFileNotFoundError(DriveAPIError):
    """A local file passed to the client does not exist."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"File not found: {file_path}")


class DriveTransferTimeoutError(DriveAPIError):
    """A transfer made no progress for longer than the idle timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"timeout, no data was transferred for {timeout:g}s")


class DriveTransferCancelledError(DriveAPIError):
    """A transfer was cancelled by the caller."""


# =============================================================================
# Sync engine errors
# =============================================================================


class SyncError(PyDriveSyncError):
    """A synchronization run was aborted.

    Attributes:
        operation: Name of the failing operation (e.g. "upload")
        path: Relative path or id the operation was working on
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.path = path


class SyncConfigError(SyncError):
    """Invalid sync options."""


class SyncSetupError(SyncError):
    """Sync root or local root is unusable; raised before any mutation."""


class SyncConsistencyError(SyncError):
    """Remote tree is malformed or a parent directory cannot be resolved."""


class SyncOperationError(SyncError):
    """A single filesystem or remote operation failed."""


class SyncCancelledError(SyncError):
    """A run was cancelled or a transfer hit its idle timeout."""
