"""pydrivesync - keep a local directory in sync with a Drive sync root."""

from .api import DriveClient
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveDownloadError,
    DriveFileNotFoundError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
    DriveTransferCancelledError,
    DriveTransferTimeoutError,
    DriveUploadError,
    PyDriveSyncError,
    SyncCancelledError,
    SyncConfigError,
    SyncConsistencyError,
    SyncError,
    SyncOperationError,
    SyncSetupError,
)

__all__ = [
    "DriveClient",
    "PyDriveSyncError",
    "DriveAPIError",
    "DriveAuthenticationError",
    "DriveConfigError",
    "DriveDownloadError",
    "DriveFileNotFoundError",
    "DriveInvalidResponseError",
    "DriveNetworkError",
    "DriveNotFoundError",
    "DrivePermissionError",
    "DriveRateLimitError",
    "DriveTransferCancelledError",
    "DriveTransferTimeoutError",
    "DriveUploadError",
    "SyncError",
    "SyncCancelledError",
    "SyncConfigError",
    "SyncConsistencyError",
    "SyncOperationError",
    "SyncSetupError",
]
