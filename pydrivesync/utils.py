"""Utility functions for pydrivesync."""

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants for file operations
# =============================================================================

# Mime type marking a remote node as a directory
DIRECTORY_MIME_TYPE: str = "application/vnd.google-apps.folder"

# Chunk size for streamed uploads and downloads (8 MB)
DEFAULT_CHUNK_SIZE: int = 8 * 1024 * 1024

# Smallest accepted chunk size (256 KB)
MIN_CHUNK_SIZE: int = 256 * 1024

# Idle timeout for transfers in seconds (0 disables it)
DEFAULT_TIMEOUT: float = 300.0

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Relative path of a sync root
ROOT_PATH: str = "."


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp returned by the remote store.

    Args:
        timestamp_str: Timestamp string (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        datetime object in local timezone or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"

        try:
            dt = datetime.fromisoformat(timestamp_str)
        except ValueError:
            # Try without fractional seconds
            if "." in timestamp_str:
                timestamp_str = timestamp_str.split(".")[0] + "+00:00"
            dt = datetime.fromisoformat(timestamp_str)

        if dt.tzinfo is not None:
            # Convert to local naive datetime
            return datetime.fromtimestamp(dt.timestamp())
        return dt
    except (ValueError, AttributeError):
        return None


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Hash calculation utilities
# =============================================================================


def md5sum(file_path: Path, chunk_size: int = 1024 * 1024) -> str:
    """Calculate the hex md5 digest of a file's content.

    Args:
        file_path: Path to the file
        chunk_size: Read size in bytes

    Returns:
        Lowercase hex digest, matching the remote store's md5Checksum

    Raises:
        OSError: If the file cannot be read
    """
    digest = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


# =============================================================================
# Relative path utilities
# =============================================================================


def path_depth(relative_path: str) -> int:
    """Return the number of separators in a relative path.

    Examples:
        >>> path_depth("a")
        0
        >>> path_depth("a/b/c")
        2
    """
    return relative_path.count("/")


def parent_path(relative_path: str) -> str:
    """Return the relative path of an entry's parent directory.

    Top-level entries have the sync root (".") as parent.

    Examples:
        >>> parent_path("docs/readme.txt")
        'docs'
        >>> parent_path("readme.txt")
        '.'
    """
    head, sep, _ = relative_path.rpartition("/")
    return head if sep else ROOT_PATH


def base_name(relative_path: str) -> str:
    """Return the last component of a relative path."""
    return relative_path.rpartition("/")[2]
