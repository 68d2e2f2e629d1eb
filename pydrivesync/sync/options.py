"""Typed options for push and pull synchronization."""

from dataclasses import dataclass

from ..exceptions import SyncConfigError
from ..utils import DEFAULT_CHUNK_SIZE, DEFAULT_TIMEOUT, MIN_CHUNK_SIZE


@dataclass(frozen=True)
class SyncOptions:
    """Options shared by both sync directions.

    Validated on construction, so an instance is always usable by the engine.
    """

    delete_extraneous: bool = False
    """Delete entries that only exist on the non-authoritative side"""

    dry_run: bool = False
    """Narrate every step without mutating anything"""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    """Chunk size in bytes for streamed transfers"""

    timeout: float = DEFAULT_TIMEOUT
    """Abort a transfer that moved no data for this many seconds (0: never)"""

    def __post_init__(self) -> None:
        if not isinstance(self.chunk_size, int) or isinstance(self.chunk_size, bool):
            raise SyncConfigError("Chunk size must be an integer")
        if self.chunk_size < MIN_CHUNK_SIZE:
            raise SyncConfigError(
                f"Chunk size must be at least {MIN_CHUNK_SIZE} bytes, "
                f"got {self.chunk_size}"
            )
        if self.timeout < 0:
            raise SyncConfigError(f"Timeout cannot be negative, got {self.timeout}")


@dataclass(frozen=True)
class PushSyncOptions(SyncOptions):
    """Options for a local-authoritative sync."""

    check_free_space: bool = True
    """Refuse to start when the remote quota cannot hold the upload"""


@dataclass(frozen=True)
class PullSyncOptions(SyncOptions):
    """Options for a remote-authoritative sync."""
