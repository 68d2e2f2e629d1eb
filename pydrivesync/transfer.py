"""Cancellation and idle-timeout support for long running transfers.

A transfer is allowed to run for as long as it keeps moving data. Every
chunk read or written resets the idle timer; a transfer that makes no
progress for ``timeout`` seconds is aborted.
"""

import logging
import threading
import time
from collections.abc import Iterable, Iterator
from typing import Callable, Optional

from .exceptions import DriveTransferCancelledError, DriveTransferTimeoutError

logger = logging.getLogger(__name__)

# How often the watchdog checks for inactivity (seconds)
TIMEOUT_CHECK_INTERVAL: float = 10.0


class CancelToken:
    """Thread-safe cancellation flag shared between a caller and a sync run."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Request cancellation."""
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise DriveTransferCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise DriveTransferCancelledError(self.reason or "cancelled")


class IdleTimeoutWatchdog:
    """Aborts a transfer that stops making progress.

    Examples:
        >>> with IdleTimeoutWatchdog(60, on_timeout=response.close) as watchdog:
        ...     for chunk in response.iter_bytes():
        ...         watchdog.touch()
    """

    def __init__(
        self,
        timeout: float,
        on_timeout: Optional[Callable[[], None]] = None,
        interval: Optional[float] = None,
    ):
        """Initialize watchdog.

        Args:
            timeout: Maximum idle time in seconds (0 disables the watchdog)
            on_timeout: Called once from the watchdog thread on timeout
            interval: Poll interval, defaults to min(10s, timeout)
        """
        self.timeout = timeout
        self.on_timeout = on_timeout
        self.interval = interval or min(TIMEOUT_CHECK_INTERVAL, timeout or 1.0)
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._last_activity = time.monotonic()
        self._done = False
        self.timed_out = False

    @property
    def enabled(self) -> bool:
        return self.timeout > 0

    def start(self) -> None:
        """Start watching; the idle clock starts now."""
        if not self.enabled:
            return
        with self._lock:
            self._last_activity = time.monotonic()
            self._done = False
            self._schedule()

    def touch(self) -> None:
        """Record transfer activity."""
        with self._lock:
            self._last_activity = time.monotonic()

    def stop(self) -> None:
        """Stop watching."""
        with self._lock:
            self._done = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _schedule(self) -> None:
        # Caller holds the lock
        self._timer = threading.Timer(self.interval, self._check)
        self._timer.daemon = True
        self._timer.start()

    def _check(self) -> None:
        with self._lock:
            if self._done:
                return
            idle = time.monotonic() - self._last_activity
            if idle <= self.timeout:
                self._schedule()
                return
            self.timed_out = True
            self._done = True

        logger.debug(f"Transfer idle for {idle:.1f}s, aborting")
        if self.on_timeout is not None:
            self.on_timeout()

    def __enter__(self) -> "IdleTimeoutWatchdog":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def monitored_chunks(
    chunks: Iterable[bytes],
    watchdog: IdleTimeoutWatchdog,
    cancel_token: Optional[CancelToken] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    total_bytes: int = 0,
) -> Iterator[bytes]:
    """Yield chunks while enforcing cancellation and the idle timeout.

    Args:
        chunks: Source of data chunks
        watchdog: Running watchdog, touched on every chunk
        cancel_token: Optional cancellation flag checked on every chunk
        progress_callback: Optional function(bytes_transferred, total_bytes)
        total_bytes: Expected total size for progress reporting

    Raises:
        DriveTransferTimeoutError: If the watchdog fired
        DriveTransferCancelledError: If cancellation was requested
    """
    transferred = 0
    for chunk in chunks:
        if watchdog.timed_out:
            raise DriveTransferTimeoutError(watchdog.timeout)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        watchdog.touch()
        transferred += len(chunk)
        if progress_callback:
            progress_callback(transferred, total_bytes)
        yield chunk
    if watchdog.timed_out:
        raise DriveTransferTimeoutError(watchdog.timeout)


def read_file_chunks(file_path, chunk_size: int) -> Iterator[bytes]:
    """Yield a file's content in chunks of ``chunk_size`` bytes."""
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk
