"""API client for a Drive-style remote file store."""

from __future__ import annotations

import json
import mimetypes
import random
import time
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Callable

import httpx

from .config import config
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
)
from .transfer import (
    CancelToken,
    IdleTimeoutWatchdog,
    monitored_chunks,
    read_file_chunks,
)
from .utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
)

ProgressCallback = Callable[[int, int], None]


class DriveClient:
    """Client for interacting with the remote file store API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        upload_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
    ):
        """Initialize API client.

        Args:
            api_key: Optional API key (uses config if not provided)
            api_url: Optional metadata API URL (uses config if not provided)
            upload_url: Optional upload API URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds for metadata calls (default: 30.0)
        """
        self.api_key = api_key or config.api_key
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.upload_url = (upload_url or config.upload_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

        if not self.api_key:
            raise DriveConfigError(
                "API key not configured. "
                "Please set DRIVESYNC_API_KEY environment variable."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> DriveClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False

        # Transient failures
        if isinstance(exception, (DriveNetworkError, DriveRateLimitError)):
            return True

        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600

        # Don't retry on client errors (authentication, permission, etc.)
        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Handle HTTP errors and determine if retry should occur.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise DriveAuthenticationError(
                "Invalid API key or unauthorized access"
            ) from e
        elif status_code == 403:
            raise DrivePermissionError(
                "Access forbidden - check your permissions"
            ) from e
        elif status_code == 404:
            raise DriveNotFoundError("Resource not found") from e
        elif status_code == 429:
            error = DriveRateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"

        # Try to extract more details from response body
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    detail = error_data.get("error")
                    if isinstance(detail, dict):
                        detail = detail.get("message")
                    msg = detail or error_data.get("message")
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            # Body is not JSON, use the status-based message
            pass

        error = DriveAPIError(error_msg)
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (error, should_retry)

    def _request(
        self, method: str, endpoint: str, base_url: str | None = None, **kwargs: Any
    ) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            base_url: Base URL (defaults to the metadata API URL)
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data ({} for empty responses)

        Raises:
            DriveAPIError: If the request fails after all retries
        """
        url = f"{base_url or self.api_url}/{endpoint.lstrip('/')}"
        last_exception: Exception | None = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, url, **kwargs)
                response.raise_for_status()
                return self._parse_json(response)

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if (
                        isinstance(error, DriveRateLimitError)
                        and retry_after
                        and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    time.sleep(delay)
                    continue
                raise error from e
            except DriveAPIError:
                raise
            except httpx.RequestError as e:
                error = DriveNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    time.sleep(self._calculate_retry_delay(attempt))
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise DriveAPIError("Request failed after all retry attempts")

    def _parse_json(self, response: httpx.Response) -> Any:
        """Decode a JSON response body."""
        if not response.content:
            return {}

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            if "text/html" in content_type:
                raise DriveAuthenticationError(
                    "Invalid API key - server returned HTML instead of JSON"
                )
            raise DriveInvalidResponseError(f"Unexpected response type: {content_type}")

        try:
            return response.json()
        except ValueError as e:
            raise DriveInvalidResponseError("Invalid JSON response from server") from e

    # =========================
    # Metadata Operations
    # =========================

    def list_files(
        self,
        query: str,
        fields: str,
        page_token: str | None = None,
        page_size: int = 1000,
    ) -> Any:
        """List one page of nodes matching a query.

        Args:
            query: Search predicate (e.g. "'<id>' in parents")
            fields: Fields to return for each node
            page_token: Token of the page to fetch
            page_size: Maximum number of nodes per page

        Returns:
            Response with 'files' and optional 'nextPageToken' keys
        """
        params: dict[str, Any] = {
            "q": query,
            "fields": f"nextPageToken,files({fields})",
            "pageSize": page_size,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }
        if page_token:
            params["pageToken"] = page_token

        return self._request("GET", "/files", params=params)

    def get_file(self, file_id: str, fields: str) -> Any:
        """Get a single node by id.

        Args:
            file_id: Node id
            fields: Fields to return

        Returns:
            Node object
        """
        params = {"fields": fields, "supportsAllDrives": "true"}
        return self._request("GET", f"/files/{file_id}", params=params)

    def create_file(self, metadata: dict[str, Any], fields: str = "id") -> Any:
        """Create a node without content (e.g. a directory).

        Args:
            metadata: Node metadata (name, mimeType, parents, appProperties)
            fields: Fields to return

        Returns:
            Created node object
        """
        params = {"fields": fields, "supportsAllDrives": "true"}
        return self._request("POST", "/files", params=params, json=metadata)

    def update_file(
        self, file_id: str, metadata: dict[str, Any], fields: str = "id"
    ) -> Any:
        """Update a node's metadata.

        Args:
            file_id: Node id
            metadata: Metadata fields to change
            fields: Fields to return

        Returns:
            Updated node object
        """
        params = {"fields": fields, "supportsAllDrives": "true"}
        return self._request(
            "PATCH", f"/files/{file_id}", params=params, json=metadata
        )

    def delete_file(self, file_id: str) -> Any:
        """Delete a node by id."""
        params = {"supportsAllDrives": "true"}
        return self._request("DELETE", f"/files/{file_id}", params=params)

    def get_about(self, fields: str = "storageQuota") -> Any:
        """Get account information such as the storage quota."""
        return self._request("GET", "/about", params={"fields": fields})

    # =========================
    # Content Operations
    # =========================

    def _stream_timeout(self, idle_timeout: float) -> httpx.Timeout:
        """Timeouts for content transfers: no overall limit, bounded idle time."""
        idle = idle_timeout if idle_timeout > 0 else None
        return httpx.Timeout(self.timeout, read=idle, write=idle)

    def _send_content(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        headers: dict[str, str],
        body: Iterator[bytes],
        watchdog: IdleTimeoutWatchdog,
    ) -> Any:
        """Send a streamed request body; content uploads are never retried."""
        client = self._get_client()
        try:
            response = client.request(
                method,
                url,
                params=params,
                headers=headers,
                content=body,
                timeout=self._stream_timeout(watchdog.timeout),
            )
            response.raise_for_status()
            return self._parse_json(response)
        except httpx.HTTPStatusError as e:
            error, _ = self._handle_http_error(e, self.max_retries)
            raise error from e
        except httpx.TimeoutException as e:
            raise DriveTransferTimeoutError(watchdog.timeout) from e
        except httpx.RequestError as e:
            if watchdog.timed_out:
                raise DriveTransferTimeoutError(watchdog.timeout) from e
            raise DriveUploadError(f"Network error during upload: {e}") from e

    def upload_file(
        self,
        file_path: Path,
        metadata: dict[str, Any],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: float = DEFAULT_TIMEOUT,
        cancel_token: CancelToken | None = None,
        progress_callback: ProgressCallback | None = None,
        fields: str = "id",
    ) -> Any:
        """Create a node with content in a single multipart request.

        Args:
            file_path: Local path to the file
            metadata: Node metadata (name, parents, appProperties)
            chunk_size: Size of each streamed chunk in bytes
            idle_timeout: Abort if no data moves for this many seconds (0: never)
            cancel_token: Optional cancellation flag
            progress_callback: Optional callback function(bytes_uploaded, total_bytes)
            fields: Fields to return

        Returns:
            Created node object

        Raises:
            DriveFileNotFoundError: If the file doesn't exist
            DriveUploadError: If the upload fails
            DriveTransferTimeoutError: If the transfer stalls
            DriveTransferCancelledError: If the transfer is cancelled
        """
        if not file_path.exists():
            raise DriveFileNotFoundError(str(file_path))

        file_size = file_path.stat().st_size
        mime_type = (
            mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        )
        boundary = uuid.uuid4().hex

        head = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {mime_type}\r\n\r\n"
        ).encode("utf-8")
        tail = f"\r\n--{boundary}--\r\n".encode()

        with IdleTimeoutWatchdog(idle_timeout) as watchdog:

            def body() -> Iterator[bytes]:
                yield head
                yield from monitored_chunks(
                    read_file_chunks(file_path, chunk_size),
                    watchdog,
                    cancel_token,
                    progress_callback,
                    file_size,
                )
                yield tail

            return self._send_content(
                "POST",
                f"{self.upload_url}/files",
                params={
                    "uploadType": "multipart",
                    "fields": fields,
                    "supportsAllDrives": "true",
                },
                headers={"Content-Type": f"multipart/related; boundary={boundary}"},
                body=body(),
                watchdog=watchdog,
            )

    def update_file_content(
        self,
        file_id: str,
        file_path: Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: float = DEFAULT_TIMEOUT,
        cancel_token: CancelToken | None = None,
        progress_callback: ProgressCallback | None = None,
        fields: str = "id",
    ) -> Any:
        """Replace a node's content, leaving its metadata untouched.

        Args:
            file_id: Node id
            file_path: Local path to the new content
            chunk_size: Size of each streamed chunk in bytes
            idle_timeout: Abort if no data moves for this many seconds (0: never)
            cancel_token: Optional cancellation flag
            progress_callback: Optional callback function(bytes_uploaded, total_bytes)
            fields: Fields to return

        Returns:
            Updated node object
        """
        if not file_path.exists():
            raise DriveFileNotFoundError(str(file_path))

        file_size = file_path.stat().st_size

        with IdleTimeoutWatchdog(idle_timeout) as watchdog:
            body = monitored_chunks(
                read_file_chunks(file_path, chunk_size),
                watchdog,
                cancel_token,
                progress_callback,
                file_size,
            )
            return self._send_content(
                "PATCH",
                f"{self.upload_url}/files/{file_id}",
                params={
                    "uploadType": "media",
                    "fields": fields,
                    "supportsAllDrives": "true",
                },
                headers={
                    "Content-Type": "application/octet-stream",
                    "Content-Length": str(file_size),
                },
                body=body,
                watchdog=watchdog,
            )

    def download_file(
        self,
        file_id: str,
        output_path: Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        idle_timeout: float = DEFAULT_TIMEOUT,
        cancel_token: CancelToken | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> Path:
        """Download a node's content to a local file.

        Args:
            file_id: Node id
            output_path: Path where to save the file
            chunk_size: Size of each streamed chunk in bytes
            idle_timeout: Abort if no data moves for this many seconds (0: never)
            cancel_token: Optional cancellation flag
            progress_callback: Optional callback function(bytes_downloaded, total_bytes)

        Returns:
            Path where the file was saved

        Raises:
            DriveDownloadError: If the download fails
            DriveTransferTimeoutError: If the transfer stalls
            DriveTransferCancelledError: If the transfer is cancelled
        """
        url = f"{self.api_url}/files/{file_id}"
        params = {"alt": "media", "supportsAllDrives": "true"}
        client = self._get_client()
        watchdog = IdleTimeoutWatchdog(idle_timeout)

        try:
            with client.stream(
                "GET",
                url,
                params=params,
                timeout=self._stream_timeout(idle_timeout),
            ) as response:
                response.raise_for_status()
                total_size = int(response.headers.get("Content-Length", 0))

                # Closing the response unblocks a stalled read
                watchdog.on_timeout = response.close
                with watchdog:
                    with open(output_path, "wb") as f:
                        for chunk in monitored_chunks(
                            response.iter_bytes(chunk_size=chunk_size),
                            watchdog,
                            cancel_token,
                            progress_callback,
                            total_size,
                        ):
                            f.write(chunk)

                return output_path

        except (DriveTransferTimeoutError, DriveTransferCancelledError):
            raise
        except httpx.HTTPStatusError as e:
            raise DriveDownloadError(f"Download failed: {e}") from e
        except httpx.TimeoutException as e:
            raise DriveTransferTimeoutError(idle_timeout) from e
        except (httpx.RequestError, httpx.StreamError) as e:
            if watchdog.timed_out:
                raise DriveTransferTimeoutError(idle_timeout) from e
            raise DriveNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            raise DriveDownloadError(f"Failed to write file: {e}") from e
