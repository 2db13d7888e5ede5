"""HTTP storage provider for the ``/api/v1/storage`` REST API."""

import asyncio
import logging
import random
from collections.abc import AsyncIterator
from typing import Any, Optional
from urllib.parse import quote

import aiofiles
import httpx

from ..config import config
from ..exceptions import (
    StorageAPIError,
    StorageAuthenticationError,
    StorageConfigError,
    StorageDownloadError,
    StorageFileNotFoundError,
    StorageInvalidResponseError,
    StorageNetworkError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageRateLimitError,
    StorageUploadError,
)
from ..models import (
    FileRecord,
    FileStreamResult,
    ListFilesOptions,
    ListFilesResult,
    UploadOptions,
    UploadResult,
    Visibility,
    VisibilityResult,
    VisibilityStatus,
)
from ..utils import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    MAX_PAGE_SIZE,
    parse_iso_timestamp,
    read_stream,
)

logger = logging.getLogger(__name__)

FILES_ENDPOINT = "/api/v1/storage/files"

# Metadata entry holding the visibility preference
VISIBILITY_METADATA_KEY = "visibility"


class RemoteStorageProvider:
    """Client for a remote storage REST API."""

    name = "RemoteStorageProvider"
    # The upload descriptor needs the size upfront
    supports_streaming_upload = False

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        project_id: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the provider.

        Args:
            api_url: API base URL (uses config if not provided)
            api_key: API key (uses config if not provided)
            project_id: Project the files belong to (uses config if not provided)
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            client: Optional preconfigured ``httpx.AsyncClient``
        """
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.api_key = api_key or config.api_key
        self.project_id = project_id or config.project_id
        self.timeout = timeout or config.timeout or DEFAULT_TIMEOUT
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        if not self.api_key:
            raise StorageConfigError(
                "API key not configured. Please set STORAGESYNC_API_KEY "
                "environment variable."
            )
        if not self.project_id:
            raise StorageConfigError(
                "Project ID not configured. Please set STORAGESYNC_PROJECT_ID "
                "environment variable."
            )

        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the underlying client if this provider created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

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
        return isinstance(exception, (StorageNetworkError, StorageRateLimitError))

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code

        if status_code == 401:
            raise StorageAuthenticationError(
                "Invalid API key or unauthorized access"
            ) from e
        elif status_code == 403:
            raise StoragePermissionError(
                "Access forbidden - check your permissions"
            ) from e
        elif status_code == 404:
            raise StorageNotFoundError("Resource not found") from e
        elif status_code == 429:
            error = StorageRateLimitError(
                "Rate limit exceeded - please try again later"
            )
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"
        try:
            if e.response.content:
                error_data = e.response.json()
                if isinstance(error_data, dict):
                    msg = (
                        error_data.get("message")
                        or error_data.get("error")
                        or error_data.get("detail")
                    )
                    if msg:
                        error_msg = f"{error_msg}: {msg}"
        except ValueError:
            pass

        error = StorageAPIError(error_msg)
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (error, should_retry)

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            StorageAPIError: If the request fails after all retries
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        headers = {"X-API-Key": self.api_key, **kwargs.pop("headers", {})}
        last_exception: Optional[Exception] = None
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.request(method, url, headers=headers, **kwargs)
                response.raise_for_status()

                content_type = response.headers.get("Content-Type", "")
                if response.content and "application/json" not in content_type:
                    if "text/html" in content_type:
                        raise StorageAuthenticationError(
                            "Invalid API key - server returned HTML instead of JSON"
                        )
                    raise StorageInvalidResponseError(
                        f"Unexpected response type: {content_type}"
                    )

                if response.content:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise StorageInvalidResponseError(
                            "Invalid JSON response from server"
                        ) from e
                return {}

            except httpx.HTTPStatusError as e:
                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    delay = self._calculate_retry_delay(attempt)
                    if isinstance(error, StorageRateLimitError):
                        retry_after = e.response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            delay = float(retry_after)
                    logger.debug(
                        f"{method} {url} failed ({error}), retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise error from e
            except StorageAPIError:
                raise
            except httpx.RequestError as e:
                error = StorageNetworkError(f"Network error: {e}")
                last_exception = error
                if self._should_retry(error, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"{method} {url} failed ({e}), retrying in {delay:.2f}s")
                    await asyncio.sleep(delay)
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise StorageAPIError("Request failed after all retry attempts")

    @staticmethod
    def _data(response: Any) -> Any:
        if isinstance(response, dict) and "data" in response:
            return response["data"]
        return response

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def _download_url(self, file_id: str) -> str:
        return f"{self.api_url}{FILES_ENDPOINT}/{file_id}/download"

    def _to_record(self, item: dict[str, Any]) -> FileRecord:
        metadata = {
            k: str(v) for k, v in (item.get("metadata") or {}).items()
        }
        visibility = Visibility.parse(metadata.pop(VISIBILITY_METADATA_KEY, None))
        file_id = str(item.get("file_id", ""))
        return FileRecord(
            external_id=item.get("external_id") or file_id,
            key=item.get("storage_key") or item.get("file_path") or file_id,
            size=int(item.get("actual_file_size") or item.get("file_size") or 0),
            content_type=item.get("content_type") or "application/octet-stream",
            last_modified=parse_iso_timestamp(
                item.get("uploaded_at") or item.get("updated_at")
            ),
            etag=item.get("etag") or file_id or None,
            metadata=metadata,
            visibility=visibility,
            url=self._download_url(file_id),
        )

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    async def _get_by_external_id(self, external_id: str) -> dict[str, Any]:
        try:
            response = await self._request(
                "GET", f"{FILES_ENDPOINT}/by-external-id/{quote(external_id, safe='')}"
            )
        except StorageNotFoundError as e:
            raise StorageFileNotFoundError(
                external_id, f'File with external_id "{external_id}" not found'
            ) from e
        return self._data(response)

    async def _find_by_key(self, key: str) -> Optional[dict[str, Any]]:
        offset = 0
        while True:
            response = await self._request(
                "GET",
                FILES_ENDPOINT,
                params={
                    "project_id": self.project_id,
                    "limit": MAX_PAGE_SIZE,
                    "offset": offset,
                    "path_prefix": key,
                },
            )
            data = self._data(response)
            files = data.get("files", [])
            for item in files:
                if (item.get("storage_key") or item.get("file_path")) == key:
                    return item
            if not data.get("has_more") or not files:
                return None
            offset += len(files)

    async def _require_by_key(self, key: str) -> dict[str, Any]:
        item = await self._find_by_key(key)
        if item is None:
            raise StorageFileNotFoundError(key, f"File with storage key {key} not found")
        return item

    async def _signed_url(self, file_id: str) -> str:
        response = await self._request(
            "GET",
            f"{FILES_ENDPOINT}/{file_id}/download",
            params={"returnSignedUrl": "true"},
        )
        data = self._data(response) or {}
        signed_url = data.get("signedUrl") or data.get("returnUrl")
        if not signed_url:
            raise StorageInvalidResponseError("No valid signed URL found in API response")
        return signed_url

    # ------------------------------------------------------------------
    # Upload / delete
    # ------------------------------------------------------------------

    async def upload_file(self, options: UploadOptions) -> UploadResult:
        """Upload in three steps: descriptor, presigned PUT, completion."""
        if options.source_count() != 1:
            raise ValueError("Exactly one of file_path, stream, or data must be provided")

        if options.data is not None:
            body = options.data
        elif options.file_path is not None:
            async with aiofiles.open(options.file_path, "rb") as f:
                body = await f.read()
        else:
            if options.size is None:
                raise ValueError("File size must be provided when uploading from stream")
            body = await read_stream(options.stream)

        content_type = options.content_type or "application/octet-stream"
        key = options.key or f"files/{options.external_id}"
        metadata = {
            **options.metadata,
            VISIBILITY_METADATA_KEY: "public" if options.public else "private",
        }

        descriptor = self._data(
            await self._request(
                "POST",
                FILES_ENDPOINT,
                json={
                    "project_id": self.project_id,
                    "file_path": key,
                    "original_filename": options.filename or "untitled",
                    "content_type": content_type,
                    "file_size": len(body),
                    "external_id": options.external_id,
                    "metadata": metadata,
                },
            )
        )
        file_id = descriptor["file_id"]

        try:
            response = await self._get_client().put(
                descriptor["upload_url"],
                content=body,
                headers={"Content-Type": content_type},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageUploadError(f"Upload to presigned URL failed: {e}") from e

        await self._request(
            "POST",
            f"{FILES_ENDPOINT}/{file_id}/upload",
            json={"actual_file_size": len(body)},
        )
        item = self._data(await self._request("GET", f"{FILES_ENDPOINT}/{file_id}"))
        record = self._to_record(item)

        logger.debug(f"Uploaded {record.key} ({record.size} bytes) as {file_id}")
        return UploadResult(
            external_id=options.external_id,
            key=record.key,
            url=record.url,
            size=record.size,
            content_type=record.content_type,
            etag=record.etag,
            metadata=record.metadata,
            visibility=record.visibility,
            public_url=record.url if options.public else None,
        )

    async def delete_file(self, key: str) -> None:
        item = await self._require_by_key(key)
        await self._request("DELETE", f"{FILES_ENDPOINT}/{item['file_id']}")

    async def delete_file_by_external_id(self, external_id: str) -> None:
        try:
            await self._request(
                "DELETE",
                f"{FILES_ENDPOINT}/by-external-id/{quote(external_id, safe='')}",
            )
        except StorageNotFoundError as e:
            raise StorageFileNotFoundError(
                external_id, f'File with external_id "{external_id}" not found'
            ) from e

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_file_url(self, key: str, expires_in: Optional[int] = None) -> str:
        item = await self._require_by_key(key)
        return await self._signed_url(item["file_id"])

    async def get_file_url_by_external_id(
        self, external_id: str, expires_in: Optional[int] = None
    ) -> str:
        item = await self._get_by_external_id(external_id)
        return await self._signed_url(item["file_id"])

    async def file_exists(self, key: str) -> bool:
        item = await self._find_by_key(key)
        return item is not None and item.get("upload_status", "completed") == "completed"

    async def file_exists_by_external_id(self, external_id: str) -> bool:
        return await self.find_file_by_external_id(external_id) is not None

    async def find_file_by_external_id(self, external_id: str) -> Optional[FileRecord]:
        try:
            item = await self._get_by_external_id(external_id)
        except StorageFileNotFoundError:
            return None
        return self._to_record(item)

    async def list_files(
        self, options: Optional[ListFilesOptions] = None
    ) -> ListFilesResult:
        """List one page of files.

        Key prefix filtering happens server-side; the remaining filters are
        applied to the returned page.
        """
        options = options or ListFilesOptions()
        limit = min(options.limit or 100, MAX_PAGE_SIZE)
        offset = max(options.offset, 0)
        params: dict[str, Any] = {
            "project_id": self.project_id,
            "limit": limit,
            "offset": offset,
        }
        if options.prefix:
            params["path_prefix"] = options.prefix

        data = self._data(await self._request("GET", FILES_ENDPOINT, params=params))
        records = [self._to_record(item) for item in data.get("files", [])]
        records = [r for r in records if options.matches(r)]
        has_more = bool(data.get("has_more"))
        return ListFilesResult(
            files=records,
            has_more=has_more,
            total_count=data.get("total_count"),
            next_offset=offset + limit if has_more else None,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _iter_download(self, url: str) -> AsyncIterator[bytes]:
        client = self._get_client()
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as e:
            raise StorageDownloadError(f"Failed to stream file: {e}") from e

    async def _open_stream(self, item: dict[str, Any]) -> FileStreamResult:
        record = self._to_record(item)
        signed_url = await self._signed_url(item["file_id"])
        return FileStreamResult(
            stream=self._iter_download(signed_url),
            content_type=record.content_type,
            content_length=record.size,
            last_modified=record.last_modified,
            etag=record.etag,
        )

    async def get_file_stream(self, key: str) -> FileStreamResult:
        return await self._open_stream(await self._require_by_key(key))

    async def get_file_stream_by_external_id(
        self, external_id: str
    ) -> FileStreamResult:
        return await self._open_stream(await self._get_by_external_id(external_id))

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    async def _update_visibility(
        self, item: dict[str, Any], visibility: Visibility
    ) -> VisibilityResult:
        metadata = dict(item.get("metadata") or {})
        metadata[VISIBILITY_METADATA_KEY] = visibility.value
        await self._request(
            "PUT",
            f"{FILES_ENDPOINT}/{item['file_id']}/metadata",
            json={"metadata": metadata},
        )
        return VisibilityResult(
            success=True,
            requested_visibility=visibility,
            actual_visibility=visibility,
            public_url=(
                self._download_url(item["file_id"])
                if visibility == Visibility.PUBLIC
                else None
            ),
        )

    async def set_file_visibility(
        self, key: str, visibility: Visibility
    ) -> VisibilityResult:
        visibility = Visibility.parse(visibility)
        try:
            item = await self._find_by_key(key)
            if item is None:
                return VisibilityResult(
                    success=False,
                    requested_visibility=visibility,
                    actual_visibility=Visibility.PRIVATE,
                    message=f"File with key {key} not found",
                )
            return await self._update_visibility(item, visibility)
        except StorageAPIError as e:
            return VisibilityResult(
                success=False,
                requested_visibility=visibility,
                actual_visibility=Visibility.PRIVATE,
                message=f"Failed to set file visibility: {e}",
            )

    async def set_file_visibility_by_external_id(
        self, external_id: str, visibility: Visibility
    ) -> VisibilityResult:
        visibility = Visibility.parse(visibility)
        try:
            item = await self._get_by_external_id(external_id)
            return await self._update_visibility(item, visibility)
        except StorageFileNotFoundError:
            return VisibilityResult(
                success=False,
                requested_visibility=visibility,
                actual_visibility=Visibility.PRIVATE,
                message=f"File with external_id {external_id} not found",
            )
        except StorageAPIError as e:
            return VisibilityResult(
                success=False,
                requested_visibility=visibility,
                actual_visibility=Visibility.PRIVATE,
                message=f"Failed to set file visibility: {e}",
            )

    def _visibility_status(self, item: dict[str, Any]) -> VisibilityStatus:
        record = self._to_record(item)
        return VisibilityStatus(
            visibility=record.visibility,
            public_url=record.url if record.visibility == Visibility.PUBLIC else None,
            supports_temporary_access=True,
        )

    async def get_file_visibility(self, key: str) -> VisibilityStatus:
        return self._visibility_status(await self._require_by_key(key))

    async def get_file_visibility_by_external_id(
        self, external_id: str
    ) -> VisibilityStatus:
        return self._visibility_status(await self._get_by_external_id(external_id))
