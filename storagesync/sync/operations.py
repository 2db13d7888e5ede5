"""Copying a single file between providers with its metadata."""

import logging
import time
from collections.abc import AsyncIterator
from typing import Any, Optional

import httpx

from ..exceptions import TimestampPreservationError, TransferError, VisibilityError
from ..models import FileRecord, UploadOptions, UploadResult, Visibility
from ..providers.base import provider_name, same_backend, supports_streaming_upload
from ..utils import format_iso_timestamp, last_segment, read_stream, utc_now

logger = logging.getLogger(__name__)

# Metadata keys with these prefixes record where a copy came from
PROVENANCE_PREFIXES = ("_synced", "_original")


def is_provenance_key(key: str) -> bool:
    return key.startswith(PROVENANCE_PREFIXES)


def build_sync_metadata(
    file: FileRecord, source: Any, visibility: Visibility
) -> dict[str, str]:
    """Custom metadata of ``file`` plus provenance entries.

    Args:
        file: Source file record
        source: Provider the file is copied from
        visibility: Visibility the file had at the source

    Returns:
        Metadata dictionary for the destination upload
    """
    metadata = dict(file.metadata)
    metadata.update(
        {
            "_synced_from": provider_name(source),
            "_synced_at": format_iso_timestamp(utc_now()),
            "_original_size": str(file.size),
            "_original_content_type": file.content_type,
            "_original_key": file.key,
        }
    )
    if file.last_modified is not None:
        metadata["_original_last_modified"] = format_iso_timestamp(file.last_modified)
    if file.etag:
        metadata["_original_etag"] = file.etag
    if file.url:
        metadata["_original_url"] = file.url
    metadata["_original_visibility"] = visibility.value
    return metadata


class FileTransfer:
    """Copies files between providers, preserving metadata and visibility."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        """Initialize the transfer helper.

        Args:
            http_client: Client used to download from provider URLs when the
                source cannot stream directly. Created on demand if omitted.
        """
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(follow_redirects=True)
            self._owns_client = True
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def copy_file_with_metadata(
        self,
        file: FileRecord,
        source: Any,
        destination: Any,
        preserve_timestamps: bool = False,
    ) -> UploadResult:
        """Copy ``file`` from ``source`` to ``destination``.

        The copy keeps the external ID, key, content type and custom metadata,
        and adds provenance metadata. Public files are made public again after
        the upload. Visibility and timestamp failures are logged and do not
        fail the copy.

        Raises:
            TransferError: If the content cannot be fetched or uploaded
        """
        start = time.monotonic()
        visibility = await self._source_visibility(file, source)
        metadata = build_sync_metadata(file, source, visibility)

        stream, cleanup = await self._open_content(file, source)
        try:
            if stream is not None and supports_streaming_upload(destination):
                upload = UploadOptions(external_id=file.external_id, stream=stream)
            elif stream is not None:
                upload = UploadOptions(
                    external_id=file.external_id, data=await read_stream(stream)
                )
            else:
                upload = UploadOptions(
                    external_id=file.external_id,
                    data=await self._download(file, source),
                )
            upload.key = file.key
            upload.filename = last_segment(file.key)
            upload.content_type = file.content_type
            upload.size = file.size
            upload.public = visibility == Visibility.PUBLIC
            upload.metadata = metadata

            try:
                result = await destination.upload_file(upload)
            except Exception as e:
                raise TransferError(
                    file.external_id, f"Upload of {file.key} failed: {e}"
                ) from e
        finally:
            if cleanup is not None:
                await cleanup()

        if visibility == Visibility.PUBLIC:
            try:
                await self._reassert_public(file, destination)
            except VisibilityError as e:
                logger.warning(
                    f"Could not set public visibility for {file.external_id}: {e}"
                )

        if preserve_timestamps:
            try:
                await self._preserve_timestamps(file, source, destination)
            except TimestampPreservationError as e:
                logger.debug(f"Timestamp preservation skipped: {e}")

        logger.debug(
            f"Copied {file.external_id} ({file.size} bytes) in "
            f"{time.monotonic() - start:.3f}s"
        )
        return result

    async def _source_visibility(self, file: FileRecord, source: Any) -> Visibility:
        try:
            status = await source.get_file_visibility_by_external_id(file.external_id)
        except Exception as e:
            logger.debug(f"Visibility lookup failed for {file.external_id}: {e}")
            return Visibility.PRIVATE
        if status.visibility == Visibility.PUBLIC:
            return Visibility.PUBLIC
        return Visibility.PRIVATE

    async def _open_content(
        self, file: FileRecord, source: Any
    ) -> tuple[Optional[AsyncIterator[bytes]], Any]:
        """Open a direct stream from ``source`` if it supports one."""
        get_stream = getattr(source, "get_file_stream_by_external_id", None)
        if get_stream is None:
            return None, None

        try:
            stream_result = await get_stream(file.external_id)
        except Exception as e:
            raise TransferError(
                file.external_id, f"Failed to get file stream for {file.external_id}: {e}"
            ) from e
        if stream_result is None or stream_result.stream is None:
            raise TransferError(
                file.external_id, f"Failed to get file stream for {file.external_id}"
            )
        return stream_result.stream, stream_result.cleanup

    async def _download(self, file: FileRecord, source: Any) -> bytes:
        """Fetch content through the provider's download URL."""
        try:
            url = await source.get_file_url_by_external_id(file.external_id)
            response = await self._get_http_client().get(url)
        except Exception as e:
            raise TransferError(
                file.external_id, f"Failed to download file: {e}"
            ) from e
        if not response.is_success:
            raise TransferError(
                file.external_id,
                f"Failed to download file: {response.status_code} "
                f"{response.reason_phrase}",
            )
        return response.content

    async def _reassert_public(self, file: FileRecord, destination: Any) -> None:
        # Some backends ignore the public flag on upload
        try:
            result = await destination.set_file_visibility_by_external_id(
                file.external_id, Visibility.PUBLIC
            )
        except Exception as e:
            raise VisibilityError(str(e)) from e
        if not result.success:
            raise VisibilityError(result.message or "visibility change rejected")

    async def _preserve_timestamps(
        self, file: FileRecord, source: Any, destination: Any
    ) -> None:
        if file.last_modified is None:
            return
        if not same_backend(source, destination):
            return
        set_last_modified = getattr(destination, "set_last_modified", None)
        if set_last_modified is None:
            return
        try:
            await set_last_modified(file.key, file.last_modified)
        except TimestampPreservationError:
            raise
        except Exception as e:
            raise TimestampPreservationError(
                f"Could not preserve timestamps for {file.key}: {e}"
            ) from e
