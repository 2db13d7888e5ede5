"""Disk-backed storage provider.

File content lives at ``<base_path>/<key>``; everything else (external ID,
content type, visibility, custom metadata) is kept in a JSON sidecar next to
it at ``<base_path>/<key>.meta.json``.
"""

import asyncio
import hashlib
import json
import logging
import mimetypes
import os
import time
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Any, Optional, Union

import aiofiles
import aiofiles.os

from ..exceptions import (
    StorageFileNotFoundError,
    StorageProviderError,
    StorageUploadError,
    TimestampPreservationError,
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
    DEFAULT_STREAM_CHUNK_SIZE,
    MAX_PAGE_SIZE,
    format_iso_timestamp,
    last_segment,
    parse_iso_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".meta.json"


class LocalStorageProvider:
    """Stores files in a local directory."""

    name = "LocalStorageProvider"
    supports_streaming_upload = True

    def __init__(
        self,
        base_path: Union[str, Path],
        base_url: str = "/localstorage",
        chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE,
    ):
        """Initialize the provider.

        Args:
            base_path: Directory holding the stored files (created if missing)
            base_url: URL prefix used when building file URLs
            chunk_size: Read size for streamed downloads
        """
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.chunk_size = chunk_size
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageProviderError(
                f"Failed to create storage directory at {self.base_path}: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Paths and sidecars
    # ------------------------------------------------------------------

    def _content_path(self, key: str) -> Path:
        """Resolve a storage key to a path inside ``base_path``."""
        relative = PurePosixPath(key.lstrip("/"))
        if not relative.parts or ".." in relative.parts:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.base_path.joinpath(*relative.parts)

    def _metadata_path(self, key: str) -> Path:
        content_path = self._content_path(key)
        return content_path.with_name(content_path.name + METADATA_SUFFIX)

    @staticmethod
    def _part_path(path: Path) -> Path:
        """Hidden sibling used while ``path`` is being written."""
        return path.with_name(f".{path.name}.part")

    def _url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    async def _read_sidecar(self, path: Path) -> Optional[dict[str, Any]]:
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                data = json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Skipping unreadable metadata file {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def _write_sidecar(self, key: str, data: dict[str, Any]) -> None:
        metadata_path = self._metadata_path(key)
        part = self._part_path(metadata_path)
        try:
            async with aiofiles.open(part, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2))
            await aiofiles.os.replace(part, metadata_path)
        except OSError:
            await self._remove_quietly(part)
            raise

    def _record_from_sidecar(self, data: dict[str, Any]) -> FileRecord:
        key = data["key"]
        return FileRecord(
            external_id=data["external_id"],
            key=key,
            size=int(data.get("size", 0)),
            content_type=data.get("content_type") or "application/octet-stream",
            last_modified=parse_iso_timestamp(data.get("last_modified")),
            etag=data.get("etag"),
            metadata=dict(data.get("metadata") or {}),
            visibility=Visibility.parse(data.get("visibility")),
            url=data.get("url") or self._url_for(key),
        )

    def _find_sidecar_files(self) -> list[Path]:
        found = []
        for root, _dirs, files in os.walk(self.base_path):
            for name in files:
                if name.endswith(METADATA_SUFFIX) and not name.startswith("."):
                    found.append(Path(root) / name)
        return found

    async def _load_all(
        self, prune: bool = False
    ) -> list[tuple[FileRecord, dict[str, Any]]]:
        """Load every valid record, skipping sidecars whose content is gone.

        Args:
            prune: Also delete those orphaned sidecars (write paths only)
        """
        sidecars = await asyncio.to_thread(self._find_sidecar_files)
        loaded = []
        for sidecar in sidecars:
            data = await self._read_sidecar(sidecar)
            if data is None:
                continue
            try:
                record = self._record_from_sidecar(data)
                content_exists = await aiofiles.os.path.isfile(
                    self._content_path(record.key)
                )
            except (KeyError, ValueError) as e:
                logger.debug(f"Skipping invalid metadata file {sidecar}: {e}")
                continue
            if not content_exists:
                if prune:
                    logger.debug(f"Removing orphaned metadata file {sidecar}")
                    await self._remove_quietly(sidecar)
                continue
            loaded.append((record, data))
        loaded.sort(key=lambda item: item[0].key)
        return loaded

    async def _find(
        self, external_id: str, prune: bool = False
    ) -> Optional[tuple[FileRecord, dict]]:
        for record, data in await self._load_all(prune=prune):
            if record.external_id == external_id:
                return record, data
        return None

    async def _require(self, external_id: str) -> FileRecord:
        found = await self._find(external_id)
        if found is None:
            raise StorageFileNotFoundError(
                external_id, f'File with external_id "{external_id}" not found'
            )
        return found[0]

    # ------------------------------------------------------------------
    # Upload / delete
    # ------------------------------------------------------------------

    async def upload_file(self, options: UploadOptions) -> UploadResult:
        """Write content and its sidecar to disk.

        Both are written to hidden ``.part`` files first and moved into place
        only once complete, so a failed upload leaves any existing copy intact.
        """
        if options.source_count() != 1:
            raise ValueError("Exactly one of file_path, stream, or data must be provided")

        key = options.key or self._generate_key(options.external_id, options.filename)
        content_path = self._content_path(key)
        metadata_path = self._metadata_path(key)
        previous = await self._find(options.external_id, prune=True)

        await aiofiles.os.makedirs(content_path.parent, exist_ok=True)
        content_part = self._part_path(content_path)
        metadata_part = self._part_path(metadata_path)

        digest = hashlib.md5()
        size = 0
        try:
            async with aiofiles.open(content_part, "wb") as out:
                if options.data is not None:
                    await out.write(options.data)
                    digest.update(options.data)
                    size = len(options.data)
                elif options.file_path is not None:
                    async with aiofiles.open(options.file_path, "rb") as src:
                        while True:
                            chunk = await src.read(self.chunk_size)
                            if not chunk:
                                break
                            await out.write(chunk)
                            digest.update(chunk)
                            size += len(chunk)
                elif options.stream is not None:
                    async for chunk in options.stream:
                        await out.write(chunk)
                        digest.update(chunk)
                        size += len(chunk)
        except Exception as e:
            await self._remove_quietly(content_part)
            raise StorageUploadError(f"Failed to upload file: {e}") from e

        url = self._url_for(key)
        content_type = (
            options.content_type
            or mimetypes.guess_type(options.filename or key)[0]
            or "application/octet-stream"
        )
        visibility = Visibility.PUBLIC if options.public else Visibility.PRIVATE
        etag = digest.hexdigest()
        sidecar = {
            "external_id": options.external_id,
            "key": key,
            "filename": options.filename or last_segment(key),
            "content_type": content_type,
            "size": size,
            "last_modified": format_iso_timestamp(utc_now()),
            "etag": etag,
            "url": url,
            "visibility": visibility.value,
            "metadata": dict(options.metadata),
        }
        try:
            async with aiofiles.open(metadata_part, "w", encoding="utf-8") as f:
                await f.write(json.dumps(sidecar, indent=2))
            await aiofiles.os.replace(content_part, content_path)
            await aiofiles.os.replace(metadata_part, metadata_path)
        except OSError as e:
            await self._remove_quietly(content_part)
            await self._remove_quietly(metadata_part)
            raise StorageUploadError(f"Failed to write metadata: {e}") from e

        if previous is not None and previous[0].key != key:
            # external_id is unique within a provider
            await self.delete_file(previous[0].key)

        logger.debug(f"Stored {key} ({size} bytes) for {options.external_id}")
        return UploadResult(
            external_id=options.external_id,
            key=key,
            url=url,
            size=size,
            content_type=content_type,
            etag=etag,
            metadata=dict(options.metadata),
            visibility=visibility,
            public_url=url if options.public else None,
        )

    async def delete_file(self, key: str) -> None:
        """Delete content and sidecar; a missing file is not an error."""
        try:
            await aiofiles.os.remove(self._content_path(key))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageProviderError(f"Failed to delete file {key}: {e}") from e
        await self._remove_quietly(self._metadata_path(key))

    async def delete_file_by_external_id(self, external_id: str) -> None:
        record = await self._require(external_id)
        await self.delete_file(record.key)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_file_url(self, key: str, expires_in: Optional[int] = None) -> str:
        return self._url_for(key)

    async def get_file_url_by_external_id(
        self, external_id: str, expires_in: Optional[int] = None
    ) -> str:
        record = await self._require(external_id)
        return await self.get_file_url(record.key, expires_in)

    async def file_exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self._content_path(key))

    async def file_exists_by_external_id(self, external_id: str) -> bool:
        return await self._find(external_id) is not None

    async def find_file_by_external_id(self, external_id: str) -> Optional[FileRecord]:
        found = await self._find(external_id)
        return found[0] if found else None

    async def list_files(
        self, options: Optional[ListFilesOptions] = None
    ) -> ListFilesResult:
        """List stored files, filtered and paginated.

        Results are ordered by key. ``limit`` is capped at 1000.
        """
        options = options or ListFilesOptions()
        records = [r for r, _ in await self._load_all() if options.matches(r)]

        offset = max(options.offset, 0)
        limit = min(options.limit or 100, MAX_PAGE_SIZE)
        page = records[offset : offset + limit]
        has_more = offset + limit < len(records)
        return ListFilesResult(
            files=page,
            has_more=has_more,
            total_count=len(records),
            next_offset=offset + limit if has_more else None,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _iter_content(self, path: Path):
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk

    async def get_file_stream(self, key: str) -> FileStreamResult:
        content_path = self._content_path(key)
        try:
            stat = await aiofiles.os.stat(content_path)
        except FileNotFoundError as e:
            raise StorageFileNotFoundError(key, f"File not found: {key}") from e

        data = await self._read_sidecar(self._metadata_path(key)) or {}
        last_modified = parse_iso_timestamp(data.get("last_modified"))
        if last_modified is None:
            last_modified = datetime.fromtimestamp(stat.st_mtime).astimezone()

        return FileStreamResult(
            stream=self._iter_content(content_path),
            content_type=data.get("content_type") or "application/octet-stream",
            content_length=stat.st_size,
            last_modified=last_modified,
            etag=data.get("etag"),
        )

    async def get_file_stream_by_external_id(
        self, external_id: str
    ) -> FileStreamResult:
        record = await self._require(external_id)
        return await self.get_file_stream(record.key)

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    async def set_file_visibility(
        self, key: str, visibility: Visibility
    ) -> VisibilityResult:
        visibility = Visibility.parse(visibility)
        if not await self.file_exists(key):
            return VisibilityResult(
                success=False,
                requested_visibility=visibility,
                actual_visibility=Visibility.PRIVATE,
                message=f"File with key {key} not found",
            )

        data = await self._read_sidecar(self._metadata_path(key))
        if data is None:
            return VisibilityResult(
                success=False,
                requested_visibility=visibility,
                actual_visibility=Visibility.PRIVATE,
                message=f"No metadata found for {key}",
            )

        data["visibility"] = visibility.value
        try:
            await self._write_sidecar(key, data)
        except OSError as e:
            return VisibilityResult(
                success=False,
                requested_visibility=visibility,
                actual_visibility=Visibility.PRIVATE,
                message=f"Failed to update visibility metadata: {e}",
            )

        public = visibility == Visibility.PUBLIC
        return VisibilityResult(
            success=True,
            requested_visibility=visibility,
            actual_visibility=visibility,
            public_url=self._url_for(key) if public else None,
        )

    async def set_file_visibility_by_external_id(
        self, external_id: str, visibility: Visibility
    ) -> VisibilityResult:
        found = await self._find(external_id)
        if found is None:
            return VisibilityResult(
                success=False,
                requested_visibility=Visibility.parse(visibility),
                actual_visibility=Visibility.PRIVATE,
                message=f"File with external_id {external_id} not found",
            )
        return await self.set_file_visibility(found[0].key, visibility)

    async def get_file_visibility(self, key: str) -> VisibilityStatus:
        if not await self.file_exists(key):
            raise StorageFileNotFoundError(key, f"File with key {key} not found")

        data = await self._read_sidecar(self._metadata_path(key)) or {}
        visibility = Visibility.parse(data.get("visibility"))
        return VisibilityStatus(
            visibility=visibility,
            public_url=self._url_for(key) if visibility == Visibility.PUBLIC else None,
        )

    async def get_file_visibility_by_external_id(
        self, external_id: str
    ) -> VisibilityStatus:
        record = await self._require(external_id)
        return await self.get_file_visibility(record.key)

    # ------------------------------------------------------------------
    # Timestamps
    # ------------------------------------------------------------------

    async def set_last_modified(self, key: str, when: datetime) -> None:
        """Rewrite the recorded and on-disk modification time of ``key``."""
        data = await self._read_sidecar(self._metadata_path(key))
        if data is None:
            raise TimestampPreservationError(f"No metadata found for {key}")

        data["last_modified"] = format_iso_timestamp(when)
        mtime = when.timestamp()
        try:
            await self._write_sidecar(key, data)
            await asyncio.to_thread(
                os.utime, self._content_path(key), (time.time(), mtime)
            )
        except OSError as e:
            raise TimestampPreservationError(
                f"Could not preserve timestamps for {key}: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _remove_quietly(path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except OSError:
            pass

    @staticmethod
    def _generate_key(external_id: str, filename: Optional[str]) -> str:
        extension = PurePosixPath(filename).suffix if filename else ""
        return f"files/{external_id}-{int(time.time() * 1000)}{extension}"
