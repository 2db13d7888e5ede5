"""Shared fixtures: an in-memory storage provider."""

import asyncio
from dataclasses import replace
from datetime import datetime
from typing import Optional

import pytest

from storagesync.exceptions import StorageFileNotFoundError
from storagesync.models import (
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
from storagesync.utils import iter_bytes, read_stream, utc_now


class InMemoryStorageProvider:
    """Provider keeping files in a dict, with hooks for failure injection."""

    name = "InMemoryStorageProvider"
    supports_streaming_upload = False

    def __init__(self, upload_delay: float = 0.0):
        self.files: dict[str, FileRecord] = {}
        self.contents: dict[str, bytes] = {}
        self.upload_delay = upload_delay
        self.upload_calls: list[UploadOptions] = []
        self.delete_calls: list[str] = []
        self.list_calls: list[ListFilesOptions] = []
        self.timestamp_calls: list[tuple[str, datetime]] = []
        self.fail_uploads: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_list: Optional[Exception] = None
        self.fail_visibility_lookup = False
        self.reject_visibility_change = False
        self.in_flight = 0
        self.max_in_flight = 0

    # Test helpers

    def add(
        self,
        external_id: str,
        content: bytes = b"data",
        key: Optional[str] = None,
        content_type: str = "application/octet-stream",
        last_modified: Optional[datetime] = None,
        metadata: Optional[dict[str, str]] = None,
        visibility: Visibility = Visibility.PRIVATE,
        etag: Optional[str] = None,
    ) -> FileRecord:
        record = FileRecord(
            external_id=external_id,
            key=key or f"files/{external_id}",
            size=len(content),
            content_type=content_type,
            last_modified=last_modified,
            etag=etag,
            metadata=dict(metadata or {}),
            visibility=visibility,
            url=f"https://mem.test/{external_id}",
        )
        self.files[external_id] = record
        self.contents[external_id] = content
        return record

    def _require(self, external_id: str) -> FileRecord:
        if external_id not in self.files:
            raise StorageFileNotFoundError(external_id)
        return self.files[external_id]

    def _by_key(self, key: str) -> FileRecord:
        for record in self.files.values():
            if record.key == key:
                return record
        raise StorageFileNotFoundError(key)

    # StorageProvider

    async def upload_file(self, options: UploadOptions) -> UploadResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.upload_calls.append(options)
            if self.upload_delay:
                await asyncio.sleep(self.upload_delay)
            if options.external_id in self.fail_uploads:
                raise RuntimeError(f"upload rejected for {options.external_id}")

            if options.data is not None:
                content = options.data
            elif options.stream is not None:
                content = await read_stream(options.stream)
            else:
                raise ValueError("no content")

            visibility = Visibility.PUBLIC if options.public else Visibility.PRIVATE
            record = self.add(
                options.external_id,
                content,
                key=options.key,
                content_type=options.content_type or "application/octet-stream",
                last_modified=utc_now(),
                metadata=options.metadata,
                visibility=visibility,
            )
            return UploadResult(
                external_id=record.external_id,
                key=record.key,
                url=record.url,
                size=record.size,
                content_type=record.content_type,
                metadata=dict(record.metadata),
                visibility=visibility,
            )
        finally:
            self.in_flight -= 1

    async def delete_file(self, key: str) -> None:
        record = self._by_key(key)
        await self.delete_file_by_external_id(record.external_id)

    async def delete_file_by_external_id(self, external_id: str) -> None:
        self.delete_calls.append(external_id)
        if external_id in self.fail_deletes:
            raise RuntimeError(f"delete rejected for {external_id}")
        self._require(external_id)
        del self.files[external_id]
        del self.contents[external_id]

    async def get_file_url(self, key: str, expires_in: Optional[int] = None) -> str:
        return self._by_key(key).url

    async def get_file_url_by_external_id(
        self, external_id: str, expires_in: Optional[int] = None
    ) -> str:
        return self._require(external_id).url

    async def file_exists(self, key: str) -> bool:
        return any(r.key == key for r in self.files.values())

    async def file_exists_by_external_id(self, external_id: str) -> bool:
        return external_id in self.files

    async def find_file_by_external_id(self, external_id: str) -> Optional[FileRecord]:
        record = self.files.get(external_id)
        return replace(record, metadata=dict(record.metadata)) if record else None

    async def list_files(
        self, options: Optional[ListFilesOptions] = None
    ) -> ListFilesResult:
        options = options or ListFilesOptions()
        self.list_calls.append(options)
        if self.fail_list is not None:
            raise self.fail_list
        matching = [r for r in self.files.values() if options.matches(r)]
        page = matching[options.offset : options.offset + options.limit]
        has_more = options.offset + options.limit < len(matching)
        return ListFilesResult(
            files=[replace(r, metadata=dict(r.metadata)) for r in page],
            has_more=has_more,
            total_count=len(matching),
            next_offset=options.offset + options.limit if has_more else None,
        )

    async def set_file_visibility(
        self, key: str, visibility: Visibility
    ) -> VisibilityResult:
        return await self.set_file_visibility_by_external_id(
            self._by_key(key).external_id, visibility
        )

    async def set_file_visibility_by_external_id(
        self, external_id: str, visibility: Visibility
    ) -> VisibilityResult:
        if self.reject_visibility_change:
            return VisibilityResult(
                success=False,
                requested_visibility=visibility,
                actual_visibility=Visibility.PRIVATE,
                message="not supported",
            )
        self._require(external_id).visibility = visibility
        return VisibilityResult(
            success=True,
            requested_visibility=visibility,
            actual_visibility=visibility,
        )

    async def get_file_visibility(self, key: str) -> VisibilityStatus:
        return await self.get_file_visibility_by_external_id(self._by_key(key).external_id)

    async def get_file_visibility_by_external_id(
        self, external_id: str
    ) -> VisibilityStatus:
        if self.fail_visibility_lookup:
            raise RuntimeError("visibility lookup failed")
        return VisibilityStatus(visibility=self._require(external_id).visibility)

    async def set_last_modified(self, key: str, when: datetime) -> None:
        self.timestamp_calls.append((key, when))
        self._by_key(key).last_modified = when


class StreamingInMemoryProvider(InMemoryStorageProvider):
    """In-memory provider that also exposes direct byte streams."""

    name = "StreamingInMemoryProvider"
    supports_streaming_upload = True

    def __init__(self, upload_delay: float = 0.0):
        super().__init__(upload_delay)
        self.stream_calls: list[str] = []
        self.cleanup_calls = 0

    async def _cleanup(self) -> None:
        self.cleanup_calls += 1

    async def get_file_stream(self, key: str) -> FileStreamResult:
        return await self.get_file_stream_by_external_id(self._by_key(key).external_id)

    async def get_file_stream_by_external_id(
        self, external_id: str
    ) -> FileStreamResult:
        self.stream_calls.append(external_id)
        record = self._require(external_id)
        return FileStreamResult(
            stream=iter_bytes(self.contents[external_id], chunk_size=4),
            content_type=record.content_type,
            content_length=record.size,
            cleanup=self._cleanup,
        )


@pytest.fixture
def memory_source():
    return StreamingInMemoryProvider()


@pytest.fixture
def memory_dest():
    return StreamingInMemoryProvider()
