"""Data models shared by storage providers and the sync engine."""

from collections.abc import AsyncIterator, Awaitable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional


class Visibility(str, Enum):
    """Access level of a stored file."""

    PUBLIC = "public"
    """Readable without authentication"""

    PRIVATE = "private"
    """Requires authentication or a signed URL"""

    TEMPORARY_PUBLIC = "temporary-public"
    """Public through an expiring URL (e.g. SAS tokens)"""

    @classmethod
    def parse(cls, value: Any) -> "Visibility":
        """Parse a visibility value, treating anything unknown as private."""
        if isinstance(value, Visibility):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.PRIVATE


@dataclass
class FileRecord:
    """A file as reported by a storage provider."""

    external_id: str
    """Stable identifier correlating the same logical file across providers"""

    key: str
    """Storage path of the file inside the provider"""

    size: int
    """File size in bytes"""

    content_type: str = "application/octet-stream"
    """MIME type"""

    last_modified: Optional[datetime] = None
    """Last modification time, if the provider reports one"""

    etag: Optional[str] = None
    """Entity tag, if the provider reports one"""

    metadata: dict[str, str] = field(default_factory=dict)
    """Caller-defined metadata"""

    visibility: Visibility = Visibility.PRIVATE
    """Access level"""

    url: str = ""
    """Provider URL for the file (may be empty)"""

    @property
    def filename(self) -> str:
        """Last segment of the key."""
        return self.key.rsplit("/", 1)[-1]


@dataclass
class UploadOptions:
    """Arguments for ``StorageProvider.upload_file``.

    Exactly one of ``data``, ``stream`` or ``file_path`` must be set.
    """

    external_id: str
    key: Optional[str] = None
    data: Optional[bytes] = None
    stream: Optional[AsyncIterator[bytes]] = None
    file_path: Optional[Path] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    size: Optional[int] = None
    public: bool = False
    metadata: dict[str, str] = field(default_factory=dict)

    def source_count(self) -> int:
        """Number of content sources that were provided."""
        return sum(
            source is not None for source in (self.data, self.stream, self.file_path)
        )


@dataclass
class UploadResult:
    """Result of a successful upload."""

    external_id: str
    key: str
    url: str
    size: int
    content_type: str
    etag: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)
    visibility: Visibility = Visibility.PRIVATE
    public_url: Optional[str] = None


@dataclass
class ListFilesOptions:
    """Pagination and filter options for ``StorageProvider.list_files``."""

    limit: int = 100
    offset: int = 0
    prefix: Optional[str] = None
    external_ids: Optional[list[str]] = None
    content_type: Optional[str] = None
    content_type_prefix: Optional[str] = None
    min_size: Optional[int] = None
    max_size: Optional[int] = None

    def matches(self, record: FileRecord) -> bool:
        """Check a record against the filter fields (pagination is ignored)."""
        if self.prefix and not record.key.startswith(self.prefix):
            return False
        if self.external_ids is not None and record.external_id not in set(
            self.external_ids
        ):
            return False
        if self.content_type and record.content_type != self.content_type:
            return False
        if self.content_type_prefix and not record.content_type.startswith(
            self.content_type_prefix
        ):
            return False
        if self.min_size is not None and record.size < self.min_size:
            return False
        if self.max_size is not None and record.size > self.max_size:
            return False
        return True


@dataclass
class ListFilesResult:
    """One page of a provider listing."""

    files: list[FileRecord]
    has_more: bool
    total_count: Optional[int] = None
    next_offset: Optional[int] = None


@dataclass
class VisibilityResult:
    """Outcome of a visibility change request."""

    success: bool
    requested_visibility: Visibility
    actual_visibility: Visibility
    public_url: Optional[str] = None
    message: Optional[str] = None


@dataclass
class VisibilityStatus:
    """Current visibility of a stored file."""

    visibility: Visibility
    public_url: Optional[str] = None
    can_make_public: bool = True
    can_make_private: bool = True
    supports_temporary_access: bool = False
    message: Optional[str] = None


@dataclass
class FileStreamResult:
    """Direct byte stream of a stored file."""

    stream: AsyncIterator[bytes]
    content_type: str
    content_length: Optional[int] = None
    last_modified: Optional[datetime] = None
    etag: Optional[str] = None
    cleanup: Optional[Callable[[], Awaitable[None]]] = None
