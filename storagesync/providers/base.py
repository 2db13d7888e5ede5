"""Capability contract implemented by every storage backend.

The sync engine only talks to providers through these protocols. Vendor
SDKs stay inside the concrete provider modules.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

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


@runtime_checkable
class StorageProvider(Protocol):
    """Protocol that all storage backends must implement."""

    async def upload_file(self, options: UploadOptions) -> UploadResult:
        """Upload content with its metadata."""
        ...

    async def delete_file(self, key: str) -> None:
        """Delete a file by storage key."""
        ...

    async def delete_file_by_external_id(self, external_id: str) -> None:
        """Delete a file by external ID."""
        ...

    async def get_file_url(self, key: str, expires_in: Optional[int] = None) -> str:
        """Return a URL that downloads the file without further authentication."""
        ...

    async def get_file_url_by_external_id(
        self, external_id: str, expires_in: Optional[int] = None
    ) -> str:
        """Return a download URL for the file with this external ID."""
        ...

    async def file_exists(self, key: str) -> bool:
        """Check whether a file exists under ``key``."""
        ...

    async def file_exists_by_external_id(self, external_id: str) -> bool:
        """Check whether a file exists with this external ID."""
        ...

    async def find_file_by_external_id(self, external_id: str) -> Optional[FileRecord]:
        """Return the file with this external ID, or None."""
        ...

    async def list_files(
        self, options: Optional[ListFilesOptions] = None
    ) -> ListFilesResult:
        """Return one page of files matching ``options``."""
        ...

    async def set_file_visibility(
        self, key: str, visibility: Visibility
    ) -> VisibilityResult:
        """Change the visibility of a file by key."""
        ...

    async def set_file_visibility_by_external_id(
        self, external_id: str, visibility: Visibility
    ) -> VisibilityResult:
        """Change the visibility of a file by external ID."""
        ...

    async def get_file_visibility(self, key: str) -> VisibilityStatus:
        """Return the visibility of a file by key."""
        ...

    async def get_file_visibility_by_external_id(
        self, external_id: str
    ) -> VisibilityStatus:
        """Return the visibility of a file by external ID."""
        ...


@runtime_checkable
class StreamingStorageProvider(Protocol):
    """Optional capability: direct byte-stream access to stored files."""

    async def get_file_stream(self, key: str) -> FileStreamResult:
        """Open a byte stream for a file by key."""
        ...

    async def get_file_stream_by_external_id(
        self, external_id: str
    ) -> FileStreamResult:
        """Open a byte stream for a file by external ID."""
        ...


@runtime_checkable
class TimestampAwareProvider(Protocol):
    """Optional capability: rewriting the stored modification time."""

    async def set_last_modified(self, key: str, when: datetime) -> None:
        """Set the modification time reported for ``key``."""
        ...


def provider_name(provider: Any) -> str:
    """Identifier of a provider used in provenance metadata.

    Providers may expose a ``name`` attribute; the class name is used
    otherwise.
    """
    name = getattr(provider, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(provider).__name__


def supports_streaming_upload(provider: Any) -> bool:
    """Whether ``provider.upload_file`` accepts ``UploadOptions.stream``
    without knowing the content length upfront."""
    return bool(getattr(provider, "supports_streaming_upload", False))


def same_backend(source: Any, destination: Any) -> bool:
    """Whether both providers are the same backend type."""
    return type(source) is type(destination)
