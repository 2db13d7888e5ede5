"""storagesync - storage provider abstraction and sync engine."""

__version__ = "0.1.0"

from .exceptions import (
    EnumerationError,
    StorageAPIError,
    StorageConfigError,
    StorageFileNotFoundError,
    StorageProviderError,
    StorageSyncError,
    TimestampPreservationError,
    TransferError,
    VisibilityError,
)
from .models import (
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
from .providers import (
    LocalStorageProvider,
    RemoteStorageProvider,
    StorageProvider,
    create_provider,
    parse_provider_spec,
)
from .sync import (
    ConflictResolution,
    SyncDirection,
    SyncEngine,
    SyncFilter,
    SyncOptions,
    SyncResult,
    get_sync_status,
    sync_storage_providers,
    verify_synced_file,
)

__all__ = [
    "__version__",
    "StorageSyncError",
    "StorageConfigError",
    "StorageProviderError",
    "StorageAPIError",
    "StorageFileNotFoundError",
    "EnumerationError",
    "TransferError",
    "VisibilityError",
    "TimestampPreservationError",
    "FileRecord",
    "FileStreamResult",
    "ListFilesOptions",
    "ListFilesResult",
    "UploadOptions",
    "UploadResult",
    "Visibility",
    "VisibilityResult",
    "VisibilityStatus",
    "StorageProvider",
    "LocalStorageProvider",
    "RemoteStorageProvider",
    "create_provider",
    "parse_provider_spec",
    "SyncEngine",
    "SyncOptions",
    "SyncFilter",
    "SyncDirection",
    "ConflictResolution",
    "SyncResult",
    "sync_storage_providers",
    "verify_synced_file",
    "get_sync_status",
]
