"""Exception hierarchy for storagesync."""

from typing import Optional


class StorageSyncError(Exception):
    """Base exception for all storagesync errors."""


class StorageConfigError(StorageSyncError):
    """Raised when required configuration is missing or invalid."""


# =============================================================================
# Provider errors
# =============================================================================


class StorageProviderError(StorageSyncError):
    """Base exception for errors raised by a storage provider."""


class StorageAPIError(StorageProviderError):
    """Raised when a storage API request fails."""


class StorageAuthenticationError(StorageAPIError):
    """Raised when the API key is invalid or missing."""


class StoragePermissionError(StorageAPIError):
    """Raised when access to a resource is forbidden."""


class StorageNotFoundError(StorageAPIError):
    """Raised when a requested API resource does not exist."""


class StorageRateLimitError(StorageAPIError):
    """Raised when the API rate limit has been exceeded."""


class StorageNetworkError(StorageAPIError):
    """Raised on connection failures and timeouts."""


class StorageInvalidResponseError(StorageAPIError):
    """Raised when the API returns a response that cannot be parsed."""


class StorageUploadError(StorageProviderError):
    """Raised when uploading file content fails."""


class StorageDownloadError(StorageProviderError):
    """Raised when downloading file content fails."""


class StorageFileNotFoundError(StorageProviderError):
    """Raised when a file cannot be found by key or external ID."""

    def __init__(self, identifier: str, message: Optional[str] = None):
        self.identifier = identifier
        super().__init__(message or f"File not found: {identifier}")


# =============================================================================
# Sync errors
# =============================================================================


class EnumerationError(StorageSyncError):
    """Raised when listing a provider fails.

    Enumeration failures abort the whole sync run. ``duration_ms`` is set
    to the elapsed run time before the error leaves the engine.
    """

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.duration_ms: Optional[int] = None


class TransferError(StorageSyncError):
    """Raised when fetching or uploading a single file fails."""

    def __init__(self, external_id: str, message: str):
        super().__init__(message)
        self.external_id = external_id


class VisibilityError(StorageSyncError):
    """Raised when visibility cannot be reapplied after an upload."""


class TimestampPreservationError(StorageSyncError):
    """Raised when a destination modification time cannot be rewritten."""
