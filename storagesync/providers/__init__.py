"""Storage provider contract and implementations."""

from .base import (
    StorageProvider,
    StreamingStorageProvider,
    TimestampAwareProvider,
    provider_name,
    same_backend,
    supports_streaming_upload,
)
from .factory import create_provider, parse_provider_spec
from .local import LocalStorageProvider
from .remote import RemoteStorageProvider

__all__ = [
    "StorageProvider",
    "StreamingStorageProvider",
    "TimestampAwareProvider",
    "provider_name",
    "same_backend",
    "supports_streaming_upload",
    "create_provider",
    "parse_provider_spec",
    "LocalStorageProvider",
    "RemoteStorageProvider",
]
