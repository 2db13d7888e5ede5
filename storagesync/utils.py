"""Utility functions for storagesync."""

from collections.abc import AsyncIterator, Iterable
from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Number of files processed concurrently per batch
DEFAULT_BATCH_SIZE: int = 10

# Page size used when enumerating a provider
DEFAULT_PAGE_SIZE: int = 100

# Upper bound for a single listing page
MAX_PAGE_SIZE: int = 1000

# Chunk size for streamed reads (64 KB)
DEFAULT_STREAM_CHUNK_SIZE: int = 64 * 1024

# Retry configuration for transient API errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds
DEFAULT_TIMEOUT: float = 30.0  # seconds


# =============================================================================
# Timestamp utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Naive timestamps are assumed to be UTC.

    Args:
        timestamp_str: ISO format timestamp string (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Aware datetime or None if the value is empty or cannot be parsed
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(timestamp_str)
    except (ValueError, TypeError):
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso_timestamp(dt: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision.

    Examples:
        >>> format_iso_timestamp(datetime(2025, 1, 2, tzinfo=timezone.utc))
        '2025-01-02T00:00:00.000Z'
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def timestamp_or_zero(dt: Optional[datetime]) -> float:
    """Unix timestamp of ``dt``, or 0 (the epoch) when missing."""
    if dt is None:
        return 0.0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Stream utilities
# =============================================================================


async def read_stream(stream: AsyncIterator[bytes]) -> bytes:
    """Drain an async byte stream into memory."""
    chunks = []
    async for chunk in stream:
        if chunk:
            chunks.append(bytes(chunk))
    return b"".join(chunks)


async def iter_bytes(
    data: bytes, chunk_size: int = DEFAULT_STREAM_CHUNK_SIZE
) -> AsyncIterator[bytes]:
    """Expose an in-memory buffer as an async byte stream."""
    for start in range(0, len(data), chunk_size):
        yield data[start : start + chunk_size]


def last_segment(key: str) -> str:
    """Return the last path segment of a storage key."""
    return key.rstrip("/").rsplit("/", 1)[-1]


def chunked(items: list, size: int) -> Iterable[list]:
    """Split a list into consecutive slices of at most ``size`` items."""
    for start in range(0, len(items), size):
        yield items[start : start + size]
