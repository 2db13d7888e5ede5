"""Sync policy and filter options."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..models import FileRecord, ListFilesOptions
from ..utils import DEFAULT_BATCH_SIZE, DEFAULT_PAGE_SIZE

if TYPE_CHECKING:
    from .progress import SyncErrorInfo, SyncProgress
    from .results import SyncFileResult


class SyncDirection(str, Enum):
    """Which way files flow between the two providers."""

    ONE_WAY = "one-way"
    """Source to destination only"""

    TWO_WAY = "two-way"
    """Source to destination, then destination-only files back to source"""


class ConflictResolution(str, Enum):
    """Policy for a file present on both sides."""

    SKIP = "skip"
    """Never copy"""

    OVERWRITE = "overwrite"
    """Always copy"""

    NEWEST_WINS = "newest-wins"
    """Copy if the source was modified strictly later"""

    LARGEST_WINS = "largest-wins"
    """Copy if the source is strictly larger"""


@dataclass
class SyncFilter:
    """Restricts which files take part in a sync."""

    prefix: Optional[str] = None
    """Only keys starting with this prefix"""

    external_ids: Optional[list[str]] = None
    """Only these external IDs"""

    content_type: Optional[str] = None
    """Exact MIME type"""

    content_type_prefix: Optional[str] = None
    """MIME type prefix, e.g. ``image/``"""

    min_size: Optional[int] = None
    """Inclusive lower size bound in bytes"""

    max_size: Optional[int] = None
    """Inclusive upper size bound in bytes"""

    def to_list_options(
        self, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> ListFilesOptions:
        return ListFilesOptions(
            limit=limit,
            offset=offset,
            prefix=self.prefix,
            external_ids=list(self.external_ids) if self.external_ids else None,
            content_type=self.content_type,
            content_type_prefix=self.content_type_prefix,
            min_size=self.min_size,
            max_size=self.max_size,
        )

    def matches(self, record: FileRecord) -> bool:
        return self.to_list_options().matches(record)


@dataclass
class SyncOptions:
    """Everything a sync run needs."""

    source: Any
    """Provider files are read from"""

    destination: Any
    """Provider files are written to"""

    direction: SyncDirection = SyncDirection.ONE_WAY
    conflict_resolution: ConflictResolution = ConflictResolution.SKIP
    filter: Optional[SyncFilter] = None

    dry_run: bool = False
    """Report what would happen without transferring or deleting"""

    delete_orphaned: bool = False
    """Delete destination-only files (one-way only)"""

    batch_size: int = DEFAULT_BATCH_SIZE
    """Maximum number of concurrent transfers"""

    preserve_timestamps: bool = False
    """Rewrite destination modification times (same backend type only)"""

    on_progress: Optional[Callable[["SyncProgress"], None]] = None
    on_error: Optional[Callable[["SyncErrorInfo"], None]] = None
    on_file_complete: Optional[Callable[["SyncFileResult"], None]] = None

