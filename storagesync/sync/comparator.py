"""Conflict resolution between source and destination records."""

from dataclasses import dataclass
from typing import Optional

from ..models import FileRecord
from ..utils import timestamp_or_zero
from .options import ConflictResolution


@dataclass
class SyncDecision:
    """Represents a decision about whether to copy a file."""

    copy: bool
    """Whether the source file should be transferred"""

    reason: str
    """Human-readable reason for this decision"""

    source: FileRecord
    """Source file"""

    destination: Optional[FileRecord]
    """Destination file (if exists)"""

    @property
    def external_id(self) -> str:
        return self.source.external_id


def should_copy(
    source: FileRecord,
    destination: Optional[FileRecord],
    policy: ConflictResolution,
) -> bool:
    """Decide whether ``source`` overwrites ``destination``.

    A missing destination is always a copy. Otherwise:

    * ``skip`` never copies
    * ``overwrite`` always copies
    * ``newest-wins`` copies if the source is strictly newer (a missing
      timestamp counts as the epoch)
    * ``largest-wins`` copies if the source is strictly larger
    """
    if destination is None:
        return True

    if policy == ConflictResolution.OVERWRITE:
        return True
    if policy == ConflictResolution.NEWEST_WINS:
        return timestamp_or_zero(source.last_modified) > timestamp_or_zero(
            destination.last_modified
        )
    if policy == ConflictResolution.LARGEST_WINS:
        return source.size > destination.size
    return False


class ConflictResolver:
    """Applies a conflict policy and explains each decision."""

    def __init__(self, policy: ConflictResolution = ConflictResolution.SKIP):
        """Initialize the resolver.

        Args:
            policy: Conflict resolution policy for files present on both sides
        """
        self.policy = ConflictResolution(policy)

    def decide(
        self, source: FileRecord, destination: Optional[FileRecord]
    ) -> SyncDecision:
        copy = should_copy(source, destination, self.policy)
        return SyncDecision(
            copy=copy,
            reason=self._reason(source, destination, copy),
            source=source,
            destination=destination,
        )

    def _reason(
        self, source: FileRecord, destination: Optional[FileRecord], copy: bool
    ) -> str:
        if destination is None:
            return "New file"

        if self.policy == ConflictResolution.SKIP:
            return "Exists in destination"
        if self.policy == ConflictResolution.OVERWRITE:
            return "Overwrite"
        if self.policy == ConflictResolution.NEWEST_WINS:
            return "Source is newer" if copy else "Destination is same age or newer"
        if self.policy == ConflictResolution.LARGEST_WINS:
            return "Source is larger" if copy else "Destination is same size or larger"
        return "Exists in destination"
