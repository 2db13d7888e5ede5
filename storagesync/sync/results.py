"""Result types returned by the sync engine, verifier and status reporter."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SyncFileAction(str, Enum):
    """What happened to a single file."""

    COPIED = "copied"
    SKIPPED = "skipped"
    DELETED = "deleted"
    ERROR = "error"


@dataclass
class SyncFileResult:
    """Outcome for one file."""

    external_id: str
    action: SyncFileAction
    key: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    size: Optional[int] = None


@dataclass
class SyncSummary:
    """Aggregate counters of a sync run."""

    scanned: int = 0
    copied: int = 0
    skipped: int = 0
    deleted: int = 0
    errors: int = 0
    duration_ms: int = 0

    def count(self, result: SyncFileResult) -> None:
        """Add one file outcome to the matching counter."""
        if result.action == SyncFileAction.COPIED:
            self.copied += 1
        elif result.action == SyncFileAction.SKIPPED:
            self.skipped += 1
        elif result.action == SyncFileAction.DELETED:
            self.deleted += 1
        else:
            self.errors += 1


@dataclass
class SyncResult:
    """Result of ``SyncEngine.sync``."""

    success: bool
    summary: SyncSummary
    details: list[SyncFileResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncVerificationResult:
    """Whether a file matches across two providers."""

    matched: bool
    differences: list[str] = field(default_factory=list)


@dataclass
class ConflictDetail:
    """A file present on both sides whose size or timestamp differ."""

    external_id: str
    source_size: int
    dest_size: int
    source_modified: Optional[datetime] = None
    dest_modified: Optional[datetime] = None


@dataclass
class SyncStatus:
    """Read-only comparison of two providers."""

    source_files: int = 0
    dest_files: int = 0
    source_only: int = 0
    dest_only: int = 0
    in_both: int = 0
    conflicts: int = 0
    conflict_details: list[ConflictDetail] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
