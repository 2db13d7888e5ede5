"""Progress snapshots and error reports emitted during a sync run."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SyncPhase(str, Enum):
    """Phases of a sync run, in order."""

    SCANNING = "scanning"
    SYNCING = "syncing"
    CLEANING = "cleaning"
    COMPLETE = "complete"


class ErrorPhase(str, Enum):
    """Where a per-file error happened."""

    SCAN = "scan"
    COPY = "copy"
    DELETE = "delete"
    VERIFY = "verify"


@dataclass
class SyncProgress:
    """Snapshot of a running sync."""

    phase: SyncPhase
    total_files: int = 0
    processed_files: int = 0
    copied_files: int = 0
    skipped_files: int = 0
    deleted_files: int = 0
    errors: int = 0
    current_file: Optional[str] = None
    """External ID of the last file in the most recent batch"""


@dataclass
class SyncErrorInfo:
    """A per-file failure reported through ``on_error``."""

    external_id: str
    error: str
    phase: ErrorPhase
    key: Optional[str] = None
