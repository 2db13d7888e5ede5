"""Sync engine for storagesync - reconcile files between two providers."""

from .comparator import ConflictResolver, SyncDecision, should_copy
from .engine import SyncEngine, sync_storage_providers
from .operations import FileTransfer, build_sync_metadata, is_provenance_key
from .options import ConflictResolution, SyncDirection, SyncFilter, SyncOptions
from .progress import ErrorPhase, SyncErrorInfo, SyncPhase, SyncProgress
from .results import (
    ConflictDetail,
    SyncFileAction,
    SyncFileResult,
    SyncResult,
    SyncStatus,
    SyncSummary,
    SyncVerificationResult,
)
from .scanner import FileScanner, index_by_external_id, list_all_files
from .verify import get_sync_status, verify_synced_file

__all__ = [
    "SyncEngine",
    "sync_storage_providers",
    "verify_synced_file",
    "get_sync_status",
    "SyncOptions",
    "SyncFilter",
    "SyncDirection",
    "ConflictResolution",
    "ConflictResolver",
    "SyncDecision",
    "should_copy",
    "FileTransfer",
    "build_sync_metadata",
    "is_provenance_key",
    "FileScanner",
    "list_all_files",
    "index_by_external_id",
    "SyncPhase",
    "SyncProgress",
    "ErrorPhase",
    "SyncErrorInfo",
    "SyncFileAction",
    "SyncFileResult",
    "SyncSummary",
    "SyncResult",
    "SyncVerificationResult",
    "SyncStatus",
    "ConflictDetail",
]
