"""Core sync engine for reconciling two storage providers."""

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import Callable, Optional

import httpx

from ..exceptions import EnumerationError
from ..models import FileRecord
from ..providers.base import provider_name
from ..utils import chunked
from .comparator import ConflictResolver
from .operations import FileTransfer
from .options import SyncDirection, SyncOptions
from .progress import ErrorPhase, SyncErrorInfo, SyncPhase, SyncProgress
from .results import SyncFileAction, SyncFileResult, SyncResult, SyncSummary
from .scanner import FileScanner

logger = logging.getLogger(__name__)

UNKNOWN_ID = "unknown"


class SyncEngine:
    """Core sync engine that orchestrates file synchronization.

    Examples:
        >>> engine = SyncEngine()
        >>> result = await engine.sync(SyncOptions(source=local, destination=remote))
        >>> print(f"Copied {result.summary.copied} files")
    """

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        scanner: Optional[FileScanner] = None,
    ):
        """Initialize sync engine.

        Args:
            http_client: Client for URL downloads from non-streaming sources
            scanner: File scanner (default page size 100)
        """
        self.transfer = FileTransfer(http_client)
        self.scanner = scanner or FileScanner()

    async def aclose(self) -> None:
        await self.transfer.aclose()

    async def sync(self, options: SyncOptions) -> SyncResult:
        """Run a sync between ``options.source`` and ``options.destination``.

        Phases run in order: scanning, syncing, cleaning (only for two-way
        syncs or when deleting orphans) and complete. Per-file failures are
        recorded in the result; only enumeration failures propagate.

        Args:
            options: Providers, policy, filter and callbacks

        Returns:
            SyncResult with summary counters and per-file details

        Raises:
            ValueError: If ``batch_size`` is smaller than 1
            EnumerationError: If listing either provider fails
        """
        if options.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        start_time = time.monotonic()
        summary = SyncSummary()
        result = SyncResult(success=False, summary=summary)

        logger.debug(
            f"Starting {options.direction.value} sync "
            f"{provider_name(options.source)} -> {provider_name(options.destination)}"
            f"{' (dry run)' if options.dry_run else ''}"
        )

        try:
            # Phase 1: scanning
            self._emit_progress(options, SyncPhase.SCANNING, summary, 0, 0)
            source_files = await self.scanner.scan(options.source, options.filter)
            summary.scanned = len(source_files)
            total = len(source_files)

            # Phase 2: syncing
            self._emit_progress(options, SyncPhase.SYNCING, summary, total, 0)
            resolver = ConflictResolver(options.conflict_resolution)

            await self._run_batches(
                source_files,
                options,
                result,
                lambda file: self._sync_single_file(file, options, resolver),
                total=total,
            )

            # Phase 3: cleaning
            if (
                options.direction == SyncDirection.TWO_WAY
                or options.delete_orphaned
            ):
                self._emit_progress(options, SyncPhase.CLEANING, summary, total, total)
                await self._handle_orphans(source_files, options, result, resolver)
        except Exception as e:
            summary.duration_ms = self._elapsed_ms(start_time)
            if isinstance(e, EnumerationError):
                e.duration_ms = summary.duration_ms
            raise

        # Phase 4: complete
        summary.duration_ms = self._elapsed_ms(start_time)
        self._emit_progress(options, SyncPhase.COMPLETE, summary, total, total)
        result.success = summary.errors == 0

        logger.debug(
            f"Sync finished in {summary.duration_ms}ms: {summary.copied} copied, "
            f"{summary.skipped} skipped, {summary.deleted} deleted, "
            f"{summary.errors} errors"
        )
        return result

    async def _run_batches(
        self,
        files: list[FileRecord],
        options: SyncOptions,
        result: SyncResult,
        task: Callable[[FileRecord], Awaitable[SyncFileResult]],
        total: Optional[int] = None,
    ) -> None:
        """Run ``task`` over ``files`` in sequential batches.

        At most ``options.batch_size`` tasks are in flight. When ``total`` is
        given a syncing progress snapshot follows each batch.
        """
        processed = 0
        for batch_num, batch in enumerate(chunked(files, options.batch_size), 1):
            batch_start = time.monotonic()
            outcomes = await asyncio.gather(
                *(task(file) for file in batch), return_exceptions=True
            )

            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    self._record_unexpected_failure(outcome, options, result)
                else:
                    self._record(outcome, options, result)

            processed += len(batch)
            logger.debug(
                f"Batch {batch_num} ({len(batch)} files) done in "
                f"{time.monotonic() - batch_start:.3f}s"
            )
            if total is not None:
                self._emit_progress(
                    options,
                    SyncPhase.SYNCING,
                    result.summary,
                    total,
                    min(processed, total),
                    current_file=batch[-1].external_id,
                )

    async def _sync_single_file(
        self, file: FileRecord, options: SyncOptions, resolver: ConflictResolver
    ) -> SyncFileResult:
        """Resolve and copy one file; failures become an error result."""
        try:
            existing = await options.destination.find_file_by_external_id(
                file.external_id
            )
            decision = resolver.decide(file, existing)
            if not decision.copy:
                return SyncFileResult(
                    external_id=file.external_id,
                    key=file.key,
                    action=SyncFileAction.SKIPPED,
                    reason=decision.reason,
                    size=file.size,
                )

            if not options.dry_run:
                await self.transfer.copy_file_with_metadata(
                    file,
                    options.source,
                    options.destination,
                    preserve_timestamps=options.preserve_timestamps,
                )

            return SyncFileResult(
                external_id=file.external_id,
                key=file.key,
                action=SyncFileAction.COPIED,
                reason=decision.reason,
                size=file.size,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.debug(f"Failed to sync {file.external_id}: {message}")
            self._emit_error(
                options,
                SyncErrorInfo(
                    external_id=file.external_id,
                    key=file.key,
                    error=message,
                    phase=ErrorPhase.COPY,
                ),
            )
            return SyncFileResult(
                external_id=file.external_id,
                key=file.key,
                action=SyncFileAction.ERROR,
                error=message,
                size=file.size,
            )

    async def _handle_orphans(
        self,
        source_files: list[FileRecord],
        options: SyncOptions,
        result: SyncResult,
        resolver: ConflictResolver,
    ) -> None:
        """Back-sync (two-way) or delete (one-way) destination-only files."""
        dest_files = await self.scanner.scan(options.destination, options.filter)
        source_ids = {f.external_id for f in source_files}
        orphans = [f for f in dest_files if f.external_id not in source_ids]
        logger.debug(f"Found {len(orphans)} destination-only files")

        if options.direction == SyncDirection.TWO_WAY:
            reverse = SyncOptions(
                source=options.destination,
                destination=options.source,
                direction=options.direction,
                conflict_resolution=options.conflict_resolution,
                filter=options.filter,
                dry_run=options.dry_run,
                batch_size=options.batch_size,
                preserve_timestamps=options.preserve_timestamps,
                on_error=options.on_error,
            )
            await self._run_batches(
                orphans,
                options,
                result,
                lambda file: self._sync_single_file(file, reverse, resolver),
            )
        elif options.delete_orphaned:
            await self._run_batches(
                orphans,
                options,
                result,
                lambda file: self._delete_orphan(file, options),
            )

    async def _delete_orphan(
        self, file: FileRecord, options: SyncOptions
    ) -> SyncFileResult:
        if options.dry_run:
            return SyncFileResult(
                external_id=file.external_id,
                key=file.key,
                action=SyncFileAction.DELETED,
                size=file.size,
            )
        try:
            await options.destination.delete_file_by_external_id(file.external_id)
        except Exception as e:
            message = str(e) or type(e).__name__
            self._emit_error(
                options,
                SyncErrorInfo(
                    external_id=file.external_id,
                    key=file.key,
                    error=message,
                    phase=ErrorPhase.DELETE,
                ),
            )
            return SyncFileResult(
                external_id=file.external_id,
                key=file.key,
                action=SyncFileAction.ERROR,
                error=message,
                size=file.size,
            )
        logger.debug(f"Deleted orphan {file.external_id}")
        return SyncFileResult(
            external_id=file.external_id,
            key=file.key,
            action=SyncFileAction.DELETED,
            size=file.size,
        )

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _record(
        self, outcome: SyncFileResult, options: SyncOptions, result: SyncResult
    ) -> None:
        result.details.append(outcome)
        result.summary.count(outcome)
        if options.on_file_complete is not None:
            options.on_file_complete(outcome)

    def _record_unexpected_failure(
        self, error: Exception, options: SyncOptions, result: SyncResult
    ) -> None:
        """Record a task that raised instead of returning a result."""
        message = str(error) or type(error).__name__
        logger.debug(f"Sync task failed unexpectedly: {message}")
        result.details.append(
            SyncFileResult(
                external_id=UNKNOWN_ID,
                key=UNKNOWN_ID,
                action=SyncFileAction.ERROR,
                error=message,
            )
        )
        result.summary.errors += 1
        self._emit_error(
            options,
            SyncErrorInfo(external_id=UNKNOWN_ID, error=message, phase=ErrorPhase.COPY),
        )

    @staticmethod
    def _emit_error(options: SyncOptions, info: SyncErrorInfo) -> None:
        if options.on_error is not None:
            options.on_error(info)

    @staticmethod
    def _emit_progress(
        options: SyncOptions,
        phase: SyncPhase,
        summary: SyncSummary,
        total: int,
        processed: int,
        current_file: Optional[str] = None,
    ) -> None:
        if options.on_progress is None:
            return
        options.on_progress(
            SyncProgress(
                phase=phase,
                total_files=total,
                processed_files=processed,
                copied_files=summary.copied,
                skipped_files=summary.skipped,
                deleted_files=summary.deleted,
                errors=summary.errors,
                current_file=current_file,
            )
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)


async def sync_storage_providers(
    options: SyncOptions, http_client: Optional[httpx.AsyncClient] = None
) -> SyncResult:
    """Run one sync with a throwaway engine."""
    engine = SyncEngine(http_client=http_client)
    try:
        return await engine.sync(options)
    finally:
        await engine.aclose()
