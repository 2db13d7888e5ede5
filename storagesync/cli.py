"""CLI interface for storagesync."""

import asyncio
import logging
from typing import Any, Callable, Optional

import click
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)

from .exceptions import EnumerationError, StorageConfigError, StorageSyncError
from .output import OutputFormatter
from .providers import parse_provider_spec
from .sync import (
    ConflictResolution,
    SyncDirection,
    SyncEngine,
    SyncErrorInfo,
    SyncFileAction,
    SyncFilter,
    SyncOptions,
    SyncPhase,
    SyncProgress,
    get_sync_status,
    verify_synced_file,
)
from .utils import format_size

logger = logging.getLogger(__name__)


def filter_options(func: Callable) -> Callable:
    """Attach the shared file filter options to a command."""
    options = [
        click.option("--prefix", help="Only keys starting with this prefix"),
        click.option(
            "--external-id",
            "external_ids",
            multiple=True,
            help="Only this external ID (repeatable)",
        ),
        click.option("--content-type", help="Only this exact MIME type"),
        click.option("--content-type-prefix", help="Only MIME types with this prefix"),
        click.option("--min-size", type=click.IntRange(min=0), help="Minimum size in bytes"),
        click.option("--max-size", type=click.IntRange(min=0), help="Maximum size in bytes"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_filter(
    prefix: Optional[str],
    external_ids: tuple[str, ...],
    content_type: Optional[str],
    content_type_prefix: Optional[str],
    min_size: Optional[int],
    max_size: Optional[int],
) -> Optional[SyncFilter]:
    """Build a SyncFilter from CLI options, or None when no option is set."""
    sync_filter = SyncFilter(
        prefix=prefix,
        external_ids=list(external_ids) if external_ids else None,
        content_type=content_type,
        content_type_prefix=content_type_prefix,
        min_size=min_size,
        max_size=max_size,
    )
    if sync_filter == SyncFilter():
        return None
    return sync_filter


def _open_providers(out: OutputFormatter, ctx: Any, *specs: str) -> list[Any]:
    try:
        return [parse_provider_spec(spec) for spec in specs]
    except StorageConfigError as e:
        out.error(str(e))
        ctx.exit(1)
        return []


async def _close_providers(*providers: Any) -> None:
    for provider in providers:
        aclose = getattr(provider, "aclose", None)
        if aclose is not None:
            await aclose()


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="storagesync")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """storagesync - Synchronize files between storage providers.

    Providers are given as ``local:/path``, ``local``, ``remote`` or
    ``remote:<project_id>``.
    """
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("storagesync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.argument("source", type=str)
@click.argument("destination", type=str)
@click.option(
    "--direction",
    type=click.Choice([d.value for d in SyncDirection]),
    default=SyncDirection.ONE_WAY.value,
    show_default=True,
    help="Copy one way, or also copy destination-only files back",
)
@click.option(
    "--conflict",
    type=click.Choice([c.value for c in ConflictResolution]),
    default=ConflictResolution.SKIP.value,
    show_default=True,
    help="What to do with files present on both sides",
)
@filter_options
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without syncing"
)
@click.option(
    "--delete-orphaned",
    is_flag=True,
    help="Delete destination files missing from the source (one-way only)",
)
@click.option(
    "--batch-size",
    "-b",
    type=click.IntRange(1, 1000),
    default=10,
    show_default=True,
    help="Number of files transferred concurrently",
)
@click.option(
    "--preserve-timestamps",
    is_flag=True,
    help="Keep original modification times (same provider type only)",
)
@click.pass_context
def sync(
    ctx: Any,
    source: str,
    destination: str,
    direction: str,
    conflict: str,
    prefix: Optional[str],
    external_ids: tuple[str, ...],
    content_type: Optional[str],
    content_type_prefix: Optional[str],
    min_size: Optional[int],
    max_size: Optional[int],
    dry_run: bool,
    delete_orphaned: bool,
    batch_size: int,
    preserve_timestamps: bool,
) -> None:
    """Sync files from SOURCE to DESTINATION.

    Examples:
        storagesync sync local:./uploads remote
        storagesync sync local:./a local:./b --conflict newest-wins
        storagesync sync remote local:./backup --delete-orphaned --dry-run
    """
    out: OutputFormatter = ctx.obj["out"]
    source_provider, dest_provider = _open_providers(out, ctx, source, destination)
    errors: list[SyncErrorInfo] = []

    if direction == SyncDirection.TWO_WAY.value and delete_orphaned:
        out.warning("--delete-orphaned is ignored for two-way syncs")

    if not out.quiet:
        out.info(f"Source:      {source}")
        out.info(f"Destination: {destination}")
        out.info(f"Direction:   {direction}, conflicts: {conflict}")
        if dry_run:
            out.info("[yellow]Dry run - nothing will be changed[/yellow]")
        out.info("")

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=out.console,
        disable=out.quiet or out.json_output,
    )
    task_id = progress.add_task("Scanning", total=None)

    def on_progress(snapshot: SyncProgress) -> None:
        if snapshot.phase == SyncPhase.SCANNING:
            progress.update(task_id, description="Scanning")
        elif snapshot.phase == SyncPhase.SYNCING:
            progress.update(
                task_id,
                description="Syncing",
                total=snapshot.total_files,
                completed=snapshot.processed_files,
            )
        elif snapshot.phase == SyncPhase.CLEANING:
            progress.update(task_id, description="Cleaning")
        else:
            progress.update(task_id, description="Complete")

    options = SyncOptions(
        source=source_provider,
        destination=dest_provider,
        direction=SyncDirection(direction),
        conflict_resolution=ConflictResolution(conflict),
        filter=build_filter(
            prefix, external_ids, content_type, content_type_prefix, min_size, max_size
        ),
        dry_run=dry_run,
        delete_orphaned=delete_orphaned,
        batch_size=batch_size,
        preserve_timestamps=preserve_timestamps,
        on_progress=on_progress,
        on_error=errors.append,
    )

    async def run() -> Any:
        engine = SyncEngine()
        try:
            return await engine.sync(options)
        finally:
            await engine.aclose()
            await _close_providers(source_provider, dest_provider)

    try:
        with progress:
            result = asyncio.run(run())
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)
        return
    except EnumerationError as e:
        out.error(f"Could not list files: {e}")
        ctx.exit(1)
        return
    except StorageSyncError as e:
        out.error(f"Error: {e}")
        ctx.exit(1)
        return

    summary = result.summary
    if out.json_output:
        out.output_json(result.to_dict())
    else:
        for error in errors:
            out.warning(f"{error.external_id} ({error.phase.value}): {error.error}")
        copied_bytes = sum(
            d.size or 0 for d in result.details if d.action == SyncFileAction.COPIED
        )
        out.print_summary(
            "Sync Complete" + (" (dry run)" if dry_run else ""),
            [
                ("Scanned", summary.scanned),
                ("Copied", f"{summary.copied} ({format_size(copied_bytes)})"),
                ("Skipped", summary.skipped),
                ("Deleted", summary.deleted),
                ("Errors", summary.errors),
                ("Duration", f"{summary.duration_ms} ms"),
            ],
        )

    if not result.success:
        ctx.exit(1)


@main.command()
@click.argument("source", type=str)
@click.argument("destination", type=str)
@filter_options
@click.pass_context
def status(
    ctx: Any,
    source: str,
    destination: str,
    prefix: Optional[str],
    external_ids: tuple[str, ...],
    content_type: Optional[str],
    content_type_prefix: Optional[str],
    min_size: Optional[int],
    max_size: Optional[int],
) -> None:
    """Compare SOURCE and DESTINATION without changing anything."""
    out: OutputFormatter = ctx.obj["out"]
    source_provider, dest_provider = _open_providers(out, ctx, source, destination)
    sync_filter = build_filter(
        prefix, external_ids, content_type, content_type_prefix, min_size, max_size
    )

    async def run() -> Any:
        try:
            return await get_sync_status(source_provider, dest_provider, sync_filter)
        finally:
            await _close_providers(source_provider, dest_provider)

    try:
        sync_status = asyncio.run(run())
    except StorageSyncError as e:
        out.error(f"Error: {e}")
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(sync_status.to_dict())
        return

    out.print_summary(
        "Sync Status",
        [
            ("Source files", sync_status.source_files),
            ("Destination files", sync_status.dest_files),
            ("Only in source", sync_status.source_only),
            ("Only in destination", sync_status.dest_only),
            ("In both", sync_status.in_both),
            ("Conflicts", sync_status.conflicts),
        ],
    )
    for detail in sync_status.conflict_details:
        out.print(
            f"  ⚠ {detail.external_id}: {format_size(detail.source_size)} vs "
            f"{format_size(detail.dest_size)}"
        )


@main.command()
@click.argument("external_id", type=str)
@click.argument("source", type=str)
@click.argument("destination", type=str)
@click.pass_context
def verify(ctx: Any, external_id: str, source: str, destination: str) -> None:
    """Check that EXTERNAL_ID in DESTINATION matches SOURCE."""
    out: OutputFormatter = ctx.obj["out"]
    source_provider, dest_provider = _open_providers(out, ctx, source, destination)

    async def run() -> Any:
        try:
            return await verify_synced_file(external_id, source_provider, dest_provider)
        finally:
            await _close_providers(source_provider, dest_provider)

    try:
        verification = asyncio.run(run())
    except StorageSyncError as e:
        out.error(f"Error: {e}")
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(
            {
                "external_id": external_id,
                "matched": verification.matched,
                "differences": verification.differences,
            }
        )
    elif verification.matched:
        out.success(f"{external_id} matches")
    else:
        out.error(f"{external_id} does not match")
        for difference in verification.differences:
            out.print(f"  - {difference}")

    if not verification.matched:
        ctx.exit(1)


if __name__ == "__main__":
    main()
