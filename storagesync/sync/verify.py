"""Post-sync verification and read-only status comparison."""

import logging
from typing import Any, Optional

from .operations import is_provenance_key
from .options import SyncFilter
from .results import ConflictDetail, SyncStatus, SyncVerificationResult
from .scanner import FileScanner, index_by_external_id

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "File not found in one or both providers"


async def verify_synced_file(
    external_id: str, source: Any, destination: Any
) -> SyncVerificationResult:
    """Check that the copy of ``external_id`` matches its source.

    Compares key, size, content type, visibility and every custom
    (non-provenance) metadata entry of the source, and checks that the
    destination carries provenance metadata.

    Args:
        external_id: External ID of the file
        source: Provider holding the original
        destination: Provider holding the copy

    Returns:
        SyncVerificationResult listing human-readable differences
    """
    source_file = await source.find_file_by_external_id(external_id)
    dest_file = await destination.find_file_by_external_id(external_id)

    if source_file is None or dest_file is None:
        return SyncVerificationResult(matched=False, differences=[NOT_FOUND_MESSAGE])

    differences: list[str] = []

    if source_file.key != dest_file.key:
        differences.append(f'Key mismatch: "{source_file.key}" != "{dest_file.key}"')

    if source_file.size != dest_file.size:
        differences.append(
            f"Size mismatch: {source_file.size} bytes != {dest_file.size} bytes"
        )

    if source_file.content_type != dest_file.content_type:
        differences.append(
            f'ContentType mismatch: "{source_file.content_type}" != '
            f'"{dest_file.content_type}"'
        )

    try:
        source_vis = await source.get_file_visibility_by_external_id(external_id)
        dest_vis = await destination.get_file_visibility_by_external_id(external_id)
        if source_vis.visibility != dest_vis.visibility:
            differences.append(
                f'Visibility mismatch: "{source_vis.visibility.value}" != '
                f'"{dest_vis.visibility.value}"'
            )
    except Exception as e:
        differences.append(f"Could not verify visibility: {e}")

    dest_metadata = dest_file.metadata or {}
    for key, value in (source_file.metadata or {}).items():
        if is_provenance_key(key):
            continue
        dest_value = dest_metadata.get(key)
        if value != dest_value:
            differences.append(f'Metadata["{key}"] mismatch: "{value}" != "{dest_value}"')

    if not dest_metadata.get("_synced_from"):
        differences.append("Missing sync metadata in destination file")

    logger.debug(f"Verified {external_id}: {len(differences)} differences")
    return SyncVerificationResult(matched=not differences, differences=differences)


async def get_sync_status(
    source: Any,
    destination: Any,
    filter: Optional[SyncFilter] = None,
    scanner: Optional[FileScanner] = None,
) -> SyncStatus:
    """Compare two providers without changing either.

    A conflict is a file present on both sides whose size or modification
    time differ.

    Raises:
        EnumerationError: If listing either provider fails
    """
    scanner = scanner or FileScanner()
    source_files = await scanner.scan(source, filter)
    dest_files = await scanner.scan(destination, filter)

    source_index = index_by_external_id(source_files)
    dest_index = index_by_external_id(dest_files)

    status = SyncStatus(
        source_files=len(source_files),
        dest_files=len(dest_files),
        source_only=sum(1 for f in source_files if f.external_id not in dest_index),
        dest_only=sum(1 for f in dest_files if f.external_id not in source_index),
        in_both=sum(1 for f in source_files if f.external_id in dest_index),
    )

    for source_file in source_files:
        dest_file = dest_index.get(source_file.external_id)
        if dest_file is None:
            continue
        if (
            source_file.size != dest_file.size
            or source_file.last_modified != dest_file.last_modified
        ):
            status.conflict_details.append(
                ConflictDetail(
                    external_id=source_file.external_id,
                    source_size=source_file.size,
                    dest_size=dest_file.size,
                    source_modified=source_file.last_modified,
                    dest_modified=dest_file.last_modified,
                )
            )

    status.conflicts = len(status.conflict_details)
    return status
