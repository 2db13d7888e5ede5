"""Complete enumeration of a provider's files."""

import logging
from typing import Any, Optional

from ..exceptions import EnumerationError
from ..models import FileRecord
from ..providers.base import provider_name
from ..utils import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .options import SyncFilter

logger = logging.getLogger(__name__)


class FileScanner:
    """Pages through ``list_files`` until a provider is exhausted.

    Examples:
        >>> scanner = FileScanner(page_size=100)
        >>> files = await scanner.scan(provider, SyncFilter(prefix="images/"))
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        """Initialize the scanner.

        Args:
            page_size: Number of files requested per page (1..1000)
        """
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.page_size = min(page_size, MAX_PAGE_SIZE)

    async def scan(
        self, provider: Any, filter: Optional[SyncFilter] = None
    ) -> list[FileRecord]:
        """List every file of ``provider`` matching ``filter``.

        Files come back in the order the provider returns them.

        Args:
            provider: Storage provider to enumerate
            filter: Optional filter, passed to the provider and re-checked locally

        Returns:
            List of FileRecord objects

        Raises:
            EnumerationError: If any listing call fails
        """
        filter = filter or SyncFilter()
        name = provider_name(provider)
        files: list[FileRecord] = []
        offset = 0
        page = 0

        while True:
            options = filter.to_list_options(limit=self.page_size, offset=offset)
            try:
                result = await provider.list_files(options)
            except Exception as e:
                raise EnumerationError(
                    f"Failed to list files from {name}: {e}", provider=name
                ) from e

            page += 1
            files.extend(record for record in result.files if filter.matches(record))
            logger.debug(
                f"{name}: page {page} returned {len(result.files)} files "
                f"(offset {offset}, has_more={result.has_more})"
            )

            if not result.has_more:
                break

            step = offset + self.page_size
            if result.next_offset is not None and result.next_offset > step:
                step = result.next_offset
            offset = step

        logger.debug(f"{name}: enumerated {len(files)} files")
        return files


async def list_all_files(
    provider: Any,
    filter: Optional[SyncFilter] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> list[FileRecord]:
    """Convenience wrapper around ``FileScanner.scan``."""
    return await FileScanner(page_size=page_size).scan(provider, filter)


def index_by_external_id(files: list[FileRecord]) -> dict[str, FileRecord]:
    """Map external IDs to records; the first record wins on duplicates."""
    index: dict[str, FileRecord] = {}
    for record in files:
        if record.external_id in index:
            logger.debug(f"Duplicate external_id in listing: {record.external_id}")
            continue
        index[record.external_id] = record
    return index
