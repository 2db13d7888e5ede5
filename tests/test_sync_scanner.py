"""Tests for provider enumeration."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import InMemoryStorageProvider
from storagesync.exceptions import EnumerationError
from storagesync.models import FileRecord, ListFilesResult
from storagesync.sync.options import SyncFilter
from storagesync.sync.scanner import FileScanner, index_by_external_id, list_all_files


class TestFileScanner:
    """Tests for FileScanner / list_all_files."""

    def test_collects_all_pages(self):
        provider = InMemoryStorageProvider()
        for i in range(25):
            provider.add(f"id-{i:02d}")

        files = asyncio.run(list_all_files(provider, page_size=10))

        assert [f.external_id for f in files] == [f"id-{i:02d}" for i in range(25)]
        assert [c.offset for c in provider.list_calls] == [0, 10, 20]
        assert all(c.limit == 10 for c in provider.list_calls)

    def test_passes_filter_to_provider(self):
        provider = InMemoryStorageProvider()
        provider.add("img", key="images/a.png", content_type="image/png")
        provider.add("doc", key="docs/a.txt", content_type="text/plain")

        files = asyncio.run(list_all_files(provider, SyncFilter(prefix="images/")))

        assert [f.external_id for f in files] == ["img"]
        assert provider.list_calls[0].prefix == "images/"

    def test_rechecks_filter_locally(self):
        provider = AsyncMock()
        provider.list_files.return_value = ListFilesResult(
            files=[
                FileRecord(external_id="small", key="a", size=1),
                FileRecord(external_id="big", key="b", size=100),
            ],
            has_more=False,
        )

        files = asyncio.run(list_all_files(provider, SyncFilter(min_size=10)))

        assert [f.external_id for f in files] == ["big"]

    def test_uses_larger_next_offset(self):
        provider = AsyncMock()
        provider.list_files.side_effect = [
            ListFilesResult(
                files=[FileRecord(external_id="a", key="a", size=1)],
                has_more=True,
                next_offset=50,
            ),
            ListFilesResult(
                files=[FileRecord(external_id="b", key="b", size=1)],
                has_more=False,
            ),
        ]

        asyncio.run(FileScanner(page_size=10).scan(provider))

        offsets = [call.args[0].offset for call in provider.list_files.call_args_list]
        assert offsets == [0, 50]

    def test_smaller_next_offset_advances_by_limit(self):
        provider = AsyncMock()
        provider.list_files.side_effect = [
            ListFilesResult(files=[], has_more=True, next_offset=3),
            ListFilesResult(files=[], has_more=False),
        ]

        asyncio.run(FileScanner(page_size=10).scan(provider))

        offsets = [call.args[0].offset for call in provider.list_files.call_args_list]
        assert offsets == [0, 10]

    def test_listing_failure_raises_enumeration_error(self):
        provider = InMemoryStorageProvider()
        provider.fail_list = RuntimeError("boom")

        with pytest.raises(EnumerationError) as exc_info:
            asyncio.run(list_all_files(provider))

        assert "boom" in str(exc_info.value)
        assert exc_info.value.provider == "InMemoryStorageProvider"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            FileScanner(page_size=0)

    def test_page_size_is_capped(self):
        assert FileScanner(page_size=5000).page_size == 1000


class TestIndexByExternalId:
    def test_first_record_wins(self):
        first = FileRecord(external_id="x", key="one", size=1)
        second = FileRecord(external_id="x", key="two", size=2)

        index = index_by_external_id([first, second])

        assert index == {"x": first}
