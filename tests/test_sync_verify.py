"""Tests for verification and status reporting."""

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import StreamingInMemoryProvider
from storagesync.exceptions import EnumerationError
from storagesync.models import Visibility
from storagesync.sync import SyncFilter, get_sync_status, verify_synced_file

T1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T2 = datetime(2024, 6, 1, tzinfo=timezone.utc)

SYNCED = {"_synced_from": "StreamingInMemoryProvider"}


class TestVerifySyncedFile:
    """Tests for verify_synced_file()."""

    def test_missing_file(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add("a")

        result = asyncio.run(verify_synced_file("a", source, dest))

        assert result.matched is False
        assert result.differences == ["File not found in one or both providers"]

    def test_matching_copy(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add("a", b"xyz", metadata={"k": "v", "_synced_at": "old"})
        dest.add("a", b"xyz", metadata={"k": "v", **SYNCED})

        result = asyncio.run(verify_synced_file("a", source, dest))

        assert result.matched is True
        assert result.differences == []

    def test_reports_each_difference(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add(
            "a",
            b"12345",
            key="one/a",
            content_type="text/plain",
            metadata={"k": "v"},
            visibility=Visibility.PUBLIC,
        )
        dest.add("a", b"12", key="two/a", content_type="text/html", metadata={"k": "w"})

        result = asyncio.run(verify_synced_file("a", source, dest))

        assert result.matched is False
        assert result.differences == [
            'Key mismatch: "one/a" != "two/a"',
            "Size mismatch: 5 bytes != 2 bytes",
            'ContentType mismatch: "text/plain" != "text/html"',
            'Visibility mismatch: "public" != "private"',
            'Metadata["k"] mismatch: "v" != "w"',
            "Missing sync metadata in destination file",
        ]

    def test_visibility_lookup_failure_is_a_difference(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add("a")
        dest.add("a", metadata=SYNCED)
        dest.fail_visibility_lookup = True

        result = asyncio.run(verify_synced_file("a", source, dest))

        assert result.differences == [
            "Could not verify visibility: visibility lookup failed"
        ]

    def test_extra_destination_metadata_is_ignored(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add("a")
        dest.add("a", metadata={"extra": "1", **SYNCED})

        assert asyncio.run(verify_synced_file("a", source, dest)).matched is True


class TestGetSyncStatus:
    """Tests for get_sync_status()."""

    def test_counts_and_conflicts(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add("only-src")
        source.add("same", b"abc", last_modified=T1)
        source.add("resized", b"abcdef", last_modified=T1)
        source.add("touched", b"abc", last_modified=T2)
        dest.add("same", b"abc", last_modified=T1)
        dest.add("resized", b"ab", last_modified=T1)
        dest.add("touched", b"abc", last_modified=T1)
        dest.add("only-dst-1")
        dest.add("only-dst-2")

        status = asyncio.run(get_sync_status(source, dest))

        assert status.source_files == 4
        assert status.dest_files == 5
        assert status.source_only == 1
        assert status.dest_only == 2
        assert status.in_both == 3
        assert status.conflicts == 2
        details = {d.external_id: d for d in status.conflict_details}
        assert set(details) == {"resized", "touched"}
        assert details["resized"].source_size == 6
        assert details["resized"].dest_size == 2
        assert details["touched"].source_modified == T2
        assert details["touched"].dest_modified == T1

    def test_is_read_only(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add("a")

        asyncio.run(get_sync_status(source, dest))

        assert dest.files == {}
        assert dest.upload_calls == []
        assert dest.delete_calls == []

    def test_applies_filter(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        source.add("a", key="keep/a")
        source.add("b", key="skip/b")

        status = asyncio.run(get_sync_status(source, dest, SyncFilter(prefix="keep/")))

        assert status.source_files == 1
        assert status.source_only == 1

    def test_listing_failure(self):
        source = StreamingInMemoryProvider()
        dest = StreamingInMemoryProvider()
        dest.fail_list = RuntimeError("down")

        with pytest.raises(EnumerationError):
            asyncio.run(get_sync_status(source, dest))
