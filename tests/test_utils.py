"""Tests for utility functions."""

import asyncio
from datetime import datetime, timedelta, timezone

from storagesync.utils import (
    chunked,
    format_iso_timestamp,
    format_size,
    iter_bytes,
    last_segment,
    parse_iso_timestamp,
    read_stream,
    timestamp_or_zero,
)


class TestTimestamps:
    def test_parse_z_suffix(self):
        assert parse_iso_timestamp("2025-01-15T10:30:00.000Z") == datetime(
            2025, 1, 15, 10, 30, tzinfo=timezone.utc
        )

    def test_parse_naive_is_utc(self):
        assert parse_iso_timestamp("2025-01-15T10:30:00").tzinfo == timezone.utc

    def test_parse_invalid(self):
        assert parse_iso_timestamp("") is None
        assert parse_iso_timestamp(None) is None
        assert parse_iso_timestamp("yesterday") is None

    def test_format_converts_to_utc(self):
        dt = datetime(2025, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        assert format_iso_timestamp(dt) == "2025-01-01T10:00:00.000Z"

    def test_timestamp_or_zero(self):
        assert timestamp_or_zero(None) == 0.0
        assert timestamp_or_zero(datetime(1970, 1, 1, 0, 0, 10, tzinfo=timezone.utc)) == 10.0


class TestFormatSize:
    def test_units(self):
        assert format_size(256) == "256 B"
        assert format_size(1536) == "1.5 KB"
        assert format_size(5 * 1024 * 1024) == "5.0 MB"
        assert format_size(3 * 1024**3) == "3.0 GB"


class TestStreams:
    def test_iter_and_read(self):
        data = bytes(range(200))

        async def roundtrip():
            chunks = [c async for c in iter_bytes(data, chunk_size=64)]
            return chunks, await read_stream(iter_bytes(data, chunk_size=64))

        chunks, joined = asyncio.run(roundtrip())

        assert [len(c) for c in chunks] == [64, 64, 64, 8]
        assert joined == data


class TestHelpers:
    def test_last_segment(self):
        assert last_segment("a/b/c.txt") == "c.txt"
        assert last_segment("c.txt") == "c.txt"
        assert last_segment("a/b/") == "b"

    def test_chunked(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(chunked([], 3)) == []
