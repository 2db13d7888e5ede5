"""Tests for conflict resolution."""

from datetime import datetime, timezone

from storagesync.models import FileRecord
from storagesync.sync.comparator import ConflictResolver, should_copy
from storagesync.sync.options import ConflictResolution


def _record(
    external_id: str = "a",
    size: int = 10,
    last_modified: datetime = None,
) -> FileRecord:
    return FileRecord(
        external_id=external_id,
        key=f"files/{external_id}",
        size=size,
        last_modified=last_modified,
    )


T1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T2 = datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestShouldCopy:
    """Tests for should_copy()."""

    def test_missing_destination_always_copies(self):
        for policy in ConflictResolution:
            assert should_copy(_record(), None, policy) is True

    def test_skip_never_copies(self):
        assert should_copy(_record(size=99), _record(size=1), ConflictResolution.SKIP) is False

    def test_overwrite_always_copies(self):
        source = _record(size=1, last_modified=T1)
        dest = _record(size=99, last_modified=T2)
        assert should_copy(source, dest, ConflictResolution.OVERWRITE) is True

    def test_newest_wins_copies_strictly_newer_source(self):
        policy = ConflictResolution.NEWEST_WINS
        assert should_copy(_record(last_modified=T2), _record(last_modified=T1), policy)
        assert not should_copy(_record(last_modified=T1), _record(last_modified=T2), policy)

    def test_newest_wins_equal_timestamps_do_not_copy(self):
        policy = ConflictResolution.NEWEST_WINS
        assert not should_copy(_record(last_modified=T1), _record(last_modified=T1), policy)

    def test_newest_wins_missing_timestamp_is_epoch(self):
        policy = ConflictResolution.NEWEST_WINS
        assert should_copy(_record(last_modified=T1), _record(last_modified=None), policy)
        assert not should_copy(_record(last_modified=None), _record(last_modified=T1), policy)
        assert not should_copy(_record(), _record(), policy)

    def test_largest_wins_copies_strictly_larger_source(self):
        policy = ConflictResolution.LARGEST_WINS
        assert should_copy(_record(size=11), _record(size=10), policy)
        assert not should_copy(_record(size=10), _record(size=10), policy)
        assert not should_copy(_record(size=9), _record(size=10), policy)


class TestConflictResolver:
    """Tests for ConflictResolver decisions."""

    def test_new_file_reason(self):
        decision = ConflictResolver(ConflictResolution.SKIP).decide(_record(), None)

        assert decision.copy is True
        assert decision.reason == "New file"
        assert decision.external_id == "a"

    def test_skip_reason(self):
        decision = ConflictResolver().decide(_record(), _record())

        assert decision.copy is False
        assert decision.reason == "Exists in destination"

    def test_accepts_string_policy(self):
        resolver = ConflictResolver("largest-wins")

        assert resolver.policy == ConflictResolution.LARGEST_WINS
        assert resolver.decide(_record(size=5), _record(size=1)).reason == "Source is larger"
