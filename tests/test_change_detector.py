"""
Tests for ChangeDetector fingerprinting.
"""

import os

import pytest

from vacancysync.application.change_detector import ChangeDetector
from vacancysync.domain.errors import OperationCancelledError, RetryExhaustedError, WorkbookAccessError
from vacancysync.infrastructure.resilience.cancellation import CancellationToken
from vacancysync.infrastructure.resilience.ttl_cache import TTLCache


@pytest.fixture
def detector(workbook_settings, file_system, lock_probe, no_wait_retry):
    return ChangeDetector(
        workbook_settings,
        file_system,
        lock_probe,
        TTLCache("test-fingerprints"),
        no_wait_retry,
    )


def write(path, content, mtime=None):
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return str(path)


class TestScan:
    def test_first_scan_reports_every_workbook(self, detector, share):
        a = write(share / "ふじみの.xlsx", b"one")
        b = write(share / "みさと.xlsx", b"two")
        assert detector.scan() == sorted([a, b])
        assert detector.detect_changes() is False

    def test_pattern_and_lock_markers_filtered(self, detector, share):
        book = write(share / "ふじみの.xlsx", b"one")
        write(share / "~$ふじみの.xlsx", b"owner")
        write(share / "notes.txt", b"ignored")
        assert detector.scan() == [book]

    def test_nested_directories_are_scanned(self, detector, share):
        (share / "2024").mkdir()
        nested = write(share / "2024" / "いちかわ.xlsx", b"nested")
        assert detector.scan() == [nested]

    def test_content_change_is_reported(self, detector, share):
        path = share / "ふじみの.xlsx"
        write(path, b"before", mtime=1_700_000_000)
        detector.scan()
        write(path, b"after", mtime=1_700_000_100)
        assert detector.scan() == [str(path)]

    def test_touched_file_with_same_content_is_not_changed(self, detector, share):
        path = share / "ふじみの.xlsx"
        write(path, b"same", mtime=1_700_000_000)
        detector.scan()
        os.utime(path, (1_700_000_500, 1_700_000_500))
        assert detector.scan() == []
        assert detector.fingerprint(str(path)).last_modified == 1_700_000_500

    def test_unchanged_mtime_skips_hashing(self, detector, share, monkeypatch):
        path = share / "ふじみの.xlsx"
        write(path, b"same", mtime=1_700_000_000)
        detector.scan()

        def fail(_path):
            raise AssertionError("hash should not be computed")

        monkeypatch.setattr(detector, "compute_hash", fail)
        assert detector.scan() == []

    def test_locked_file_is_skipped_and_not_cached(self, detector, share, file_system):
        path = write(share / "ふじみの.xlsx", b"locked")
        file_system.locked.add(path)
        assert detector.scan() == []
        assert detector.fingerprint(path) is None

        file_system.locked.clear()
        assert detector.scan() == [path]

    def test_missing_base_path_exhausts_retries(self, detector, share):
        with pytest.raises(RetryExhaustedError) as exc_info:
            detector.scan(str(share / "missing"))
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, WorkbookAccessError)

    def test_invalidate_reports_file_again(self, detector, share):
        path = write(share / "ふじみの.xlsx", b"one")
        detector.scan()
        detector.invalidate([path])
        assert detector.scan() == [path]

    def test_cancelled_scan_forgets_recorded_fingerprints(self, detector, share, file_system, monkeypatch):
        paths = [write(share / f"{name}.xlsx", name.encode()) for name in ("a", "b", "c")]
        token = CancellationToken()
        stat = file_system.modified_time

        def stat_then_cancel(path):
            token.cancel("shutdown")
            return stat(path)

        monkeypatch.setattr(file_system, "modified_time", stat_then_cancel)
        with pytest.raises(OperationCancelledError):
            detector.scan(cancel_token=token)
        monkeypatch.undo()

        assert all(detector.fingerprint(p) is None for p in paths)
        assert detector.scan() == paths


class TestHashing:
    def test_sha256_hex(self, detector, share):
        path = write(share / "a.xlsx", b"abc")
        assert detector.compute_hash(path) == (
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        )

    def test_fingerprint_records_hash_and_mtime(self, detector, share):
        path = write(share / "a.xlsx", b"abc", mtime=1_700_000_000)
        detector.scan()
        fingerprint = detector.fingerprint(path)
        assert fingerprint.path == path
        assert fingerprint.last_modified == 1_700_000_000
        assert len(fingerprint.content_hash) == 64
