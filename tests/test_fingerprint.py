"""
Unit tests for file fingerprints and change classification.
"""

import os

import pytest

from ai_usage_tracker.core.fingerprint import ChangeKind, FileFingerprint, fingerprint_of


class TestClassifyChange:
    """Test change classification against the stored fingerprint."""

    def test_new_file(self):
        """No stored fingerprint means the file is new."""
        assert FileFingerprint(10, 1).classify_change(None) is ChangeKind.NEW

    def test_unchanged(self):
        """Identical size and mtime means unchanged."""
        assert FileFingerprint(10, 1).classify_change(FileFingerprint(10, 1), 10) is ChangeKind.UNCHANGED

    def test_appended(self):
        """A grown file whose parsed offset is still inside it was appended to."""
        assert FileFingerprint(20, 2).classify_change(FileFingerprint(10, 1), 10) is ChangeKind.APPENDED

    def test_shrunk_is_replaced(self):
        """A smaller file was rewritten."""
        assert FileFingerprint(5, 2).classify_change(FileFingerprint(10, 1), 10) is ChangeKind.REPLACED

    def test_same_size_new_mtime_is_replaced(self):
        """Same size with a different mtime is treated as a rewrite."""
        assert FileFingerprint(10, 2).classify_change(FileFingerprint(10, 1), 10) is ChangeKind.REPLACED

    def test_parsed_offset_beyond_size_is_replaced(self):
        """A parse offset past the new size cannot be resumed."""
        assert FileFingerprint(20, 2).classify_change(FileFingerprint(10, 1), 30) is ChangeKind.REPLACED


class TestFingerprintOf:
    """Test fingerprinting real files."""

    def test_reads_size_and_mtime(self, tmp_path):
        """Verify fingerprint matches os.stat."""
        path = tmp_path / "log.jsonl"
        path.write_bytes(b"hello\n")
        fp = fingerprint_of(path)
        st = os.stat(path)
        assert fp == FileFingerprint(size=6, mtime_ns=st.st_mtime_ns)

    def test_missing_file_raises(self, tmp_path):
        """Verify OSError propagates for missing files."""
        with pytest.raises(OSError):
            fingerprint_of(tmp_path / "missing.jsonl")

    def test_dict_round_trip_validates_types(self):
        """Verify non-integer fields are rejected."""
        fp = FileFingerprint(3, 4)
        assert FileFingerprint.from_dict(fp.to_dict()) == fp
        with pytest.raises(ValueError):
            FileFingerprint.from_dict({"size": "3", "mtime_ns": 4})
