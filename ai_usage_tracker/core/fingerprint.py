"""
File fingerprints for change detection.

A fingerprint is the (size, modification time) pair of a file. Comparing
it with the fingerprint stored at the last scan tells whether a session
log is new, unchanged, grew by appending, or was replaced.

This is a heuristic, not a content hash: a file rewritten in place with
identical size and modification time is reported as unchanged. Session
logs are append-only, so that case is accepted rather than paid for with
content reads.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class ChangeKind(Enum):
    """How a file changed since it was last scanned."""
    NEW = "new"
    UNCHANGED = "unchanged"
    APPENDED = "appended"
    REPLACED = "replaced"


@dataclass(frozen=True)
class FileFingerprint:
    """Size and modification time (nanoseconds) of a file."""
    size: int
    mtime_ns: int

    def __post_init__(self):
        if self.size < 0:
            raise ValueError("size cannot be negative")

    def classify_change(
        self,
        previous: Optional["FileFingerprint"],
        parsed_bytes: int = 0,
    ) -> ChangeKind:
        """Classify this fingerprint against the one recorded at the last scan.

        Args:
            previous: Fingerprint stored in the cache, or None if never scanned
            parsed_bytes: Byte offset up to which the file was already parsed

        Returns:
            ChangeKind describing what a rescan has to do
        """
        if previous is None:
            return ChangeKind.NEW
        if self == previous:
            return ChangeKind.UNCHANGED
        # Pure appends only ever grow the file past what was already parsed
        if self.size > previous.size and parsed_bytes <= self.size:
            return ChangeKind.APPENDED
        return ChangeKind.REPLACED

    def to_dict(self) -> dict:
        return {"size": self.size, "mtime_ns": self.mtime_ns}

    @classmethod
    def from_dict(cls, data: dict) -> "FileFingerprint":
        size = data["size"]
        mtime_ns = data["mtime_ns"]
        if not isinstance(size, int) or not isinstance(mtime_ns, int):
            raise ValueError("fingerprint fields must be integers")
        return cls(size=size, mtime_ns=mtime_ns)


def fingerprint_of(path: Union[str, os.PathLike]) -> FileFingerprint:
    """Compute the fingerprint of a file with a single stat call.

    Raises:
        OSError: If the file cannot be stat'ed
    """
    st = os.stat(path)
    return FileFingerprint(size=st.st_size, mtime_ns=st.st_mtime_ns)
