"""
Data models for storage layer.

Defines the persisted per-file cost cache entry.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

from ..core.discovery import LogOrigin
from ..core.fingerprint import FileFingerprint
from ..core.scanner import FileAggregate, ScanState


@dataclass
class CacheEntry:
    """Scan progress and token aggregate of one session log.

    One entry exists per file path. ``parsed_bytes`` is the offset up to
    which complete lines have been accounted for in ``aggregate``; an
    incremental scan resumes there with ``state``. While the last line is
    unfinished, ``fingerprint.size`` equals ``parsed_bytes``.
    """
    path: str
    origin: LogOrigin
    fingerprint: FileFingerprint
    parsed_bytes: int
    aggregate: FileAggregate = field(default_factory=FileAggregate)
    state: ScanState = field(default_factory=ScanState)
    record_errors: int = 0

    def __post_init__(self):
        """Validate offsets and counters."""
        if self.parsed_bytes < 0:
            raise ValueError("parsed_bytes cannot be negative")
        if self.record_errors < 0:
            raise ValueError("record_errors cannot be negative")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "origin": self.origin.value,
            "fingerprint": self.fingerprint.to_dict(),
            "parsed_bytes": self.parsed_bytes,
            "record_errors": self.record_errors,
            "aggregate": self.aggregate.to_list(),
            "state": self.state.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CacheEntry":
        """Rebuild an entry from its persisted form.

        Raises:
            ValueError, KeyError, TypeError: If any field is malformed
        """
        path = data["path"]
        parsed_bytes = data["parsed_bytes"]
        record_errors = data.get("record_errors", 0)
        if not isinstance(path, str) or not path:
            raise ValueError("entry path must be a non-empty string")
        if not isinstance(parsed_bytes, int) or not isinstance(record_errors, int):
            raise ValueError("entry counters must be integers")
        return cls(
            path=path,
            origin=LogOrigin(data["origin"]),
            fingerprint=FileFingerprint.from_dict(data["fingerprint"]),
            parsed_bytes=parsed_bytes,
            aggregate=FileAggregate.from_list(data.get("aggregate") or []),
            state=ScanState.from_dict(data.get("state") or {}),
            record_errors=record_errors,
        )
