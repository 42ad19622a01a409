"""
Persistent cost cache.

Keeps one CacheEntry per scanned session log so that repeat runs only
read bytes appended since the last scan. The cache is a single JSON file
written atomically; a corrupt or outdated file is discarded as a whole
and rebuilt from the logs.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

from ..core.discovery import LogOrigin
from ..core.fingerprint import FileFingerprint
from ..core.scanner import ScanMode, ScanResult
from .models import CacheEntry

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def get_cache_path() -> Path:
    """Return the default cost cache path."""
    cache_home = os.environ.get("XDG_CACHE_HOME") or os.path.expanduser("~/.cache")
    return Path(cache_home) / "ait" / "cost-cache.json"


class CostCache:
    """Per-file scan progress and token aggregates, keyed by path."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else get_cache_path()
        self._entries: Dict[str, CacheEntry] = {}
        self.dirty = False

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "CostCache":
        """Load the cache file, or return an empty cache.

        A missing file yields an empty cache. Unreadable JSON, a wrong
        top-level shape, a schema version mismatch or any malformed entry
        discards the whole file; entries are never partially trusted.
        """
        cache = cls(path)
        try:
            payload = json.loads(cache.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return cache
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Discarding unreadable cost cache %s: %s", cache.path, e)
            return cache

        if not isinstance(payload, dict) or not isinstance(payload.get("entries"), list):
            logger.warning("Discarding cost cache %s: unexpected layout", cache.path)
            return cache
        version = payload.get("schema_version")
        if version != SCHEMA_VERSION:
            logger.warning(
                "Discarding cost cache %s: schema version %r, expected %d",
                cache.path, version, SCHEMA_VERSION,
            )
            return cache

        entries: Dict[str, CacheEntry] = {}
        try:
            for raw in payload["entries"]:
                if not isinstance(raw, dict):
                    raise ValueError("entry is not an object")
                entry = CacheEntry.from_dict(raw)
                entries[entry.path] = entry
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Discarding cost cache %s: malformed entry (%s)", cache.path, e)
            return cache

        cache._entries = entries
        logger.debug("Loaded %d cost cache entries from %s", len(entries), cache.path)
        return cache

    def get(self, path: str) -> Optional[CacheEntry]:
        return self._entries.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[CacheEntry]:
        return [self._entries[path] for path in sorted(self._entries)]

    def paths(self) -> List[str]:
        return sorted(self._entries)

    def upsert(
        self,
        path: str,
        fingerprint: FileFingerprint,
        result: ScanResult,
        origin: LogOrigin,
    ) -> bool:
        """Merge a scan result into the entry for ``path``.

        Args:
            path: Session log path
            fingerprint: Fingerprint the file had when it was scanned
            result: Output of the scanner for this file
            origin: Producer of the log

        Returns:
            False when the stored fingerprint already equals ``fingerprint``
            (nothing changes), True otherwise.
        """
        if result.parsed_bytes < fingerprint.size:
            # Unfinished last line: record only the parsed size so the next
            # run sees the file as grown and reads the tail again
            fingerprint = FileFingerprint(size=result.parsed_bytes, mtime_ns=fingerprint.mtime_ns)

        existing = self._entries.get(path)
        if existing is not None and existing.fingerprint == fingerprint:
            return False

        if existing is None or result.mode is ScanMode.FULL:
            aggregate = result.delta
            record_errors = result.record_errors
        else:
            aggregate = existing.aggregate.without(result.retracted).merge(result.delta)
            record_errors = existing.record_errors + result.record_errors

        self._entries[path] = CacheEntry(
            path=path,
            origin=origin,
            fingerprint=fingerprint,
            parsed_bytes=result.parsed_bytes,
            aggregate=aggregate,
            state=result.state,
            record_errors=record_errors,
        )
        self.dirty = True
        return True

    def retain(self, live_paths: Iterable[str], origins: Sequence[LogOrigin]) -> int:
        """Drop entries of ``origins`` whose files were not discovered.

        Returns:
            Number of entries removed
        """
        live = set(live_paths)
        stale = [
            path for path, entry in self._entries.items()
            if entry.origin in origins and path not in live
        ]
        for path in stale:
            del self._entries[path]
        if stale:
            logger.debug("Pruned %d vanished session logs from cost cache", len(stale))
            self.dirty = True
        return len(stale)

    def to_dict(self) -> dict:
        return {
            "schema_version": SCHEMA_VERSION,
            "entries": [entry.to_dict() for entry in self.entries()],
        }

    def persist(self, force: bool = False) -> bool:
        """Write the cache atomically (temp file, then rename).

        Returns:
            True when written or nothing needed writing, False on I/O failure
        """
        if not self.dirty and not force:
            return True

        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".cost-cache.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, separators=(",", ":"))
                f.write("\n")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.warning("Could not write cost cache %s: %s", self.path, e)
            if tmp_path is not None and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.debug("Could not remove temp file %s", tmp_path)
            return False

        self.dirty = False
        logger.debug("Persisted %d cost cache entries to %s", len(self._entries), self.path)
        return True
