"""
Session log discovery.

Enumerates candidate session-log files under the directory layouts of
the known producers:

- Claude: ``<root>/projects/<project>/*.jsonl`` and
  ``<root>/projects/<project>/<session>/subagents/*.jsonl``
- Codex: ``<root>/YYYY/MM/DD/*.jsonl`` plus flat files, at most four
  levels deep

Unreadable directories are skipped with a warning.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .fingerprint import FileFingerprint, fingerprint_of

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".jsonl"
CODEX_MAX_DEPTH = 4


class LogOrigin(Enum):
    """Producer of a session log."""
    CLAUDE = "claude"
    CODEX = "codex"


@dataclass(frozen=True)
class SessionLogFile:
    """A discovered session log with its fingerprint at discovery time."""
    path: str
    origin: LogOrigin
    fingerprint: FileFingerprint

    @property
    def size(self) -> int:
        return self.fingerprint.size

    @property
    def mtime_ns(self) -> int:
        return self.fingerprint.mtime_ns


def _home() -> Path:
    return Path(os.path.expanduser("~"))


def default_claude_roots() -> List[Path]:
    """Claude config roots, in lookup order."""
    roots = []
    config_dir = os.environ.get("CLAUDE_CONFIG_DIR")
    if config_dir:
        roots.append(Path(config_dir))
    roots.append(_home() / ".claude")
    xdg_config = os.environ.get("XDG_CONFIG_HOME") or str(_home() / ".config")
    roots.append(Path(xdg_config) / "claude")
    return roots


def default_codex_roots() -> List[Path]:
    """Codex session roots, in lookup order."""
    roots = []
    codex_home = os.environ.get("CODEX_HOME")
    if codex_home:
        roots.append(Path(codex_home) / "sessions")
    roots.append(_home() / ".codex" / "sessions")
    roots.append(_home() / ".codex" / "archived_sessions")
    return roots


def _list_dir(directory: Path) -> List[os.DirEntry]:
    """List a directory, returning [] and warning if it cannot be read."""
    try:
        with os.scandir(directory) as it:
            return sorted(it, key=lambda entry: entry.name)
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning("Skipping unreadable directory %s: %s", directory, e)
        return []


def _is_log_file(entry: os.DirEntry) -> bool:
    try:
        return entry.is_file() and entry.name.endswith(LOG_SUFFIX)
    except OSError:
        return False


def _is_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir()
    except OSError:
        return False


def collect_claude_files(root: Path) -> List[Path]:
    """Collect Claude session logs under one config root."""
    files: List[Path] = []
    projects_dir = root / "projects"
    if not projects_dir.is_dir():
        return files

    for project in _list_dir(projects_dir):
        if not _is_dir(project):
            continue
        for entry in _list_dir(Path(project.path)):
            if _is_log_file(entry):
                files.append(Path(entry.path))
            elif _is_dir(entry):
                subagents = Path(entry.path) / "subagents"
                if not subagents.is_dir():
                    continue
                for sub_entry in _list_dir(subagents):
                    if _is_log_file(sub_entry):
                        files.append(Path(sub_entry.path))
    return files


def collect_jsonl_recursive(directory: Path, max_depth: int = CODEX_MAX_DEPTH) -> List[Path]:
    """Collect ``*.jsonl`` files up to ``max_depth`` directory levels deep."""
    files: List[Path] = []
    if max_depth <= 0:
        return files
    for entry in _list_dir(directory):
        if _is_log_file(entry):
            files.append(Path(entry.path))
        elif _is_dir(entry):
            files.extend(collect_jsonl_recursive(Path(entry.path), max_depth - 1))
    return files


def _unique_roots(roots: Iterable[Path]) -> List[Path]:
    seen = set()
    unique = []
    for root in roots:
        try:
            key = root.resolve()
        except OSError:
            key = root
        if key in seen:
            continue
        seen.add(key)
        unique.append(root)
    return unique


def discover_session_logs(
    origins: Optional[Sequence[LogOrigin]] = None,
    claude_roots: Optional[Sequence[Path]] = None,
    codex_roots: Optional[Sequence[Path]] = None,
) -> List[SessionLogFile]:
    """Discover session logs for the requested producers.

    Args:
        origins: Producers to look for (defaults to all)
        claude_roots: Override for the Claude config roots
        codex_roots: Override for the Codex session roots

    Returns:
        Discovered logs sorted by path, each with its current fingerprint
    """
    if origins is None:
        origins = list(LogOrigin)

    candidates = []
    if LogOrigin.CLAUDE in origins:
        roots = claude_roots if claude_roots is not None else default_claude_roots()
        for root in _unique_roots(Path(r) for r in roots):
            candidates.extend((path, LogOrigin.CLAUDE) for path in collect_claude_files(root))
    if LogOrigin.CODEX in origins:
        roots = codex_roots if codex_roots is not None else default_codex_roots()
        for root in _unique_roots(Path(r) for r in roots):
            if root.is_dir():
                candidates.extend((path, LogOrigin.CODEX) for path in collect_jsonl_recursive(root))

    logs = {}
    for path, origin in candidates:
        key = str(path)
        if key in logs:
            continue
        try:
            fingerprint = fingerprint_of(path)
        except OSError as e:
            logger.debug("Session log vanished before stat: %s (%s)", path, e)
            continue
        logs[key] = SessionLogFile(path=key, origin=origin, fingerprint=fingerprint)

    logger.debug("Discovered %d session logs", len(logs))
    return [logs[key] for key in sorted(logs)]
