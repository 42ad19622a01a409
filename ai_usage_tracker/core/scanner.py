"""
Incremental session-log scanner.

Parses only the bytes of a session log that are not already accounted for
in the cost cache and emits a per-file usage delta. The scanner has no
pricing knowledge: it extracts model ids, day buckets, token counts and
routing tags, nothing more.

Three record shapes are understood:

- Claude assistant turns (``type == "assistant"`` with ``message.usage``).
  Streaming chunks of one message share ``(message.id, requestId)``; the
  last chunk wins.
- Codex events: ``turn_context`` sets the current model and ``token_count``
  events carry cumulative totals per session.
- Flat records: ``model``, ``timestamp`` and ``*_tokens`` fields at the top
  level.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, NamedTuple, Optional, Tuple

from .discovery import SessionLogFile
from .fingerprint import ChangeKind
from .token_counter import TOKEN_KINDS, TokenCounts, ZERO_TOKENS

logger = logging.getLogger(__name__)

UNKNOWN_CODEX_MODEL = "unknown-codex"


class MalformedRecord(ValueError):
    """A log line that should carry usage but cannot be parsed."""


class UsageKey(NamedTuple):
    """Aggregation key of a usage record."""
    model: str
    day: date
    route_tag: Optional[str] = None


@dataclass(frozen=True)
class UsageRecord:
    """One parsed usage-bearing log line."""
    model: str
    day: date
    tokens: TokenCounts
    route_tag: Optional[str] = None
    message_key: Optional[str] = None

    @property
    def key(self) -> UsageKey:
        return UsageKey(self.model, self.day, self.route_tag)


class FileAggregate:
    """Token counts of one file, keyed by (model, day, route tag)."""

    def __init__(self, counts: Optional[Mapping[UsageKey, TokenCounts]] = None):
        self._counts: Dict[UsageKey, TokenCounts] = {}
        for key, tokens in (counts or {}).items():
            self.add(key, tokens)

    def add(self, key: UsageKey, tokens: TokenCounts) -> None:
        if tokens.is_zero:
            return
        self._counts[key] = self._counts.get(key, ZERO_TOKENS) + tokens

    def subtract(self, key: UsageKey, tokens: TokenCounts) -> None:
        remaining = self._counts.get(key, ZERO_TOKENS) - tokens
        if remaining.is_zero:
            self._counts.pop(key, None)
        else:
            self._counts[key] = remaining

    def merge(self, other: "FileAggregate") -> "FileAggregate":
        """Return a new aggregate holding the sum of both."""
        merged = FileAggregate(self._counts)
        for key, tokens in other.items():
            merged.add(key, tokens)
        return merged

    def without(self, other: "FileAggregate") -> "FileAggregate":
        """Return a new aggregate with ``other`` taken out."""
        result = FileAggregate(self._counts)
        for key, tokens in other.items():
            result.subtract(key, tokens)
        return result

    def items(self) -> List[Tuple[UsageKey, TokenCounts]]:
        return sorted(self._counts.items(), key=lambda item: (item[0].day, item[0].model, item[0].route_tag or ""))

    def get(self, key: UsageKey) -> TokenCounts:
        return self._counts.get(key, ZERO_TOKENS)

    def by_model_day(self) -> Dict[Tuple[str, date], TokenCounts]:
        """Collapse route tags into plain (model, day) totals."""
        totals: Dict[Tuple[str, date], TokenCounts] = {}
        for key, tokens in self._counts.items():
            model_day = (key.model, key.day)
            totals[model_day] = totals.get(model_day, ZERO_TOKENS) + tokens
        return totals

    @property
    def total_tokens(self) -> int:
        return sum(tokens.total_tokens for tokens in self._counts.values())

    def __len__(self) -> int:
        return len(self._counts)

    def __bool__(self) -> bool:
        return bool(self._counts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileAggregate):
            return NotImplemented
        return self._counts == other._counts

    def __repr__(self) -> str:
        return f"FileAggregate({self._counts!r})"

    def to_list(self) -> List[Dict[str, Any]]:
        rows = []
        for key, tokens in self.items():
            row = {"model": key.model, "date": key.day.isoformat(), "route": key.route_tag}
            row.update(tokens.to_dict())
            rows.append(row)
        return rows

    @classmethod
    def from_list(cls, rows: List[Mapping[str, Any]]) -> "FileAggregate":
        """Rebuild an aggregate from its persisted rows.

        Raises:
            ValueError, KeyError, TypeError: If a row is malformed
        """
        aggregate = cls()
        for row in rows:
            model = row["model"]
            route = row.get("route")
            if not isinstance(model, str) or (route is not None and not isinstance(route, str)):
                raise ValueError("aggregate row has invalid model or route")
            key = UsageKey(model, date.fromisoformat(row["date"]), route)
            aggregate.add(key, TokenCounts.from_dict(row))
        return aggregate


@dataclass
class ScanState:
    """Resume state carried between incremental scans of one file.

    Claude logs need the last message seen, so that a streaming chunk
    appended after the previous scan replaces it instead of adding to it.
    Codex logs need the current model and the last cumulative totals per
    model, so that only growth is counted.
    """
    last_message_key: Optional[str] = None
    last_message_usage_key: Optional[UsageKey] = None
    last_message_tokens: Optional[TokenCounts] = None
    codex_model: Optional[str] = None
    codex_totals: Dict[str, TokenCounts] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.last_message_key is not None and self.last_message_usage_key is not None:
            usage_key = self.last_message_usage_key
            data["last_message"] = {
                "key": self.last_message_key,
                "model": usage_key.model,
                "date": usage_key.day.isoformat(),
                "route": usage_key.route_tag,
                "tokens": (self.last_message_tokens or ZERO_TOKENS).to_dict(),
            }
        if self.codex_model is not None:
            data["codex_model"] = self.codex_model
        if self.codex_totals:
            data["codex_totals"] = {model: tokens.to_dict() for model, tokens in self.codex_totals.items()}
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScanState":
        state = cls()
        last = data.get("last_message")
        if last is not None:
            state.last_message_key = str(last["key"])
            state.last_message_usage_key = UsageKey(
                str(last["model"]), date.fromisoformat(last["date"]), last.get("route")
            )
            state.last_message_tokens = TokenCounts.from_dict(last["tokens"])
        codex_model = data.get("codex_model")
        if codex_model is not None:
            state.codex_model = str(codex_model)
        for model, tokens in (data.get("codex_totals") or {}).items():
            state.codex_totals[str(model)] = TokenCounts.from_dict(tokens)
        return state


class ScanMode(Enum):
    """Whether a scan result replaces or extends a file's aggregate."""
    FULL = "full"
    APPEND = "append"


@dataclass
class ScanResult:
    """Outcome of scanning one new or changed file."""
    path: str
    mode: ScanMode
    delta: FileAggregate
    parsed_bytes: int
    state: ScanState
    retracted: FileAggregate = field(default_factory=FileAggregate)
    record_errors: int = 0
    records_parsed: int = 0
    bytes_read: int = 0
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


# ── Field helpers ──────────────────────────────────────────────────────


def _token_value(data: Mapping[str, Any], *names: str) -> int:
    for name in names:
        value = data.get(name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedRecord(f"{name} is not a number: {value!r}")
        if isinstance(value, float) and not value.is_integer():
            raise MalformedRecord(f"{name} is not a whole number: {value!r}")
        if value < 0:
            raise MalformedRecord(f"{name} is negative: {value!r}")
        return int(value)
    return 0


def parse_day(timestamp: Any) -> date:
    """Truncate an ISO-8601 timestamp to its UTC day.

    Raises:
        MalformedRecord: If the timestamp is missing or unparseable
    """
    if not isinstance(timestamp, str) or not timestamp:
        raise MalformedRecord("missing timestamp")
    text = timestamp.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise MalformedRecord(f"unparseable timestamp: {timestamp!r}")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def extract_route_tag(*identifiers: Optional[str]) -> Optional[str]:
    """Extract the routing tag embedded in a message or request id.

    Ids look like ``msg_01AbC`` for direct traffic and ``msg_vrtx_01AbC``
    when routed through a cloud platform. The tag is the first purely
    alphabetic segment after the type prefix.
    """
    for identifier in identifiers:
        if not identifier or not isinstance(identifier, str):
            continue
        segments = identifier.split("_")
        for segment in segments[1:-1]:
            if segment.isalpha():
                return segment.lower()
    return None


# ── Line parsers ──────────────────────────────────────────────────────


def _parse_claude(obj: Mapping[str, Any]) -> Optional[UsageRecord]:
    message = obj.get("message")
    if not isinstance(message, dict):
        return None
    usage = message.get("usage")
    if usage is None:
        return None
    if not isinstance(usage, dict):
        raise MalformedRecord("usage is not an object")
    model = message.get("model")
    if not isinstance(model, str) or not model:
        raise MalformedRecord("assistant usage without model")

    tokens = TokenCounts(
        input_tokens=_token_value(usage, "input_tokens"),
        output_tokens=_token_value(usage, "output_tokens"),
        cache_read_tokens=_token_value(usage, "cache_read_input_tokens"),
        cache_write_tokens=_token_value(usage, "cache_creation_input_tokens"),
    )
    message_id = message.get("id") if isinstance(message.get("id"), str) else ""
    request_id = obj.get("requestId") if isinstance(obj.get("requestId"), str) else ""
    message_key = f"{message_id}|{request_id}" if (message_id or request_id) else None

    return UsageRecord(
        model=model,
        day=parse_day(obj.get("timestamp")),
        tokens=tokens,
        route_tag=extract_route_tag(message_id, request_id),
        message_key=message_key,
    )


def _parse_flat(obj: Mapping[str, Any]) -> Optional[UsageRecord]:
    model = obj.get("model")
    if not any(kind in obj for kind in TOKEN_KINDS + ("cache_creation_tokens",)):
        return None
    if not isinstance(model, str) or not model:
        raise MalformedRecord("token counts without model")
    route = obj.get("route")
    tokens = TokenCounts(
        input_tokens=_token_value(obj, "input_tokens"),
        output_tokens=_token_value(obj, "output_tokens"),
        cache_read_tokens=_token_value(obj, "cache_read_tokens"),
        cache_write_tokens=_token_value(obj, "cache_write_tokens", "cache_creation_tokens"),
    )
    return UsageRecord(
        model=model,
        day=parse_day(obj.get("timestamp")),
        tokens=tokens,
        route_tag=route.lower() if isinstance(route, str) and route else None,
    )


class _FileScan:
    """Mutable bookkeeping for one pass over one file."""

    def __init__(self, state: ScanState):
        self.state = state
        self.delta = FileAggregate()
        self.retracted = FileAggregate()
        self.record_errors = 0
        self.records_parsed = 0
        # message key -> (usage key, tokens) for messages counted in this pass
        self._seen: Dict[str, Tuple[UsageKey, TokenCounts]] = {}

    def feed(self, line: bytes) -> None:
        try:
            obj = json.loads(line)
        except (UnicodeDecodeError, ValueError):
            self.record_errors += 1
            return
        if not isinstance(obj, dict):
            self.record_errors += 1
            return
        self._feed_object(obj)

    def feed_tail(self, tail: bytes) -> bool:
        """Feed the unterminated last line of a file if it is already complete.

        Returns:
            True if the tail was consumed, False if it is still being written
        """
        if not tail.strip():
            return True
        try:
            obj = json.loads(tail)
        except (UnicodeDecodeError, ValueError):
            return False
        if not isinstance(obj, dict):
            return False
        self._feed_object(obj)
        return True

    def _feed_object(self, obj: Mapping[str, Any]) -> None:
        try:
            self._dispatch(obj)
        except MalformedRecord as e:
            self.record_errors += 1
            logger.debug("Malformed usage record: %s", e)

    def _dispatch(self, obj: Mapping[str, Any]) -> None:
        line_type = obj.get("type")
        if line_type == "assistant":
            record = _parse_claude(obj)
            if record is not None:
                self._add_claude(record)
        elif line_type == "turn_context":
            payload = obj.get("payload")
            if isinstance(payload, dict) and isinstance(payload.get("model"), str):
                self.state.codex_model = payload["model"]
        elif line_type == "event_msg":
            self._add_codex(obj)
        elif "message" not in obj and "payload" not in obj:
            record = _parse_flat(obj)
            if record is not None:
                self._add(record.key, record.tokens)

    def _add(self, key: UsageKey, tokens: TokenCounts) -> None:
        if tokens.is_zero:
            return
        self.delta.add(key, tokens)
        self.records_parsed += 1

    def _add_claude(self, record: UsageRecord) -> None:
        key = record.message_key
        if key is None:
            self._add(record.key, record.tokens)
            return

        state = self.state
        if key in self._seen:
            old_key, old_tokens = self._seen[key]
            self.delta.subtract(old_key, old_tokens)
            if not old_tokens.is_zero:
                self.records_parsed -= 1
        elif key == state.last_message_key and state.last_message_usage_key is not None:
            # Continuation of a message already committed by the previous scan
            self.retracted.add(state.last_message_usage_key, state.last_message_tokens or ZERO_TOKENS)

        self._seen[key] = (record.key, record.tokens)
        self._add(record.key, record.tokens)
        state.last_message_key = key
        state.last_message_usage_key = record.key
        state.last_message_tokens = record.tokens

    def _add_codex(self, obj: Mapping[str, Any]) -> None:
        payload = obj.get("payload")
        if not isinstance(payload, dict) or payload.get("type") != "token_count":
            return
        info = payload.get("info")
        if info is None:
            return
        if not isinstance(info, dict):
            raise MalformedRecord("token_count info is not an object")

        model = info.get("model_name") or self.state.codex_model or UNKNOWN_CODEX_MODEL
        if not isinstance(model, str):
            raise MalformedRecord("token_count model_name is not a string")

        total = info.get("total_token_usage")
        last = info.get("last_token_usage")
        if total is None and last is None:
            return
        usage = total if total is not None else last
        if not isinstance(usage, dict):
            raise MalformedRecord("token usage is not an object")
        tokens = TokenCounts(
            input_tokens=_token_value(usage, "input_tokens"),
            output_tokens=_token_value(usage, "output_tokens"),
            cache_read_tokens=_token_value(usage, "cached_input_tokens"),
        )
        day = parse_day(obj.get("timestamp"))

        if total is None:
            # Only a per-turn increment is available
            self._add(UsageKey(model, day), tokens)
            return

        previous = self.state.codex_totals.get(model, ZERO_TOKENS)
        if _counter_reset(previous, tokens):
            increment = tokens
        else:
            increment = tokens - previous
        self.state.codex_totals[model] = tokens
        self._add(UsageKey(model, day), increment)


def _counter_reset(previous: TokenCounts, current: TokenCounts) -> bool:
    return any(getattr(current, kind) < getattr(previous, kind) for kind in TOKEN_KINDS)


def _iter_complete_lines(handle, limit: int) -> Iterator[bytes]:
    """Yield newline-terminated lines until ``limit`` bytes have been consumed.

    A trailing line without a newline is not yielded; ``scan_file`` decides
    whether it is a finished record or one still being written.
    """
    consumed = 0
    for line in handle:
        if not line.endswith(b"\n") or consumed + len(line) > limit:
            return
        consumed += len(line)
        yield line


def scan_file(log_file: SessionLogFile, previous=None) -> Optional[ScanResult]:
    """Scan the unaccounted bytes of one session log.

    Args:
        log_file: The discovered log with its current fingerprint
        previous: The cache entry stored for this path, if any

    Returns:
        None when the fingerprint is unchanged (the file is not opened),
        otherwise a ScanResult. Read failures are reported through
        ``ScanResult.error``; this function does not raise for I/O problems.
    """
    change = log_file.fingerprint.classify_change(
        previous.fingerprint if previous is not None else None,
        previous.parsed_bytes if previous is not None else 0,
    )
    if change is ChangeKind.UNCHANGED:
        return None

    if change is ChangeKind.APPENDED:
        mode = ScanMode.APPEND
        offset = previous.parsed_bytes
        state = ScanState.from_dict(previous.state.to_dict())
    else:
        if change is ChangeKind.REPLACED:
            logger.info("Session log was rewritten, rescanning from start: %s", log_file.path)
        mode = ScanMode.FULL
        offset = 0
        state = ScanState()

    scan = _FileScan(state)
    parsed_bytes = offset
    try:
        with open(log_file.path, "rb") as handle:
            handle.seek(offset)
            for line in _iter_complete_lines(handle, log_file.size - offset):
                parsed_bytes += len(line)
                if line.strip():
                    scan.feed(line)
            if parsed_bytes < log_file.size:
                handle.seek(parsed_bytes)
                tail = handle.read(log_file.size - parsed_bytes)
                if scan.feed_tail(tail):
                    parsed_bytes += len(tail)
    except OSError as e:
        logger.warning("Could not read session log %s: %s", log_file.path, e)
        return ScanResult(
            path=log_file.path,
            mode=mode,
            delta=FileAggregate(),
            parsed_bytes=offset,
            state=state,
            error=str(e),
        )

    if scan.record_errors:
        logger.info("Skipped %d malformed lines in %s", scan.record_errors, log_file.path)

    return ScanResult(
        path=log_file.path,
        mode=mode,
        delta=scan.delta,
        parsed_bytes=parsed_bytes,
        state=scan.state,
        retracted=scan.retracted,
        record_errors=scan.record_errors,
        records_parsed=scan.records_parsed,
        bytes_read=parsed_bytes - offset,
    )
