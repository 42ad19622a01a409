"""
Token counting and usage tracking.

Holds exact token counts per token kind. Counts are never estimated here;
they are read from session logs and summed.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping


TOKEN_KINDS = ("input_tokens", "output_tokens", "cache_read_tokens", "cache_write_tokens")


@dataclass(frozen=True)
class TokenCounts:
    """Token counts for one usage record or a sum of records.

    Contains exact token counts per kind: input, output, cache-read
    and cache-write (cache creation).
    """
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    def __post_init__(self):
        """Validate counts are non-negative integers."""
        for kind in TOKEN_KINDS:
            value = getattr(self, kind)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{kind} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{kind} cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens across all kinds."""
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )

    @property
    def is_zero(self) -> bool:
        return self.total_tokens == 0

    def __add__(self, other: "TokenCounts") -> "TokenCounts":
        if not isinstance(other, TokenCounts):
            return NotImplemented
        return TokenCounts(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_write_tokens=self.cache_write_tokens + other.cache_write_tokens,
        )

    def __sub__(self, other: "TokenCounts") -> "TokenCounts":
        """Per-kind difference, clamped at zero.

        Cumulative counters never go backwards in a well-formed log, so a
        negative difference means the counter was reset and contributes nothing.
        """
        if not isinstance(other, TokenCounts):
            return NotImplemented
        return TokenCounts(
            input_tokens=max(0, self.input_tokens - other.input_tokens),
            output_tokens=max(0, self.output_tokens - other.output_tokens),
            cache_read_tokens=max(0, self.cache_read_tokens - other.cache_read_tokens),
            cache_write_tokens=max(0, self.cache_write_tokens - other.cache_write_tokens),
        )

    def to_dict(self) -> Dict[str, int]:
        return {kind: getattr(self, kind) for kind in TOKEN_KINDS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TokenCounts":
        """Build counts from a mapping, treating missing kinds as zero.

        Raises:
            ValueError: If a count is not a non-negative integer
        """
        return cls(**{kind: data.get(kind, 0) for kind in TOKEN_KINDS})


ZERO_TOKENS = TokenCounts()
