"""Risk levels for shell commands.

Risk is a small closed enumeration with an explicit ordinal. Every
comparison and aggregation goes through ``rank``; the string values are
only for serialization ("high" < "low" as strings, which is exactly the
bug this avoids).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable


class RiskLevel(Enum):
    """Ordinal risk classification: none < low < medium < high."""

    NONE = "none"
    """Read-only, nothing to worry about (ls, cat, echo)."""

    LOW = "low"
    """Moves files around, opens applications."""

    MEDIUM = "medium"
    """Installs software, touches the network, kills processes."""

    HIGH = "high"
    """Deletes data or changes the system. Always needs confirmation."""

    @property
    def rank(self) -> int:
        """Ordinal position used for all comparisons."""
        return _RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Any, default: "RiskLevel | None" = None) -> "RiskLevel":
        """Parse a risk level from user or model input.

        Accepts members and case-insensitive names. Anything else
        (None, "unknown", numbers) maps to ``default``, which is LOW
        unless given.
        """
        if isinstance(value, RiskLevel):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return default if default is not None else cls.LOW

    @classmethod
    def highest(cls, levels: Iterable["RiskLevel"]) -> "RiskLevel":
        """Return the maximum level, or NONE for an empty iterable."""
        result = cls.NONE
        for level in levels:
            if level.rank > result.rank:
                result = level
        return result


_RANKS = {
    RiskLevel.NONE: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
}
