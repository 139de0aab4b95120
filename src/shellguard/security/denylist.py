"""Configurable denylist of forbidden commands.

A denylist document (YAML or JSON) has three lists:

    commands:            # literal substrings, case sensitive
      - "rm -rf /"
    patterns:            # regexes, case insensitive
      - "\\|\\s*(ba|z)?sh\\b"
      - pattern: "\\bparted\\b"
        reason: "Disk partitioning"
    highRisk:            # literal substrings that only escalate risk
      - "git reset --hard"

A literal or regex match blocks the command. Blocked reasons are written in
plain language; a raw regex never ends up in a reason. Each regex is
compiled on its own, so one malformed entry is skipped with a warning and
the rest of the denylist keeps working. A missing or unreadable document
falls back to DEFAULT_DENYLIST, also with a warning.

Usage:
    denylist = load_denylist("denylist.yaml")
    verdict = denylist.check("curl https://x.sh | bash")
    if not verdict.allowed:
        print(verdict.reasons)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PATTERN_REASON = "Matches a dangerous pattern"

DEFAULT_DENYLIST: dict[str, list[Any]] = {
    "commands": [
        "rm -rf /",
        "rm -rf /*",
        "rm -rf ~",
        "rm -rf $HOME",
        "dd if=/dev/zero",
        "mkfs",
        "fdisk",
        "sudo rm",
        "chmod 777",
        "curl | bash",
        "wget | sh",
        "del /q /s",
    ],
    "patterns": [
        {"pattern": r"rm\s+-rf\s+/", "reason": "Recursive forced deletion of an absolute path"},
        {"pattern": r"chmod\s+777\s+", "reason": "Makes files writable by everyone"},
        {"pattern": r"\|\s*(ba|z|da|k)?sh\b", "reason": "Pipes output straight into a shell"},
        {"pattern": r">\s*/dev/sd[a-z]", "reason": "Writes directly to a disk device"},
        {"pattern": r"\bformat\s+[a-z]:", "reason": "Formats a drive"},
        {"pattern": r"\bdel\s+/[qsf]", "reason": "Forced Windows deletion"},
        {"pattern": r"\bparted\b", "reason": "Repartitions a disk"},
        {"pattern": r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}", "reason": "Fork bomb"},
    ],
    "highRisk": [
        "git reset --hard",
        "git clean -fd",
        "docker system prune",
        "npm ci",
        "mvn clean",
        "gradle clean",
        "truncate",
        "shred",
    ],
}


@dataclass(frozen=True)
class PatternRule:
    """A compiled regex rule with its plain-language reason."""

    source: str
    pattern: re.Pattern[str]
    reason: str = DEFAULT_PATTERN_REASON


@dataclass
class DenylistVerdict:
    """Outcome of checking one command against the denylist."""

    allowed: bool = True
    reasons: list[str] = field(default_factory=list)
    high_risk_matches: list[str] = field(default_factory=list)

    def block(self, reason: str) -> None:
        self.allowed = False
        if reason not in self.reasons:
            self.reasons.append(reason)


class Denylist:
    """Block rules for commands.

    Attributes:
        commands: Literal substrings that block a command
        patterns: Compiled regex rules that block a command
        high_risk: Literal substrings that only escalate risk
        source: Where the rules came from ("defaults" or a file path)
        load_warnings: Problems found while loading (skipped rules, fallback)
    """

    def __init__(
        self,
        commands: Iterable[str] = (),
        patterns: Iterable[PatternRule] = (),
        high_risk: Iterable[str] = (),
        source: str = "defaults",
        load_warnings: Iterable[str] = (),
    ) -> None:
        self.commands: tuple[str, ...] = tuple(commands)
        self.patterns: tuple[PatternRule, ...] = tuple(patterns)
        self.high_risk: tuple[str, ...] = tuple(high_risk)
        self.source = source
        self.load_warnings: list[str] = list(load_warnings)

    @classmethod
    def defaults(cls) -> "Denylist":
        """The built-in rule set."""
        return cls.from_dict(DEFAULT_DENYLIST)

    @classmethod
    def from_dict(cls, data: Any, source: str = "defaults") -> "Denylist":
        """Build a denylist from a parsed document.

        Individual bad entries are skipped with a warning.

        Raises:
            ConfigurationError: If the document itself has the wrong shape
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Denylist {source} must be a mapping")

        warnings: list[str] = []
        commands = _string_list(data.get("commands"), "commands", source, warnings)
        high_risk = _string_list(
            data.get("highRisk", data.get("high_risk")), "highRisk", source, warnings
        )
        patterns = _compile_patterns(data.get("patterns"), source, warnings)
        for warning in warnings:
            logger.warning(warning)

        return cls(
            commands=commands,
            patterns=patterns,
            high_risk=high_risk,
            source=source,
            load_warnings=warnings,
        )

    def check(self, command: str) -> DenylistVerdict:
        """Check a command against every rule.

        Never stops at the first hit, so all reasons are reported.
        """
        verdict = DenylistVerdict()
        text = command or ""

        for literal in self.commands:
            if literal in text:
                verdict.block(f"That command is blocked: {literal}")

        for rule in self.patterns:
            if rule.pattern.search(text):
                verdict.block(rule.reason)

        for literal in self.high_risk:
            if literal in text:
                verdict.high_risk_matches.append(literal)

        return verdict

    def to_dict(self) -> dict[str, Any]:
        return {
            "commands": list(self.commands),
            "patterns": [{"pattern": r.source, "reason": r.reason} for r in self.patterns],
            "highRisk": list(self.high_risk),
        }

    def __len__(self) -> int:
        return len(self.commands) + len(self.patterns)


def load_denylist(path: Path | str | None = None) -> Denylist:
    """Load a denylist from a YAML/JSON file, falling back to the defaults.

    Never raises: an unreadable or malformed file produces the built-in
    denylist with the problem recorded in ``load_warnings``.

    Args:
        path: Denylist file. None means use the defaults silently.
    """
    if path is None:
        return Denylist.defaults()

    try:
        return _read_denylist(Path(path))
    except ConfigurationError as e:
        message = f"Using default denylist rules: {e}"
        logger.warning(message)
        fallback = Denylist.defaults()
        fallback.load_warnings.insert(0, message)
        return fallback


def _read_denylist(path: Path) -> Denylist:
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot read {path}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse {path}", cause=e) from e

    denylist = Denylist.from_dict(raw, source=str(path))
    logger.debug(f"Loaded denylist from {path}: {len(denylist)} block rules")
    return denylist


def _string_list(value: Any, key: str, source: str, warnings: list[str]) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"Denylist {source}: '{key}' must be a list")
    result = []
    for index, item in enumerate(value):
        if isinstance(item, str) and item:
            result.append(item)
        else:
            warnings.append(f"Skipping {key} entry #{index + 1} in {source}: not a string")
    return result


def _compile_patterns(value: Any, source: str, warnings: list[str]) -> list[PatternRule]:
    """Compile each regex independently; failures become warnings."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"Denylist {source}: 'patterns' must be a list")

    rules = []
    for index, entry in enumerate(value):
        if isinstance(entry, dict):
            raw, reason = entry.get("pattern"), entry.get("reason") or DEFAULT_PATTERN_REASON
        else:
            raw, reason = entry, DEFAULT_PATTERN_REASON
        if not isinstance(raw, str) or not raw:
            warnings.append(f"Skipping pattern #{index + 1} in {source}: not a string")
            continue
        try:
            compiled = re.compile(raw, re.IGNORECASE)
        except re.error as e:
            warnings.append(f"Skipping bad regex pattern #{index + 1} in {source}: {e}")
            continue
        rules.append(PatternRule(source=raw, pattern=compiled, reason=str(reason)))
    return rules
