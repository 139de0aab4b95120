"""Heuristic risk classification for shell commands.

Two passes over the command text:

1. RISK_RULES: independent pattern tests, each contributing a candidate
   risk level. The final level is the maximum candidate, so adding more
   matching rules can never lower the result.
2. HIGH_RISK_PATTERNS: operations that always escalate to HIGH no matter
   what else was found (disk formatting, raw device writes, fork bombs).

All patterns are matched case-insensitively over the whole command.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from ..models import RiskLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskRule:
    """One heuristic test.

    Attributes:
        name: Short identifier, reported in matched_rules
        pattern: Compiled regex searched over the command
        level: Candidate risk level when the pattern matches
        warning: Optional advisory text added when it matches
    """

    name: str
    pattern: re.Pattern[str]
    level: RiskLevel
    warning: str | None = None


@dataclass
class RiskAssessment:
    """Result of classifying one command."""

    level: RiskLevel = RiskLevel.NONE
    warnings: list[str] = field(default_factory=list)
    matched_rules: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level.value,
            "warnings": list(self.warnings),
            "matched_rules": list(self.matched_rules),
        }


def _rule(name: str, pattern: str, level: RiskLevel, warning: str | None = None) -> RiskRule:
    return RiskRule(name, re.compile(pattern, re.IGNORECASE), level, warning)


# =============================================================================
# Heuristic Rules
# =============================================================================

RISK_RULES: tuple[RiskRule, ...] = (
    # File operations
    _rule("file_op", r"\b(rm|del|delete|mv|move)\b", RiskLevel.LOW),
    _rule(
        "destructive_file_op",
        r"\brm\s+(-[a-z]*r[a-z]*f[a-z]*|-[a-z]*f[a-z]*r[a-z]*)\b|\bdel\s+/[qsf]\b",
        RiskLevel.HIGH,
        "Destructive file operation detected",
    ),
    _rule("copy_op", r"\b(cp|copy)\b", RiskLevel.LOW),
    # System and privilege operations
    _rule(
        "system_op",
        r"\b(sudo|su|doas|chmod|chown|systemctl|service)\b",
        RiskLevel.HIGH,
        "System-level operation detected",
    ),
    # Network operations
    _rule("network_op", r"\b(curl|wget|ssh|scp|rsync)\b", RiskLevel.MEDIUM),
    _rule(
        "network_pipe_to_shell",
        r"\b(curl|wget|ssh|scp|rsync)\b.*\|\s*(sudo\s+)?(ba|z|da|k|fi)?sh\b",
        RiskLevel.HIGH,
        "Network download with shell execution detected",
    ),
    # Package managers
    _rule(
        "package_install",
        r"\b(apt|apt-get|yum|dnf|pacman|brew|npm|pnpm|yarn|pip3?|gem|cargo)\s+(install|add)\b",
        RiskLevel.MEDIUM,
        "Package installation detected",
    ),
    # Process operations
    _rule("process_kill", r"\b(kill|killall|pkill)\b", RiskLevel.MEDIUM),
    _rule(
        "kill_all_processes",
        r"\bkill\s+-(9|kill)\s+-1(\s|$)",
        RiskLevel.HIGH,
        "System-wide process termination detected",
    ),
    # Version control
    _rule("git_rewrite", r"\bgit\s+(reset|clean)\b", RiskLevel.MEDIUM),
    _rule(
        "git_destructive",
        r"\bgit\s+(reset\s+--hard|clean\s+-[a-z]*(fd|df)[a-z]*|push\s+.*(--force\b|-f\b))",
        RiskLevel.HIGH,
        "Destructive git operation detected",
    ),
)


# =============================================================================
# High-Risk Patterns (always escalate to HIGH)
# =============================================================================

HIGH_RISK_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), warning)
    for pattern, warning in (
        (r"\bformat\s+[a-z]:", "Disk formatting operation"),
        (r"\bfdisk\b", "Disk partitioning operation"),
        (r"\bparted\b", "Disk partitioning operation"),
        (r"\bmkfs\b", "Filesystem creation operation"),
        (r"\bdd\s+.*\bof=/dev/", "Direct disk write operation"),
        (r">\s*/dev/(sd[a-z]|hd[a-z]|nvme\d|disk\d|mmcblk\d)", "Direct disk write operation"),
        (r"\bchmod\s+(-[a-z]+\s+)*0?777\b", "Overly permissive file permissions"),
        (r"\brm\s+-[a-z]*\s+/(\*)?(\s|$)", "Root filesystem deletion attempt"),
        (r"\bshred\b", "Secure file deletion operation"),
        (r"\bwipe\b", "Disk wiping operation"),
        (r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:", "Fork bomb detected"),
        (r"\bwhile\s+(true\b|:|\[\s*1\s*\]).*\bdo\b", "Infinite loop detected"),
        (r"\bfor\s*\(\(\s*;\s*;\s*\)\)", "Infinite loop detected"),
    )
)


# =============================================================================
# Classifier
# =============================================================================


class RiskClassifier:
    """Scores a command against the heuristic rules.

    Extra rules may come from configuration as mappings with ``pattern``,
    ``level`` and optional ``warning``/``name``. Each one is compiled on its
    own; a broken entry is skipped and reported in ``load_warnings`` without
    affecting the others.

    Example:
        classifier = RiskClassifier()
        assessment = classifier.classify("sudo systemctl restart nginx")
        print(assessment.level)  # RiskLevel.HIGH
    """

    def __init__(self, extra_rules: Iterable[Any] | None = None) -> None:
        """Initialize the classifier.

        Args:
            extra_rules: Additional rule mappings from configuration
        """
        self._rules: list[RiskRule] = list(RISK_RULES)
        self.load_warnings: list[str] = []

        for index, entry in enumerate(extra_rules or []):
            rule = self._compile_extra_rule(entry, index)
            if rule is not None:
                self._rules.append(rule)

    @property
    def rules(self) -> tuple[RiskRule, ...]:
        return tuple(self._rules)

    def _compile_extra_rule(self, entry: Any, index: int) -> RiskRule | None:
        if not isinstance(entry, dict) or not isinstance(entry.get("pattern"), str):
            self._warn(f"Skipping risk rule #{index + 1}: expected a mapping with a 'pattern'")
            return None
        try:
            pattern = re.compile(entry["pattern"], re.IGNORECASE)
        except re.error as e:
            self._warn(f"Skipping risk rule #{index + 1}: invalid regex ({e})")
            return None
        return RiskRule(
            name=str(entry.get("name") or f"custom_{index + 1}"),
            pattern=pattern,
            level=RiskLevel.parse(entry.get("level"), default=RiskLevel.MEDIUM),
            warning=entry.get("warning"),
        )

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.load_warnings.append(message)

    def classify(self, command: str) -> RiskAssessment:
        """Classify a command.

        Args:
            command: The shell command text

        Returns:
            RiskAssessment with the maximum triggered level and warnings
        """
        assessment = RiskAssessment()
        text = command or ""

        for rule in self._rules:
            try:
                matched = rule.pattern.search(text) is not None
            except Exception as e:  # skip the failing rule, keep the rest
                logger.warning(f"Risk rule {rule.name} failed: {e}")
                continue
            if not matched:
                continue
            assessment.matched_rules.append(rule.name)
            if rule.level > assessment.level:
                assessment.level = rule.level
            if rule.warning and rule.warning not in assessment.warnings:
                assessment.warnings.append(rule.warning)

        for warning in self.high_risk_warnings(text):
            assessment.level = RiskLevel.HIGH
            if warning not in assessment.warnings:
                assessment.warnings.append(warning)

        return assessment

    @staticmethod
    def high_risk_warnings(command: str) -> list[str]:
        """Warnings for every built-in high-risk pattern the command hits."""
        return [warning for pattern, warning in HIGH_RISK_PATTERNS if pattern.search(command)]
