"""Validation verdicts for steps and plans."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .risk import RiskLevel


@dataclass
class ValidationResult:
    """Verdict, risk assessment and rationale for one step.

    Invariants, enforced by the mutators:
    - adding a blocked reason always forces ``allowed`` to False
    - ``escalate`` never lowers ``risk_level``
    - warnings and suggestions are advisory and never change the verdict

    Attributes:
        step_id: ID of the validated step
        command: The command text that was judged
        allowed: False if any block rule matched
        risk_level: Aggregated risk level
        warnings: Advisory, non-blocking findings
        blocked_reasons: Plain-language causes of allowed=False
        requires_confirmation: Declared flag OR risk_level == HIGH
        suggestions: Safer alternatives, advisory only
        timestamp: When the verdict was produced
    """

    step_id: str
    command: str
    allowed: bool = True
    risk_level: RiskLevel = RiskLevel.LOW
    warnings: list[str] = field(default_factory=list)
    blocked_reasons: list[str] = field(default_factory=list)
    requires_confirmation: bool = False
    suggestions: list[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    def add_warning(self, warning: str) -> None:
        if warning and warning not in self.warnings:
            self.warnings.append(warning)

    def add_blocked_reason(self, reason: str) -> None:
        if reason and reason not in self.blocked_reasons:
            self.blocked_reasons.append(reason)
        self.allowed = False

    def add_suggestion(self, suggestion: str) -> None:
        if suggestion and suggestion not in self.suggestions:
            self.suggestions.append(suggestion)

    def escalate(self, level: RiskLevel) -> None:
        """Raise the risk level to ``level`` if it is higher."""
        if level > self.risk_level:
            self.risk_level = level

    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def is_blocked(self) -> bool:
        return not self.allowed

    def is_high_risk(self) -> bool:
        return self.risk_level == RiskLevel.HIGH

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "step_id": self.step_id,
            "command": self.command,
            "allowed": self.allowed,
            "risk_level": self.risk_level.value,
            "warnings": list(self.warnings),
            "blocked_reasons": list(self.blocked_reasons),
            "requires_confirmation": self.requires_confirmation,
            "suggestions": list(self.suggestions),
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        status = "ALLOWED" if self.allowed else "BLOCKED"
        lines = [
            f"Validation for step {self.step_id}: {status}",
            f"Command: {self.command}",
            f"Risk Level: {self.risk_level.value.upper()}",
        ]
        if self.requires_confirmation:
            lines.append("Requires Confirmation: yes")
        for title, items in (
            ("Warnings", self.warnings),
            ("Blocked Reasons", self.blocked_reasons),
            ("Suggestions", self.suggestions),
        ):
            if items:
                lines.append(f"{title}:")
                lines.extend(f"  - {item}" for item in items)
        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class ValidationSummary:
    """Counts over a plan's step results."""

    total_steps: int = 0
    blocked_steps: int = 0
    high_risk_steps: int = 0
    confirmation_required: int = 0
    total_warnings: int = 0

    @property
    def overall_safe(self) -> bool:
        return self.blocked_steps == 0 and self.high_risk_steps == 0

    @classmethod
    def from_results(cls, results: list[ValidationResult]) -> "ValidationSummary":
        return cls(
            total_steps=len(results),
            blocked_steps=sum(1 for r in results if not r.allowed),
            high_risk_steps=sum(1 for r in results if r.is_high_risk()),
            confirmation_required=sum(1 for r in results if r.requires_confirmation),
            total_warnings=sum(len(r.warnings) for r in results),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_steps": self.total_steps,
            "blocked_steps": self.blocked_steps,
            "high_risk_steps": self.high_risk_steps,
            "confirmation_required": self.confirmation_required,
            "total_warnings": self.total_warnings,
            "overall_safe": self.overall_safe,
        }


@dataclass
class PlanValidation:
    """Verdict for a whole plan.

    ``allowed`` is the AND of every step's allowed flag and ``risk_level``
    the MAX of every step's risk level. A plan whose document could not be
    parsed has no step results, ``allowed=False`` and an entry in
    ``errors``.
    """

    allowed: bool
    risk_level: RiskLevel
    step_results: list[ValidationResult] = field(default_factory=list)
    summary: ValidationSummary = field(default_factory=ValidationSummary)
    errors: list[str] = field(default_factory=list)
    config_warnings: list[str] = field(default_factory=list)

    @classmethod
    def from_results(
        cls,
        results: list[ValidationResult],
        config_warnings: list[str] | None = None,
    ) -> "PlanValidation":
        return cls(
            allowed=all(r.allowed for r in results),
            risk_level=RiskLevel.highest(r.risk_level for r in results),
            step_results=list(results),
            summary=ValidationSummary.from_results(results),
            config_warnings=list(config_warnings or []),
        )

    @classmethod
    def rejected(cls, error: str, config_warnings: list[str] | None = None) -> "PlanValidation":
        """A verdict for a plan document that never made it to step checks."""
        return cls(
            allowed=False,
            risk_level=RiskLevel.NONE,
            errors=[error],
            config_warnings=list(config_warnings or []),
        )

    def result_for(self, step_id: str) -> ValidationResult | None:
        for result in self.step_results:
            if result.step_id == step_id:
                return result
        return None

    def blocked_results(self) -> list[ValidationResult]:
        return [r for r in self.step_results if not r.allowed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "risk_level": self.risk_level.value,
            "step_results": [r.to_dict() for r in self.step_results],
            "summary": self.summary.to_dict(),
            "errors": list(self.errors),
            "config_warnings": list(self.config_warnings),
        }

    def __str__(self) -> str:
        status = "ALLOWED" if self.allowed else "BLOCKED"
        lines = [f"Plan validation: {status} (risk {self.risk_level.value.upper()})"]
        for error in self.errors:
            lines.append(f"Error: {error}")
        if self.step_results:
            s = self.summary
            lines.append(
                f"Steps: {s.total_steps}, blocked: {s.blocked_steps}, "
                f"high risk: {s.high_risk_steps}, need confirmation: "
                f"{s.confirmation_required}, warnings: {s.total_warnings}"
            )
        text = "\n".join(lines) + "\n"
        for result in self.step_results:
            text += "\n" + str(result)
        return text
