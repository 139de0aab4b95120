"""Policy aggregation: per-step and per-plan verdicts.

Combines the denylist (allow/block) with the risk classifier (how risky)
into a ValidationResult per step, then folds the step results into a
PlanValidation. Both components are passed in explicitly; nothing is read
from global state.

Example:
    aggregator = PolicyAggregator(denylist=load_denylist(path))
    validation = aggregator.validate_plan(plan)
    if not validation.allowed:
        for result in validation.blocked_results():
            print(result.step_id, result.blocked_reasons)
"""

from __future__ import annotations

import logging
from typing import Any

from ..exceptions import PlanFormatError, ValidationError
from ..models import Plan, PlanValidation, RiskLevel, Step, ValidationResult
from .classifier import RiskClassifier
from .denylist import Denylist

logger = logging.getLogger(__name__)


class PolicyAggregator:
    """Judges steps and plans.

    Attributes:
        denylist: Block rules in effect
        classifier: Heuristic risk classifier in effect
    """

    def __init__(
        self,
        denylist: Denylist | None = None,
        classifier: RiskClassifier | None = None,
    ) -> None:
        self.denylist = denylist if denylist is not None else Denylist.defaults()
        self.classifier = classifier if classifier is not None else RiskClassifier()

    @property
    def config_warnings(self) -> list[str]:
        """Warnings recorded while loading the denylist and extra rules."""
        return list(self.denylist.load_warnings) + list(self.classifier.load_warnings)

    def validate_step(self, step: Step) -> ValidationResult:
        """Validate one step.

        Never raises for a malformed or dangerous command; that yields a
        blocked result. Any other failure is an infrastructure problem.

        Raises:
            ValidationError: If the denylist or classifier itself fails
        """
        try:
            return self._validate_step(step)
        except ValidationError:
            raise
        except Exception as e:
            step_id = getattr(step, "id", None)
            logger.error(f"Step validation failed for {step_id}: {e}")
            raise ValidationError(f"Validation failed: {e}", step_id=step_id, cause=e) from e

    def _validate_step(self, step: Step) -> ValidationResult:
        command = step.command if isinstance(step.command, str) else ""
        result = ValidationResult(
            step_id=step.id,
            command=command,
            risk_level=step.risk_level,
        )

        verdict = self.denylist.check(command)
        for reason in verdict.reasons:
            result.add_blocked_reason(reason)

        assessment = self.classifier.classify(command)
        result.escalate(assessment.level)
        for warning in assessment.warnings:
            result.add_warning(warning)

        for literal in verdict.high_risk_matches:
            result.escalate(RiskLevel.HIGH)
            result.add_warning(f"High-risk operation: {literal}")

        result.requires_confirmation = step.requires_confirmation or result.is_high_risk()

        for suggestion in suggest_alternatives(command, result.risk_level):
            result.add_suggestion(suggestion)

        logger.debug(
            f"Validated step {step.id}: allowed={result.allowed} "
            f"risk={result.risk_level.value} warnings={len(result.warnings)}"
        )
        return result

    def validate_plan(self, plan: Plan) -> PlanValidation:
        """Validate every step in order and aggregate.

        Does not stop at the first blocked step, so the caller always sees
        the full picture.
        """
        results = [self.validate_step(step) for step in plan.steps]
        validation = PlanValidation.from_results(results, config_warnings=self.config_warnings)
        logger.info(
            f"Validated plan {plan.id}: allowed={validation.allowed} "
            f"risk={validation.risk_level.value} blocked={validation.summary.blocked_steps}"
        )
        return validation

    def validate_document(self, data: Any, cwd: str | None = None) -> PlanValidation:
        """Parse a raw plan document and validate it.

        A malformed document yields a rejected PlanValidation instead of
        an exception.
        """
        try:
            plan = Plan.from_dict(data, cwd=cwd)
        except PlanFormatError as e:
            logger.warning(f"Rejected plan document: {e}")
            return PlanValidation.rejected(str(e), config_warnings=self.config_warnings)
        return self.validate_plan(plan)


def suggest_alternatives(command: str, risk_level: RiskLevel) -> list[str]:
    """Advisory suggestions for recognized risky substrings.

    Suggestions never influence the verdict.
    """
    suggestions = []
    lowered = command.lower()

    if risk_level == RiskLevel.HIGH:
        if "rm -rf" in lowered:
            suggestions.append("Consider using a safer deletion method or backup first")
        if "sudo" in lowered:
            suggestions.append("Verify this system operation is necessary")

    if ("curl" in lowered or "wget" in lowered) and "|" in lowered:
        suggestions.append("Download and inspect scripts before executing")

    if "chmod 777" in lowered:
        suggestions.append("Use more restrictive permissions like 755 or 644")

    return suggestions
