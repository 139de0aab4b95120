"""Data model for plans, verdicts and execution outcomes."""

from .risk import RiskLevel
from .plan import Plan, Step, extract_plan_json, NO_ROLLBACK
from .validation import PlanValidation, ValidationResult, ValidationSummary
from .execution import (
    ExecutionReport,
    ExecutionResult,
    ExecutionStatus,
    StepState,
    StepTracker,
)

__all__ = [
    "RiskLevel",
    "Plan",
    "Step",
    "extract_plan_json",
    "NO_ROLLBACK",
    "PlanValidation",
    "ValidationResult",
    "ValidationSummary",
    "ExecutionReport",
    "ExecutionResult",
    "ExecutionStatus",
    "StepState",
    "StepTracker",
]
