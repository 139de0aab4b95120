"""Tests for validation verdicts, execution results and the step state machine."""

import pytest

from shellguard.exceptions import ValidationError
from shellguard.models import (
    ExecutionReport,
    ExecutionResult,
    ExecutionStatus,
    PlanValidation,
    RiskLevel,
    StepState,
    StepTracker,
    ValidationResult,
    ValidationSummary,
)


class TestValidationResult:
    """Tests for ValidationResult mutators."""

    def test_blocked_reason_forces_not_allowed(self):
        result = ValidationResult(step_id="s1", command="x")
        assert result.allowed is True

        result.add_blocked_reason("Nope")
        assert result.allowed is False
        assert result.is_blocked()
        assert result.blocked_reasons == ["Nope"]

    def test_escalate_never_lowers(self):
        result = ValidationResult(step_id="s1", command="x", risk_level=RiskLevel.HIGH)
        result.escalate(RiskLevel.LOW)
        assert result.risk_level == RiskLevel.HIGH

        result = ValidationResult(step_id="s2", command="x")
        result.escalate(RiskLevel.MEDIUM)
        assert result.risk_level == RiskLevel.MEDIUM

    def test_warnings_deduplicated(self):
        result = ValidationResult(step_id="s1", command="x")
        result.add_warning("careful")
        result.add_warning("careful")
        result.add_suggestion("try y")
        result.add_suggestion("try y")
        assert result.warnings == ["careful"]
        assert result.suggestions == ["try y"]
        assert result.allowed is True

    def test_to_dict(self):
        result = ValidationResult(step_id="s1", command="x", risk_level=RiskLevel.MEDIUM)
        data = result.to_dict()
        assert data["risk_level"] == "medium"
        assert data["allowed"] is True
        assert "timestamp" in data

    def test_str(self):
        result = ValidationResult(step_id="s1", command="rm -rf /")
        result.add_blocked_reason("Recursive forced deletion of an absolute path")
        text = str(result)
        assert "BLOCKED" in text
        assert "Recursive forced deletion" in text


class TestPlanValidation:
    """Tests for plan-level aggregation."""

    def _results(self):
        safe = ValidationResult(step_id="a", command="ls", risk_level=RiskLevel.NONE)
        risky = ValidationResult(step_id="b", command="sudo x", risk_level=RiskLevel.HIGH,
                                 requires_confirmation=True)
        risky.add_warning("System-level operation detected")
        return safe, risky

    def test_allowed_is_and_of_steps(self):
        safe, risky = self._results()
        assert PlanValidation.from_results([safe, risky]).allowed is True

        risky.add_blocked_reason("blocked")
        assert PlanValidation.from_results([safe, risky]).allowed is False

    def test_risk_is_max_of_steps(self):
        safe, risky = self._results()
        validation = PlanValidation.from_results([safe, risky])
        assert validation.risk_level == RiskLevel.HIGH

    def test_summary(self):
        safe, risky = self._results()
        summary = PlanValidation.from_results([safe, risky]).summary
        assert summary == ValidationSummary(
            total_steps=2,
            blocked_steps=0,
            high_risk_steps=1,
            confirmation_required=1,
            total_warnings=1,
        )
        assert summary.overall_safe is False

    def test_rejected(self):
        validation = PlanValidation.rejected("Invalid plan: must contain at least one step")
        assert validation.allowed is False
        assert validation.step_results == []
        assert validation.errors == ["Invalid plan: must contain at least one step"]
        assert "Error:" in str(validation)

    def test_result_lookup(self):
        safe, risky = self._results()
        risky.add_blocked_reason("blocked")
        validation = PlanValidation.from_results([safe, risky])
        assert validation.result_for("b") is risky
        assert validation.result_for("zzz") is None
        assert validation.blocked_results() == [risky]


class TestExecutionResult:
    """Tests for ExecutionResult helpers."""

    def test_failure_factory(self):
        result = ExecutionResult.failure("s1", "ls /nope", "Working directory not allowed: /nope")
        assert result.exit_code == -1
        assert result.success is False
        assert result.stderr == result.error

    def test_classification_helpers(self):
        assert ExecutionResult("s", "x", 127, stderr="x: not found").is_command_not_found()
        assert ExecutionResult("s", "x", 126).is_permission_error()
        assert ExecutionResult.failure("s", "x", "t", timed_out=True).is_timeout()

    def test_formatted_output(self):
        ok = ExecutionResult("s", "echo hi", 0, stdout="hi", success=True)
        bad = ExecutionResult("s", "false", 1, stderr="oops")
        assert ok.formatted_output() == "hi"
        assert bad.formatted_output() == "oops"
        assert ExecutionResult("s", "true", 0, success=True).formatted_output() == "No output"

    def test_str_truncates_long_output(self):
        result = ExecutionResult("s", "yes", 0, stdout="y" * 2000, success=True)
        text = str(result)
        assert "output truncated" in text
        assert len(text) < 1000


class TestStepTracker:
    """Tests for the per-step state machine."""

    def test_happy_path(self):
        tracker = StepTracker(["a"])
        for state in (
            StepState.VALIDATING,
            StepState.VALIDATED,
            StepState.AWAITING_CONFIRMATION,
            StepState.CONFIRMED,
            StepState.EXECUTING,
            StepState.SUCCEEDED,
        ):
            tracker.advance("a", state)
        assert tracker.state("a") == StepState.SUCCEEDED
        assert tracker.state("a").is_terminal

    def test_blocked_step_cannot_execute(self):
        tracker = StepTracker(["a"])
        tracker.advance("a", StepState.VALIDATING)
        tracker.advance("a", StepState.BLOCKED)
        with pytest.raises(ValidationError, match="Illegal step transition"):
            tracker.advance("a", StepState.EXECUTING)

    def test_cannot_skip_validation(self):
        tracker = StepTracker(["a"])
        with pytest.raises(ValidationError):
            tracker.advance("a", StepState.EXECUTING)

    def test_skip_remaining(self):
        tracker = StepTracker(["a", "b", "c"])
        for sid in ("a", "b", "c"):
            tracker.advance(sid, StepState.VALIDATING)
            tracker.advance(sid, StepState.VALIDATED)
        tracker.advance("a", StepState.EXECUTING)
        tracker.advance("a", StepState.FAILED)
        tracker.skip_remaining()

        assert tracker.snapshot() == {
            "a": StepState.FAILED,
            "b": StepState.SKIPPED,
            "c": StepState.SKIPPED,
        }


class TestExecutionReport:
    """Tests for ExecutionReport."""

    def test_counts_and_dict(self):
        results = [
            ExecutionResult("a", "true", 0, success=True),
            ExecutionResult("b", "false", 1),
        ]
        report = ExecutionReport(
            task_id="task-1",
            plan_id="plan-1",
            status=ExecutionStatus.PARTIAL_FAILURE,
            validation=PlanValidation.from_results([]),
            results=results,
            step_states={"a": StepState.SUCCEEDED, "b": StepState.FAILED},
        )
        assert report.succeeded == 1
        assert report.failed == 1

        data = report.to_dict()
        assert data["status"] == "partial_failure"
        assert data["step_states"] == {"a": "succeeded", "b": "failed"}
        assert "Partial failure" in str(report)
