"""Execution outcome records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..exceptions import ValidationError
from .validation import PlanValidation

OUTPUT_PREVIEW_CHARS = 500


@dataclass
class ExecutionResult:
    """Outcome of running one step in the sandbox.

    Attributes:
        step_id: ID of the executed step
        command: The command text
        exit_code: Process exit code (-1 when no process ran to completion)
        stdout: Captured standard output
        stderr: Captured standard error
        duration_ms: Wall-clock time spent on the step
        working_directory: Directory the command ran in (or would have)
        success: exit_code == 0 and no sandbox error
        error: Sandbox-level problem, if any
        timed_out: The timeout fired and the process was terminated
        timestamp: When the result was produced
    """

    step_id: str
    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    working_directory: str = ""
    success: bool = False
    error: str | None = None
    timed_out: bool = False
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def failure(
        cls,
        step_id: str,
        command: str,
        error: str,
        working_directory: str = "",
        duration_ms: int = 0,
        timed_out: bool = False,
        stdout: str = "",
        stderr: str | None = None,
    ) -> "ExecutionResult":
        """A result for a step the sandbox refused or could not finish."""
        return cls(
            step_id=step_id,
            command=command,
            exit_code=-1,
            stdout=stdout,
            stderr=error if stderr is None else stderr,
            duration_ms=duration_ms,
            working_directory=working_directory,
            success=False,
            error=error,
            timed_out=timed_out,
        )

    def is_timeout(self) -> bool:
        return self.timed_out

    def is_permission_error(self) -> bool:
        return self.exit_code == 126 or "permission" in self.stderr.lower()

    def is_command_not_found(self) -> bool:
        text = f"{self.stderr} {self.error or ''}".lower()
        return self.exit_code == 127 or "not found" in text

    def has_output(self) -> bool:
        return bool(self.stdout or self.stderr)

    def formatted_output(self) -> str:
        """The most useful single piece of output for display."""
        if self.success and self.stdout:
            return self.stdout
        if not self.success and self.stderr:
            return self.stderr
        if self.error:
            return self.error
        return "No output"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "step_id": self.step_id,
            "command": self.command,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "working_directory": self.working_directory,
            "success": self.success,
            "error": self.error,
            "timed_out": self.timed_out,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        output = f"{'Worked' if self.success else 'Failed'}: {self.step_id}\n"
        output += f"Command: {self.command}\n"
        if not self.success:
            output += f"Exit code: {self.exit_code}\n"
        if self.duration_ms > 1000:
            output += f"Took: {round(self.duration_ms / 1000)}s\n"
        if self.stdout:
            output += f"Output: {_truncate(self.stdout)}\n"
        if self.stderr and self.stderr != self.error:
            output += f"Error: {_truncate(self.stderr)}\n"
        if self.error:
            output += f"Problem: {self.error}\n"
        return output


def _truncate(text: str, limit: int = OUTPUT_PREVIEW_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... (output truncated)"


# =============================================================================
# Step State Machine
# =============================================================================


class StepState(Enum):
    """Lifecycle of one step through the pipeline."""

    PENDING = "pending"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    VALIDATED = "validated"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    """Never reached because an earlier step stopped the run."""

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({
    StepState.BLOCKED,
    StepState.REJECTED,
    StepState.SUCCEEDED,
    StepState.FAILED,
    StepState.SKIPPED,
})

_TRANSITIONS: dict[StepState, frozenset[StepState]] = {
    StepState.PENDING: frozenset({StepState.VALIDATING, StepState.SKIPPED}),
    StepState.VALIDATING: frozenset({StepState.BLOCKED, StepState.VALIDATED}),
    StepState.VALIDATED: frozenset({
        StepState.AWAITING_CONFIRMATION,
        StepState.EXECUTING,
        StepState.SKIPPED,
    }),
    StepState.AWAITING_CONFIRMATION: frozenset({StepState.CONFIRMED, StepState.REJECTED}),
    StepState.CONFIRMED: frozenset({StepState.EXECUTING}),
    StepState.EXECUTING: frozenset({StepState.SUCCEEDED, StepState.FAILED}),
}


class StepTracker:
    """Tracks the state of every step of a plan and rejects illegal moves."""

    def __init__(self, step_ids: list[str]) -> None:
        self._states: dict[str, StepState] = {sid: StepState.PENDING for sid in step_ids}

    def state(self, step_id: str) -> StepState:
        return self._states[step_id]

    def advance(self, step_id: str, new_state: StepState) -> None:
        """Move a step to ``new_state``.

        Raises:
            ValidationError: If the transition is not allowed
        """
        current = self._states[step_id]
        if new_state not in _TRANSITIONS.get(current, frozenset()):
            raise ValidationError(
                f"Illegal step transition {current.value} -> {new_state.value}",
                step_id=step_id,
            )
        self._states[step_id] = new_state

    def skip_remaining(self) -> None:
        """Mark every step that has not started as skipped."""
        for step_id, state in self._states.items():
            if state in (StepState.PENDING, StepState.VALIDATED):
                self._states[step_id] = StepState.SKIPPED

    def snapshot(self) -> dict[str, StepState]:
        return dict(self._states)


# =============================================================================
# Execution Report
# =============================================================================


class ExecutionStatus(Enum):
    """Aggregate outcome of running a plan."""

    SUCCESS = "success"
    """Every step ran and exited 0."""

    PARTIAL_FAILURE = "partial_failure"
    """At least one step failed; later steps may or may not have run."""

    BLOCKED = "blocked"
    """Validation blocked the plan; nothing ran."""

    REJECTED = "rejected"
    """A confirmation was declined; the run stopped there."""


@dataclass
class ExecutionReport:
    """Everything that happened while running one plan."""

    task_id: str
    plan_id: str
    status: ExecutionStatus
    validation: PlanValidation
    results: list[ExecutionResult] = field(default_factory=list)
    step_states: dict[str, StepState] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "plan_id": self.plan_id,
            "status": self.status.value,
            "validation": {
                "allowed": self.validation.allowed,
                "risk_level": self.validation.risk_level.value,
                "summary": self.validation.summary.to_dict(),
                "errors": list(self.validation.errors),
            },
            "results": [r.to_dict() for r in self.results],
            "step_states": {sid: state.value for sid, state in self.step_states.items()},
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    def __str__(self) -> str:
        total = len(self.step_states)
        if self.status == ExecutionStatus.SUCCESS:
            headline = f"Everything worked ({self.succeeded}/{total} steps)"
        elif self.status == ExecutionStatus.BLOCKED:
            headline = "Plan blocked by security policy, nothing was run"
        elif self.status == ExecutionStatus.REJECTED:
            headline = f"Stopped at a declined confirmation ({self.succeeded}/{total} steps ran)"
        else:
            headline = f"Partial failure: {self.succeeded} succeeded, {self.failed} failed"
        text = f"[{self.task_id}] {headline}\n"
        for result in self.results:
            text += "\n" + str(result)
        return text
