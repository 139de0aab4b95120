"""Runs a plan end to end: validate, confirm, execute.

Flow for one plan:
1. Validate every step. If anything is blocked, nothing runs.
2. For each step in order, ask for confirmation when the verdict requires
   it, then execute it in the sandbox.
3. After a failed step, the FailurePolicy decides whether to keep going.

Each step moves through a StepTracker so illegal transitions (executing a
blocked step, confirming twice) fail loudly instead of silently running
something.

Example:
    orchestrator = build_pipeline(load_config(), confirm=ask_user)
    report = await orchestrator.run(plan)
    print(report)
"""

from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Union

from ..audit import AuditLog
from ..config import ShellguardConfig
from ..exceptions import ConfigurationError
from ..models import (
    ExecutionReport,
    ExecutionResult,
    ExecutionStatus,
    Plan,
    PlanValidation,
    Step,
    StepState,
    StepTracker,
    ValidationResult,
)
from ..sandbox import SandboxExecutor
from ..security import PolicyAggregator, RiskClassifier, load_denylist

logger = logging.getLogger(__name__)


class FailurePolicy(Enum):
    """What to do after a step fails and more steps remain."""

    ABORT = "abort"
    """Stop; remaining steps are skipped."""

    CONTINUE = "continue"
    """Run the remaining steps anyway."""

    ASK = "ask"
    """Ask the confirmation callback whether to continue."""


@dataclass
class ConfirmationRequest:
    """What the confirmation callback is asked to approve.

    Attributes:
        kind: "step" before running a step, or "continue_after_failure"
            after a failed step when more steps remain
        step: The step about to run, or the one that just failed
        validation: The step's verdict
        result: The failed result (continue_after_failure only)
        remaining: Number of steps after this one
    """

    kind: str
    step: Step
    validation: ValidationResult | None = None
    result: ExecutionResult | None = None
    remaining: int = 0

    def prompt(self) -> str:
        """A human-readable question for interactive front ends."""
        if self.kind == "continue_after_failure":
            error = self.result.formatted_output() if self.result else "unknown error"
            return (
                f"Step {self.step.id} failed ({error}). "
                f"Continue with the remaining {self.remaining} step(s)?"
            )
        text = f"Run step {self.step.id}: {self.step.command}"
        if self.validation is not None:
            text += f" [risk {self.validation.risk_level.value}]"
            for warning in self.validation.warnings:
                text += f"\n  - {warning}"
        return text + "\nProceed?"


ConfirmCallback = Callable[[ConfirmationRequest], Union[bool, Awaitable[bool]]]


class ExecutionOrchestrator:
    """Validates and runs plans one step at a time.

    Attributes:
        aggregator: Policy aggregator used to judge the plan
        executor: Sandbox that runs the steps
        confirm: Optional sync or async callback returning True to proceed
        on_failure: FailurePolicy applied after a failed step
        auto_approve: Answer for confirmations when there is no callback
        audit: Optional audit log
    """

    def __init__(
        self,
        aggregator: PolicyAggregator,
        executor: SandboxExecutor,
        confirm: ConfirmCallback | None = None,
        on_failure: FailurePolicy | str = FailurePolicy.ABORT,
        auto_approve: bool = False,
        audit: AuditLog | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Raises:
            ConfigurationError: If ``on_failure`` is unknown, or is ASK
                without a confirmation callback
        """
        if isinstance(on_failure, str):
            try:
                on_failure = FailurePolicy(on_failure.lower())
            except ValueError as e:
                raise ConfigurationError(f"Unknown failure policy: {on_failure}", cause=e) from e
        if on_failure == FailurePolicy.ASK and confirm is None:
            raise ConfigurationError("Failure policy 'ask' needs a confirmation callback")

        self.aggregator = aggregator
        self.executor = executor
        self.confirm = confirm
        self.on_failure = on_failure
        self.auto_approve = auto_approve
        self.audit = audit

    async def run(self, plan: Plan, task_id: str | None = None) -> ExecutionReport:
        """Validate and execute a plan.

        Args:
            plan: The plan to run
            task_id: Identifier for the report (generated if omitted)

        Returns:
            ExecutionReport describing every step's final state
        """
        task_id = task_id or f"task-{uuid.uuid4().hex[:12]}"
        tracker = StepTracker([step.id for step in plan.steps])
        report_start = datetime.now()

        for step in plan.steps:
            tracker.advance(step.id, StepState.VALIDATING)
        validation = self.aggregator.validate_plan(plan)
        if self.audit is not None:
            self.audit.record_validation(plan, validation)

        if not validation.allowed:
            for step, verdict in zip(plan.steps, validation.step_results):
                tracker.advance(
                    step.id,
                    StepState.VALIDATED if verdict.allowed else StepState.BLOCKED,
                )
            tracker.skip_remaining()
            logger.warning(f"[{task_id}] Plan {plan.id} blocked, nothing executed")
            return self._finish(task_id, plan, ExecutionStatus.BLOCKED, validation, [], tracker, report_start)

        for step in plan.steps:
            tracker.advance(step.id, StepState.VALIDATED)

        results: list[ExecutionResult] = []
        status: ExecutionStatus | None = None
        total = len(plan.steps)

        for index, (step, verdict) in enumerate(zip(plan.steps, validation.step_results)):
            remaining = total - index - 1

            if verdict.requires_confirmation:
                tracker.advance(step.id, StepState.AWAITING_CONFIRMATION)
                request = ConfirmationRequest("step", step, validation=verdict, remaining=remaining)
                if not await self._ask(request):
                    tracker.advance(step.id, StepState.REJECTED)
                    tracker.skip_remaining()
                    logger.info(f"[{task_id}] Step {step.id} declined, stopping")
                    status = ExecutionStatus.REJECTED
                    break
                tracker.advance(step.id, StepState.CONFIRMED)

            tracker.advance(step.id, StepState.EXECUTING)
            logger.info(f"[{task_id}] Executing step {index + 1}/{total}: {step.id}")
            result = await self.executor.execute_step(step)
            results.append(result)
            tracker.advance(step.id, StepState.SUCCEEDED if result.success else StepState.FAILED)

            if not result.success and remaining > 0:
                if not await self._should_continue(step, verdict, result, remaining):
                    tracker.skip_remaining()
                    logger.info(f"[{task_id}] Stopping after failed step {step.id}")
                    break

        if status is None:
            all_ran = len(results) == total
            status = (
                ExecutionStatus.SUCCESS
                if all_ran and all(r.success for r in results)
                else ExecutionStatus.PARTIAL_FAILURE
            )

        return self._finish(task_id, plan, status, validation, results, tracker, report_start)

    async def _should_continue(
        self,
        step: Step,
        verdict: ValidationResult,
        result: ExecutionResult,
        remaining: int,
    ) -> bool:
        if self.on_failure == FailurePolicy.CONTINUE:
            return True
        if self.on_failure == FailurePolicy.ABORT:
            return False
        request = ConfirmationRequest(
            "continue_after_failure",
            step,
            validation=verdict,
            result=result,
            remaining=remaining,
        )
        return await self._ask(request)

    async def _ask(self, request: ConfirmationRequest) -> bool:
        if self.confirm is None:
            return self.auto_approve
        answer = self.confirm(request)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    def _finish(
        self,
        task_id: str,
        plan: Plan,
        status: ExecutionStatus,
        validation: PlanValidation,
        results: list[ExecutionResult],
        tracker: StepTracker,
        started_at: datetime,
    ) -> ExecutionReport:
        report = ExecutionReport(
            task_id=task_id,
            plan_id=plan.id,
            status=status,
            validation=validation,
            results=results,
            step_states=tracker.snapshot(),
            started_at=started_at,
            finished_at=datetime.now(),
        )
        logger.info(
            f"[{task_id}] Finished with status {status.value}: "
            f"{report.succeeded} succeeded, {report.failed} failed"
        )
        if self.audit is not None:
            self.audit.record_execution(report)
        return report


def build_pipeline(
    config: ShellguardConfig | None = None,
    confirm: ConfirmCallback | None = None,
) -> ExecutionOrchestrator:
    """Wire the whole pipeline from one configuration snapshot.

    Raises:
        ConfigurationError: If the configuration is inconsistent
    """
    config = config or ShellguardConfig()

    denylist = load_denylist(config.security.denylist_path)
    classifier = RiskClassifier(extra_rules=config.security.extra_risk_rules)
    audit = AuditLog(
        enabled=config.logging.audit_enabled,
        audit_dir=config.logging.audit_dir,
        max_entries=config.logging.max_audit_entries,
    )
    return ExecutionOrchestrator(
        aggregator=PolicyAggregator(denylist=denylist, classifier=classifier),
        executor=SandboxExecutor(config.sandbox),
        confirm=confirm,
        on_failure=config.execution.on_failure,
        auto_approve=config.execution.auto_approve,
        audit=audit,
    )
