"""Tests for the execution orchestrator."""

import json
import sys

import pytest

from shellguard.audit import AuditLog
from shellguard.config import LoggingConfig, SandboxConfig, ShellguardConfig
from shellguard.exceptions import ConfigurationError
from shellguard.models import ExecutionStatus, StepState
from shellguard.orchestration import (
    ConfirmationRequest,
    ExecutionOrchestrator,
    FailurePolicy,
    build_pipeline,
)
from shellguard.security import PolicyAggregator


def _orchestrator(executor, **kwargs):
    return ExecutionOrchestrator(PolicyAggregator(), executor, **kwargs)


class TestConstruction:
    """Configuration checks at construction time."""

    def test_ask_without_callback_rejected(self, fake_executor):
        with pytest.raises(ConfigurationError, match="confirmation callback"):
            _orchestrator(fake_executor, on_failure=FailurePolicy.ASK)

    def test_unknown_policy_string(self, fake_executor):
        with pytest.raises(ConfigurationError, match="Unknown failure policy"):
            _orchestrator(fake_executor, on_failure="sometimes")

    def test_policy_from_string(self, fake_executor):
        orchestrator = _orchestrator(fake_executor, on_failure="Continue")
        assert orchestrator.on_failure == FailurePolicy.CONTINUE

    def test_default_policy_is_abort(self, fake_executor):
        assert _orchestrator(fake_executor).on_failure == FailurePolicy.ABORT


class TestRun:
    """Happy path and blocked plans."""

    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, fake_executor, plan_factory):
        plan = plan_factory("ls -la", "git status")
        report = await _orchestrator(fake_executor).run(plan, task_id="task-42")

        assert report.status == ExecutionStatus.SUCCESS
        assert report.task_id == "task-42"
        assert report.plan_id == plan.id
        assert fake_executor.executed == ["step-1", "step-2"]
        assert set(report.step_states.values()) == {StepState.SUCCEEDED}
        assert report.finished_at is not None

    @pytest.mark.asyncio
    async def test_blocked_plan_runs_nothing(self, fake_executor, plan_factory):
        plan = plan_factory("ls", "rm -rf /", "echo hi")
        report = await _orchestrator(fake_executor).run(plan)

        assert report.status == ExecutionStatus.BLOCKED
        assert fake_executor.executed == []
        assert report.results == []
        assert report.step_states == {
            "step-1": StepState.SKIPPED,
            "step-2": StepState.BLOCKED,
            "step-3": StepState.SKIPPED,
        }
        assert report.validation.allowed is False

    @pytest.mark.asyncio
    async def test_generated_task_id(self, fake_executor, plan_factory):
        report = await _orchestrator(fake_executor).run(plan_factory("ls"))
        assert report.task_id.startswith("task-")


class TestConfirmation:
    """Steps that need a yes before they run."""

    @pytest.mark.asyncio
    async def test_sync_callback_approves(self, fake_executor, plan_factory):
        requests: list[ConfirmationRequest] = []

        def confirm(request):
            requests.append(request)
            return True

        plan = plan_factory("ls", "sudo systemctl restart nginx")
        report = await _orchestrator(fake_executor, confirm=confirm).run(plan)

        assert report.status == ExecutionStatus.SUCCESS
        assert fake_executor.executed == ["step-1", "step-2"]
        assert [r.kind for r in requests] == ["step"]
        assert requests[0].step.id == "step-2"
        assert "System-level operation detected" in requests[0].prompt()

    @pytest.mark.asyncio
    async def test_async_callback_rejects(self, fake_executor, plan_factory):
        async def confirm(request):
            return False

        plan = plan_factory("ls", "sudo systemctl restart nginx", "echo done")
        report = await _orchestrator(fake_executor, confirm=confirm).run(plan)

        assert report.status == ExecutionStatus.REJECTED
        assert fake_executor.executed == ["step-1"]
        assert report.step_states == {
            "step-1": StepState.SUCCEEDED,
            "step-2": StepState.REJECTED,
            "step-3": StepState.SKIPPED,
        }

    @pytest.mark.asyncio
    async def test_no_callback_uses_auto_approve(self, executor_factory, plan_factory):
        plan = plan_factory("sudo systemctl restart nginx")

        declined = executor_factory()
        report = await _orchestrator(declined).run(plan)
        assert report.status == ExecutionStatus.REJECTED
        assert declined.executed == []

        approved = executor_factory()
        report = await _orchestrator(approved, auto_approve=True).run(plan)
        assert report.status == ExecutionStatus.SUCCESS
        assert approved.executed == ["step-1"]

    @pytest.mark.asyncio
    async def test_safe_steps_not_confirmed(self, fake_executor, plan_factory):
        calls = []
        report = await _orchestrator(fake_executor, confirm=lambda r: calls.append(r) or True).run(
            plan_factory("ls", "echo hi")
        )
        assert report.status == ExecutionStatus.SUCCESS
        assert calls == []


class TestFailurePolicy:
    """What happens after a failed step."""

    @pytest.mark.asyncio
    async def test_abort_skips_remaining(self, executor_factory, plan_factory):
        executor = executor_factory(failing={"step-1"})
        report = await _orchestrator(executor).run(plan_factory("ls", "echo a", "echo b"))

        assert report.status == ExecutionStatus.PARTIAL_FAILURE
        assert executor.executed == ["step-1"]
        assert report.step_states == {
            "step-1": StepState.FAILED,
            "step-2": StepState.SKIPPED,
            "step-3": StepState.SKIPPED,
        }

    @pytest.mark.asyncio
    async def test_continue_runs_everything(self, executor_factory, plan_factory):
        executor = executor_factory(failing={"step-1"})
        orchestrator = _orchestrator(executor, on_failure=FailurePolicy.CONTINUE)
        report = await orchestrator.run(plan_factory("ls", "echo a", "echo b"))

        assert report.status == ExecutionStatus.PARTIAL_FAILURE
        assert executor.executed == ["step-1", "step-2", "step-3"]
        assert report.succeeded == 2
        assert report.failed == 1

    @pytest.mark.asyncio
    async def test_ask_after_failure(self, executor_factory, plan_factory):
        executor = executor_factory(failing={"step-1"})
        requests = []

        async def confirm(request):
            requests.append(request)
            return True

        orchestrator = _orchestrator(executor, confirm=confirm, on_failure=FailurePolicy.ASK)
        report = await orchestrator.run(plan_factory("ls", "echo a"))

        assert executor.executed == ["step-1", "step-2"]
        assert [r.kind for r in requests] == ["continue_after_failure"]
        assert requests[0].result.exit_code == 1
        assert requests[0].remaining == 1
        assert "failed" in requests[0].prompt()
        assert report.status == ExecutionStatus.PARTIAL_FAILURE

    @pytest.mark.asyncio
    async def test_ask_declined_stops(self, executor_factory, plan_factory):
        executor = executor_factory(failing={"step-1"})
        orchestrator = _orchestrator(
            executor, confirm=lambda r: False, on_failure=FailurePolicy.ASK
        )
        report = await orchestrator.run(plan_factory("ls", "echo a"))

        assert executor.executed == ["step-1"]
        assert report.step_states["step-2"] == StepState.SKIPPED
        assert report.status == ExecutionStatus.PARTIAL_FAILURE

    @pytest.mark.asyncio
    async def test_last_step_failure_does_not_ask(self, executor_factory, plan_factory):
        executor = executor_factory(failing={"step-2"})
        calls = []
        orchestrator = _orchestrator(
            executor,
            confirm=lambda r: calls.append(r) or True,
            on_failure=FailurePolicy.ASK,
        )
        report = await orchestrator.run(plan_factory("ls", "echo a"))

        assert calls == []
        assert report.status == ExecutionStatus.PARTIAL_FAILURE


class TestAudit:
    """Runs are recorded when an audit log is configured."""

    @pytest.mark.asyncio
    async def test_records_validation_and_execution(self, fake_executor, plan_factory, tmp_path):
        audit = AuditLog(audit_dir=tmp_path / "audit")
        orchestrator = _orchestrator(fake_executor, audit=audit)
        report = await orchestrator.run(plan_factory("ls"), task_id="task-audit")

        events = [e["event"] for e in audit.entries()]
        assert events == ["validation", "execution"]

        saved = json.loads((tmp_path / "audit" / "task-audit.json").read_text())
        assert saved["status"] == report.status.value


@pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX echo")
class TestBuildPipeline:
    """End to end through real components."""

    @pytest.mark.asyncio
    async def test_runs_real_plan(self, isolated_roots, plan_factory):
        config = ShellguardConfig(
            sandbox=SandboxConfig(workdir=str(isolated_roots["sandbox"]), timeout_ms=5000),
            logging=LoggingConfig(audit_dir=str(isolated_roots["cwd"] / "logs")),
        )
        orchestrator = build_pipeline(config)
        report = await orchestrator.run(plan_factory("echo one", "echo two"))

        assert report.status == ExecutionStatus.SUCCESS
        assert [r.stdout for r in report.results] == ["one", "two"]
        assert (isolated_roots["cwd"] / "logs" / "audit.jsonl").exists()

    def test_ask_policy_needs_callback(self, isolated_roots):
        config = ShellguardConfig(sandbox=SandboxConfig(workdir=str(isolated_roots["sandbox"])))
        config.execution.on_failure = "ask"
        with pytest.raises(ConfigurationError):
            build_pipeline(config)
        assert build_pipeline(config, confirm=lambda r: True).on_failure == FailurePolicy.ASK
