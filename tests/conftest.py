"""Pytest configuration for shellguard tests."""

import os
import tempfile
from pathlib import Path
from typing import Any

import pytest

from shellguard.config import SandboxConfig
from shellguard.models import ExecutionResult, Plan, Step
from shellguard.sandbox import SandboxExecutor


# =============================================================================
# Plan Fixtures
# =============================================================================


@pytest.fixture
def plan_document() -> dict[str, Any]:
    """A well-formed plan document as a planner would produce it."""
    return {
        "intent": "List the project and show its git status",
        "steps": [
            {
                "id": "step-1",
                "description": "List files",
                "command": "ls -la",
                "riskLevel": "low",
            },
            {
                "id": "step-2",
                "description": "Show git status",
                "command": "git status",
                "requiresConfirmation": False,
            },
        ],
        "riskLevel": "low",
        "rollback": "Nothing to roll back",
        "prerequisites": ["git"],
        "estimatedDuration": "1 second",
    }


def make_step(step_id: str, command: str, **kwargs: Any) -> Step:
    """Build a step with a throwaway description."""
    return Step(id=step_id, description=f"Run {command}", command=command, **kwargs)


def make_plan(*commands: str, intent: str = "Test plan") -> Plan:
    """Build a plan with one step per command, ids step-1..step-N."""
    steps = tuple(make_step(f"step-{i}", cmd) for i, cmd in enumerate(commands, start=1))
    return Plan(intent=intent, steps=steps)


@pytest.fixture
def step_factory():
    return make_step


@pytest.fixture
def plan_factory():
    return make_plan


# =============================================================================
# Sandbox Fixtures
# =============================================================================


@pytest.fixture
def isolated_roots(tmp_path, monkeypatch) -> dict[str, Path]:
    """Point cwd, home and the system temp dir at private directories.

    Anything outside ``tmp_path`` other than these is then off limits for
    the sandbox containment check.
    """
    roots = {
        "cwd": tmp_path / "cwd",
        "home": tmp_path / "home",
        "temp": tmp_path / "systemp",
        "sandbox": tmp_path / "sandbox",
        "outside": tmp_path / "outside",
    }
    for path in roots.values():
        path.mkdir()

    monkeypatch.chdir(roots["cwd"])
    monkeypatch.setenv("HOME", str(roots["home"]))
    monkeypatch.setattr(tempfile, "tempdir", str(roots["temp"]))
    return roots


@pytest.fixture
def sandbox_config(isolated_roots) -> SandboxConfig:
    return SandboxConfig(
        workdir=str(isolated_roots["sandbox"]),
        timeout_ms=10000,
        kill_grace_ms=500,
    )


@pytest.fixture
def executor(sandbox_config) -> SandboxExecutor:
    return SandboxExecutor(sandbox_config)


class FakeExecutor:
    """Stands in for SandboxExecutor in orchestration tests.

    Steps whose id is in ``failing`` exit 1; everything else exits 0.
    """

    def __init__(self, failing: set[str] | None = None):
        self.failing = failing or set()
        self.executed: list[str] = []

    async def execute_step(self, step: Step) -> ExecutionResult:
        self.executed.append(step.id)
        exit_code = 1 if step.id in self.failing else 0
        return ExecutionResult(
            step_id=step.id,
            command=step.command,
            exit_code=exit_code,
            stdout="" if exit_code else "ok",
            stderr="boom" if exit_code else "",
            working_directory=os.getcwd(),
            success=exit_code == 0,
        )

    def cleanup(self) -> int:
        return 0


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def executor_factory():
    return FakeExecutor
