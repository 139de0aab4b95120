"""Plan and Step models.

A Plan is what the planning collaborator (an LLM) proposes: an intent and
an ordered list of shell steps. Nothing in a plan is trusted. Plans are
parsed once per query and never mutated afterwards.

Example:
    plan = Plan.from_dict({
        "intent": "List the project files",
        "steps": [
            {"id": "step-1", "description": "List files", "command": "ls -la"},
        ],
    })
"""

from __future__ import annotations

import json
import os
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from ..exceptions import PlanFormatError
from .risk import RiskLevel

NO_ROLLBACK = "No automatic rollback available"

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```")
_BARE_JSON = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Step:
    """One shell command plus its metadata.

    Attributes:
        id: Identifier, unique within the plan
        description: Human-readable description of what the step does
        command: The command text, exactly as proposed
        working_directory: Where to run it (None means the sandbox root)
        risk_level: Risk the planner declared for this step
        requires_confirmation: Planner asked for explicit confirmation
        timeout_ms: Per-step timeout (None means the executor default)
    """

    id: str
    description: str
    command: str
    working_directory: str | None = None
    risk_level: RiskLevel = RiskLevel.LOW
    requires_confirmation: bool = False
    timeout_ms: int | None = None

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        index: int = 0,
        cwd: str | None = None,
    ) -> "Step":
        """Build a step from a plan document entry, filling in defaults.

        Args:
            data: One entry of the plan's ``steps`` list
            index: Position in the list, used in error messages
            cwd: Default working directory (the caller's cwd if None)

        Raises:
            PlanFormatError: If the entry is not a mapping or lacks
                id, command or description
        """
        if not isinstance(data, Mapping):
            raise PlanFormatError(f"Invalid step {index + 1}: expected an object")

        missing = [
            key for key in ("id", "command", "description")
            if not _non_empty(data.get(key))
        ]
        if missing:
            raise PlanFormatError(
                f"Invalid step {index + 1}: missing required fields ({', '.join(missing)})"
            )

        working_directory = _first(data, "workingDirectory", "working_directory")
        requires_confirmation = _first(data, "requiresConfirmation", "requires_confirmation")
        timeout = _first(data, "timeout", "timeout_ms")

        return cls(
            id=str(data["id"]),
            description=str(data["description"]),
            command=str(data["command"]),
            working_directory=str(working_directory) if working_directory else (cwd or os.getcwd()),
            risk_level=RiskLevel.parse(_first(data, "riskLevel", "risk_level")),
            requires_confirmation=_parse_flag(requires_confirmation),
            timeout_ms=_parse_timeout(timeout, index),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "description": self.description,
            "command": self.command,
            "working_directory": self.working_directory,
            "risk_level": self.risk_level.value,
            "requires_confirmation": self.requires_confirmation,
            "timeout_ms": self.timeout_ms,
        }

    def __str__(self) -> str:
        output = f"{self.description} ({self.risk_level.value} risk)"
        if self.requires_confirmation:
            output += " [REQUIRES CONFIRMATION]"
        output += f"\n     Command: {self.command}"
        if self.working_directory and self.working_directory != os.getcwd():
            output += f"\n     Working Directory: {self.working_directory}"
        if self.timeout_ms:
            output += f"\n     Timeout: {self.timeout_ms}ms"
        return output


@dataclass(frozen=True)
class Plan:
    """An ordered sequence of steps proposed for one user query.

    Step order is execution order. Plan owns its steps exclusively.
    """

    intent: str
    steps: tuple[Step, ...]
    risk_level: RiskLevel = RiskLevel.LOW
    rollback: str = NO_ROLLBACK
    prerequisites: tuple[str, ...] = ()
    estimated_duration: str = "Unknown"
    id: str = field(default_factory=lambda: _generate_plan_id())
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_dict(cls, data: Any, cwd: str | None = None) -> "Plan":
        """Parse and check a plan document from the planning collaborator.

        Missing optional fields take their defaults: risk level low,
        no confirmation, working directory = ``cwd`` (or the current
        directory).

        Raises:
            PlanFormatError: If the document or any step is malformed
        """
        if not isinstance(data, Mapping):
            raise PlanFormatError("Invalid plan structure: expected an object")

        intent = data.get("intent")
        steps = data.get("steps")
        if not _non_empty(intent) or not isinstance(steps, list):
            raise PlanFormatError(
                "Invalid plan structure: missing required fields (intent, steps)"
            )
        if not steps:
            raise PlanFormatError("Invalid plan: must contain at least one step")

        default_cwd = cwd or os.getcwd()
        parsed = tuple(
            Step.from_dict(step, index=i, cwd=default_cwd) for i, step in enumerate(steps)
        )
        seen: set[str] = set()
        for step in parsed:
            if step.id in seen:
                raise PlanFormatError(f"Invalid plan: duplicate step id '{step.id}'")
            seen.add(step.id)

        prerequisites = data.get("prerequisites") or []
        if isinstance(prerequisites, str):
            prerequisites = [prerequisites]

        return cls(
            intent=str(intent),
            steps=parsed,
            risk_level=RiskLevel.parse(_first(data, "riskLevel", "risk_level")),
            rollback=str(data.get("rollback") or NO_ROLLBACK),
            prerequisites=tuple(str(p) for p in prerequisites),
            estimated_duration=str(
                _first(data, "estimatedDuration", "estimated_duration") or "Unknown"
            ),
        )

    def high_risk_steps(self) -> list[Step]:
        """Steps the planner itself declared high risk."""
        return [step for step in self.steps if step.risk_level == RiskLevel.HIGH]

    def steps_requiring_confirmation(self) -> list[Step]:
        """Steps the planner flagged for confirmation."""
        return [step for step in self.steps if step.requires_confirmation]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "intent": self.intent,
            "steps": [step.to_dict() for step in self.steps],
            "risk_level": self.risk_level.value,
            "rollback": self.rollback,
            "prerequisites": list(self.prerequisites),
            "estimated_duration": self.estimated_duration,
            "created_at": self.created_at.isoformat(),
        }

    def __str__(self) -> str:
        output = f"{self.intent}\n"
        output += f"Risk Level: {self.risk_level.value.upper()}\n"
        output += f"Estimated Duration: {self.estimated_duration}\n"
        if self.prerequisites:
            output += f"Prerequisites: {', '.join(self.prerequisites)}\n"
        output += "\nSteps:\n"
        for index, step in enumerate(self.steps, start=1):
            output += f"  {index}. {step}\n"
        if self.rollback != NO_ROLLBACK:
            output += f"\nRollback: {self.rollback}\n"
        return output


def extract_plan_json(text: str) -> dict[str, Any]:
    """Pull the plan object out of a raw model response.

    Models like to wrap JSON in markdown fences or add chatter around it.
    Tries a fenced block first, then the outermost brace span.

    Raises:
        PlanFormatError: If no JSON object can be parsed
    """
    if not isinstance(text, str) or not text.strip():
        raise PlanFormatError("Empty plan response")

    candidate = text.strip()
    fenced = _FENCED_JSON.search(candidate)
    if fenced:
        candidate = fenced.group(1)
    else:
        bare = _BARE_JSON.search(candidate)
        if bare:
            candidate = bare.group(0)

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise PlanFormatError("Failed to parse plan response", cause=e) from e

    if not isinstance(data, dict):
        raise PlanFormatError("Plan response is not a JSON object")
    return data


def _generate_plan_id() -> str:
    return f"plan-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present, non-None value among camelCase/snake_case keys."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _non_empty(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


_FALSE_WORDS = ("false", "no", "n", "0", "off", "")


def _parse_flag(value: Any) -> bool:
    """Read a yes/no field from a loosely typed document.

    Unrecognized strings count as True, so a garbled flag still asks.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_WORDS
    return bool(value)


def _parse_timeout(value: Any, index: int) -> int | None:
    if value is None:
        return None
    try:
        timeout = int(value)
    except (TypeError, ValueError) as e:
        raise PlanFormatError(f"Invalid step {index + 1}: timeout must be a number", cause=e) from e
    if timeout <= 0:
        raise PlanFormatError(f"Invalid step {index + 1}: timeout must be positive")
    return timeout
