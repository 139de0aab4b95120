"""shellguard - Safety pipeline for AI-generated shell command plans.

A planner (usually a language model) proposes a plan of shell commands.
shellguard decides whether each step may run and runs the approved ones:
- Risk classification of every command (none/low/medium/high)
- Denylist of forbidden commands and patterns
- Per-plan verdicts with warnings and suggestions
- Sandboxed execution with a minimal environment and hard timeouts
- Step-by-step orchestration with confirmations and failure policies

Example:
    from shellguard import Plan, build_pipeline, load_config

    orchestrator = build_pipeline(load_config(), confirm=lambda req: True)
    plan = Plan.from_dict(document)
    report = await orchestrator.run(plan)
    print(report.status)
"""

__version__ = "0.1.0"

from shellguard.audit import AuditLog, configure_logging
from shellguard.config import (
    ExecutionConfig,
    LoggingConfig,
    SandboxConfig,
    SecurityConfig,
    ShellguardConfig,
    load_config,
)
from shellguard.exceptions import (
    CommandTimeoutError,
    ConfigurationError,
    ContainmentError,
    PlanFormatError,
    SandboxError,
    ShellguardError,
    SpawnError,
    ValidationError,
)
from shellguard.models import (
    ExecutionReport,
    ExecutionResult,
    ExecutionStatus,
    Plan,
    PlanValidation,
    RiskLevel,
    Step,
    StepState,
    ValidationResult,
    ValidationSummary,
    extract_plan_json,
)
from shellguard.orchestration import (
    ConfirmationRequest,
    ExecutionOrchestrator,
    FailurePolicy,
    build_pipeline,
)
from shellguard.sandbox import SandboxExecutor
from shellguard.security import (
    Denylist,
    PolicyAggregator,
    RiskClassifier,
    load_denylist,
)

__all__ = [
    "__version__",
    # Config
    "ShellguardConfig",
    "SandboxConfig",
    "SecurityConfig",
    "ExecutionConfig",
    "LoggingConfig",
    "load_config",
    # Errors
    "ShellguardError",
    "ConfigurationError",
    "ValidationError",
    "PlanFormatError",
    "SandboxError",
    "ContainmentError",
    "SpawnError",
    "CommandTimeoutError",
    # Models
    "RiskLevel",
    "Step",
    "Plan",
    "extract_plan_json",
    "ValidationResult",
    "ValidationSummary",
    "PlanValidation",
    "ExecutionResult",
    "ExecutionReport",
    "ExecutionStatus",
    "StepState",
    # Pipeline
    "RiskClassifier",
    "Denylist",
    "load_denylist",
    "PolicyAggregator",
    "SandboxExecutor",
    "ExecutionOrchestrator",
    "FailurePolicy",
    "ConfirmationRequest",
    "build_pipeline",
    # Audit
    "AuditLog",
    "configure_logging",
]
