"""Plan orchestration: validation, confirmation and sequential execution."""

from .orchestrator import (
    ConfirmationRequest,
    ConfirmCallback,
    ExecutionOrchestrator,
    FailurePolicy,
    build_pipeline,
)

__all__ = [
    "ConfirmationRequest",
    "ConfirmCallback",
    "ExecutionOrchestrator",
    "FailurePolicy",
    "build_pipeline",
]
