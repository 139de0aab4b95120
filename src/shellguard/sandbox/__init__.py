"""Sandboxed command execution.

Runs already-validated steps with a confined working directory, a minimal
environment and a hard timeout.
"""

from .executor import DEFAULT_PATH, SANDBOX_SUBDIRS, SandboxExecutor

__all__ = [
    "DEFAULT_PATH",
    "SANDBOX_SUBDIRS",
    "SandboxExecutor",
]
