"""Standard exception hierarchy for shellguard.

All shellguard exceptions inherit from ShellguardError, making it easy
to catch all library-specific errors.

Exception Hierarchy:
    ShellguardError (base)
    ├── ConfigurationError - Invalid or unreadable configuration
    ├── ValidationError - Classifier/aggregator internal failure
    ├── PlanFormatError - Malformed plan document from the planner
    └── SandboxError - Base for sandbox errors
        ├── ContainmentError - Working directory outside the allowed roots
        ├── SpawnError - The process could not be started
        └── CommandTimeoutError - The command exceeded its time budget

Only ConfigurationError and ValidationError are meant to reach callers.
PlanFormatError is turned into a rejected PlanValidation by the policy
aggregator, and SandboxError never escapes SandboxExecutor.execute_step;
it is captured as a failed ExecutionResult instead.
"""


class ShellguardError(Exception):
    """Base exception for all shellguard errors.

    Catch this to handle any library-specific exception:
        try:
            validation = aggregator.validate_plan(plan)
        except ShellguardError as e:
            logger.error(f"shellguard error: {e}")
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        if self.cause:
            return f"{super().__str__()} (caused by: {self.cause})"
        return super().__str__()


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ShellguardError):
    """Invalid configuration.

    Raised when:
    - A config or denylist file cannot be read or parsed
    - A config value is out of range (e.g. non-positive timeout)
    - Incompatible options are combined (e.g. ask-on-failure without a
      confirmation callback)

    Denylist loading catches this internally and falls back to the
    built-in rules.
    """

    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(ShellguardError):
    """Validation infrastructure failure.

    Raised when the classifier or aggregator itself breaks, or when a step
    is moved through an illegal state transition. A dangerous or malformed
    command is NOT a ValidationError; it is a blocked ValidationResult.
    """

    def __init__(
        self,
        message: str,
        step_id: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.step_id = step_id


class PlanFormatError(ShellguardError):
    """The plan document is malformed.

    Raised when:
    - The document is not a mapping or has no intent
    - The steps list is missing, not a list, or empty
    - A step is missing id, command or description
    - No JSON object can be extracted from a model response
    """

    pass


# =============================================================================
# Sandbox Errors
# =============================================================================


class SandboxError(ShellguardError):
    """Base exception for sandbox errors."""

    def __init__(
        self,
        message: str,
        command: str | None = None,
        working_directory: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause)
        self.command = command
        self.working_directory = working_directory


class ContainmentError(SandboxError):
    """Working directory resolves outside every allowed root."""

    pass


class SpawnError(SandboxError):
    """The process could not be spawned (missing program, no permission)."""

    pass


class CommandTimeoutError(SandboxError):
    """The command was terminated after exceeding its timeout."""

    def __init__(self, command: str, timeout_ms: int):
        super().__init__(f"Command timed out after {timeout_ms}ms", command=command)
        self.timeout_ms = timeout_ms
