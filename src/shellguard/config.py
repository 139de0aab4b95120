"""Unified configuration for shellguard.

ShellguardConfig bundles a snapshot of every setting the pipeline needs:
- Sandbox root, timeouts and the synthetic environment
- Denylist location and extra risk rules
- What to do when a step fails or needs confirmation
- Logging and audit trail

Components receive the section they need at construction time; nothing
reads configuration from global state.

Example shellguard.yaml:
    sandbox:
      workdir: /tmp/shellguard-work
      timeout_ms: 30000

    security:
      denylist_path: ~/.shellguard/denylist.yaml
      extra_risk_rules:
        - pattern: "\\bterraform\\s+destroy\\b"
          level: high
          warning: "Infrastructure teardown"

    execution:
      on_failure: abort
      auto_approve: false

    logging:
      level: INFO
      audit_dir: ${HOME}/.shellguard/logs
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Default config file names to search for
DEFAULT_CONFIG_FILES = [
    "shellguard.yaml",
    "shellguard.yml",
    ".shellguard.yaml",
    ".shellguard.yml",
]

FAILURE_POLICIES = ("abort", "continue", "ask")

# (section, field) pairs checked by type in ShellguardConfig.validate()
INT_FIELDS = (
    ("sandbox", "timeout_ms"),
    ("sandbox", "kill_grace_ms"),
    ("sandbox", "cleanup_max_age_s"),
    ("logging", "max_audit_entries"),
)
STR_FIELDS = (
    ("sandbox", "workdir"),
    ("sandbox", "user"),
    ("sandbox", "locale"),
    ("execution", "on_failure"),
    ("logging", "level"),
)
OPTIONAL_STR_FIELDS = (
    ("security", "denylist_path"),
    ("logging", "audit_dir"),
)
BOOL_FIELDS = (
    ("execution", "auto_approve"),
    ("logging", "audit_enabled"),
)


def _default_workdir() -> str:
    return os.path.join(tempfile.gettempdir(), "shellguard-work")


def _default_audit_dir() -> str:
    return os.path.join(os.path.expanduser("~"), ".shellguard", "logs")


@dataclass
class SandboxConfig:
    """Configuration for the sandboxed executor."""

    workdir: str = field(default_factory=_default_workdir)
    timeout_ms: int = 30000
    kill_grace_ms: int = 2000  # between SIGTERM and SIGKILL
    cleanup_max_age_s: int = 3600
    user: str = "shellguard-user"
    locale: str = "C.UTF-8"


@dataclass
class SecurityConfig:
    """Configuration for validation."""

    denylist_path: str | None = None
    extra_risk_rules: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class ExecutionConfig:
    """Configuration for the orchestrator."""

    # What happens after a failed step that is not the last one.
    # "ask" requires an interactive confirmation callback.
    on_failure: str = "abort"
    auto_approve: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging and the audit trail."""

    level: str = "INFO"
    audit_enabled: bool = True
    audit_dir: str | None = field(default_factory=_default_audit_dir)
    max_audit_entries: int = 100


@dataclass
class ShellguardConfig:
    """Main configuration for shellguard.

    Create from environment variables:
        config = ShellguardConfig.from_env()

    Load from a YAML file (searched for when no path is given):
        config = load_config("shellguard.yaml")

    Or specify directly:
        config = ShellguardConfig(
            sandbox=SandboxConfig(timeout_ms=5000),
            execution=ExecutionConfig(on_failure="continue"),
        )
    """

    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source_path: Path | None = None

    def validate(self) -> "ShellguardConfig":
        """Check value types and ranges.

        Raises:
            ConfigurationError: If a value has the wrong type or is out of range
        """
        self._check_types()
        if self.sandbox.timeout_ms <= 0:
            raise ConfigurationError("sandbox.timeout_ms must be positive")
        if self.sandbox.kill_grace_ms < 0:
            raise ConfigurationError("sandbox.kill_grace_ms must not be negative")
        if self.sandbox.cleanup_max_age_s < 0:
            raise ConfigurationError("sandbox.cleanup_max_age_s must not be negative")
        if self.execution.on_failure not in FAILURE_POLICIES:
            raise ConfigurationError(
                f"execution.on_failure must be one of {', '.join(FAILURE_POLICIES)}, "
                f"got '{self.execution.on_failure}'"
            )
        if self.logging.max_audit_entries <= 0:
            raise ConfigurationError("logging.max_audit_entries must be positive")
        return self

    def _check_types(self) -> None:
        for section, name in INT_FIELDS:
            value = getattr(getattr(self, section), name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigurationError(f"{section}.{name} must be an integer, got {value!r}")
        for section, name in STR_FIELDS:
            value = getattr(getattr(self, section), name)
            if not isinstance(value, str):
                raise ConfigurationError(f"{section}.{name} must be a string, got {value!r}")
        for section, name in OPTIONAL_STR_FIELDS:
            value = getattr(getattr(self, section), name)
            if value is not None and not isinstance(value, str):
                raise ConfigurationError(f"{section}.{name} must be a string, got {value!r}")
        for section, name in BOOL_FIELDS:
            value = getattr(getattr(self, section), name)
            if not isinstance(value, bool):
                raise ConfigurationError(f"{section}.{name} must be true or false, got {value!r}")
        if not isinstance(self.security.extra_risk_rules, list):
            raise ConfigurationError("security.extra_risk_rules must be a list")

    @classmethod
    def from_env(cls) -> "ShellguardConfig":
        """Load configuration from environment variables.

        Environment variables:
        - SHELLGUARD_WORKDIR: Sandbox root directory
        - SHELLGUARD_TIMEOUT_MS: Default per-step timeout
        - SHELLGUARD_KILL_GRACE_MS: Grace period between SIGTERM and SIGKILL
        - SHELLGUARD_DENYLIST: Path to a denylist YAML/JSON file
        - SHELLGUARD_ON_FAILURE: abort, continue or ask
        - SHELLGUARD_AUTO_APPROVE: true/false
        - SHELLGUARD_LOG_LEVEL: Logging level name
        - SHELLGUARD_AUDIT_ENABLED: true/false
        - SHELLGUARD_AUDIT_DIR: Directory for audit files
        """
        try:
            return cls(
                sandbox=SandboxConfig(
                    workdir=os.getenv("SHELLGUARD_WORKDIR") or _default_workdir(),
                    timeout_ms=int(os.getenv("SHELLGUARD_TIMEOUT_MS", "30000")),
                    kill_grace_ms=int(os.getenv("SHELLGUARD_KILL_GRACE_MS", "2000")),
                ),
                security=SecurityConfig(
                    denylist_path=os.getenv("SHELLGUARD_DENYLIST"),
                ),
                execution=ExecutionConfig(
                    on_failure=os.getenv("SHELLGUARD_ON_FAILURE", "abort").lower(),
                    auto_approve=os.getenv("SHELLGUARD_AUTO_APPROVE", "false").lower() == "true",
                ),
                logging=LoggingConfig(
                    level=os.getenv("SHELLGUARD_LOG_LEVEL", "INFO"),
                    audit_enabled=os.getenv("SHELLGUARD_AUDIT_ENABLED", "true").lower() == "true",
                    audit_dir=os.getenv("SHELLGUARD_AUDIT_DIR") or _default_audit_dir(),
                ),
            ).validate()
        except ValueError as e:
            raise ConfigurationError("Invalid numeric environment setting", cause=e) from e

    @classmethod
    def from_dict(cls, raw: dict[str, Any], source_path: Path | None = None) -> "ShellguardConfig":
        """Build configuration from a parsed YAML mapping.

        Unknown keys are ignored with a warning. ``${VAR}`` references are
        expanded.

        Raises:
            ConfigurationError: If a section has the wrong type or a value
                is out of range
        """
        raw = _expand_env_vars(raw or {})
        if not isinstance(raw, dict):
            raise ConfigurationError("Configuration must be a mapping")

        try:
            config = cls(
                sandbox=_build_section(SandboxConfig, raw.get("sandbox"), "sandbox"),
                security=_build_section(SecurityConfig, raw.get("security"), "security"),
                execution=_build_section(ExecutionConfig, raw.get("execution"), "execution"),
                logging=_build_section(LoggingConfig, raw.get("logging"), "logging"),
                source_path=source_path,
            )
        except TypeError as e:
            raise ConfigurationError("Invalid configuration value", cause=e) from e

        _coerce_int_fields(config)
        config._check_types()

        if config.security.denylist_path:
            config.security.denylist_path = os.path.expanduser(config.security.denylist_path)
        if config.logging.audit_dir:
            config.logging.audit_dir = os.path.expanduser(config.logging.audit_dir)
        config.execution.on_failure = config.execution.on_failure.lower()
        return config.validate()

    def to_dict(self) -> dict[str, Any]:
        return {
            "sandbox": _section_dict(self.sandbox),
            "security": _section_dict(self.security),
            "execution": _section_dict(self.execution),
            "logging": _section_dict(self.logging),
        }


def load_config(path: Path | str | None = None) -> ShellguardConfig:
    """Load configuration from a YAML file.

    If no path is provided, searches for default config files in the
    current directory and parent directories. A missing file yields the
    defaults; an unreadable or unparsable one yields the defaults with a
    logged warning.

    Raises:
        ConfigurationError: If the file parses but holds invalid values

    Example:
        # Load from explicit path
        config = load_config("my-config.yaml")

        # Auto-discover config file
        config = load_config()
    """
    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            logger.warning(f"Config file not found: {path}")
            return ShellguardConfig()
    else:
        config_path = _find_config_file()
        if config_path is None:
            logger.debug("No config file found, using defaults")
            return ShellguardConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config file {config_path}: {e}")
        return ShellguardConfig()

    return ShellguardConfig.from_dict(raw, source_path=config_path)


def _find_config_file() -> Path | None:
    """Search for a config file in current and parent directories.

    Returns:
        Path to config file if found, None otherwise.
    """
    current = Path.cwd()

    # Search up to 5 levels up
    for _ in range(5):
        for filename in DEFAULT_CONFIG_FILES:
            config_path = current / filename
            if config_path.exists():
                logger.debug(f"Found config file: {config_path}")
                return config_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _build_section(section_cls: type, data: Any, name: str) -> Any:
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    for key in data:
        if key not in known:
            logger.warning(f"Ignoring unknown config key '{name}.{key}'")
    return section_cls(**{k: v for k, v in data.items() if k in known})


def _coerce_int_fields(config: ShellguardConfig) -> None:
    """Turn numeric strings (typically from ${VAR} expansion) into ints."""
    for section, name in INT_FIELDS:
        target = getattr(config, section)
        value = getattr(target, name)
        if not isinstance(value, str):
            continue
        try:
            setattr(target, name, int(value.strip()))
        except ValueError as e:
            raise ConfigurationError(
                f"{section}.{name} must be an integer, got '{value}'", cause=e
            ) from e


def _section_dict(section: Any) -> dict[str, Any]:
    return {f.name: getattr(section, f.name) for f in fields(section)}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in config values.

    Supports ${VAR} and $VAR syntax.
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        return os.path.expandvars(data)
    else:
        return data
