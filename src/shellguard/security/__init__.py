"""Command safety checks: risk classifier, denylist and policy aggregation.

Risk Levels:
- NONE: read-only commands (ls, cat, echo)
- LOW: ordinary file moves and copies
- MEDIUM: network fetches, package installs, killing processes
- HIGH: destructive or system-level commands; always need confirmation

A denylist match blocks a step outright regardless of its risk level.
"""

from .classifier import (
    HIGH_RISK_PATTERNS,
    RISK_RULES,
    RiskAssessment,
    RiskClassifier,
    RiskRule,
)
from .denylist import (
    DEFAULT_DENYLIST,
    Denylist,
    DenylistVerdict,
    PatternRule,
    load_denylist,
)
from .policy import PolicyAggregator, suggest_alternatives

__all__ = [
    # Classifier
    "HIGH_RISK_PATTERNS",
    "RISK_RULES",
    "RiskAssessment",
    "RiskClassifier",
    "RiskRule",
    # Denylist
    "DEFAULT_DENYLIST",
    "Denylist",
    "DenylistVerdict",
    "PatternRule",
    "load_denylist",
    # Policy
    "PolicyAggregator",
    "suggest_alternatives",
]
