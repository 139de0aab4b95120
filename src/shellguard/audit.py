"""Logging setup and the audit trail.

Every validation verdict and execution report can be recorded. The last
``max_entries`` entries stay in memory; when an audit directory is set,
entries are also appended to ``audit.jsonl`` and each execution report is
written to ``<task_id>.json``. Disk problems are logged and otherwise
ignored so auditing can never break a run.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import ExecutionReport, Plan, PlanValidation

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
AUDIT_FILE = "audit.jsonl"


def configure_logging(level: str = "INFO") -> None:
    """Send shellguard logs to stderr at the given level."""
    log_level = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
    logging.getLogger("shellguard").setLevel(log_level)


class AuditLog:
    """Bounded in-memory audit trail with optional file persistence.

    Example:
        audit = AuditLog(audit_dir="logs")
        audit.record_validation(plan, validation)
        for entry in audit.entries(limit=10):
            print(entry["event"], entry["allowed"])
    """

    def __init__(
        self,
        enabled: bool = True,
        audit_dir: Path | str | None = None,
        max_entries: int = 100,
    ) -> None:
        self.enabled = enabled
        self.audit_dir = Path(audit_dir) if audit_dir else None
        self.max_entries = max_entries
        self._entries: list[dict[str, Any]] = []

    def record_validation(self, plan: Plan, validation: PlanValidation) -> dict[str, Any] | None:
        """Record the verdict for a plan."""
        entry = {
            "event": "validation",
            "timestamp": datetime.now().isoformat(),
            "plan_id": plan.id,
            "intent": plan.intent,
            "allowed": validation.allowed,
            "risk_level": validation.risk_level.value,
            "blocked_steps": [r.step_id for r in validation.blocked_results()],
            "errors": list(validation.errors),
        }
        return self._append(entry)

    def record_execution(self, report: ExecutionReport) -> dict[str, Any] | None:
        """Record the outcome of a run and write the full report to disk."""
        entry = {
            "event": "execution",
            "timestamp": datetime.now().isoformat(),
            "task_id": report.task_id,
            "plan_id": report.plan_id,
            "status": report.status.value,
            "succeeded": report.succeeded,
            "failed": report.failed,
        }
        if self._append(entry) is None:
            return None
        self._write_report(report)
        return entry

    def entries(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Most recent entries, oldest first."""
        if limit is None:
            return list(self._entries)
        if limit <= 0:
            return []
        return list(self._entries[-limit:])

    def read_recent(self, limit: int = 10, event: str | None = None) -> list[dict[str, Any]]:
        """Most recent entries from ``audit.jsonl``, oldest first.

        Unlike ``entries()`` this reads what earlier runs wrote to disk.
        Corrupt lines are skipped.

        Args:
            limit: Maximum number of entries to return
            event: Only return entries of this kind ("validation" or "execution")
        """
        if self.audit_dir is None or limit <= 0:
            return []
        path = self.audit_dir / AUDIT_FILE
        if not path.exists():
            return []

        found: list[dict[str, Any]] = []
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                for line_number, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entry = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping corrupt audit line {line_number} in {path}")
                        continue
                    if not isinstance(entry, dict):
                        continue
                    if event is None or entry.get("event") == event:
                        found.append(entry)
        except OSError as e:
            logger.warning(f"Could not read audit log {path}: {e}")
            return []
        return found[-limit:]

    def prune_reports(self, max_age_days: int) -> int:
        """Delete per-task report files older than ``max_age_days``.

        ``audit.jsonl`` itself is kept.

        Returns:
            Number of report files removed
        """
        if self.audit_dir is None or not self.audit_dir.is_dir():
            return 0

        cutoff = time.time() - max_age_days * 86400
        removed = 0
        for path in self.audit_dir.glob("*.json"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning(f"Failed to remove old report {path}: {e}")
        if removed:
            logger.info(f"Removed {removed} old execution reports from {self.audit_dir}")
        return removed

    def _append(self, entry: dict[str, Any]) -> dict[str, Any] | None:
        if not self.enabled:
            return None

        self._entries.append(entry)
        if len(self._entries) > self.max_entries:
            self._entries = self._entries[-self.max_entries:]

        logger.info(f"Audit: {entry['event']} {entry.get('task_id') or entry.get('plan_id')}")

        if self.audit_dir is not None:
            try:
                self.audit_dir.mkdir(parents=True, exist_ok=True)
                with open(self.audit_dir / AUDIT_FILE, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry) + "\n")
            except OSError as e:
                logger.warning(f"Could not write audit entry to {self.audit_dir}: {e}")
        return entry

    def _write_report(self, report: ExecutionReport) -> None:
        if self.audit_dir is None:
            return
        try:
            self.audit_dir.mkdir(parents=True, exist_ok=True)
            path = self.audit_dir / f"{report.task_id}.json"
            path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
            logger.debug(f"Wrote execution report to {path}")
        except OSError as e:
            logger.warning(f"Could not write execution report {report.task_id}: {e}")
