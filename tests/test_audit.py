"""Tests for the audit log."""

import json
import logging
import os
import time

from shellguard.audit import AuditLog, configure_logging
from shellguard.models import (
    ExecutionReport,
    ExecutionResult,
    ExecutionStatus,
    PlanValidation,
    ValidationResult,
)


def _validation(allowed=True):
    result = ValidationResult(step_id="step-1", command="ls")
    if not allowed:
        result.add_blocked_reason("nope")
    return PlanValidation.from_results([result])


def _report(task_id="task-1"):
    return ExecutionReport(
        task_id=task_id,
        plan_id="plan-1",
        status=ExecutionStatus.SUCCESS,
        validation=_validation(),
        results=[ExecutionResult("step-1", "ls", 0, stdout="a b", success=True)],
    )


class TestAuditLog:
    """Tests for AuditLog."""

    def test_records_in_memory(self, plan_factory):
        audit = AuditLog()
        plan = plan_factory("ls")
        entry = audit.record_validation(plan, _validation(allowed=False))

        assert entry["event"] == "validation"
        assert entry["plan_id"] == plan.id
        assert entry["allowed"] is False
        assert entry["blocked_steps"] == ["step-1"]
        assert audit.entries() == [entry]

    def test_ring_keeps_last_entries(self, plan_factory):
        audit = AuditLog(max_entries=3)
        plan = plan_factory("ls")
        for _ in range(5):
            audit.record_validation(plan, _validation())
        assert len(audit.entries()) == 3

    def test_entries_limit(self):
        audit = AuditLog()
        for i in range(4):
            audit.record_execution(_report(f"task-{i}"))
        assert [e["task_id"] for e in audit.entries(limit=2)] == ["task-2", "task-3"]
        assert audit.entries(limit=0) == []

    def test_disabled(self, plan_factory):
        audit = AuditLog(enabled=False)
        assert audit.record_validation(plan_factory("ls"), _validation()) is None
        assert audit.record_execution(_report()) is None
        assert audit.entries() == []

    def test_writes_files(self, tmp_path):
        audit = AuditLog(audit_dir=tmp_path / "logs")
        audit.record_execution(_report("task-files"))

        lines = (tmp_path / "logs" / "audit.jsonl").read_text().splitlines()
        assert json.loads(lines[0])["task_id"] == "task-files"

        report = json.loads((tmp_path / "logs" / "task-files.json").read_text())
        assert report["results"][0]["stdout"] == "a b"

    def test_file_errors_are_logged_not_raised(self, tmp_path, caplog):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        audit = AuditLog(audit_dir=blocker / "logs")

        with caplog.at_level(logging.WARNING, logger="shellguard.audit"):
            entry = audit.record_execution(_report())

        assert entry is not None
        assert len(audit.entries()) == 1
        assert "Could not write" in caplog.text


class TestAuditFiles:
    """Reading and pruning what earlier runs wrote."""

    def test_read_recent_survives_restart(self, tmp_path, plan_factory):
        writer = AuditLog(audit_dir=tmp_path)
        writer.record_validation(plan_factory("ls"), _validation())
        for i in range(3):
            writer.record_execution(_report(f"task-{i}"))

        reader = AuditLog(audit_dir=tmp_path)
        assert reader.entries() == []
        recent = reader.read_recent(limit=2, event="execution")
        assert [e["task_id"] for e in recent] == ["task-1", "task-2"]
        assert len(reader.read_recent(limit=10)) == 4

    def test_read_recent_skips_corrupt_lines(self, tmp_path):
        (tmp_path / "audit.jsonl").write_text(
            '{"event": "execution", "task_id": "ok"}\nnot json\n[1, 2]\n\n'
        )
        entries = AuditLog(audit_dir=tmp_path).read_recent()
        assert [e["task_id"] for e in entries] == ["ok"]

    def test_read_recent_without_files(self, tmp_path):
        assert AuditLog(audit_dir=tmp_path / "missing").read_recent() == []
        assert AuditLog().read_recent() == []

    def test_prune_reports_keeps_audit_trail(self, tmp_path):
        audit = AuditLog(audit_dir=tmp_path)
        audit.record_execution(_report("task-old"))
        audit.record_execution(_report("task-new"))
        old = time.time() - 10 * 86400
        os.utime(tmp_path / "task-old.json", (old, old))

        assert audit.prune_reports(7) == 1
        assert not (tmp_path / "task-old.json").exists()
        assert (tmp_path / "task-new.json").exists()
        assert (tmp_path / "audit.jsonl").exists()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_sets_package_level(self):
        configure_logging("debug")
        assert logging.getLogger("shellguard").level == logging.DEBUG
        configure_logging("WARNING")
        assert logging.getLogger("shellguard").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        configure_logging("chatty")
        assert logging.getLogger("shellguard").level == logging.INFO

    def test_non_string_level_falls_back_to_info(self):
        configure_logging(10)
        assert logging.getLogger("shellguard").level == logging.INFO
