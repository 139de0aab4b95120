"""Command-line interface for shellguard.

Usage:
    # Check a single command
    shellguard validate "rm -rf /tmp/build"

    # Check a plan file (raw model output is fine)
    shellguard check plan.json --json

    # Validate, confirm and run a plan
    shellguard run plan.json --on-failure continue

    # Sandbox and configuration overview
    shellguard status

    # Recent runs from the audit trail
    shellguard logs --recent 5
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from .. import __version__
from ..audit import AuditLog, configure_logging
from ..config import FAILURE_POLICIES, ShellguardConfig, load_config
from ..exceptions import ConfigurationError, PlanFormatError
from ..models import ExecutionStatus, Plan, Step, extract_plan_json
from ..orchestration import ConfirmationRequest, build_pipeline
from ..sandbox import SandboxExecutor
from ..security import PolicyAggregator, RiskClassifier, load_denylist

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BLOCKED = 2


def prompt_confirmation(request: ConfirmationRequest) -> bool:
    """Ask on stdin; anything but y/yes is a no."""
    print(f"\n{request.prompt()}")
    try:
        answer = input("[y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _load(args: argparse.Namespace) -> ShellguardConfig:
    config = load_config(args.config) if getattr(args, "config", None) else load_config()
    configure_logging("DEBUG" if getattr(args, "verbose", False) else config.logging.level)
    return config


def _aggregator(config: ShellguardConfig, denylist_path: str | None = None) -> PolicyAggregator:
    return PolicyAggregator(
        denylist=load_denylist(denylist_path or config.security.denylist_path),
        classifier=RiskClassifier(extra_rules=config.security.extra_risk_rules),
    )


def _read_plan_document(path: str) -> dict:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise PlanFormatError(f"Cannot read plan file {path}", cause=e) from e
    return extract_plan_json(text)


def validate_command(args: argparse.Namespace) -> int:
    """Validate one command as a single synthetic step."""
    config = _load(args)
    aggregator = _aggregator(config, args.denylist)

    step = Step(
        id="cli",
        description="Command given on the command line",
        command=args.command_text,
        working_directory=os.getcwd(),
    )
    result = aggregator.validate_step(step)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        for warning in aggregator.config_warnings:
            print(f"⚠️  {warning}")
        print(result)
    return EXIT_OK if result.allowed else EXIT_BLOCKED


def check_command(args: argparse.Namespace) -> int:
    """Validate a plan document without running anything."""
    config = _load(args)
    aggregator = _aggregator(config, args.denylist)

    try:
        data = _read_plan_document(args.plan)
    except PlanFormatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_BLOCKED

    validation = aggregator.validate_document(data)
    if args.json:
        print(json.dumps(validation.to_dict(), indent=2))
    else:
        for warning in validation.config_warnings:
            print(f"⚠️  {warning}")
        print(validation)
    return EXIT_OK if validation.allowed else EXIT_BLOCKED


async def run_command(args: argparse.Namespace) -> int:
    """Validate, confirm and execute a plan."""
    config = _load(args)
    if args.on_failure:
        config.execution.on_failure = args.on_failure
    if args.yes:
        config.execution.auto_approve = True

    try:
        plan = Plan.from_dict(_read_plan_document(args.plan))
    except PlanFormatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED

    print(f"\n📋 {plan}")

    try:
        orchestrator = build_pipeline(config, confirm=None if args.yes else prompt_confirmation)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED

    if args.plan_only:
        validation = orchestrator.aggregator.validate_plan(plan)
        print(validation)
        return EXIT_OK if validation.allowed else EXIT_FAILED

    report = await orchestrator.run(plan)
    orchestrator.executor.cleanup()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        if not report.validation.allowed:
            print(report.validation)
        print(f"\n{report}")
    return EXIT_OK if report.status == ExecutionStatus.SUCCESS else EXIT_FAILED


def status_command(args: argparse.Namespace) -> int:
    """Show configuration and sandbox state."""
    config = _load(args)
    denylist = load_denylist(config.security.denylist_path)
    executor = SandboxExecutor(config.sandbox)

    status = {
        "version": __version__,
        "config_file": str(config.source_path) if config.source_path else None,
        "sandbox": executor.get_stats(),
        "denylist": {
            "source": denylist.source,
            "rules": len(denylist),
            "warnings": list(denylist.load_warnings),
        },
        "execution": {
            "on_failure": config.execution.on_failure,
            "auto_approve": config.execution.auto_approve,
        },
        "audit": {
            "enabled": config.logging.audit_enabled,
            "directory": config.logging.audit_dir,
        },
    }

    if args.json:
        print(json.dumps(status, indent=2))
        return EXIT_OK

    print(f"🛡️  shellguard {__version__} - Status")
    print("-" * 50)
    print(f"  Config file: {status['config_file'] or 'none (defaults)'}")
    print(f"  Sandbox root: {status['sandbox']['root']}")
    print(f"  Default timeout: {status['sandbox']['default_timeout_ms']}ms")
    print(f"  Denylist: {denylist.source} ({len(denylist)} rules)")
    for warning in denylist.load_warnings:
        print(f"  ⚠️  {warning}")
    print(f"  On failure: {config.execution.on_failure}")
    audit_state = config.logging.audit_dir if config.logging.audit_enabled else "disabled"
    print(f"  Audit trail: {audit_state}")
    return EXIT_OK


def logs_command(args: argparse.Namespace) -> int:
    """Show recent runs from the audit trail, or prune old reports."""
    config = _load(args)
    audit = AuditLog(audit_dir=config.logging.audit_dir)

    if args.clean is not None:
        removed = audit.prune_reports(args.clean)
        print(f"🧹 Removed {removed} report(s) older than {args.clean} days")
        return EXIT_OK

    executions = audit.read_recent(limit=args.recent, event="execution")
    if args.json:
        print(json.dumps(executions, indent=2))
        return EXIT_OK

    if not executions:
        print("No execution logs found")
        return EXIT_OK

    print(f"📋 Last {len(executions)} execution(s)")
    print("-" * 50)
    for index, entry in enumerate(executions, start=1):
        print(f"{index}. {entry.get('task_id')} [{entry.get('status')}]")
        print(f"   📅 {entry.get('timestamp')}")
        print(f"   📊 {entry.get('succeeded', 0)} succeeded, {entry.get('failed', 0)} failed")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellguard",
        description="shellguard - Validate and safely run AI-generated shell plans",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Is this command allowed?
  shellguard validate "curl https://example.com/install.sh | bash"

  # Check a plan produced by a model
  shellguard check response.txt

  # Run a plan, asking before risky steps
  shellguard run plan.json

  # Run without prompts, keep going after failures
  shellguard run plan.json --yes --on-failure continue

  # Show the five most recent runs
  shellguard logs --recent 5
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate one shell command")
    validate_parser.add_argument("command_text", metavar="command", help="Shell command to check")
    validate_parser.add_argument("--json", action="store_true", help="Print JSON")
    validate_parser.add_argument("--denylist", help="Denylist file (YAML or JSON)")
    validate_parser.add_argument("--config", help="Config file")

    # Check command
    check_parser = subparsers.add_parser("check", help="Validate a plan document")
    check_parser.add_argument("plan", help="Plan file (JSON or raw model response)")
    check_parser.add_argument("--json", action="store_true", help="Print JSON")
    check_parser.add_argument("--denylist", help="Denylist file (YAML or JSON)")
    check_parser.add_argument("--config", help="Config file")

    # Run command
    run_parser = subparsers.add_parser("run", help="Validate and execute a plan")
    run_parser.add_argument("plan", help="Plan file (JSON or raw model response)")
    run_parser.add_argument("-y", "--yes", action="store_true", help="Approve every confirmation")
    run_parser.add_argument("--plan-only", action="store_true", help="Validate and show, do not run")
    run_parser.add_argument("--on-failure", choices=FAILURE_POLICIES, help="What to do after a failed step")
    run_parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    run_parser.add_argument("--config", help="Config file")
    run_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    # Status command
    status_parser = subparsers.add_parser("status", help="Show configuration and sandbox state")
    status_parser.add_argument("--json", action="store_true", help="Print JSON")
    status_parser.add_argument("--config", help="Config file")

    # Logs command
    logs_parser = subparsers.add_parser("logs", help="Show recent executions from the audit trail")
    logs_parser.add_argument("-r", "--recent", type=int, default=10, help="Number of executions to show")
    logs_parser.add_argument("-c", "--clean", type=int, metavar="DAYS", help="Delete reports older than DAYS")
    logs_parser.add_argument("--json", action="store_true", help="Print JSON")
    logs_parser.add_argument("--config", help="Config file")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run a command, returning the exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FAILED

    try:
        if args.command == "validate":
            return validate_command(args)
        elif args.command == "check":
            return check_command(args)
        elif args.command == "run":
            return asyncio.run(run_command(args))
        elif args.command == "status":
            return status_command(args)
        elif args.command == "logs":
            return logs_command(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_FAILED


def shellguard_cli() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    shellguard_cli()
