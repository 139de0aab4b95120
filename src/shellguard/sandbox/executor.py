"""Sandboxed execution of validated steps.

The executor runs one step at a time as a child process with:
- A working directory confined to the sandbox root, the process cwd, the
  user's home or the system temp directory
- No shell on POSIX: the command is split with shlex and exec'd directly
- A minimal synthetic environment; nothing is inherited from the caller
  except PATH
- A wall-clock timeout that terminates the whole process group

Every problem is reported as a failed ExecutionResult. Nothing raised
inside the sandbox escapes ``execute_step``.

Example:
    executor = SandboxExecutor(SandboxConfig(timeout_ms=5000))
    result = await executor.execute_step(step)
    if result.timed_out:
        print(result.error)
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
import signal
import sys
import tempfile
import time
from pathlib import Path
from typing import Any

from ..config import SandboxConfig
from ..exceptions import (
    CommandTimeoutError,
    ContainmentError,
    SandboxError,
    SpawnError,
)
from ..models import ExecutionResult, Step

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

DEFAULT_PATH = (
    r"C:\Windows\system32;C:\Windows"
    if IS_WINDOWS
    else "/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"
)

SANDBOX_SUBDIRS = ("tmp", "logs", "workspace", "backup")

# How long to wait for the pipes to drain after the process is gone
DRAIN_TIMEOUT_S = 1.0


class SandboxExecutor:
    """Runs steps inside the sandbox.

    Attributes:
        config: Sandbox settings snapshot
        root: Resolved sandbox root directory
        scratch_dir: Per-sandbox temp directory (TMPDIR for children)
    """

    def __init__(self, config: SandboxConfig | None = None) -> None:
        self.config = config or SandboxConfig()
        self.root = Path(os.path.realpath(os.path.expanduser(self.config.workdir)))
        self.scratch_dir = self.root / "tmp"
        self._initialized = False

    # =========================================================================
    # Setup and housekeeping
    # =========================================================================

    def initialize(self) -> None:
        """Create the sandbox root and its subdirectories.

        Safe to call more than once.

        Raises:
            SandboxError: If a directory cannot be created
        """
        if self._initialized:
            return
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            for name in SANDBOX_SUBDIRS:
                (self.root / name).mkdir(exist_ok=True)
        except OSError as e:
            raise SandboxError(
                f"Failed to initialize sandbox at {self.root}",
                working_directory=str(self.root),
                cause=e,
            ) from e
        self._initialized = True
        logger.info(f"Sandbox initialized at {self.root}")

    def cleanup(self) -> int:
        """Delete scratch entries older than ``cleanup_max_age_s``.

        Best effort: failures are logged and skipped.

        Returns:
            Number of entries removed
        """
        if not self.scratch_dir.is_dir():
            return 0

        cutoff = time.time() - self.config.cleanup_max_age_s
        try:
            entries = list(self.scratch_dir.iterdir())
        except OSError as e:
            logger.warning(f"Cannot list sandbox scratch dir {self.scratch_dir}: {e}")
            return 0

        removed = 0
        for entry in entries:
            try:
                if entry.lstat().st_mtime >= cutoff:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except OSError as e:
                logger.warning(f"Failed to clean up {entry}: {e}")

        if removed:
            logger.info(f"Removed {removed} stale entries from {self.scratch_dir}")
        return removed

    def get_stats(self) -> dict[str, Any]:
        return {
            "root": str(self.root),
            "scratch_dir": str(self.scratch_dir),
            "default_timeout_ms": self.config.timeout_ms,
            "initialized": self._initialized,
        }

    # =========================================================================
    # Containment and environment
    # =========================================================================

    def allowed_roots(self) -> list[Path]:
        """Directories a working directory may live under."""
        roots = [
            self.root,
            Path(os.path.realpath(os.getcwd())),
            Path(os.path.realpath(Path.home())),
            Path(os.path.realpath(tempfile.gettempdir())),
        ]
        unique: list[Path] = []
        for root in roots:
            if root not in unique:
                unique.append(root)
        return unique

    def is_path_allowed(self, path: Path | str) -> bool:
        """Whether ``path`` resolves inside one of the allowed roots.

        Symlinks are resolved first, so a link pointing outside is refused.
        """
        resolved = Path(os.path.realpath(os.path.expanduser(str(path))))
        return any(resolved == root or resolved.is_relative_to(root) for root in self.allowed_roots())

    def build_environment(self) -> dict[str, str]:
        """The complete environment handed to child processes."""
        env = {
            "PATH": os.environ.get("PATH") or DEFAULT_PATH,
            "HOME": str(self.root),
            "TMPDIR": str(self.scratch_dir),
            "USER": self.config.user,
            "LOGNAME": self.config.user,
            "LANG": self.config.locale,
            "LC_ALL": self.config.locale,
            "SHELLGUARD_SANDBOX": "1",
        }
        if IS_WINDOWS:
            env["USERPROFILE"] = str(self.root)
            env["TEMP"] = str(self.scratch_dir)
            env["TMP"] = str(self.scratch_dir)
            env["SYSTEMROOT"] = os.environ.get("SYSTEMROOT", r"C:\Windows")
        return env

    def _prepare_workdir(self, workdir: str) -> Path:
        if not self.is_path_allowed(workdir):
            raise ContainmentError(
                f"Working directory not allowed: {workdir}",
                working_directory=workdir,
            )

        resolved = Path(os.path.realpath(os.path.expanduser(workdir)))
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SandboxError(
                f"Cannot create working directory: {workdir}",
                working_directory=workdir,
                cause=e,
            ) from e

        if not os.access(resolved, os.R_OK | os.W_OK):
            raise SandboxError(
                f"No read/write access to working directory: {workdir}",
                working_directory=workdir,
            )
        return resolved

    @staticmethod
    def split_command(command: str) -> list[str]:
        """Split a command into program and arguments using POSIX rules.

        Raises:
            SandboxError: If the command is empty or has unbalanced quotes
        """
        try:
            argv = shlex.split(command or "", posix=True)
        except ValueError as e:
            raise SandboxError("Invalid command format", command=command, cause=e) from e
        if not argv:
            raise SandboxError("Invalid command format", command=command)
        return argv

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute_step(self, step: Step) -> ExecutionResult:
        """Run one step and report what happened.

        Args:
            step: The step to run. Validation is the caller's job.

        Returns:
            ExecutionResult; ``success`` is True only for exit code 0
        """
        start_time = time.monotonic()
        workdir = step.working_directory or str(self.root)

        try:
            self.initialize()
            cwd = self._prepare_workdir(workdir)
            argv = self.split_command(step.command)
            return await self._run(step, argv, cwd, start_time)
        except SandboxError as e:
            logger.warning(f"Step {step.id} not executed: {e}")
            return ExecutionResult.failure(
                step.id,
                step.command,
                str(e),
                working_directory=workdir,
                duration_ms=_elapsed_ms(start_time),
            )
        except Exception as e:
            logger.error(f"Unexpected sandbox failure for step {step.id}: {e}")
            return ExecutionResult.failure(
                step.id,
                step.command,
                f"Execution failed: {e}",
                working_directory=workdir,
                duration_ms=_elapsed_ms(start_time),
            )

    async def _run(
        self,
        step: Step,
        argv: list[str],
        cwd: Path,
        start_time: float,
    ) -> ExecutionResult:
        timeout_ms = step.timeout_ms or self.config.timeout_ms
        proc = await self._spawn(step.command, argv, cwd)
        logger.debug(f"Started step {step.id} (pid {proc.pid}): {argv[0]}")

        stdout_task = asyncio.ensure_future(proc.stdout.read())
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        wait_task = asyncio.ensure_future(proc.wait())
        tasks = {stdout_task, stderr_task, wait_task}

        _, pending = await asyncio.wait(tasks, timeout=timeout_ms / 1000)

        timed_out = False
        if pending:
            # Only a timeout if the main process was still running when signalled
            still_running = not wait_task.done()
            delivered = await self._terminate(proc, wait_task)
            timed_out = delivered and still_running
            _, stuck = await asyncio.wait(pending, timeout=DRAIN_TIMEOUT_S)
            for task in stuck:
                task.cancel()

        if not wait_task.done():
            await wait_task

        stdout = _decode(stdout_task)
        stderr = _decode(stderr_task)
        duration_ms = _elapsed_ms(start_time)

        if timed_out:
            error = CommandTimeoutError(step.command, timeout_ms)
            logger.warning(f"Step {step.id} {error}")
            return ExecutionResult.failure(
                step.id,
                step.command,
                str(error),
                working_directory=str(cwd),
                duration_ms=duration_ms,
                timed_out=True,
                stdout=stdout,
                stderr=stderr or str(error),
            )

        exit_code = proc.returncode if proc.returncode is not None else -1
        logger.info(f"Step {step.id} exited with {exit_code} after {duration_ms}ms")
        return ExecutionResult(
            step_id=step.id,
            command=step.command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_ms=duration_ms,
            working_directory=str(cwd),
            success=exit_code == 0,
        )

    async def _spawn(self, command: str, argv: list[str], cwd: Path) -> asyncio.subprocess.Process:
        env = self.build_environment()
        try:
            if IS_WINDOWS:
                return await asyncio.create_subprocess_shell(
                    command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=str(cwd),
                    env=env,
                )
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnError(
                f"Failed to start command: {e}",
                command=command,
                working_directory=str(cwd),
                cause=e,
            ) from e

    async def _terminate(self, proc: asyncio.subprocess.Process, wait_task: asyncio.Future) -> bool:
        """SIGTERM the process group, then SIGKILL after the grace period.

        Returns:
            True if the termination signal was delivered
        """
        try:
            self._send_signal(proc, force=False)
        except ProcessLookupError:
            return False

        try:
            await asyncio.wait_for(asyncio.shield(wait_task), timeout=self.config.kill_grace_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning(f"Process {proc.pid} ignored SIGTERM, sending SIGKILL")

        try:
            # Also reaps children that outlived the main process
            self._send_signal(proc, force=True)
        except ProcessLookupError:
            pass
        return True

    @staticmethod
    def _send_signal(proc: asyncio.subprocess.Process, force: bool) -> None:
        if IS_WINDOWS:
            if force:
                proc.kill()
            else:
                proc.terminate()
            return
        os.killpg(proc.pid, signal.SIGKILL if force else signal.SIGTERM)


def _decode(task: asyncio.Future) -> str:
    if not task.done() or task.cancelled() or task.exception() is not None:
        return ""
    return task.result().decode("utf-8", errors="replace").strip()


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
