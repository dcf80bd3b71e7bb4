"""Build oracle: runs the Gradle wrapper and reports whether the build passed."""

import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, Callable, Sequence

from depprune.config import BuildSettings
from depprune.models.build import BuildOutcome

logger = logging.getLogger(__name__)

LAUNCH_FAILED_EXIT_CODE = -1

_STDOUT_MARKERS = (
    "BUILD FAILED",
    "BUILD SUCCESSFUL",
    "FAILURE:",
    "ERROR:",
    "Exception:",
    "Compilation error",
)
_STDERR_MARKERS = ("error:", "Error:", "Exception:", "FAILURE:")

# One build at a time per project root
_root_locks: dict[Path, threading.Lock] = {}
_root_locks_guard = threading.Lock()


def _lock_for(project_root: Path) -> threading.Lock:
    key = project_root.resolve()
    with _root_locks_guard:
        return _root_locks.setdefault(key, threading.Lock())


def _drain(stream: IO[str], sink: list[str], echo: Callable[[str], None]) -> None:
    """Read a pipe to EOF so the child never blocks on a full buffer."""
    try:
        for line in stream:
            sink.append(line)
            echo(line.rstrip("\n"))
    finally:
        stream.close()


def _echo_stdout(line: str) -> None:
    if any(marker in line for marker in _STDOUT_MARKERS):
        logger.info("    %s", line)


def _echo_stderr(line: str) -> None:
    if any(marker in line for marker in _STDERR_MARKERS):
        logger.error("    %s", line)


class BuildOracle:
    """Runs build tasks against one project root.

    Never raises for build problems: a failed launch or a timeout is a
    failing BuildOutcome with exit code -1.
    """

    def __init__(self, project_root: Path, settings: BuildSettings | None = None) -> None:
        self.project_root = project_root
        self.settings = settings or BuildSettings()
        self.invocations = 0

    def command_for(self, tasks: Sequence[str]) -> list[str]:
        """Full command line for a task list."""
        return [*self.settings.command, *tasks, *self.settings.flags]

    def run(self, tasks: Sequence[str]) -> BuildOutcome:
        """Run the build tool with the given tasks and capture its output."""
        with _lock_for(self.project_root):
            self.invocations += 1
            return self._execute(list(tasks))

    def quick_compile_check(self, module_name: str) -> BuildOutcome:
        """Compile-only check scoped to one module."""
        tasks = [f":{module_name}:{task}" for task in self.settings.quick_check_tasks]
        return self.run(tasks)

    def validate_full_build(self) -> BuildOutcome:
        """Broad validation of the whole project."""
        return self.run(self.settings.full_build_tasks)

    def precompile(self) -> BuildOutcome:
        """Compile all modules so class files are up to date before scanning."""
        return self.run(self.settings.precompile_tasks)

    def _execute(self, tasks: list[str]) -> BuildOutcome:
        command = self.command_for(tasks)
        start = time.monotonic()
        logger.info("Executing: %s", " ".join(command))

        try:
            process = subprocess.Popen(
                command,
                cwd=self.project_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error("Build execution failed: %s", e)
            return BuildOutcome(
                succeeded=False,
                stdout="",
                stderr=f"Build execution failed: {e}",
                exit_code=LAUNCH_FAILED_EXIT_CODE,
                duration_ms=duration_ms,
                tasks=tuple(tasks),
            )

        out_lines: list[str] = []
        err_lines: list[str] = []
        readers = [
            threading.Thread(
                target=_drain, args=(process.stdout, out_lines, _echo_stdout), daemon=True
            ),
            threading.Thread(
                target=_drain, args=(process.stderr, err_lines, _echo_stderr), daemon=True
            ),
        ]
        for reader in readers:
            reader.start()

        timed_out = False
        try:
            exit_code = process.wait(timeout=self.settings.build_timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            process.kill()
            process.wait()
            exit_code = LAUNCH_FAILED_EXIT_CODE

        # Exit implies the pipes are closing; the join timeout only caps capture time
        for reader in readers:
            reader.join(self.settings.reader_timeout)
            if reader.is_alive():
                logger.debug("Output reader still running after %ss", self.settings.reader_timeout)

        duration_ms = int((time.monotonic() - start) * 1000)
        stderr = "".join(err_lines)
        if timed_out:
            stderr += f"\nBuild timed out after {self.settings.build_timeout}s"
            logger.error("Build timed out after %ss", self.settings.build_timeout)
        elif exit_code == 0:
            logger.info("Build succeeded in %dms", duration_ms)
        else:
            logger.warning("Build failed with exit code %d in %dms", exit_code, duration_ms)

        return BuildOutcome(
            succeeded=exit_code == 0,
            stdout="".join(out_lines),
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
            tasks=tuple(tasks),
        )
