"""Tests for the build oracle, using the running interpreter as the build tool."""

import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from depprune.config import BuildSettings
from depprune.removal.oracle import LAUNCH_FAILED_EXIT_CODE, BuildOracle


def python_build(script: str, **overrides) -> BuildSettings:
    """Settings that run ``script`` with the task names as arguments."""
    values = {
        "command": (sys.executable, "-c", script),
        "flags": ("--quiet",),
        "quick_check_tasks": ("assembleDebug", "compileDebugUnitTestKotlin"),
        "full_build_tasks": ("assembleDebug", "testDebugUnitTest"),
        "precompile_tasks": ("compileDebugSources",),
    }
    values.update(overrides)
    return BuildSettings(**values)


ECHO_ARGS = "import sys; print(' '.join(sys.argv[1:]))"


class TestCommandLine:
    """Tests for how tasks are turned into a command."""

    def test_default_command(self, tmp_path: Path) -> None:
        oracle = BuildOracle(tmp_path)
        assert oracle.command_for(["assembleDebug"]) == [
            "./gradlew",
            "assembleDebug",
            "--quiet",
            "--no-configuration-cache",
        ]

    def test_quick_check_is_module_scoped(self, tmp_path: Path) -> None:
        oracle = BuildOracle(tmp_path, python_build(ECHO_ARGS))

        outcome = oracle.quick_compile_check("library:core")

        assert outcome.succeeded
        assert outcome.stdout.strip() == (
            ":library:core:assembleDebug :library:core:compileDebugUnitTestKotlin --quiet"
        )
        assert outcome.tasks == (
            ":library:core:assembleDebug",
            ":library:core:compileDebugUnitTestKotlin",
        )

    def test_full_build_tasks(self, tmp_path: Path) -> None:
        oracle = BuildOracle(tmp_path, python_build(ECHO_ARGS))

        outcome = oracle.validate_full_build()

        assert outcome.stdout.strip() == "assembleDebug testDebugUnitTest --quiet"

    def test_precompile_tasks(self, tmp_path: Path) -> None:
        oracle = BuildOracle(tmp_path, python_build(ECHO_ARGS))
        assert oracle.precompile().stdout.strip() == "compileDebugSources --quiet"

    def test_runs_in_project_root(self, tmp_path: Path) -> None:
        oracle = BuildOracle(tmp_path, python_build("import os; print(os.getcwd())"))
        outcome = oracle.run([])
        assert Path(outcome.stdout.strip()).resolve() == tmp_path.resolve()

    def test_counts_invocations(self, tmp_path: Path) -> None:
        oracle = BuildOracle(tmp_path, python_build("pass"))
        oracle.run([])
        oracle.run([])
        assert oracle.invocations == 2


class TestOutcomes:
    """Tests for success, failure and capture."""

    def test_nonzero_exit_fails(self, tmp_path: Path) -> None:
        script = "import sys; sys.stderr.write('e: Unresolved reference: Repo\\n'); sys.exit(3)"
        oracle = BuildOracle(tmp_path, python_build(script))

        outcome = oracle.run([])

        assert not outcome.succeeded
        assert outcome.exit_code == 3
        assert "Unresolved reference" in outcome.stderr
        assert outcome.error_preview().startswith("e: Unresolved reference")

    def test_large_output_on_both_streams(self, tmp_path: Path) -> None:
        script = (
            "import sys\n"
            "for i in range(20000):\n"
            "    sys.stdout.write('out %d %s\\n' % (i, 'x' * 80))\n"
            "    sys.stderr.write('err %d %s\\n' % (i, 'y' * 80))\n"
        )
        oracle = BuildOracle(tmp_path, python_build(script))

        outcome = oracle.run([])

        assert outcome.succeeded
        assert outcome.stdout.count("\n") == 20000
        assert outcome.stderr.count("\n") == 20000
        assert outcome.stdout.splitlines()[-1].startswith("out 19999")

    def test_launch_failure(self, tmp_path: Path) -> None:
        settings = BuildSettings(command=(str(tmp_path / "missing-gradlew"),))
        oracle = BuildOracle(tmp_path, settings)

        outcome = oracle.run(["assembleDebug"])

        assert not outcome.succeeded
        assert outcome.exit_code == LAUNCH_FAILED_EXIT_CODE
        assert outcome.stderr.startswith("Build execution failed")

    def test_timeout_kills_the_build(self, tmp_path: Path) -> None:
        settings = python_build("import time; time.sleep(30)", build_timeout=0.5)
        oracle = BuildOracle(tmp_path, settings)

        outcome = oracle.run([])

        assert not outcome.succeeded
        assert outcome.exit_code == LAUNCH_FAILED_EXIT_CODE
        assert "timed out" in outcome.stderr
        assert outcome.duration_ms < 30000

    def test_error_preview_is_truncated(self, tmp_path: Path) -> None:
        script = "import sys; sys.stderr.write('z' * 500); sys.exit(1)"
        outcome = BuildOracle(tmp_path, python_build(script)).run([])

        assert outcome.error_preview() == "z" * 200 + "..."


class TestConcurrency:
    """Tests for builds that overlap in time or outlive their pipes."""

    def test_builds_on_one_root_do_not_overlap(self, tmp_path: Path) -> None:
        script = "import time; s = time.time(); time.sleep(0.5); print(s, time.time())"
        oracles = [BuildOracle(tmp_path, python_build(script)) for _ in range(2)]

        with ThreadPoolExecutor(max_workers=2) as executor:
            outcomes = list(executor.map(lambda oracle: oracle.run([]), oracles))

        assert all(outcome.succeeded for outcome in outcomes)
        spans = sorted(tuple(map(float, o.stdout.split())) for o in outcomes)
        assert spans[1][0] >= spans[0][1]

    def test_lingering_grandchild_does_not_fail_the_build(self, tmp_path: Path) -> None:
        script = (
            "import subprocess, sys\n"
            "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(5)'])\n"
            "print('done')\n"
        )
        oracle = BuildOracle(tmp_path, python_build(script, reader_timeout=0.5))

        outcome = oracle.run([])

        assert outcome.succeeded
        assert outcome.exit_code == 0
        assert outcome.duration_ms < 4000
