"""Tests for validated dependency removal."""

from functools import partial
from pathlib import Path

import pytest

from classfiles import make_module
from depprune.analysis.declarations import parse_dependencies
from depprune.models.build import BuildOutcome
from depprune.models.cleanup import AttemptState, RemovalStrategy
from depprune.models.module import Dependency, DependencyKind, Module
from depprune.paths import find_build_file
from depprune.removal.editor import BuildFileEditor
from depprune.removal.engine import (
    REASON_BUILD_FAILED,
    REASON_DRY_RUN,
    REASON_NO_BUILD_FILE,
    REASON_NOT_ATTEMPTED,
    REASON_REMOVE_FAILED,
    REASON_REMOVED,
    REASON_REMOVED_BATCH,
    REASON_RESTORE_FAILED,
    RemovalEngine,
    unused_by_module,
)


class FakeOracle:
    """Passes a module's build only while its required dependencies are declared."""

    def __init__(self, project_root: Path, required: dict[str, set[str]], full_build_ok: bool = True):
        self.project_root = project_root
        self.required = required
        self.full_build_ok = full_build_ok
        self.quick_checks: list[str] = []
        self.full_builds = 0

    def _outcome(self, succeeded: bool) -> BuildOutcome:
        return BuildOutcome(
            succeeded=succeeded,
            stdout="",
            stderr="" if succeeded else "e: Unresolved reference",
            exit_code=0 if succeeded else 1,
            duration_ms=1,
        )

    def quick_compile_check(self, module_name: str) -> BuildOutcome:
        self.quick_checks.append(module_name)
        build_file = find_build_file(self.project_root, module_name)
        declared = {d.name for d in parse_dependencies(build_file.read_text())}
        return self._outcome(self.required.get(module_name, set()) <= declared)

    def validate_full_build(self) -> BuildOutcome:
        self.full_builds += 1
        return self._outcome(self.full_build_ok)


class FlakyRestoreEditor(BuildFileEditor):
    """Fails the n-th restore, leaving the edited file and its backup in place."""

    def __init__(self, build_file: Path, fail_on: int = 1) -> None:
        super().__init__(build_file)
        self.fail_on = fail_on
        self.restores = 0

    def restore_from_backup(self) -> bool:
        self.restores += 1
        if self.restores == self.fail_on:
            return False
        return super().restore_from_backup()


def impl(name: str) -> Dependency:
    return Dependency(name, DependencyKind.IMPLEMENTATION)


def build_text(names: list[str]) -> str:
    lines = "".join(f'    implementation(project(":{name}"))\n' for name in names)
    return f"dependencies {{\n{lines}}}\n"


def removed_names(records) -> set[str]:
    return {r.dependency.name for r in records if r.removed}


FIVE = ["a", "b", "c", "d", "e"]


class TestSequentialRemoval:
    """Tests for one-at-a-time removal."""

    def test_removes_unneeded_and_restores_needed(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a", "b"]))
        oracle = FakeOracle(tmp_path, {"app": {"b"}})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl("a"), impl("b")]})

        assert removed_names(report.records) == {"a"}
        kept = [r for r in report.records if not r.removed]
        assert kept[0].reason == REASON_BUILD_FAILED
        assert kept[0].state == AttemptState.ROLLED_BACK
        assert report.records[0].reason == REASON_REMOVED
        assert report.records[0].state == AttemptState.CONFIRMED
        assert report.records[0].build_confirmed
        assert 'project(":b")' in (tmp_path / "app/build.gradle.kts").read_text()
        assert len(oracle.quick_checks) == 2

    def test_no_backup_left_behind(self, tmp_path: Path) -> None:
        module_dir = make_module(tmp_path, "app", build_text(["a", "b"]))
        oracle = FakeOracle(tmp_path, {"app": {"b"}})

        RemovalEngine(tmp_path, oracle).run({"app": [impl("a"), impl("b")]})

        assert list(module_dir.glob("*.backup")) == []

    def test_candidate_missing_from_file(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a"]))
        oracle = FakeOracle(tmp_path, {})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl("ghost")]})

        assert report.records[0].reason == REASON_REMOVE_FAILED
        assert not report.records[0].removed
        assert oracle.quick_checks == []


class TestBisectionRemoval:
    """Tests for batch removal with bisection."""

    def test_all_removable_in_one_build(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(FIVE))
        oracle = FakeOracle(tmp_path, {})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl(n) for n in FIVE]})

        assert removed_names(report.records) == set(FIVE)
        assert all(r.reason == REASON_REMOVED_BATCH for r in report.records)
        assert all(r.strategy == RemovalStrategy.BATCH for r in report.records)
        assert len(oracle.quick_checks) == 1

    def test_one_needed_dependency(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(FIVE))
        oracle = FakeOracle(tmp_path, {"app": {"c"}})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl(n) for n in FIVE]})

        assert removed_names(report.records) == {"a", "b", "d", "e"}
        failed = [r for r in report.records if not r.removed]
        assert [r.dependency.name for r in failed] == ["c"]
        assert failed[0].state == AttemptState.ROLLED_BACK
        # abcde fails, ab passes, cde fails, c fails, de passes
        assert len(oracle.quick_checks) <= 5
        text = (tmp_path / "app/build.gradle.kts").read_text()
        assert 'project(":c")' in text
        assert 'project(":a")' not in text

    def test_every_dependency_needed(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(FIVE))
        oracle = FakeOracle(tmp_path, {"app": set(FIVE)})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl(n) for n in FIVE]})

        assert report.removed_count == 0
        assert (tmp_path / "app/build.gradle.kts").read_text() == build_text(FIVE)

    def test_removal_failures_do_not_block_the_rest(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a", "b", "c", "d"]))
        oracle = FakeOracle(tmp_path, {})
        candidates = [impl("a"), impl("ghost"), impl("b"), impl("c"), impl("d")]

        report = RemovalEngine(tmp_path, oracle).run({"app": candidates})

        assert removed_names(report.records) == {"a", "b", "c", "d"}
        ghost = next(r for r in report.records if r.dependency.name == "ghost")
        assert ghost.reason == REASON_REMOVE_FAILED

    @pytest.mark.parametrize("required", [set(), {"a"}, {"b", "e"}, {"a", "c", "e"}, set(FIVE)])
    def test_batch_agrees_with_sequential(self, tmp_path: Path, required: set[str]) -> None:
        results = []
        for threshold in (0, 10):
            root = tmp_path / f"t{threshold}"
            make_module(root, "app", build_text(FIVE))
            oracle = FakeOracle(root, {"app": required})
            engine = RemovalEngine(root, oracle, sequential_threshold=threshold)
            report = engine.run({"app": [impl(n) for n in FIVE]})
            results.append(removed_names(report.latest()))

        assert results[0] == results[1] == set(FIVE) - required


class TestRestoreFailure:
    """Tests for stopping work on a build file that could not be restored."""

    def test_sequential_stops_and_keeps_original_backup(self, tmp_path: Path) -> None:
        module_dir = make_module(tmp_path, "app", build_text(["a", "b"]))
        oracle = FakeOracle(tmp_path, {"app": {"a"}})
        engine = RemovalEngine(tmp_path, oracle, editor_factory=FlakyRestoreEditor)

        report = engine.run({"app": [impl("a"), impl("b")]})

        first, second = report.records
        assert not first.removed
        assert first.reason == f"{REASON_BUILD_FAILED}; {REASON_RESTORE_FAILED}"
        assert first.state == AttemptState.VALIDATING
        assert not second.removed
        assert second.reason == f"{REASON_NOT_ATTEMPTED}; {REASON_RESTORE_FAILED}"
        assert second.state == AttemptState.UNTESTED
        assert len(oracle.quick_checks) == 1
        assert oracle.full_builds == 0
        backup = module_dir / "build.gradle.kts.backup"
        assert backup.read_text() == build_text(["a", "b"])

    def test_bisection_stops_after_failed_singleton_restore(self, tmp_path: Path) -> None:
        module_dir = make_module(tmp_path, "app", build_text(FIVE))
        oracle = FakeOracle(tmp_path, {"app": {"a"}})
        # abcde fails and restores, ab fails and restores, a fails and is left edited
        engine = RemovalEngine(
            tmp_path, oracle, editor_factory=partial(FlakyRestoreEditor, fail_on=3)
        )

        report = engine.run({"app": [impl(n) for n in FIVE]})

        assert [r.dependency.name for r in report.records] == FIVE
        assert report.removed_count == 0
        assert all(REASON_RESTORE_FAILED in r.reason for r in report.records)
        assert len(oracle.quick_checks) == 3
        backup = module_dir / "build.gradle.kts.backup"
        assert backup.read_text() == build_text(FIVE)

    def test_failed_batch_restore_abandons_the_module(self, tmp_path: Path) -> None:
        module_dir = make_module(tmp_path, "app", build_text(FIVE))
        oracle = FakeOracle(tmp_path, {"app": {"c"}})
        engine = RemovalEngine(tmp_path, oracle, editor_factory=FlakyRestoreEditor)

        report = engine.run({"app": [impl(n) for n in FIVE]})

        assert report.removed_count == 0
        assert all(
            r.reason == f"{REASON_BUILD_FAILED}; {REASON_RESTORE_FAILED}" for r in report.records
        )
        assert len(oracle.quick_checks) == 1
        assert (module_dir / "build.gradle.kts.backup").read_text() == build_text(FIVE)

    def test_other_modules_still_processed(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a"]))
        make_module(tmp_path, "lib", build_text(["b"]))
        oracle = FakeOracle(tmp_path, {"app": {"a"}})
        engine = RemovalEngine(tmp_path, oracle, editor_factory=FlakyRestoreEditor)

        report = engine.run({"app": [impl("a")], "lib": [impl("b")]})

        assert removed_names(report.records) == {"b"}
        assert 'project(":b")' not in (tmp_path / "lib/build.gradle.kts").read_text()


class TestRun:
    """Tests for whole cleanup runs."""

    def test_final_validation_runs_once(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a"]))
        make_module(tmp_path, "lib", build_text(["b"]))
        oracle = FakeOracle(tmp_path, {})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl("a")], "lib": [impl("b")]})

        assert oracle.full_builds == 1
        assert report.final_build is not None
        assert report.final_build.succeeded

    def test_no_final_validation_when_nothing_removed(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a"]))
        oracle = FakeOracle(tmp_path, {"app": {"a"}})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl("a")]})

        assert oracle.full_builds == 0
        assert report.final_build is None

    def test_failed_final_validation_keeps_removals(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a"]))
        oracle = FakeOracle(tmp_path, {}, full_build_ok=False)

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl("a")]})

        assert report.removed_count == 1
        assert report.final_build is not None
        assert not report.final_build.succeeded

    def test_missing_build_file(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app")
        oracle = FakeOracle(tmp_path, {})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl("a")]})

        assert report.records[0].reason == REASON_NO_BUILD_FILE
        assert oracle.quick_checks == []

    def test_dry_run_touches_nothing(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(FIVE))
        oracle = FakeOracle(tmp_path, {})

        report = RemovalEngine(tmp_path, oracle, dry_run=True).run(
            {"app": [impl(n) for n in FIVE]}
        )

        assert (tmp_path / "app/build.gradle.kts").read_text() == build_text(FIVE)
        assert all(r.reason == REASON_DRY_RUN for r in report.records)
        assert all(r.strategy == RemovalStrategy.DRY_RUN for r in report.records)
        assert oracle.quick_checks == []
        assert report.final_build is None

    def test_target_module(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a"]))
        make_module(tmp_path, "lib", build_text(["b"]))
        oracle = FakeOracle(tmp_path, {})

        report = RemovalEngine(tmp_path, oracle).run(
            {"app": [impl("a")], "lib": [impl("b")]}, target_module="lib"
        )

        assert {r.module for r in report.records} == {"lib"}
        assert report.target_module == "lib"

    def test_duplicates_are_collapsed_first(self, tmp_path: Path) -> None:
        make_module(tmp_path, "app", build_text(["a", "a", "b"]))
        oracle = FakeOracle(tmp_path, {})

        report = RemovalEngine(tmp_path, oracle).run({"app": [impl("a")]})

        assert report.removed_count == 1
        assert 'project(":a")' not in (tmp_path / "app/build.gradle.kts").read_text()

    def test_unused_by_module(self) -> None:
        modules = [
            Module("app", dependencies=(impl("a"),), unused_dependencies=(impl("a"),)),
            Module("lib", dependencies=(impl("b"),)),
        ]
        assert unused_by_module(modules) == {"app": [impl("a")]}
