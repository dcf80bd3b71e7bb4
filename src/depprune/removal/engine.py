"""Validated removal of unused dependencies.

Each candidate edit is proven safe by the build oracle before it is kept.
Small candidate lists are tried one at a time; larger ones are removed as a
batch and bisected on failure, so one successful build can confirm many
removals at once.

Every attempt runs inside a backup/restore envelope:

    UNTESTED -> BACKED_UP -> REMOVED -> VALIDATING -> CONFIRMED | ROLLED_BACK

The engine is strictly sequential. Each step edits the shared build files and
depends on the state the previous step left behind.
"""

import logging
from pathlib import Path
from typing import Callable, Protocol

from depprune.models.build import BuildOutcome
from depprune.models.cleanup import (
    AttemptState,
    CleanupRecord,
    CleanupReport,
    RemovalStrategy,
)
from depprune.models.module import Dependency, Module
from depprune.paths import find_build_file
from depprune.removal.editor import BuildFileEditor

logger = logging.getLogger(__name__)

MAX_DEPENDENCIES_FOR_SEQUENTIAL = 3

REASON_REMOVED = "Successfully removed"
REASON_REMOVED_BATCH = "Successfully removed (batch)"
REASON_NO_BUILD_FILE = "No build file found"
REASON_BACKUP_FAILED = "Failed to create backup"
REASON_REMOVE_FAILED = "Failed to remove from build file"
REASON_BUILD_FAILED = "Build validation failed"
REASON_RESTORE_FAILED = "restore from backup failed, build file left edited"
REASON_DRY_RUN = "Dry run: removal not attempted"
REASON_NOT_ATTEMPTED = "Not attempted"


class Oracle(Protocol):
    """Anything that can judge whether the project still builds."""

    def quick_compile_check(self, module_name: str) -> BuildOutcome: ...

    def validate_full_build(self) -> BuildOutcome: ...


def unused_by_module(modules: list[Module]) -> dict[str, list[Dependency]]:
    """Removal candidates per module, for modules that have any."""
    return {
        module.name: list(module.unused_dependencies)
        for module in modules
        if module.unused_dependencies
    }


class RemovalEngine:
    """Confirms or rejects removal of unused dependencies, module by module."""

    def __init__(
        self,
        project_root: Path,
        oracle: Oracle,
        sequential_threshold: int = MAX_DEPENDENCIES_FOR_SEQUENTIAL,
        dry_run: bool = False,
        editor_factory: Callable[[Path], BuildFileEditor] = BuildFileEditor,
    ) -> None:
        self.project_root = project_root
        self.oracle = oracle
        self.sequential_threshold = sequential_threshold
        self.dry_run = dry_run
        self.editor_factory = editor_factory

    def run(
        self,
        candidates: dict[str, list[Dependency]],
        target_module: str | None = None,
    ) -> CleanupReport:
        """Process every module's candidates, then validate the whole build once.

        The final validation only runs when something was removed. Its failure
        is reported but does not undo removals already proven per module.
        """
        report = CleanupReport(target_module=target_module)

        for module_name, dependencies in candidates.items():
            if target_module is not None and module_name != target_module:
                continue
            logger.info("Processing module: %s", module_name)
            report.records.extend(self.cleanup_module(module_name, dependencies))

        if report.removed_count and not self.dry_run:
            logger.info("Running final validation...")
            report.final_build = self.oracle.validate_full_build()
            if report.final_build.succeeded:
                logger.info("Final build validation passed")
            else:
                logger.error("Final build validation failed")
                logger.error("Build output: %s", report.final_build.error_preview(2000))
                logger.error("You may need to manually review the changes made during cleanup")

        return report

    def cleanup_module(
        self, module_name: str, dependencies: list[Dependency]
    ) -> list[CleanupRecord]:
        """Remove what the build allows from one module."""
        if not dependencies:
            return []

        build_file = find_build_file(self.project_root, module_name)
        if build_file is None:
            logger.warning("No build file found for module: %s", module_name)
            return [
                self._record(dep, module_name, False, REASON_NO_BUILD_FILE)
                for dep in dependencies
            ]

        if self.dry_run:
            return [
                self._record(
                    dep, module_name, False, REASON_DRY_RUN, strategy=RemovalStrategy.DRY_RUN
                )
                for dep in dependencies
            ]

        editor = self.editor_factory(build_file)
        logger.info("Found %d unused dependencies to remove", len(dependencies))
        editor.deduplicate()

        if len(dependencies) <= self.sequential_threshold:
            logger.info("Using sequential removal mode")
            return self.sequential_removal(editor, module_name, dependencies)

        logger.info("Using bisection removal mode")
        return self.bisection_removal(editor, module_name, dependencies)

    def sequential_removal(
        self,
        editor: BuildFileEditor,
        module_name: str,
        dependencies: list[Dependency],
    ) -> list[CleanupRecord]:
        """Try each dependency on its own, one build per dependency.

        Stops at the first attempt whose edit could not be restored; the
        remaining candidates are recorded without being tried.
        """
        return self._sequential(editor, module_name, dependencies)[0]

    def _sequential(
        self,
        editor: BuildFileEditor,
        module_name: str,
        dependencies: list[Dependency],
    ) -> tuple[list[CleanupRecord], bool]:
        records: list[CleanupRecord] = []
        for index, dep in enumerate(dependencies):
            record, intact = self._attempt_single(editor, module_name, dep)
            records.append(record)
            if not intact:
                rest = self._abandon(
                    dependencies[index + 1:], module_name, RemovalStrategy.SEQUENTIAL
                )
                return records + rest, False
        return records, True

    def _attempt_single(
        self, editor: BuildFileEditor, module_name: str, dependency: Dependency
    ) -> tuple[CleanupRecord, bool]:
        """One guarded attempt. The flag is False if the build file was left edited."""
        logger.info("  Processing dependency: %s", dependency)

        if not editor.create_backup():
            return self._record(dependency, module_name, False, REASON_BACKUP_FAILED), True

        if not editor.remove_dependency(dependency):
            restored = editor.restore_from_backup()
            record = self._record(
                dependency,
                module_name,
                False,
                _with_restore(REASON_REMOVE_FAILED, restored),
                state=AttemptState.ROLLED_BACK if restored else AttemptState.REMOVED,
            )
            return record, restored

        logger.info("    Validating build...")
        outcome = self.oracle.quick_compile_check(module_name)

        if outcome.succeeded:
            logger.info("    Build validation passed - dependency removed")
            editor.cleanup_backup()
            record = self._record(
                dependency,
                module_name,
                True,
                REASON_REMOVED,
                build_confirmed=True,
                state=AttemptState.CONFIRMED,
            )
            return record, True

        logger.info("    Build validation failed - restoring dependency")
        if outcome.stderr.strip():
            logger.info("    Error: %s", outcome.error_preview())
        restored = editor.restore_from_backup()
        record = self._record(
            dependency,
            module_name,
            False,
            _with_restore(REASON_BUILD_FAILED, restored),
            state=AttemptState.ROLLED_BACK if restored else AttemptState.VALIDATING,
        )
        return record, restored

    def bisection_removal(
        self,
        editor: BuildFileEditor,
        module_name: str,
        dependencies: list[Dependency],
    ) -> list[CleanupRecord]:
        """Remove the whole set and build once; split in half on failure.

        A singleton set falls back to sequential mode. Once a restore fails,
        nothing else in the module is attempted.
        """
        return self._bisect(editor, module_name, dependencies)[0]

    def _bisect(
        self,
        editor: BuildFileEditor,
        module_name: str,
        dependencies: list[Dependency],
    ) -> tuple[list[CleanupRecord], bool]:
        if not dependencies:
            return [], True
        if len(dependencies) == 1:
            return self._sequential(editor, module_name, dependencies)

        logger.info("  Testing removal of %d dependencies...", len(dependencies))

        if not editor.create_backup():
            records = [
                self._record(
                    dep, module_name, False, REASON_BACKUP_FAILED, strategy=RemovalStrategy.BATCH
                )
                for dep in dependencies
            ]
            return records, True

        failures = [dep for dep in dependencies if not editor.remove_dependency(dep)]
        if failures:
            restored = editor.restore_from_backup()
            records = [
                self._record(
                    dep,
                    module_name,
                    False,
                    _with_restore(REASON_REMOVE_FAILED, restored),
                    state=AttemptState.ROLLED_BACK if restored else AttemptState.REMOVED,
                    strategy=RemovalStrategy.BATCH,
                )
                for dep in failures
            ]
            remainder = [dep for dep in dependencies if dep not in failures]
            if not restored:
                rest = self._abandon(
                    remainder, module_name, RemovalStrategy.BATCH, AttemptState.REMOVED
                )
                return records + rest, False
            rest, intact = self._bisect(editor, module_name, remainder)
            return records + rest, intact

        logger.info("    Validating build with all %d dependencies removed...", len(dependencies))
        outcome = self.oracle.quick_compile_check(module_name)

        if outcome.succeeded:
            logger.info("    All %d dependencies successfully removed", len(dependencies))
            editor.cleanup_backup()
            records = [
                self._record(
                    dep,
                    module_name,
                    True,
                    REASON_REMOVED_BATCH,
                    build_confirmed=True,
                    state=AttemptState.CONFIRMED,
                    strategy=RemovalStrategy.BATCH,
                )
                for dep in dependencies
            ]
            return records, True

        if not editor.restore_from_backup():
            records = self._abandon(
                dependencies,
                module_name,
                RemovalStrategy.BATCH,
                AttemptState.VALIDATING,
                REASON_BUILD_FAILED,
            )
            return records, False

        logger.info("    Some dependencies are needed, splitting and retrying...")
        mid = len(dependencies) // 2
        left, intact = self._bisect(editor, module_name, dependencies[:mid])
        if not intact:
            rest = self._abandon(dependencies[mid:], module_name, RemovalStrategy.BATCH)
            return left + rest, False
        right, intact = self._bisect(editor, module_name, dependencies[mid:])
        return left + right, intact

    def _abandon(
        self,
        dependencies: list[Dependency],
        module_name: str,
        strategy: RemovalStrategy,
        state: AttemptState = AttemptState.UNTESTED,
        reason: str = REASON_NOT_ATTEMPTED,
    ) -> list[CleanupRecord]:
        """Stop working on a build file that could not be restored."""
        if dependencies:
            logger.error(
                "Could not restore build file of %s; skipping its remaining candidates",
                module_name,
            )
        return [
            self._record(
                dep,
                module_name,
                False,
                _with_restore(reason, False),
                state=state,
                strategy=strategy,
            )
            for dep in dependencies
        ]

    @staticmethod
    def _record(
        dependency: Dependency,
        module_name: str,
        removed: bool,
        reason: str,
        build_confirmed: bool = False,
        state: AttemptState = AttemptState.UNTESTED,
        strategy: RemovalStrategy = RemovalStrategy.SEQUENTIAL,
    ) -> CleanupRecord:
        return CleanupRecord(
            dependency=dependency,
            module=module_name,
            removed=removed,
            reason=reason,
            build_confirmed=build_confirmed,
            state=state,
            strategy=strategy,
        )


def _with_restore(reason: str, restored: bool) -> str:
    if restored:
        return reason
    return f"{reason}; {REASON_RESTORE_FAILED}"
