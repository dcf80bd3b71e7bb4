"""Build file editing with backup and restore.

Every operation logs and returns a failure signal instead of raising, so a
failed edit only aborts the attempt that needed it.
"""

import logging
import re
import shutil
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from depprune.analysis.declarations import is_declaration, parse_declaration
from depprune.models.module import Dependency, DependencyKind

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"


@contextmanager
def deferred_interrupts() -> Iterator[None]:
    """Hold back SIGINT until the block completes.

    Backup and restore must not be cut off half way; an interrupt received
    meanwhile is re-delivered afterwards. Only effective on the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    received: list[int] = []

    def _record(signum, frame) -> None:
        received.append(signum)

    previous = signal.signal(signal.SIGINT, _record)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)
        if received:
            if callable(previous):
                previous(signal.SIGINT, None)
            elif previous != signal.SIG_IGN:
                raise KeyboardInterrupt


def _token_pattern(name: str) -> re.Pattern[str]:
    """Match ``name`` as a whole token, not as part of a longer name.

    A leading ``:`` is allowed only for a top-level project path, so
    ``library-data`` matches ``":library-data"`` but not ``":feature:library-data"``.
    """
    return re.compile(r"(?<![\w-])(?<![\w-]:)" + re.escape(name) + r"(?![\w.:-])")


class BuildFileEditor:
    """Edits one module build file."""

    def __init__(self, build_file: Path) -> None:
        self.build_file = build_file
        self.backup_file = build_file.with_name(build_file.name + BACKUP_SUFFIX)

    def _read_lines(self) -> list[str] | None:
        if not self.build_file.exists():
            logger.error("Build file does not exist: %s", self.build_file)
            return None
        try:
            with open(self.build_file, "r", encoding="utf-8", newline="") as f:
                return f.read().splitlines(keepends=True)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read build file %s: %s", self.build_file, e)
            return None

    def _write_lines(self, lines: list[str]) -> bool:
        try:
            with open(self.build_file, "w", encoding="utf-8", newline="") as f:
                f.write("".join(lines))
            return True
        except OSError as e:
            logger.error("Failed to write updated build file %s: %s", self.build_file, e)
            return False

    def deduplicate(self) -> int | None:
        """Drop repeated declaration lines, keeping the first occurrence.

        Returns:
            Number of lines removed, or None if the file could not be read or written.
        """
        lines = self._read_lines()
        if lines is None:
            return None

        seen: set[str] = set()
        kept: list[str] = []
        removed = 0
        for line in lines:
            trimmed = line.strip()
            if is_declaration(trimmed):
                if trimmed in seen:
                    logger.info("Removing duplicated dependency: %s", trimmed)
                    removed += 1
                    continue
                seen.add(trimmed)
            kept.append(line)

        if removed and not self._write_lines(kept):
            return None
        return removed

    def _find_line(
        self, lines: list[str], name: str, kind: DependencyKind | None
    ) -> int | None:
        # Exact parse match (same kind first), then whole-token containment
        parsed = [parse_declaration(line) for line in lines]
        for index, dep in enumerate(parsed):
            if dep is not None and dep.name == name and dep.kind == kind:
                return index
        for index, dep in enumerate(parsed):
            if dep is not None and dep.name == name:
                return index

        pattern = _token_pattern(name)
        for index, line in enumerate(lines):
            trimmed = line.strip()
            if is_declaration(trimmed) and pattern.search(trimmed):
                return index
        return None

    def remove_dependency(self, dependency: Dependency | str) -> bool:
        """Delete the first declaration line naming the dependency.

        Args:
            dependency: A Dependency or its ``"<keyword> <name>"`` string form.

        Returns:
            True if a line was removed and the file written back.
        """
        text = str(dependency)
        keyword, _, rest = text.strip().partition(" ")
        name = rest.strip() or keyword
        kind = next((k for k in DependencyKind if k.value == keyword), None)

        lines = self._read_lines()
        if lines is None:
            return False

        index = self._find_line(lines, name, kind)
        if index is None:
            logger.warning("Dependency not found in build file: %s", text)
            return False

        removed_line = lines.pop(index)
        if not self._write_lines(lines):
            return False
        logger.info("Removed dependency line: %s", removed_line.strip())
        return True

    def create_backup(self) -> bool:
        """Copy the build file to its sibling ``.backup`` path.

        Refuses to overwrite a backup left by an unfinished attempt.
        """
        if self.backup_file.exists():
            logger.error("Backup already exists, not overwriting: %s", self.backup_file)
            return False
        try:
            with deferred_interrupts():
                shutil.copyfile(self.build_file, self.backup_file)
            return True
        except OSError as e:
            logger.error("Failed to create backup of %s: %s", self.build_file, e)
            return False

    def restore_from_backup(self) -> bool:
        """Overwrite the build file from the backup and delete the backup."""
        if not self.backup_file.exists():
            logger.error("No backup file found: %s", self.backup_file)
            return False
        try:
            with deferred_interrupts():
                shutil.copyfile(self.backup_file, self.build_file)
                self.backup_file.unlink()
            return True
        except OSError as e:
            logger.error("Failed to restore %s from backup: %s", self.build_file, e)
            return False

    def cleanup_backup(self) -> bool:
        """Delete the backup without restoring it."""
        try:
            self.backup_file.unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.error("Failed to delete backup %s: %s", self.backup_file, e)
            return False

    @property
    def has_backup(self) -> bool:
        return self.backup_file.exists()
