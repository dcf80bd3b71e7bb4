"""Per-module scanning of build files and compiled classes."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from depprune.analysis.classfile import (
    ClassFileError,
    class_name,
    extract_class_info,
    is_externally_visible,
)
from depprune.analysis.declarations import parse_dependencies
from depprune.models.module import Dependency, Module
from depprune.paths import (
    EXPOSED_CLASS_DIRS,
    REFERENCE_CLASS_DIRS,
    find_build_file,
    get_module_dir,
)

logger = logging.getLogger(__name__)


@dataclass
class ClassScanResult:
    """Union of class information over a module's output directories."""

    referenced: set[str] = field(default_factory=set)
    exposed: set[str] = field(default_factory=set)
    files_scanned: int = 0
    files_skipped: int = 0


def default_workers() -> int:
    """Worker count bounded by available parallelism."""
    return os.cpu_count() or 4


def _iter_class_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*.class") if p.is_file())


def scan_class_files(module_dir: Path) -> ClassScanResult:
    """Scan a module's compiled output for referenced and exposed classes.

    Each class file is parsed once even if it sits in a directory that
    contributes both sets. Unreadable or corrupt files are skipped.
    """
    result = ClassScanResult()

    roles: dict[Path, tuple[bool, bool]] = {}
    for rel in REFERENCE_CLASS_DIRS:
        for class_file in _iter_class_files(module_dir / rel):
            _, exposes = roles.get(class_file, (False, False))
            roles[class_file] = (True, exposes)
    for rel in EXPOSED_CLASS_DIRS:
        for class_file in _iter_class_files(module_dir / rel):
            references, _ = roles.get(class_file, (False, False))
            roles[class_file] = (references, True)

    for class_file, (references, exposes) in roles.items():
        try:
            data = class_file.read_bytes()
        except OSError as e:
            logger.warning("Could not read %s: %s", class_file, e)
            result.files_skipped += 1
            continue

        try:
            info = extract_class_info(data)
        except ClassFileError as e:
            logger.warning("Could not analyze %s: %s", class_file, e)
            result.files_skipped += 1
            # The header may still be readable even if the body is not
            name = class_name(data)
            if exposes and name and is_externally_visible(data):
                result.exposed.add(name)
            continue

        result.files_scanned += 1
        if references:
            result.referenced.update(info.referenced_classes)
        if exposes and info.is_externally_visible:
            result.exposed.add(info.name)

    return result


def read_dependencies(project_root: Path, module_name: str) -> list[Dependency]:
    """Parse the module's build file; a missing file means no dependencies."""
    build_file = find_build_file(project_root, module_name)
    if build_file is None:
        logger.debug("No build file for module %s", module_name)
        return []
    try:
        text = build_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", build_file, e)
        return []
    return parse_dependencies(text)


def scan_module(project_root: Path, module_name: str) -> Module:
    """Build the Module record for one module."""
    classes = scan_class_files(get_module_dir(project_root, module_name))
    logger.debug(
        "Scanned %s: %d class files (%d skipped), %d referenced, %d exposed",
        module_name,
        classes.files_scanned,
        classes.files_skipped,
        len(classes.referenced),
        len(classes.exposed),
    )
    return Module(
        name=module_name,
        dependencies=tuple(read_dependencies(project_root, module_name)),
        referenced_classes=frozenset(classes.referenced),
        exposed_classes=frozenset(classes.exposed),
    )


def scan_modules(
    project_root: Path,
    module_names: list[str],
    max_workers: int | None = None,
) -> list[Module]:
    """Scan all modules concurrently, returning them in input order."""
    if not module_names:
        return []

    workers = max_workers or default_workers()
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(lambda name: scan_module(project_root, name), module_names))
