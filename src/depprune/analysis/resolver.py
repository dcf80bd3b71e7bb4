"""Cross-module usage resolution.

A declared dependency on another module is unused when none of the classes the
declaring module references is exposed by that module. Resolution needs every
module scanned first, since usage is inherently cross-module.
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from depprune.analysis.declarations import PROJECTS_ACCESSOR_PREFIX
from depprune.analysis.scanner import default_workers, scan_modules
from depprune.config import Config
from depprune.models.module import Dependency, Module

logger = logging.getLogger(__name__)

# Version catalog entries are external libraries
EXTERNAL_LIBRARY_PREFIX = "libs."

_CAMEL_BOUNDARY_RE = re.compile(r"([a-z])([A-Z])")


def to_module_name(dependency_name: str, kebab_case: bool = True) -> str:
    """Convert a dependency name into the module identifier space.

    ``projects.library.vouchersUtil`` becomes ``library:vouchers-util`` (or
    ``library:vouchersUtil`` with ``kebab_case=False``).
    """
    name = dependency_name
    if name.startswith(PROJECTS_ACCESSOR_PREFIX):
        name = name[len(PROJECTS_ACCESSOR_PREFIX):]

    parts = name.split(".")
    if kebab_case:
        parts = [_CAMEL_BOUNDARY_RE.sub(r"\1-\2", part).lower() for part in parts]
    return ":".join(parts)


def find_target_module(dependency: Dependency, modules: list[Module]) -> Module | None:
    """Find the scanned module a dependency points to, if any."""
    kebab = to_module_name(dependency.name)
    verbatim = to_module_name(dependency.name, kebab_case=False)
    for module in modules:
        if module.name == kebab or module.name == verbatim:
            return module
    return None


def is_dependency_used(
    module: Module,
    dependency: Dependency,
    modules: list[Module],
    config: Config,
) -> bool:
    """Classify one dependency of a module.

    Excluded, external and unresolvable dependencies count as used since
    nothing can be proven about them.
    """
    if config.is_dependency_excluded(module.name, dependency):
        return True

    if dependency.name.startswith(EXTERNAL_LIBRARY_PREFIX):
        return True

    target = find_target_module(dependency, modules)
    if target is None:
        return True

    exposed = {name.lower() for name in target.exposed_classes}
    return any(ref.lower() in exposed for ref in module.referenced_classes)


def resolve_usage(
    modules: list[Module],
    config: Config,
    max_workers: int | None = None,
) -> list[Module]:
    """Compute ``unused_dependencies`` for every module.

    Each (module, dependency) pair is classified independently on a bounded
    worker pool; a module's unused list keeps declaration order and is
    assigned only after all of its dependencies are resolved.
    """
    pairs = [(module, dep) for module in modules for dep in module.dependencies]
    if not pairs:
        return [module.with_unused([]) for module in modules]

    workers = max_workers or default_workers()
    with ThreadPoolExecutor(max_workers=workers) as executor:
        used_flags = list(
            executor.map(
                lambda pair: is_dependency_used(pair[0], pair[1], modules, config),
                pairs,
            )
        )

    unused_by_module: dict[str, list[Dependency]] = {m.name: [] for m in modules}
    for (module, dep), used in zip(pairs, used_flags):
        if not used:
            unused_by_module[module.name].append(dep)

    return [module.with_unused(unused_by_module[module.name]) for module in modules]


def analyze_project(
    project_root: Path,
    module_names: list[str],
    config: Config,
    target_module: str | None = None,
    max_workers: int | None = None,
) -> list[Module]:
    """Scan and resolve a project.

    All non-excluded modules are scanned and resolved; when ``target_module``
    is given only that module is returned, but still resolved against all.
    """
    names = [name for name in module_names if not config.is_module_excluded(name)]
    skipped = len(module_names) - len(names)
    if skipped:
        logger.info("Skipping %d excluded modules", skipped)

    modules = scan_modules(project_root, names, max_workers=max_workers)
    resolved = resolve_usage(modules, config, max_workers=max_workers)

    if target_module is None:
        return resolved

    selected = [m for m in resolved if m.name == target_module]
    if not selected:
        logger.warning("Module '%s' not found in settings", target_module)
    return selected
