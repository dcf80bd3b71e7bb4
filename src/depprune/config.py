"""Configuration loading for depprune.

The configuration lives in ``dependency-analyser-config.yml`` at the project
root. A missing or malformed file yields the default configuration (no
exclusions, stock Gradle tasks), never an error.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import pathspec
import yaml

from depprune.models.module import Dependency
from depprune.paths import CONFIG_FILE

logger = logging.getLogger(__name__)

_GLOB_CHARS = set("*?[")


@dataclass(frozen=True)
class BuildSettings:
    """How the build tool is invoked by the oracle."""

    command: tuple[str, ...] = ("./gradlew",)
    flags: tuple[str, ...] = ("--quiet", "--no-configuration-cache")
    quick_check_tasks: tuple[str, ...] = ("assembleDebug", "compileDebugUnitTestKotlin")
    full_build_tasks: tuple[str, ...] = ("assembleDebug", "testDebugUnitTest")
    precompile_tasks: tuple[str, ...] = ("compileDebugSources", "compileDebugUnitTestSources")
    reader_timeout: float = 5.0
    build_timeout: float | None = None
    sequential_threshold: int = 3


@dataclass(frozen=True)
class Config:
    """Exclusions and build settings for one run. Read-only."""

    excluded_modules: frozenset[str] = frozenset()
    excluded_dependencies: dict[str, frozenset[str]] = field(default_factory=dict)
    build: BuildSettings = field(default_factory=BuildSettings)

    def is_module_excluded(self, module_name: str) -> bool:
        """Check a module against exact names and gitignore-style globs."""
        if module_name in self.excluded_modules:
            return True

        patterns = [
            "/" + p.replace(":", "/").lstrip("/")
            for p in self.excluded_modules
            if _GLOB_CHARS & set(p)
        ]
        if not patterns:
            return False

        spec = pathspec.PathSpec.from_lines("gitignore", patterns)
        return spec.match_file(module_name.replace(":", "/"))

    def is_dependency_excluded(self, module_name: str, dependency: Dependency) -> bool:
        """Check whether a dependency is excluded for a module.

        Entries may be the bare dependency name or its ``"<keyword> <name>"`` form.
        """
        excluded = self.excluded_dependencies.get(module_name)
        if not excluded:
            return False
        return str(dependency) in excluded or dependency.name in excluded


def load_config(project_root: Path, config_path: Path | None = None) -> Config:
    """Load the YAML configuration for a project.

    Args:
        project_root: Root of the Gradle project.
        config_path: Explicit config file (default: ``<root>/dependency-analyser-config.yml``).

    Returns:
        The parsed Config, or the default Config when the file is missing or invalid.
    """
    path = config_path or project_root / CONFIG_FILE
    if not path.exists():
        logger.info("Config file not found: %s, using defaults (no exclusions)", path)
        return Config()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return parse_config(data)
    except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
        logger.warning("Failed to parse config file %s: %s", path, e)
        logger.warning("Using default configuration (no exclusions)")
        return Config()


def parse_config(data: dict) -> Config:
    """Build a Config from already-parsed YAML data."""
    if not isinstance(data, dict):
        raise TypeError("config root must be a mapping")

    excluded_modules = frozenset(
        str(m) for m in (data.get("excluded-modules") or []) if m is not None
    )

    raw_dependencies = data.get("excluded-dependencies") or {}
    if not isinstance(raw_dependencies, dict):
        raise TypeError("excluded-dependencies must be a mapping")

    excluded_dependencies: dict[str, frozenset[str]] = {}
    for module_name, entries in raw_dependencies.items():
        values = frozenset(str(e) for e in (entries or []) if e is not None)
        if values:
            excluded_dependencies[str(module_name)] = values

    return Config(
        excluded_modules=excluded_modules,
        excluded_dependencies=excluded_dependencies,
        build=_parse_build_settings(data.get("build") or {}),
    )


def _parse_build_settings(data: dict) -> BuildSettings:
    if not isinstance(data, dict):
        raise TypeError("build section must be a mapping")
    defaults = BuildSettings()

    def _tuple(key: str, default: tuple[str, ...]) -> tuple[str, ...]:
        value = data.get(key)
        if value is None:
            return default
        if isinstance(value, str):
            return tuple(value.split())
        return tuple(str(v) for v in value)

    build_timeout = data.get("build-timeout", defaults.build_timeout)

    return BuildSettings(
        command=_tuple("command", defaults.command),
        flags=_tuple("flags", defaults.flags),
        quick_check_tasks=_tuple("quick-check-tasks", defaults.quick_check_tasks),
        full_build_tasks=_tuple("full-build-tasks", defaults.full_build_tasks),
        precompile_tasks=_tuple("precompile-tasks", defaults.precompile_tasks),
        reader_timeout=float(data.get("reader-timeout", defaults.reader_timeout)),
        build_timeout=float(build_timeout) if build_timeout is not None else None,
        sequential_threshold=int(data.get("sequential-threshold", defaults.sequential_threshold)),
    )
