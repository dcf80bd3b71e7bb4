"""Centralized path management for depprune inputs and outputs."""

from pathlib import Path

# Directory name for machine-readable outputs
DEPPRUNE_DIR = ".depprune"

# File names within the .depprune directory
RESULTS_FILE = "results.json"
CLEANUP_FILE = "cleanup.json"

# Files at the project root
CONFIG_FILE = "dependency-analyser-config.yml"
REPORT_FILE = "dependency-report.txt"
FULL_REPORT_FILE = "full-dependency-report.txt"
CLEANUP_REPORT_FILE = "dependency-cleanup-report.txt"

SETTINGS_FILES = ("settings.gradle", "settings.gradle.kts")
BUILD_FILES = ("build.gradle", "build.gradle.kts")

# Compiled class output directories, relative to a module directory
REFERENCE_CLASS_DIRS = (
    "build/classes/java/main",
    "build/classes/kotlin/main",
    "build/tmp/kotlin-classes/debug",
    "build/tmp/kotlin-classes/debugUnitTest",
)
EXPOSED_CLASS_DIRS = (
    "build/classes/java/main",
    "build/classes/kotlin/main",
    "build/tmp/kotlin-classes/debug",
    "build/tmp/kotlin-classes/release",
)


def get_depprune_dir(project_path: Path) -> Path:
    """Get the .depprune directory path for a project."""
    return project_path / DEPPRUNE_DIR


def ensure_depprune_dir(project_path: Path) -> Path:
    """Ensure .depprune directory exists and return its path."""
    depprune_dir = get_depprune_dir(project_path)
    depprune_dir.mkdir(parents=True, exist_ok=True)
    return depprune_dir


def get_results_path(project_path: Path) -> Path:
    """Get the results.json path for a project."""
    return get_depprune_dir(project_path) / RESULTS_FILE


def get_cleanup_path(project_path: Path) -> Path:
    """Get the cleanup.json path for a project."""
    return get_depprune_dir(project_path) / CLEANUP_FILE


def get_module_dir(project_path: Path, module_name: str) -> Path:
    """Map a module name such as ``library:core`` to its directory."""
    return project_path / module_name.replace(":", "/")


def find_build_file(project_path: Path, module_name: str) -> Path | None:
    """Locate a module's build.gradle or build.gradle.kts."""
    module_dir = get_module_dir(project_path, module_name)
    for name in BUILD_FILES:
        candidate = module_dir / name
        if candidate.exists():
            return candidate
    return None


def find_settings_file(project_path: Path) -> Path | None:
    """Locate settings.gradle or settings.gradle.kts at the project root."""
    for name in SETTINGS_FILES:
        candidate = project_path / name
        if candidate.exists():
            return candidate
    return None
