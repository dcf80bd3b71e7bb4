"""Data models for depprune."""

from depprune.models.build import BuildOutcome
from depprune.models.cleanup import (
    AttemptState,
    CleanupRecord,
    CleanupReport,
    RemovalStrategy,
)
from depprune.models.module import (
    DECLARATION_KEYWORDS,
    Dependency,
    DependencyKind,
    Module,
)

__all__ = [
    # Module models
    "DECLARATION_KEYWORDS",
    "Dependency",
    "DependencyKind",
    "Module",
    # Build models
    "BuildOutcome",
    # Cleanup models
    "AttemptState",
    "CleanupRecord",
    "CleanupReport",
    "RemovalStrategy",
]
