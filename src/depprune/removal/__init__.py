"""Validated dependency removal."""

from depprune.removal.editor import BuildFileEditor
from depprune.removal.engine import RemovalEngine, unused_by_module
from depprune.removal.oracle import BuildOracle

__all__ = ["BuildFileEditor", "BuildOracle", "RemovalEngine", "unused_by_module"]
