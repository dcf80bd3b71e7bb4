"""depprune - find and safely remove unused Gradle module dependencies."""

__version__ = "0.1.0"
