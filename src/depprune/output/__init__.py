"""Output writers and displays."""

from depprune.output.json_writer import load_results, write_cleanup_results, write_results
from depprune.output.report import (
    parse_unused_report,
    render_cleanup_report,
    render_full_report,
    render_unused_report,
)

__all__ = [
    "load_results",
    "parse_unused_report",
    "render_cleanup_report",
    "render_full_report",
    "render_unused_report",
    "write_cleanup_results",
    "write_results",
]
