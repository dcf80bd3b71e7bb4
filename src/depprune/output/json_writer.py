"""JSON output writers for analysis and cleanup results."""

import json
from datetime import datetime
from pathlib import Path

from depprune import __version__
from depprune.models.cleanup import CleanupReport
from depprune.models.module import Module


def write_results(
    modules: list[Module],
    output_path: Path,
    project_root: Path,
    duration_ms: int = 0,
) -> None:
    """Write analysis results to results.json."""
    data = {
        "version": "1.0",
        "metadata": {
            "project": str(project_root),
            "analyzed_at": datetime.now().isoformat(),
            "depprune_version": __version__,
            "modules_analyzed": len(modules),
            "analysis_duration_ms": duration_ms,
        },
        "summary": {
            "total_dependencies": sum(len(m.dependencies) for m in modules),
            "unused_dependencies": sum(len(m.unused_dependencies) for m in modules),
        },
        "modules": [m.to_dict() for m in modules],
    }

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def load_results(results_path: Path) -> dict:
    """Load results from a JSON file."""
    with open(results_path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_modules(results_path: Path) -> list[Module]:
    """Load the module records stored in results.json."""
    data = load_results(results_path)
    return [Module.from_dict(m) for m in data.get("modules", [])]


def write_cleanup_results(report: CleanupReport, output_path: Path) -> None:
    """Write cleanup records to cleanup.json."""
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
