"""Plain-text reports written to the project root."""

from collections import defaultdict
from pathlib import Path

from depprune.models.cleanup import CleanupReport
from depprune.models.module import Dependency, Module

MAX_DISPLAYED_CLASSES = 10
SUMMARY_SEPARATOR_LENGTH = 80

NO_UNUSED_MESSAGE = "No unused dependencies found!"


def render_unused_report(modules: list[Module], target_module: str | None = None) -> str:
    """Render the short report listing unused dependencies per module."""
    if target_module is not None:
        header = f"Unused Dependencies Analysis for module: {target_module}"
    else:
        header = "Unused Dependencies Analysis:"
    lines = [header, "=" * len(header)]

    with_unused = [m for m in modules if m.unused_dependencies]
    if not with_unused:
        lines.append(NO_UNUSED_MESSAGE)
        return "\n".join(lines) + "\n"

    for module in with_unused:
        lines.append("")
        lines.append(f"Module: {module.name}")
        for dep in module.unused_dependencies:
            lines.append(f"    - {dep}")
    return "\n".join(lines) + "\n"


def _tree_section(title: str, items: list[str], empty: str, limit: int | None = None) -> list[str]:
    lines = [f"{title} ({len(items)} total)"]
    if not items:
        return lines + [f"   └─ {empty}"]

    shown = items if limit is None else items[:limit]
    hidden = len(items) - len(shown)
    for i, item in enumerate(shown):
        is_last = i == len(shown) - 1 and hidden == 0
        lines.append(f"   {'└─' if is_last else '├─'} {item}")
    if hidden:
        lines.append(f"   └─ ... and {hidden} more classes")
    return lines


def render_full_report(modules: list[Module]) -> str:
    """Render the detailed per-module report with a summary."""
    title = "DETAILED MODULE ANALYSIS REPORT"
    lines = ["", title, "═" * len(title), f"Total modules analyzed: {len(modules)}", ""]

    for index, module in enumerate(modules):
        header = f"MODULE: {module.name}"
        lines += [header, "─" * len(header)]
        lines += _tree_section(
            "DEPENDENCIES", [str(d) for d in module.dependencies], "(none)"
        )
        lines.append("")
        lines += _tree_section(
            "REFERENCED CLASSES",
            sorted(module.referenced_classes),
            "(none)",
            MAX_DISPLAYED_CLASSES,
        )
        lines.append("")
        lines += _tree_section(
            "EXPOSED CLASSES",
            sorted(module.exposed_classes),
            "(none)",
            MAX_DISPLAYED_CLASSES,
        )
        lines.append("")
        lines += _tree_section(
            "UNUSED DEPENDENCIES",
            [str(d) for d in module.unused_dependencies],
            "All dependencies are used!",
        )
        if index < len(modules) - 1:
            lines += ["", "═" * SUMMARY_SEPARATOR_LENGTH, ""]

    total_deps = sum(len(m.dependencies) for m in modules)
    total_unused = sum(len(m.unused_dependencies) for m in modules)
    potential = (total_unused / total_deps * 100) if total_deps else 0.0

    lines += [
        "",
        "ANALYSIS SUMMARY",
        "═" * 20,
        f"Total Dependencies:     {total_deps}",
        f"Total Unused:           {total_unused}",
        f"Total Referenced Classes: {sum(len(m.referenced_classes) for m in modules)}",
        f"Total Exposed Classes:   {sum(len(m.exposed_classes) for m in modules)}",
        f"Cleanup Potential:      {potential:.1f}%",
        "",
    ]
    return "\n".join(lines) + "\n"


def render_cleanup_report(report: CleanupReport) -> str:
    """Render the outcome of a cleanup run."""
    header = "Dependency Cleanup Report"
    lines = [header, "=" * len(header), ""]
    lines.append(f"Generated: {report.generated_at.isoformat()}")
    lines.append(f"Target: {report.target_module or 'All modules'}")

    removed = report.removed
    failed = report.failed
    lines.append(
        f"Summary: {len(removed)} dependencies removed, {len(failed)} failed"
    )
    lines.append("")

    if removed:
        lines.append(f"Successfully Removed ({len(removed)}):")
        by_module = defaultdict(list)
        for record in removed:
            by_module[record.module].append(record)
        for module_name, records in by_module.items():
            lines.append(f"Module: {module_name}")
            lines += [f"  - {r.dependency}" for r in records]
        lines.append("")

    if failed:
        lines.append(f"Failed to Remove ({len(failed)}):")
        by_module = defaultdict(list)
        for record in failed:
            by_module[record.module].append(record)
        for module_name, records in by_module.items():
            lines.append(f"Module: {module_name}")
            lines += [f"  - {r.dependency} ({r.reason})" for r in records]
        lines.append("")

    if report.final_build is not None:
        status = "passed" if report.final_build.succeeded else "FAILED"
        lines.append(f"Final build validation: {status}")

    return "\n".join(lines) + "\n"


def write_report(text: str, output_path: Path) -> None:
    """Write a rendered report."""
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(text)


def parse_unused_report(text: str) -> dict[str, list[Dependency]]:
    """Read unused dependencies back from a rendered unused report.

    Lines that do not parse as ``"<keyword> <name>"`` are skipped.
    """
    result: dict[str, list[Dependency]] = {}
    current: str | None = None

    for line in text.splitlines():
        trimmed = line.strip()
        if trimmed.startswith("Module: "):
            current = trimmed[len("Module: "):].strip()
            continue
        if current is None or not trimmed.startswith("- "):
            continue
        try:
            dependency = Dependency.from_string(trimmed[2:])
        except ValueError:
            continue
        result.setdefault(current, []).append(dependency)

    return result
