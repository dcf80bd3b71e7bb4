"""depprune CLI - unused dependency analysis and validated cleanup for Gradle projects."""

import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from depprune import __version__
from depprune.analysis.resolver import analyze_project
from depprune.config import Config, load_config
from depprune.discovery import discover_modules
from depprune.models.cleanup import CleanupReport
from depprune.models.module import Dependency, Module
from depprune.output.json_writer import load_modules, write_cleanup_results, write_results
from depprune.output.report import (
    parse_unused_report,
    render_cleanup_report,
    render_full_report,
    render_unused_report,
    write_report,
)
from depprune.output.tree import (
    build_cleanup_table,
    build_results_tree,
    build_summary_tree,
    display_tree,
)
from depprune.paths import (
    CLEANUP_REPORT_FILE,
    CONFIG_FILE,
    FULL_REPORT_FILE,
    REPORT_FILE,
    ensure_depprune_dir,
    get_cleanup_path,
    get_results_path,
)
from depprune.removal.engine import RemovalEngine, unused_by_module
from depprune.removal.oracle import BuildOracle

app = typer.Typer(
    name="depprune",
    help="Find and safely remove unused Gradle module dependencies",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route the package's log records through rich."""
    logger = logging.getLogger("depprune")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def version_callback(value: bool) -> None:
    if value:
        console.print(f"depprune version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Find and safely remove unused Gradle module dependencies."""


@app.command()
def check(
    path: Path = typer.Argument(
        Path("."),
        help="Root of the Gradle project",
    ),
    module: Optional[str] = typer.Option(
        None,
        "--module",
        "-m",
        help="Only report on this module (e.g. app or :library:core)",
    ),
    full_report: bool = typer.Option(
        False,
        "--full-report",
        help="Also write the detailed full-dependency-report.txt",
    ),
    fail_on_unused: bool = typer.Option(
        False,
        "--fail-on-unused",
        help="Exit with status 1 when unused dependencies are found",
    ),
    fast: bool = typer.Option(
        False,
        "--fast",
        help="Skip compiling before the scan and use existing class files",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to config file (default: {CONFIG_FILE})",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show the full tree and debug logging",
    ),
) -> None:
    """Analyze which declared module dependencies are unused."""
    setup_logging(verbose)
    path = path.resolve()
    cfg = load_config(path, config)

    console.print(Panel.fit("[bold blue]depprune - Dependency Analysis[/]"))
    console.print(f"\n[dim]Project:[/] {path}\n")

    modules = _run_check(path, cfg, _normalize_module(module), fast, full_report)
    _display_summary(modules)
    if verbose:
        display_tree(build_results_tree(modules, path.name))
    elif any(m.unused_dependencies for m in modules):
        display_tree(build_summary_tree(modules))

    if fail_on_unused and any(m.unused_dependencies for m in modules):
        raise typer.Exit(1)


@app.command()
def cleanup(
    path: Path = typer.Argument(
        Path("."),
        help="Root of the Gradle project",
    ),
    module: Optional[str] = typer.Option(
        None,
        "--module",
        "-m",
        help="Only clean up this module",
    ),
    skip_check: bool = typer.Option(
        False,
        "--skip-check",
        help=f"Reuse the existing {REPORT_FILE} instead of analyzing again",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="List what would be removed without touching build files",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Debug logging",
    ),
) -> None:
    """Remove unused dependencies, keeping only removals the build accepts."""
    setup_logging(verbose)
    path = path.resolve()
    cfg = load_config(path, config)
    target = _normalize_module(module)

    console.print(Panel.fit("[bold blue]depprune - Dependency Cleanup[/]"))
    console.print(f"\n[dim]Project:[/] {path}\n")

    if skip_check:
        report_path = path / REPORT_FILE
        if not report_path.exists():
            console.print(f"[red]Report not found:[/] {report_path}")
            console.print("Run [bold]depprune check[/] first to generate it.")
            raise typer.Exit(1)
        candidates = parse_unused_report(report_path.read_text(encoding="utf-8"))
    else:
        candidates = unused_by_module(_run_check(path, cfg, target, fast=False))

    if target is not None:
        candidates = {name: deps for name, deps in candidates.items() if name == target}
    candidates = _without_excluded(candidates, cfg)

    if not candidates:
        console.print("[green]No unused dependencies found. Nothing to clean up.[/]")
        return

    total = sum(len(deps) for deps in candidates.values())
    console.print(
        f"[dim]Candidates:[/] {total} dependencies in {len(candidates)} modules"
        + (" [yellow](dry run)[/]" if dry_run else "")
    )

    oracle = BuildOracle(path, cfg.build)
    engine = RemovalEngine(
        path,
        oracle,
        sequential_threshold=cfg.build.sequential_threshold,
        dry_run=dry_run,
    )
    report = engine.run(candidates, target_module=target)

    write_report(render_cleanup_report(report), path / CLEANUP_REPORT_FILE)
    ensure_depprune_dir(path)
    write_cleanup_results(report, get_cleanup_path(path))

    console.print()
    console.print(build_cleanup_table(report))
    _display_cleanup_summary(report, oracle.invocations)
    console.print(f"\n[green]Cleanup report saved to:[/] {path / CLEANUP_REPORT_FILE}")

    if report.final_build is not None and not report.final_build.succeeded:
        console.print("[red]Final build failed.[/] Review the removals listed above.")
        raise typer.Exit(1)


@app.command()
def show(
    path: Path = typer.Argument(
        Path("."),
        help="Root of the Gradle project",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show full tree view",
    ),
) -> None:
    """Display results from a previous check run."""
    path = path.resolve()
    results_path = get_results_path(path)

    if not results_path.exists():
        console.print(f"[red]Results file not found:[/] {results_path}")
        raise typer.Exit(1)

    modules = load_modules(results_path)
    _display_summary(modules)
    if verbose:
        display_tree(build_results_tree(modules, path.name))
    else:
        display_tree(build_summary_tree(modules))


def _normalize_module(module: Optional[str]) -> Optional[str]:
    if module is None:
        return None
    return module.strip().lstrip(":") or None


def _without_excluded(
    candidates: dict[str, list[Dependency]], config: Config
) -> dict[str, list[Dependency]]:
    """Drop excluded modules and dependencies from a candidate map."""
    filtered: dict[str, list[Dependency]] = {}
    for name, deps in candidates.items():
        if config.is_module_excluded(name):
            continue
        kept = [d for d in deps if not config.is_dependency_excluded(name, d)]
        if kept:
            filtered[name] = kept
    return filtered


def _run_check(
    path: Path,
    config: Config,
    target_module: Optional[str],
    fast: bool,
    full_report: bool = False,
) -> list[Module]:
    """Compile, scan and resolve, then write the reports and results.json."""
    start_time = time.time()

    if not fast:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Compiling modules...", total=None)
            outcome = BuildOracle(path, config.build).precompile()
            progress.update(task, completed=True)
        if not outcome.succeeded:
            console.print(
                "[yellow]![/] Compilation failed; continuing with existing class files"
            )

    module_names = discover_modules(path)
    if module_names is None:
        console.print("[red]No settings.gradle or settings.gradle.kts found.[/]")
        modules: list[Module] = []
    else:
        console.print(f"[dim]Found {len(module_names)} modules in settings[/]")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Scanning class files...", total=None)
            modules = analyze_project(path, module_names, config, target_module=target_module)
            progress.update(task, completed=True)

    duration_ms = int((time.time() - start_time) * 1000)

    write_report(render_unused_report(modules, target_module), path / REPORT_FILE)
    console.print(f"[green]Report saved to:[/] {path / REPORT_FILE}")
    if full_report:
        write_report(render_full_report(modules), path / FULL_REPORT_FILE)
        console.print(f"[green]Full report saved to:[/] {path / FULL_REPORT_FILE}")

    ensure_depprune_dir(path)
    write_results(modules, get_results_path(path), path, duration_ms)

    return modules


def _display_summary(modules: list[Module]) -> None:
    """Display analysis summary."""
    total_deps = sum(len(m.dependencies) for m in modules)
    total_unused = sum(len(m.unused_dependencies) for m in modules)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row("Modules analyzed", str(len(modules)))
    table.add_row("Declared dependencies", str(total_deps))
    color = "red" if total_unused else "green"
    table.add_row("Unused dependencies", f"[{color}]{total_unused}[/]")

    table.add_row("", "")
    for module in modules:
        if module.unused_dependencies:
            table.add_row(f"  {module.name}", str(len(module.unused_dependencies)))

    console.print(Panel(table, title="[bold]Dependency Summary[/]", border_style="blue"))


def _display_cleanup_summary(report: CleanupReport, builds: int) -> None:
    """Display cleanup summary."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    table.add_row("Removed", f"[green]{report.removed_count}[/]")
    table.add_row("Kept", f"[yellow]{report.failed_count}[/]")
    table.add_row("Builds run", str(builds))
    if report.final_build is not None:
        status = "[green]passed[/]" if report.final_build.succeeded else "[red]failed[/]"
        table.add_row("Final build", status)

    console.print(Panel(table, title="[bold]Cleanup Summary[/]", border_style="blue"))


if __name__ == "__main__":
    app()
