"""Rich tree and table views of analysis and cleanup results."""

from rich.console import Console
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from depprune.models.cleanup import AttemptState, CleanupReport
from depprune.models.module import DependencyKind, Module

console = Console()

_KIND_STYLES = {
    DependencyKind.API: "magenta",
    DependencyKind.IMPLEMENTATION: "cyan",
    DependencyKind.TEST_IMPLEMENTATION: "yellow",
}


def build_results_tree(modules: list[Module], project_name: str) -> Tree:
    """Build a Rich tree of unused dependencies by module."""
    root = Tree(f"[bold]{project_name}[/]", guide_style="dim")

    for module in sorted(modules, key=lambda m: m.name):
        if not module.unused_dependencies:
            continue

        module_node = root.add(
            f"[bold blue]{module.name}[/] "
            f"[dim]({len(module.unused_dependencies)}/{len(module.dependencies)} unused)[/]"
        )
        for dep in module.unused_dependencies:
            item_text = Text()
            item_text.append("x ", style="red bold")
            item_text.append(dep.kind.value, style=_KIND_STYLES[dep.kind])
            item_text.append(" ")
            item_text.append(dep.name, style="red")
            module_node.add(item_text)

    return root


def build_summary_tree(modules: list[Module]) -> Tree:
    """Build a summary tree grouped by declaration keyword."""
    root = Tree("[bold]Unused Dependency Summary[/]", guide_style="dim")

    for kind in DependencyKind:
        unused = [
            (module.name, dep)
            for module in modules
            for dep in module.unused_dependencies
            if dep.kind == kind
        ]
        declared = sum(1 for m in modules for d in m.dependencies if d.kind == kind)
        if not declared:
            continue

        kind_node = root.add(
            f"[{_KIND_STYLES[kind]}]{kind.value}[/] ({len(unused)} of {declared} unused)"
        )
        if unused:
            examples_node = kind_node.add("[dim]Examples:[/]")
            for module_name, dep in unused[:3]:
                examples_node.add(f"[red]{dep.name}[/] in {module_name}")

    return root


def build_cleanup_table(report: CleanupReport) -> Table:
    """Build a table with one row per removal attempt."""
    table = Table(title="Dependency Cleanup", show_lines=False)
    table.add_column("Module", style="bold blue")
    table.add_column("Dependency")
    table.add_column("Result")
    table.add_column("Reason", style="dim")

    for record in report.latest():
        if record.removed:
            result = "[green]removed[/]"
        elif record.state == AttemptState.UNTESTED:
            result = "[yellow]skipped[/]"
        else:
            result = "[red]kept[/]"
        table.add_row(record.module, str(record.dependency), result, record.reason)

    return table


def display_tree(tree: Tree) -> None:
    """Display the tree to console."""
    console.print()
    console.print(tree)
    console.print()
