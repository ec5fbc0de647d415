"""Scan command implementation."""

import logging
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from buildgraph.cli.options import options_from_args, print_diagnostics
from buildgraph.config.schema import Configuration
from buildgraph.errors import BuildGraphError
from buildgraph.graph.generator import ExtractedSolution
from buildgraph.pipeline import run_pipeline

logger = logging.getLogger("buildgraph.cli.scan")


def _yes(flag: bool) -> str:
    return "yes" if flag else ""


def projects_table(solution: ExtractedSolution) -> Table:
    """Projects in build order with their link decisions."""
    table = Table(title=f"Projects ({solution.config.merged_name})")
    table.add_column("#", justify="right")
    table.add_column("Project", style="bold")
    table.add_column("Kind")
    table.add_column("Group")
    table.add_column("Dynamic")
    table.add_column("Linked")
    table.add_column("Entry")
    table.add_column("Reflection")
    table.add_column("Dependencies")

    for index, project in enumerate(solution.projects, 1):
        table.add_row(
            str(index),
            project.name,
            project.kind.value,
            project.group,
            _yes(project.will_be_dynamic),
            _yes(project.will_be_linked),
            _yes(project.will_have_entry_point),
            _yes(project.has_reflection),
            ", ".join(project.direct_dependencies),
        )
    return table


def scan_command(args, console: Optional[Console] = None) -> int:
    """Configure and resolve projects, then print the build order.

    Nothing is deployed or written.

    Args:
        args: Parsed command-line arguments.
        console: Console for the table output.

    Returns:
        int: Exit code.
    """
    console = console or Console()
    try:
        config = Configuration.from_options(options_from_args(args))
        result = run_pipeline(config, generate=False)
    except BuildGraphError as e:
        logger.error("Scan failed: %s", e)
        console.print(f"[bold red]ERROR[/bold red] {escape(str(e))}", highlight=False, soft_wrap=True)
        return 1

    print_diagnostics(console, result.diagnostics.errors() + result.diagnostics.warnings())
    if result.solution is None:
        return 1

    console.print(projects_table(result.solution))
    return 0 if result.ok else 1
