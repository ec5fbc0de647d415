"""Make command implementation."""

import logging
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape

from buildgraph.cli.options import options_from_args, print_diagnostics
from buildgraph.config.schema import CONFIG_FILE_NAME, Configuration
from buildgraph.diagnostics import Severity
from buildgraph.errors import BuildGraphError
from buildgraph.pipeline import run_pipeline

logger = logging.getLogger("buildgraph.cli.make")


def make_command(args, console: Optional[Console] = None) -> int:
    """Execute make command.

    Args:
        args: Parsed command-line arguments.
        console: Console for the summary output.

    Returns:
        int: Exit code.
    """
    console = console or Console()
    start_time = time.time()

    try:
        config = Configuration.from_options(options_from_args(args))
        result = run_pipeline(config, generate=True)
    except BuildGraphError as e:
        logger.error("Make failed: %s", e)
        console.print(f"[bold red]ERROR[/bold red] {escape(str(e))}", highlight=False, soft_wrap=True)
        return 1

    shown = [
        d for d in result.diagnostics if d.severity != Severity.INFO or getattr(args, "verbose", False)
    ]
    print_diagnostics(console, shown)

    if not result.ok:
        console.print("[bold red]Solution generation failed[/bold red]")
        return 1

    assert config.engine_root_path is not None
    config.save(Path(config.engine_root_path) / CONFIG_FILE_NAME)

    elapsed = time.time() - start_time
    console.print(
        f"Generated [bold]{len(result.solution.projects)}[/bold] project(s) for "
        f"[bold]{config.merged_name}[/bold], {result.saved_files} file(s) written "
        f"in {elapsed:.2f}s"
    )
    console.print(f"Solution: {config.solution_path}")
    return 0
