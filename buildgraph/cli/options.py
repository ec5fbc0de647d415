"""Turning parsed command-line arguments into a Configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

from rich.console import Console
from rich.markup import escape

from buildgraph.config.loader import load_build_options
from buildgraph.config.schema import CONFIG_FILE_NAME, BuildOptions, Configuration
from buildgraph.diagnostics import Diagnostic, Severity

logger = logging.getLogger("buildgraph.cli.options")

AXIS_OPTIONS = ("platform", "generator", "build", "libs", "configuration")
PATH_OPTIONS = ("engine_dir", "project_dir", "deploy_dir", "out_dir")

_SEVERITY_STYLES = {
    Severity.INFO: "cyan",
    Severity.WARNING: "yellow",
    Severity.ERROR: "bold red",
}


def options_from_args(args, cwd: Optional[Path] = None) -> BuildOptions:
    """Merge the options file, a saved ``.buildConfig`` and explicit flags.

    Explicit flags win over the options file. The saved axis tuple is only
    consulted when neither names any axis.
    """
    options = load_build_options(getattr(args, "config", None))

    overrides: Dict[str, object] = {}
    for name in AXIS_OPTIONS + PATH_OPTIONS:
        value = getattr(args, name, None)
        if value:
            overrides[name] = value
    if getattr(args, "force", False):
        overrides["force"] = True

    has_axes = any(getattr(options, name) for name in AXIS_OPTIONS) or any(
        name in overrides for name in AXIS_OPTIONS
    )
    if not has_axes:
        engine_dir = overrides.get("engine_dir") or options.engine_dir
        root = Path(str(engine_dir)) if engine_dir else (cwd or Path.cwd())
        saved = Configuration.load_options(root / CONFIG_FILE_NAME)
        if saved is not None:
            logger.info("Using saved configuration from %s", root / CONFIG_FILE_NAME)
            overrides.update(saved.model_dump(include=set(AXIS_OPTIONS)))

    return options.model_copy(update=overrides)


def print_diagnostics(console: Console, diagnostics: List[Diagnostic]) -> None:
    for diagnostic in diagnostics:
        style = _SEVERITY_STYLES[diagnostic.severity]
        console.print(
            f"[{style}]{diagnostic.severity.value.upper()}[/{style}] {escape(str(diagnostic))}",
            highlight=False,
            soft_wrap=True,
        )
