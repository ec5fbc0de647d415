"""Main CLI entry point for buildgraph.

Provides commands: make, scan
"""

import argparse
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from buildgraph.cli.make import make_command
from buildgraph.cli.scan import scan_command
from buildgraph.config.schema import (
    BuildType,
    ConfigurationType,
    GeneratorType,
    LibraryType,
    PlatformType,
)

logger = logging.getLogger("buildgraph.cli")


def setup_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """Setup logging configuration with Rich integration.

    Args:
        verbose: Enable verbose logging.
        console: Rich Console instance for coordinated output (optional).
    """
    if verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=verbose,
        log_time_format="[%H:%M:%S]",
    )

    logging.basicConfig(
        level=level,
        format="[%(name)s] [%(levelname)s] %(message)s",
        handlers=[handler],
    )


def _choices(enum_cls) -> list:
    return [member.value for member in enum_cls]


def _add_configuration_arguments(parser: argparse.ArgumentParser) -> None:
    """Build axis and directory options shared by every command."""
    parser.add_argument(
        "-c",
        "--config",
        help=(
            "Optional build options. Can be a path to a TOML/JSON file or an "
            "inline TOML/JSON string. Explicit flags override it."
        ),
    )
    parser.add_argument("--platform", choices=_choices(PlatformType), help="Target platform")
    parser.add_argument("--generator", choices=_choices(GeneratorType), help="Solution generator")
    parser.add_argument("--build", choices=_choices(BuildType), help="Build type (default: dev)")
    parser.add_argument("--libs", choices=_choices(LibraryType), help="Library type")
    parser.add_argument(
        "--configuration",
        choices=_choices(ConfigurationType),
        help="Configuration level",
    )
    parser.add_argument(
        "--engine-dir",
        dest="engine_dir",
        help="Engine root directory (default: current directory)",
    )
    parser.add_argument(
        "--project-dir",
        dest="project_dir",
        help="Additional user project sources directory",
    )
    parser.add_argument(
        "--deploy-dir",
        dest="deploy_dir",
        help="Deploy directory (default: <engine>/.bin/<configuration>)",
    )
    parser.add_argument(
        "--out-dir",
        dest="out_dir",
        help="Solution directory (default: <engine>/.temp/<configuration>)",
    )


def main() -> int:
    """Main CLI entry point.

    Returns:
        int: Exit code.
    """
    parser = argparse.ArgumentParser(
        description="Buildgraph - Multi-project build description compiler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    make_parser = subparsers.add_parser(
        "make",
        help="Configure projects and generate solution inputs",
    )
    _add_configuration_arguments(make_parser)
    make_parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Force regeneration of all outputs",
    )

    scan_parser = subparsers.add_parser(
        "scan",
        help="Configure and resolve projects and print the build order",
    )
    _add_configuration_arguments(scan_parser)

    args = parser.parse_args()

    setup_logging(args.verbose)

    if args.command == "make":
        return make_command(args)
    elif args.command == "scan":
        return scan_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
