"""Exception hierarchy for buildgraph.

Collect-all-errors stages (scanning, scripting, resolution, deploy) record
diagnostics instead of raising. The exceptions below are reserved for
configuration problems detected before scanning and for structural
failures that make any further stage meaningless.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class BuildGraphError(Exception):
    """Base class for all buildgraph errors."""


class ConfigurationError(BuildGraphError):
    """Invalid build axis combination or missing required directory."""


class ProjectNameCollisionError(ConfigurationError):
    """Two projects resolved to the same merged name."""

    def __init__(self, name: str, first: str, second: str) -> None:
        super().__init__(
            f"Project name '{name}' is used by both '{first}' and '{second}'"
        )
        self.name = name
        self.first = first
        self.second = second


class ScriptError(BuildGraphError):
    """Runtime fault inside a configuration script.

    Raised by the interpreter and caught by the script host, which marks
    only the offending project as invalid.
    """

    def __init__(self, message: str, line: Optional[int] = None) -> None:
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class ScriptSyntaxError(ScriptError):
    """Configuration script text could not be parsed."""


class StructuralError(BuildGraphError):
    """Unrecoverable graph-level failure, aborts solution generation."""


class DependencyCycleError(StructuralError):
    """Dependency graph contains at least one cycle.

    Attributes:
        cycle: Projects on the first detected cycle path, in walk order.
        cycles: Every cycle path detected during the ordering pass.
    """

    def __init__(self, cycles: Sequence[Sequence[str]]) -> None:
        self.cycles: List[List[str]] = [list(c) for c in cycles]
        self.cycle: List[str] = self.cycles[0] if self.cycles else []
        pretty = " -> ".join(self.cycle + self.cycle[:1])
        super().__init__(f"Recursive project dependencies found: {pretty}")


class AggregationError(StructuralError):
    """Module aggregation could not produce a valid project set."""
