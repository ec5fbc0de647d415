"""Structured diagnostics returned by collect-all-errors stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional

logger = logging.getLogger("buildgraph.diagnostics")


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Stage(str, Enum):
    """Pipeline stage that produced a diagnostic."""

    SCAN = "scan"
    SCRIPT = "script"
    RESOLVE = "resolve"
    AGGREGATE = "aggregate"
    DEPLOY = "deploy"
    EXTRACT = "extract"
    GENERATE = "generate"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class Diagnostic:
    stage: Stage
    project: Optional[str]
    severity: Severity
    message: str

    def __str__(self) -> str:
        where = f"[{self.project}] " if self.project else ""
        return f"{self.stage.value}: {where}{self.message}"


@dataclass
class Diagnostics:
    """Ordered collection of diagnostics.

    Every recorded entry is also forwarded to the module logger so that
    console output and the structured list never disagree.
    """

    items: List[Diagnostic] = field(default_factory=list)

    def add(
        self,
        stage: Stage,
        severity: Severity,
        message: str,
        project: Optional[str] = None,
    ) -> Diagnostic:
        diagnostic = Diagnostic(stage, project, severity, message)
        self.items.append(diagnostic)
        logger.log(_LOG_LEVELS[severity], "%s", diagnostic)
        return diagnostic

    def error(self, stage: Stage, message: str, project: Optional[str] = None) -> Diagnostic:
        return self.add(stage, Severity.ERROR, message, project)

    def warning(self, stage: Stage, message: str, project: Optional[str] = None) -> Diagnostic:
        return self.add(stage, Severity.WARNING, message, project)

    def info(self, stage: Stage, message: str, project: Optional[str] = None) -> Diagnostic:
        return self.add(stage, Severity.INFO, message, project)

    def extend(self, other: "Diagnostics") -> None:
        self.items.extend(other.items)

    def for_stage(self, stage: Stage) -> List[Diagnostic]:
        return [d for d in self.items if d.stage == stage]

    def for_project(self, project: str) -> List[Diagnostic]:
        return [d for d in self.items if d.project == project]

    def errors(self) -> List[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.ERROR]

    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.items)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class StageResult:
    """Outcome of one pipeline stage."""

    stage: Stage
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def ok(self) -> bool:
        return not self.diagnostics.has_errors

    def errors(self) -> List[Diagnostic]:
        return self.diagnostics.errors()
